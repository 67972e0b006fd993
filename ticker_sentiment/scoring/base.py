"""Interface shared by sentiment scorers, plus the parts of the procedure every scorer agrees on."""

from typing import Protocol, runtime_checkable

from ticker_sentiment.models.dtos import SentimentScore

# Tone ladder, strongest to weakest on each side.
EXTREME_BULLISH = 0.90
BULLISH = 0.65
SLIGHTLY_BULLISH = 0.30
NEUTRAL = 0.00
SLIGHTLY_BEARISH = -0.30
BEARISH = -0.65
EXTREME_BEARISH = -0.90

KEYWORD_STEP = 0.02
KEYWORD_CAP = 0.10

BULLISH_KEYWORDS = (
    "growth", "execution", "execute", "catalyst", "revenue", "profitability",
    "margins", "guidance", "expansion", "adoption", "demand", "contracts",
    "backlog", "scale", "turnaround", "recovery", "momentum", "strong balance sheet",
)
BEARISH_KEYWORDS = (
    "delay", "miss", "risk", "uncertainty", "dilution", "debt", "cash burn",
    "layoffs", "weak demand", "margin pressure", "regulatory risk", "lawsuit",
    "downgrade", "overvalued", "bad quarter", "slowdown",
)

# (upper bound on |votes|, adjustment magnitude); anything larger gets VOTE_ADJUSTMENT_MAX.
VOTE_ADJUSTMENTS = (
    (5, 0.00),
    (20, 0.02),
    (50, 0.04),
    (100, 0.05),
)
VOTE_ADJUSTMENT_MAX = 0.08


def vote_adjustment(vote_count: int) -> float:
    """Magnitude of the engagement adjustment for a comment's vote count."""
    votes = abs(vote_count)
    for ceiling, adjustment in VOTE_ADJUSTMENTS:
        if votes <= ceiling:
            return adjustment
    return VOTE_ADJUSTMENT_MAX


def clamp_and_round(value: float) -> float:
    return round(max(-1.0, min(1.0, value)), 2)


@runtime_checkable
class SentimentScorer(Protocol):
    """Scores one comment about one ticker."""

    async def score(self, ticker: str, body: str, vote_count: int) -> SentimentScore:
        """
        Raises:
            ScoringError: If no valid score could be produced
        """
        ...
