"""Deterministic, offline implementation of the scoring procedure."""

import logging
import re
from typing import Dict, Iterable, List, Pattern, Tuple

from ticker_sentiment.models.dtos import SentimentScore
from ticker_sentiment.scoring.base import (
    BEARISH,
    BEARISH_KEYWORDS,
    BULLISH,
    BULLISH_KEYWORDS,
    EXTREME_BEARISH,
    EXTREME_BULLISH,
    KEYWORD_CAP,
    KEYWORD_STEP,
    NEUTRAL,
    SLIGHTLY_BEARISH,
    SLIGHTLY_BULLISH,
    clamp_and_round,
    vote_adjustment,
)

logger = logging.getLogger(__name__)

# Phrases signalling each rung of the tone ladder.
TONE_SIGNALS: Dict[float, Tuple[str, ...]] = {
    EXTREME_BULLISH: (
        "to the moon", "moon", "mooning", "rocket", "all in", "tendies", "10x", "100x",
        "ten bagger", "screaming buy", "generational buy", "massively undervalued", "can't lose",
    ),
    BULLISH: (
        "bullish", "buy", "buying", "bought", "long", "calls", "undervalued", "upside",
        "outperform", "strong buy", "loading up", "adding more", "breakout",
    ),
    SLIGHTLY_BULLISH: (
        "like", "optimistic", "promising", "decent", "solid", "good", "great",
        "positive", "hold", "holding", "not bad", "looks okay",
    ),
    SLIGHTLY_BEARISH: (
        "concerned", "concern", "worried", "cautious", "skeptical", "overhyped",
        "disappointing", "meh", "not convinced", "unsure", "careful",
    ),
    BEARISH: (
        "bearish", "sell", "selling", "sold", "short", "shorting", "puts", "avoid",
        "dump", "dumping", "overpriced", "downside", "stay away",
    ),
    EXTREME_BEARISH: (
        "bankrupt", "bankruptcy", "going to zero", "to zero", "scam", "fraud",
        "worthless", "rug pull", "ponzi", "dead company", "total loss",
    ),
}

MEDIA_LINK_RE = re.compile(
    r"^\s*(?:!\[[^\]]*\]\()?(?:https?://)?(?:www\.)?"
    r"(?:i\.redd\.it|v\.redd\.it|preview\.redd\.it|i\.imgur\.com|imgur\.com|giphy\.com|media\.giphy\.com"
    r"|tenor\.com|youtube\.com|youtu\.be|gfycat\.com)\S*\)?\s*$",
    re.IGNORECASE,
)
BARE_LINK_RE = re.compile(r"^\s*\S*https?://\S+\s*$", re.IGNORECASE)
GIF_MARKUP_RE = re.compile(r"^\s*!\[gif\]\([^)]*\)\s*$", re.IGNORECASE)


def _phrase_pattern(phrases: Iterable[str]) -> Pattern:
    """Alternation of phrases, longest first so that overlapping phrases match once."""
    ordered = sorted(set(phrases), key=len, reverse=True)
    parts = [re.escape(phrase).replace(r"\ ", r"\s+") for phrase in ordered]
    return re.compile(r"(?<![\w$])(?:" + "|".join(parts) + r")(?!\w)", re.IGNORECASE)


def _build_tone_patterns() -> List[Tuple[float, Pattern]]:
    return [(level, _phrase_pattern(phrases)) for level, phrases in TONE_SIGNALS.items()]


class RuleBasedSentimentScorer:
    """
    Applies the scoring procedure with fixed lexicons.

    The base tone is the rung of the strongest matched tone signal. When
    bullish and bearish signals of the same strength both appear, the tone
    falls to neutral. Keyword adjustments are counted per occurrence over a
    single pass, so a multi-word keyword ("weak demand") is not also counted
    as its single-word part ("demand").
    """

    def __init__(self):
        self._tone_patterns = _build_tone_patterns()
        self._keyword_pattern = _phrase_pattern(BULLISH_KEYWORDS + BEARISH_KEYWORDS)
        self._bearish = {k.lower() for k in BEARISH_KEYWORDS}

    def base_tone(self, text: str) -> float:
        matched = [level for level, pattern in self._tone_patterns if pattern.search(text)]
        if not matched:
            return NEUTRAL
        strongest = max(abs(level) for level in matched)
        signs = {level > 0 for level in matched if abs(level) == strongest}
        if len(signs) > 1:
            return NEUTRAL
        return strongest if signs.pop() else -strongest

    def keyword_counts(self, text: str) -> Tuple[int, int]:
        bullish = bearish = 0
        for match in self._keyword_pattern.finditer(text):
            phrase = re.sub(r"\s+", " ", match.group(0)).lower()
            if phrase in self._bearish:
                bearish += 1
            else:
                bullish += 1
        return bullish, bearish

    @staticmethod
    def is_bare_link(text: str) -> bool:
        return bool(MEDIA_LINK_RE.match(text) or GIF_MARKUP_RE.match(text) or BARE_LINK_RE.match(text))

    @staticmethod
    def mentions_ticker(ticker: str, text: str) -> bool:
        return re.search(rf"(?<![\w])\$?{re.escape(ticker)}(?!\w)", text, re.IGNORECASE) is not None

    def compute(self, ticker: str, body: str, vote_count: int) -> SentimentScore:
        text = body or ""
        tone = self.base_tone(text)
        bullish, bearish = self.keyword_counts(text)

        sentiment = tone
        sentiment += min(bullish * KEYWORD_STEP, KEYWORD_CAP)
        sentiment -= min(bearish * KEYWORD_STEP, KEYWORD_CAP)

        # Engagement amplifies whichever direction the comment already leans.
        if sentiment > 0:
            sentiment += vote_adjustment(vote_count)
        elif sentiment < 0:
            sentiment -= vote_adjustment(vote_count)

        off_topic = tone == NEUTRAL and bullish == 0 and bearish == 0 and not self.mentions_ticker(ticker, text)
        flag = self.is_bare_link(text) or off_topic

        return SentimentScore(sentiment=clamp_and_round(sentiment), flag_for_delete=flag)

    async def score(self, ticker: str, body: str, vote_count: int) -> SentimentScore:
        result = self.compute(ticker, body, vote_count)
        logger.debug(f"Rule-based score for {ticker}: {result.sentiment} (flag={result.flag_for_delete})")
        return result
