import pytest

from ticker_sentiment.scoring.base import BEARISH_KEYWORDS, BULLISH_KEYWORDS, SentimentScorer, vote_adjustment
from ticker_sentiment.scoring.rule_based import RuleBasedSentimentScorer


@pytest.fixture(scope="module")
def scorer():
    return RuleBasedSentimentScorer()


@pytest.mark.asyncio
async def test_neutral_on_topic_comment(scorer):
    result = await scorer.score("TSLA", "TSLA earnings report comes out on Thursday", 3)

    assert result.sentiment == 0.0
    assert result.flag_for_delete is False


@pytest.mark.asyncio
async def test_extremely_bullish_comment_clamps_to_one(scorer):
    body = "TSLA to the moon! growth, revenue, margins, profitability, demand and execution"

    result = await scorer.score("TSLA", body, 150)

    assert result.sentiment == 1.0
    assert result.flag_for_delete is False


@pytest.mark.asyncio
async def test_bearish_comment_with_keywords_and_votes(scorer):
    body = "Avoid TSLA, it is overvalued and the debt and dilution risk is real"

    result = await scorer.score("TSLA", body, 30)

    # -0.65 tone, four bearish keywords, 30 votes
    assert result.sentiment == -0.77


@pytest.mark.asyncio
async def test_bearish_keyword_adjustment_is_capped(scorer):
    body = "I'm worried about TSLA: lawsuit, lawsuit, debt, debt, dilution, downgrade, risk"

    result = await scorer.score("TSLA", body, 10)

    assert result.sentiment == -0.42


@pytest.mark.asyncio
async def test_conflicting_tones_of_equal_strength_are_neutral(scorer):
    result = await scorer.score("TSLA", "Should I buy or sell TSLA here?", 40)

    assert result.sentiment == 0.0
    assert result.flag_for_delete is False


@pytest.mark.asyncio
async def test_stronger_tone_wins(scorer):
    result = await scorer.score("TSLA", "I like the cars but TSLA is a scam", 0)
    assert result.sentiment == -0.9


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body, votes, expected",
    [
        ("Revenue growth is there for TSLA", 60, 0.09),
        ("TSLA has debt", 200, -0.1),
        ("TSLA has debt", -200, -0.1),
    ],
)
async def test_vote_adjustment_follows_running_direction(scorer, body, votes, expected):
    result = await scorer.score("TSLA", body, votes)
    assert result.sentiment == expected


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        "https://i.imgur.com/abc123.gif",
        "![gif](giphy|l0HlvtIPzPdt2usKs)",
        "https://v.redd.it/xyz789",
        "  https://example.com/some/page  ",
    ],
)
async def test_bare_links_are_flagged(scorer, body):
    result = await scorer.score("TSLA", body, 25)
    assert result.flag_for_delete is True


@pytest.mark.asyncio
async def test_off_topic_comment_is_flagged(scorer):
    result = await scorer.score("TSLA", "What did everyone have for lunch today?", 12)

    assert result.sentiment == 0.0
    assert result.flag_for_delete is True


def test_keyword_counts_match_longest_phrase_once(scorer):
    assert scorer.keyword_counts("weak demand everywhere") == (0, 1)
    assert scorer.keyword_counts("demand is strong") == (1, 0)
    assert scorer.keyword_counts("margin pressure and margins") == (1, 1)
    assert scorer.keyword_counts("Growth, growth, GROWTH") == (3, 0)


@pytest.mark.parametrize("word", BULLISH_KEYWORDS)
def test_every_bullish_keyword_counts_once(scorer, word):
    assert scorer.keyword_counts(f"TSLA {word} here") == (1, 0)
    assert scorer.keyword_counts(f"TSLA {word.upper()} here") == (1, 0)


@pytest.mark.parametrize("word", BEARISH_KEYWORDS)
def test_every_bearish_keyword_counts_once(scorer, word):
    assert scorer.keyword_counts(f"TSLA {word} here") == (0, 1)


@pytest.mark.parametrize("word", ["AI", "ai", "innovation", "partnership", "competition", "main", "missed", "risky"])
def test_words_outside_the_lexicon_do_not_count(scorer, word):
    assert scorer.keyword_counts(f"TSLA {word} here") == (0, 0)


def test_execution_and_execute_both_count_as_bullish(scorer):
    assert scorer.keyword_counts("great execution, now execute again") == (2, 0)


def test_mentions_ticker(scorer):
    assert scorer.mentions_ticker("TSLA", "bought more $tsla today")
    assert not scorer.mentions_ticker("TSLA", "TSLAQ crowd again")


@pytest.mark.parametrize(
    "votes, expected",
    [(0, 0.0), (5, 0.0), (6, 0.02), (20, 0.02), (21, 0.04), (50, 0.04),
     (51, 0.05), (100, 0.05), (101, 0.08), (-150, 0.08)],
)
def test_vote_adjustment_bands(votes, expected):
    assert vote_adjustment(votes) == expected


@pytest.mark.parametrize(
    "body",
    [
        "",
        "moon moon moon growth revenue margins demand catalyst execute momentum backlog",
        "scam fraud bankrupt lawsuit debt dilution risk cash burn layoffs overvalued",
        "buy sell hold short calls puts",
    ],
)
@pytest.mark.parametrize("votes", [-1000, 0, 7, 99, 10000])
def test_results_are_bounded_and_rounded(scorer, body, votes):
    result = scorer.compute("TSLA", body, votes)

    assert -1.0 <= result.sentiment <= 1.0
    assert round(result.sentiment, 2) == result.sentiment


def test_satisfies_scorer_protocol(scorer):
    assert isinstance(scorer, SentimentScorer)
