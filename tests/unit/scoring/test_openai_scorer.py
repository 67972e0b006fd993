import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from ticker_sentiment.collector.errors import ConfigurationError, ScoringError
from ticker_sentiment.config.settings import Settings
from ticker_sentiment.scoring import OpenAISentimentScorer, RuleBasedSentimentScorer, build_scorer
from ticker_sentiment.scoring.openai_scorer import SYSTEM_PROMPT

COMPLETIONS_URL = "https://api.openai.com/v1/chat/completions"


def completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.fixture
def client():
    client = MagicMock()
    client.chat.completions.create = AsyncMock()
    return client


@pytest.fixture
def api_logger():
    return MagicMock()


@pytest.fixture
def scorer(client, api_logger):
    return OpenAISentimentScorer(client, api_logger=api_logger)


@pytest.mark.asyncio
async def test_valid_reply(scorer, client, api_logger):
    client.chat.completions.create.return_value = completion('{"sentiment": 0.7249, "flagForDelete": false}')

    result = await scorer.score("TSLA", "Loading up on TSLA calls", 42)

    assert result.sentiment == 0.72
    assert result.flag_for_delete is False

    kwargs = client.chat.completions.create.await_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["temperature"] == 0.2
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["messages"][0] == {"role": "system", "content": SYSTEM_PROMPT}
    assert json.loads(kwargs["messages"][1]["content"]) == {
        "ticker": "TSLA", "body": "Loading up on TSLA calls", "voteCount": 42,
    }

    entry = api_logger.log.call_args.args[0]
    assert entry.service == "openai"
    assert entry.success is True


@pytest.mark.asyncio
async def test_flag_for_delete_reply(scorer, client):
    client.chat.completions.create.return_value = completion('{"sentiment": 0, "flagForDelete": true}')

    result = await scorer.score("TSLA", "https://i.imgur.com/x.gif", 3)

    assert result.sentiment == 0.0
    assert result.flag_for_delete is True


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "content",
    [
        "Sentiment is bullish",
        '{"sentiment": 1.5, "flagForDelete": false}',
        '{"sentiment": -3, "flagForDelete": false}',
        '{"flagForDelete": true}',
        '{"sentiment": "very good"}',
        "[0.5, false]",
        "",
        None,
    ],
)
async def test_bad_reply_raises_scoring_error(scorer, client, api_logger, content):
    client.chat.completions.create.return_value = completion(content)

    with pytest.raises(ScoringError):
        await scorer.score("TSLA", "some comment", 1)

    assert api_logger.log.call_args.args[0].success is False


@pytest.mark.asyncio
async def test_no_choices_raises_scoring_error(scorer, client):
    client.chat.completions.create.return_value = SimpleNamespace(choices=[])

    with pytest.raises(ScoringError):
        await scorer.score("TSLA", "some comment", 1)


@pytest.mark.asyncio
async def test_connection_error_raises_scoring_error(scorer, client):
    client.chat.completions.create.side_effect = openai.APIConnectionError(
        request=httpx.Request("POST", COMPLETIONS_URL)
    )

    with pytest.raises(ScoringError):
        await scorer.score("TSLA", "some comment", 1)


@pytest.mark.asyncio
async def test_status_error_records_status(scorer, client, api_logger):
    request = httpx.Request("POST", COMPLETIONS_URL)
    client.chat.completions.create.side_effect = openai.RateLimitError(
        "Rate limit reached", response=httpx.Response(429, request=request), body=None
    )

    with pytest.raises(ScoringError, match="HTTP 429"):
        await scorer.score("TSLA", "some comment", 1)

    assert api_logger.log.call_args.args[0].status_code == 429


def test_prompt_carries_the_procedure():
    assert "+0.90" in SYSTEM_PROMPT
    assert "weak demand" in SYSTEM_PROMPT
    assert "strong balance sheet" in SYSTEM_PROMPT
    assert "bad quarter" in SYSTEM_PROMPT
    assert "innovation" not in SYSTEM_PROMPT
    assert "more than 100 votes: 0.08" in SYSTEM_PROMPT
    assert "flagForDelete" in SYSTEM_PROMPT


def test_build_scorer_rule_based():
    settings = Settings(_env_file=None, SCORER_BACKEND=" Rule_Based ")
    assert isinstance(build_scorer(settings), RuleBasedSentimentScorer)


def test_build_scorer_openai_needs_key():
    settings = Settings(_env_file=None, SCORER_BACKEND="openai", OPENAI_API_KEY="")
    with pytest.raises(ConfigurationError):
        build_scorer(settings)


def test_build_scorer_openai():
    settings = Settings(_env_file=None, SCORER_BACKEND="openai", OPENAI_API_KEY="sk-test", OPENAI_MODEL="gpt-4o")

    scorer = build_scorer(settings)

    assert isinstance(scorer, OpenAISentimentScorer)
    assert scorer.model == "gpt-4o"


def test_build_scorer_unknown_backend():
    settings = Settings(_env_file=None, SCORER_BACKEND="vader")
    with pytest.raises(ConfigurationError):
        build_scorer(settings)
