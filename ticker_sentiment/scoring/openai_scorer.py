"""Sentiment scoring delegated to an OpenAI chat completion."""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Optional

import openai
from openai import AsyncOpenAI
from pydantic import ValidationError

from ticker_sentiment.collector.api_logger import ApiLogger
from ticker_sentiment.collector.errors import ScoringError
from ticker_sentiment.models.dtos import RequestLogEntry, SentimentScore
from ticker_sentiment.scoring.base import (
    BEARISH_KEYWORDS,
    BULLISH_KEYWORDS,
    KEYWORD_CAP,
    KEYWORD_STEP,
    VOTE_ADJUSTMENTS,
    VOTE_ADJUSTMENT_MAX,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TEMPERATURE = 0.2


def _vote_table() -> str:
    lines = []
    lower = 0
    for ceiling, adjustment in VOTE_ADJUSTMENTS:
        lines.append(f"  - {lower}-{ceiling} votes: {adjustment:.2f}")
        lower = ceiling + 1
    lines.append(f"  - more than {lower - 1} votes: {VOTE_ADJUSTMENT_MAX:.2f}")
    return "\n".join(lines)


SYSTEM_PROMPT = f"""You are a financial sentiment analyzer. You score one Reddit comment about one stock ticker.

Follow this procedure exactly:
1. Pick the base tone from the strongest tone expressed toward the stock:
   extremely bullish +0.90, bullish +0.65, slightly bullish +0.30, neutral 0.00,
   slightly bearish -0.30, bearish -0.65, extremely bearish -0.90.
   If two tones are equally strong, choose the one closer to neutral.
2. Add {KEYWORD_STEP:.2f} for each occurrence of a bullish keyword, at most +{KEYWORD_CAP:.2f} in total.
   Bullish keywords (execution and execute are the same keyword): {", ".join(BULLISH_KEYWORDS)}.
3. Subtract {KEYWORD_STEP:.2f} for each occurrence of a bearish keyword, at most -{KEYWORD_CAP:.2f} in total.
   Bearish keywords: {", ".join(BEARISH_KEYWORDS)}.
4. Engagement: take the adjustment for the absolute vote count and move the running
   value further in its current direction (add if positive, subtract if negative,
   nothing if exactly 0.00):
{_vote_table()}
5. Clamp to [-1, 1] and round to 2 decimal places.

Set flagForDelete to true if the comment is off-topic (not about the stock or company),
a bare link to an image, GIF or video, or otherwise not an opinion about the company.

Return JSON only: {{"sentiment": <number>, "flagForDelete": <boolean>}}"""


class OpenAISentimentScorer:
    """
    Scores comments with a chat completion returning a strict JSON object.

    Any transport error, unparseable reply, or out-of-range value raises
    ScoringError. Every call is recorded through the ApiLogger.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = DEFAULT_MODEL,
        temperature: float = DEFAULT_TEMPERATURE,
        api_logger: Optional[ApiLogger] = None,
    ):
        self.client = client
        self.model = model
        self.temperature = temperature
        self.api_logger = api_logger

    @classmethod
    def from_api_key(cls, api_key: str, timeout_seconds: float = 30.0, **kwargs) -> "OpenAISentimentScorer":
        return cls(AsyncOpenAI(api_key=api_key, timeout=timeout_seconds, max_retries=0), **kwargs)

    async def score(self, ticker: str, body: str, vote_count: int) -> SentimentScore:
        user_message = json.dumps({"ticker": ticker, "body": body, "voteCount": vote_count})
        requested_at = datetime.now(timezone.utc)
        started = time.monotonic()
        content = None

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                response_format={"type": "json_object"},
                temperature=self.temperature,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": user_message},
                ],
            )
            content = response.choices[0].message.content if response.choices else None
            if not content:
                raise ScoringError(f"Empty completion for {ticker}")
            result = SentimentScore.model_validate(json.loads(content))
        except ScoringError as e:
            self._record(ticker, requested_at, started, error=str(e), content=content)
            raise
        except openai.APIStatusError as e:
            self._record(ticker, requested_at, started, error=str(e), status=e.status_code)
            raise ScoringError(f"OpenAI request failed for {ticker}: HTTP {e.status_code}") from e
        except openai.OpenAIError as e:
            self._record(ticker, requested_at, started, error=str(e))
            raise ScoringError(f"OpenAI request failed for {ticker}: {e}") from e
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            self._record(ticker, requested_at, started, error=f"Invalid scorer output: {e}", content=content)
            raise ScoringError(f"Invalid scorer output for {ticker}: {content!r}") from e

        self._record(ticker, requested_at, started, content=content, status=200)
        return SentimentScore(sentiment=round(result.sentiment, 2), flag_for_delete=result.flag_for_delete)

    def _record(
        self,
        ticker: str,
        requested_at: datetime,
        started: float,
        error: Optional[str] = None,
        content: Optional[str] = None,
        status: Optional[int] = None,
    ) -> None:
        if self.api_logger is None:
            return
        self.api_logger.log(RequestLogEntry(
            service="openai",
            endpoint="/chat/completions",
            method="POST",
            requested_at=requested_at,
            responded_at=datetime.now(timezone.utc),
            duration_ms=int((time.monotonic() - started) * 1000),
            status_code=status,
            success=error is None,
            error_message=error,
            request_summary=f"model={self.model} ticker={ticker}",
            response_summary=content,
        ))
