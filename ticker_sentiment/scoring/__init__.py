"""Sentiment scorers and the factory that picks one from settings."""

import logging
from typing import Optional

from ticker_sentiment.collector.api_logger import ApiLogger
from ticker_sentiment.collector.errors import ConfigurationError
from ticker_sentiment.config.settings import Settings
from ticker_sentiment.scoring.base import SentimentScorer
from ticker_sentiment.scoring.openai_scorer import OpenAISentimentScorer
from ticker_sentiment.scoring.rule_based import RuleBasedSentimentScorer

logger = logging.getLogger(__name__)

__all__ = [
    "SentimentScorer",
    "OpenAISentimentScorer",
    "RuleBasedSentimentScorer",
    "build_scorer",
]


def build_scorer(settings: Settings, api_logger: Optional[ApiLogger] = None) -> SentimentScorer:
    """
    Create the scorer selected by SCORER_BACKEND.

    Raises:
        ConfigurationError: If the OpenAI backend is selected without an API key
    """
    if settings.SCORER_BACKEND == "rule_based":
        logger.info("Using rule-based sentiment scorer")
        return RuleBasedSentimentScorer()

    if settings.SCORER_BACKEND == "openai":
        if not settings.OPENAI_API_KEY:
            raise ConfigurationError("SCORER_BACKEND=openai requires OPENAI_API_KEY")
        logger.info(f"Using OpenAI sentiment scorer (model={settings.OPENAI_MODEL})")
        return OpenAISentimentScorer.from_api_key(
            settings.OPENAI_API_KEY,
            timeout_seconds=settings.OPENAI_TIMEOUT_SECONDS,
            model=settings.OPENAI_MODEL,
            temperature=settings.OPENAI_TEMPERATURE,
            api_logger=api_logger,
        )

    raise ConfigurationError(f"Unknown SCORER_BACKEND: {settings.SCORER_BACKEND}")
