"""Assembles the pipeline components from settings."""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from ticker_sentiment.collector.api_logger import ApiLogger
from ticker_sentiment.collector.errors import ConfigurationError
from ticker_sentiment.collector.fetcher import Fetcher
from ticker_sentiment.collector.freshness import FreshnessScheduler, rules_from_config
from ticker_sentiment.collector.proxy_pool import ProxyPool
from ticker_sentiment.config.settings import Settings
from ticker_sentiment.integrations.finnhub import FinnhubClient
from ticker_sentiment.monitoring.metrics import PrometheusExporter
from ticker_sentiment.pipeline.jobs import JobScheduler, SweepJob
from ticker_sentiment.pipeline.orchestrator import IngestionOrchestrator
from ticker_sentiment.scoring import build_scorer
from ticker_sentiment.storage.database import create_engine_from_url, create_session_factory
from ticker_sentiment.storage.repository import SQLAlchemyIngestionRepository

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    settings: Settings
    engine: AsyncEngine
    repository: SQLAlchemyIngestionRepository
    proxy_pool: ProxyPool
    api_logger: ApiLogger
    fetcher: Fetcher
    orchestrator: IngestionOrchestrator
    prometheus_exporter: Optional[PrometheusExporter] = None
    symbol_client: Optional[FinnhubClient] = None

    def build_scheduler(self) -> JobScheduler:
        s = self.settings
        return JobScheduler([
            SweepJob("freshness", self.orchestrator.run_freshness_sweep, s.FRESHNESS_SWEEP_INTERVAL_SECONDS,
                     enabled=s.FRESHNESS_SWEEP_ENABLED, prometheus_exporter=self.prometheus_exporter),
            SweepJob("scoring", self.orchestrator.run_scoring_sweep, s.SCORING_SWEEP_INTERVAL_SECONDS,
                     enabled=s.SCORING_SWEEP_ENABLED, prometheus_exporter=self.prometheus_exporter),
            SweepJob("subreddit_discovery", self.orchestrator.run_subreddit_discovery,
                     s.SUBREDDIT_DISCOVERY_INTERVAL_SECONDS, enabled=s.SUBREDDIT_DISCOVERY_ENABLED,
                     prometheus_exporter=self.prometheus_exporter),
        ])


async def validate_proxies(settings: Settings, proxy_pool: ProxyPool, fetcher: Fetcher,
                           prometheus_exporter: Optional[PrometheusExporter] = None) -> int:
    async def check(endpoint):
        return await fetcher.validate_proxy(
            endpoint, settings.PROXY_VALIDATION_URL, settings.PROXY_VALIDATION_TIMEOUT_SECONDS
        )

    passed = await proxy_pool.validate_all(check)
    if prometheus_exporter:
        prometheus_exporter.set_healthy_proxies(proxy_pool.healthy_count())
    return passed


@asynccontextmanager
async def build_runtime(settings: Settings, validate: Optional[bool] = None) -> AsyncGenerator[Runtime, None]:
    """
    Create and tear down every pipeline component.

    Raises:
        ConfigurationError: If the settings are invalid
    """
    errors = settings.validate_runtime()
    if errors:
        raise ConfigurationError("; ".join(errors))

    scheduler = FreshnessScheduler(
        rules=rules_from_config(settings.SCRAPE_RULES),
        max_age=timedelta(seconds=settings.MAX_POST_AGE_SECONDS),
    )

    prometheus_exporter = None
    if settings.ENABLE_PROMETHEUS:
        prometheus_exporter = PrometheusExporter(port=settings.PROMETHEUS_PORT)
        prometheus_exporter.start_server()

    engine = create_engine_from_url(settings.DATABASE_URL, echo=settings.DEBUG)
    repository = SQLAlchemyIngestionRepository(create_session_factory(engine))
    api_logger = ApiLogger(repository, prometheus_exporter=prometheus_exporter)
    proxy_pool = ProxyPool.from_config(settings.PROXY_LIST, cooldown_seconds=settings.PROXY_COOLDOWN_SECONDS)
    scorer = build_scorer(settings, api_logger=api_logger)

    symbol_client = None
    if settings.FINNHUB_API_KEY:
        symbol_client = FinnhubClient(
            settings.FINNHUB_API_KEY,
            base_url=settings.FINNHUB_BASE_URL,
            exchange=settings.FINNHUB_EXCHANGE,
            api_logger=api_logger,
        )

    fetcher = Fetcher(
        proxy_pool,
        api_logger=api_logger,
        timeout_seconds=settings.FETCH_TIMEOUT_SECONDS,
        user_agent=settings.REDDIT_USER_AGENT,
        prometheus_exporter=prometheus_exporter,
    )
    orchestrator = IngestionOrchestrator(
        repository,
        fetcher,
        scorer,
        scheduler=scheduler,
        symbol_client=symbol_client,
        reddit_base_url=settings.REDDIT_BASE_URL,
        min_delay_seconds=settings.RATE_LIMIT_MIN_DELAY_SECONDS,
        max_delay_seconds=settings.RATE_LIMIT_MAX_DELAY_SECONDS,
        scoring_batch_size=settings.SCORING_BATCH_SIZE,
        discovery_dedup=timedelta(seconds=settings.DISCOVERY_DEDUP_SECONDS),
        subreddit_listing_limit=settings.SUBREDDIT_LISTING_LIMIT,
        prometheus_exporter=prometheus_exporter,
    )

    await fetcher.start()
    try:
        should_validate = settings.VALIDATE_PROXIES_ON_STARTUP if validate is None else validate
        if should_validate and len(proxy_pool):
            await validate_proxies(settings, proxy_pool, fetcher, prometheus_exporter)

        yield Runtime(
            settings=settings,
            engine=engine,
            repository=repository,
            proxy_pool=proxy_pool,
            api_logger=api_logger,
            fetcher=fetcher,
            orchestrator=orchestrator,
            prometheus_exporter=prometheus_exporter,
            symbol_client=symbol_client,
        )
    finally:
        await orchestrator.close()
        await api_logger.drain()
        await fetcher.close()
        if symbol_client is not None:
            await symbol_client.close()
        await engine.dispose()
