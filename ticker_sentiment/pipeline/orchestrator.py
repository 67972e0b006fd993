"""
Ingestion orchestrator.

Drives discovery, the freshness sweep (content and comment fetch) and the
scoring sweep. Work inside a sweep is sequential with a randomized delay
between network-bound items; a failing item is logged and skipped.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, List, Optional, Sequence, Set

from ticker_sentiment.collector.errors import IngestionError, PersistenceError, ScoringError
from ticker_sentiment.collector.fetcher import FetchRequest, Fetcher
from ticker_sentiment.collector.freshness import FreshnessScheduler, as_utc
from ticker_sentiment.collector.comment_tree import extract_comments, filter_persistable
from ticker_sentiment.collector.reddit_parser import (
    REDDIT_BASE_URL,
    parse_post_payload,
    parse_search_results,
    parse_subreddit_listing,
    parse_subreddit_search,
    post_json_url,
    search_url,
    subreddit_new_url,
)
from ticker_sentiment.integrations.finnhub import FinnhubClient
from ticker_sentiment.models.dtos import PostDTO, StockDTO
from ticker_sentiment.models.reddit_post_orm import SOURCE_SEARCH, SOURCE_SUBREDDIT
from ticker_sentiment.scoring.base import SentimentScorer
from ticker_sentiment.storage.repository import IngestionRepository

logger = logging.getLogger(__name__)


@dataclass
class SweepStats:
    """Counters for one sweep run."""
    name: str
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    duration_seconds: float = 0.0

    def summary(self) -> str:
        return (
            f"sweep={self.name} attempted={self.attempted} succeeded={self.succeeded} "
            f"failed={self.failed} skipped={self.skipped} duration_s={self.duration_seconds:.2f}"
        )


@dataclass
class DiscoveryResult:
    stock: StockDTO
    posts: List[PostDTO] = field(default_factory=list)
    searched: bool = False
    new_post_ids: List[int] = field(default_factory=list)


class IngestionOrchestrator:
    """
    Coordinates the repository, fetcher and scorer.

    Background refreshes started by ``discover_ticker`` are tracked by the
    orchestrator; ``wait_for_background()`` awaits them and ``close()`` should
    be called before the event loop stops.
    """

    def __init__(
        self,
        repository: IngestionRepository,
        fetcher: Fetcher,
        scorer: SentimentScorer,
        scheduler: Optional[FreshnessScheduler] = None,
        symbol_client: Optional[FinnhubClient] = None,
        reddit_base_url: str = REDDIT_BASE_URL,
        min_delay_seconds: float = 0.5,
        max_delay_seconds: float = 1.5,
        scoring_batch_size: int = 100,
        discovery_dedup: timedelta = timedelta(minutes=5),
        subreddit_listing_limit: int = 100,
        prometheus_exporter=None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.repository = repository
        self.fetcher = fetcher
        self.scorer = scorer
        self.scheduler = scheduler or FreshnessScheduler()
        self.symbol_client = symbol_client
        self.reddit_base_url = reddit_base_url
        self.min_delay = min_delay_seconds
        self.max_delay = max_delay_seconds
        self.scoring_batch_size = scoring_batch_size
        self.discovery_dedup = discovery_dedup
        self.subreddit_listing_limit = subreddit_listing_limit
        self.prometheus_exporter = prometheus_exporter
        self._sleep = sleep
        self._clock = clock
        self._background: Set[asyncio.Task] = set()

    async def _pause(self) -> None:
        await self._sleep(random.uniform(self.min_delay, self.max_delay))

    def _finish(self, stats: SweepStats, started: float) -> SweepStats:
        stats.duration_seconds = time.monotonic() - started
        logger.info(f"{stats.summary()} event=end")
        return stats

    # ------------------------------------------------------------------
    # Content fetch
    # ------------------------------------------------------------------

    async def scrape_post(self, post: PostDTO) -> int:
        """
        Fetch a post's .json document and persist its content and comments.

        Returns:
            Number of comments persisted

        Raises:
            IngestionError: Any fetch, parse or persistence failure
        """
        proxy = self.fetcher.proxy_pool.next_proxy()
        response = await self.fetcher.fetch(
            FetchRequest(url=post_json_url(post.url), summary=f"post {post.reddit_id} ({post.ticker})"),
            proxy,
        )
        snapshot, comments_listing = parse_post_payload(response.data)
        records = extract_comments(comments_listing, snapshot["post_id"])
        persistable = filter_persistable(records)

        saved = await self.repository.save_post_content(post.id, snapshot, persistable, self._clock())
        logger.info(
            f"Scraped post {post.reddit_id} for {post.ticker}: "
            f"{len(records)} comments found, {saved} persisted"
        )
        if self.prometheus_exporter:
            self.prometheus_exporter.record_comments_persisted(saved)
        return saved

    async def _scrape_many(self, stats: SweepStats, posts: Sequence[PostDTO]) -> None:
        for index, post in enumerate(posts):
            if index:
                await self._pause()
            stats.attempted += 1
            try:
                await self.scrape_post(post)
                stats.succeeded += 1
                if self.prometheus_exporter:
                    self.prometheus_exporter.record_post_scraped(True)
            except Exception as e:
                stats.failed += 1
                logger.error(f"Failed to scrape post {post.reddit_id} ({post.ticker}): {e}")
                if self.prometheus_exporter:
                    self.prometheus_exporter.record_post_scraped(False)

    async def run_freshness_sweep(self) -> SweepStats:
        """Re-fetch every post the freshness rules say is due."""
        stats = SweepStats(name="freshness")
        started = time.monotonic()
        now = self._clock()
        logger.info(f"sweep={stats.name} event=start")

        posts = await self.repository.list_posts(posted_after=now - self.scheduler.max_age)
        due = [p for p in posts if self.scheduler.is_due(p.post_time, p.last_scraped_at, now)]
        stats.skipped = len(posts) - len(due)
        logger.info(f"{len(due)} of {len(posts)} tracked posts are due for scraping")

        await self._scrape_many(stats, due)
        return self._finish(stats, started)

    async def scrape_posts_by_ids(self, post_ids: Sequence[int]) -> SweepStats:
        """Fetch content for specific posts regardless of freshness."""
        stats = SweepStats(name="scrape_by_ids")
        started = time.monotonic()
        if not post_ids:
            return self._finish(stats, started)
        posts = await self.repository.list_posts(post_ids=post_ids)
        await self._scrape_many(stats, posts)
        return self._finish(stats, started)

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    async def run_scoring_sweep(self) -> SweepStats:
        """Score a bounded batch of unscored comments, one at a time."""
        stats = SweepStats(name="scoring")
        started = time.monotonic()
        logger.info(f"sweep={stats.name} event=start")

        comments = await self.repository.fetch_unscored_comments(self.scoring_batch_size)
        logger.info(f"Found {len(comments)} unscored comments")

        for comment in comments:
            stats.attempted += 1
            try:
                result = await self.scorer.score(comment.ticker, comment.body, comment.upvotes)
                await self.repository.save_comment_score(comment.id, result, self._clock())
            except (ScoringError, PersistenceError) as e:
                stats.failed += 1
                logger.warning(f"Failed to score comment {comment.reddit_id}: {e}")
                if self.prometheus_exporter:
                    self.prometheus_exporter.record_comment_scored("error")
                continue
            except Exception as e:
                stats.failed += 1
                logger.error(f"Unexpected error scoring comment {comment.reddit_id}: {e}", exc_info=True)
                if self.prometheus_exporter:
                    self.prometheus_exporter.record_comment_scored("error")
                continue
            stats.succeeded += 1
            if self.prometheus_exporter:
                self.prometheus_exporter.record_comment_scored("flagged" if result.flag_for_delete else "scored")

        return self._finish(stats, started)

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def find_official_subreddit(self, ticker: str) -> Optional[str]:
        response = await self.fetcher.get_json(
            search_url(self.reddit_base_url),
            params={"q": f"{ticker} stock official subreddit", "type": "sr"},
            summary=f"subreddit search {ticker}",
        )
        return parse_subreddit_search(response.data)

    async def discover_ticker(self, ticker: str, refresh_in_background: bool = True) -> DiscoveryResult:
        """
        Find posts about a ticker via Reddit search and schedule their first fetch.

        When the stock was searched within the dedup window the stored posts are
        returned without touching the network.
        """
        stock = await self.repository.get_or_create_stock(ticker)
        result = DiscoveryResult(stock=stock)

        last_search = await self.repository.last_discovery_at(stock.id)
        if last_search is not None and self._clock() - as_utc(last_search) < self.discovery_dedup:
            logger.info(f"{stock.symbol} searched at {last_search}, returning stored posts")
            result.posts = await self.repository.list_posts(stock_id=stock.id)
            return result

        response = await self.fetcher.get_json(
            search_url(self.reddit_base_url),
            params={"q": stock.symbol, "type": "link", "sort": "hot"},
            summary=f"search {stock.symbol}",
        )
        found = parse_search_results(response.data, stock.symbol, self.reddit_base_url)
        known = {p.reddit_id for p in await self.repository.list_posts(stock_id=stock.id)}
        post_ids = await self.repository.upsert_posts(stock.id, found, source=SOURCE_SEARCH)
        result.searched = True
        result.posts = await self.repository.list_posts(stock_id=stock.id)
        upserted = set(post_ids)
        result.new_post_ids = [p.id for p in result.posts if p.id in upserted and p.reddit_id not in known]
        logger.info(f"Discovered {len(found)} posts for {stock.symbol} ({len(result.new_post_ids)} new)")
        if self.prometheus_exporter:
            self.prometheus_exporter.record_posts_discovered(SOURCE_SEARCH, len(found))

        if not stock.official_subreddit:
            try:
                await self._pause()
                subreddit = await self.find_official_subreddit(stock.symbol)
            except IngestionError as e:
                logger.warning(f"Official subreddit lookup failed for {stock.symbol}: {e}")
                subreddit = None
            if subreddit:
                await self.repository.set_official_subreddit(stock.id, subreddit)
                logger.info(f"Official subreddit for {stock.symbol}: r/{subreddit}")

        if result.new_post_ids and refresh_in_background:
            self.spawn_refresh(result.new_post_ids)
        return result

    async def run_subreddit_discovery(self) -> SweepStats:
        """Pull the newest posts from each stock's official subreddit."""
        stats = SweepStats(name="subreddit_discovery")
        started = time.monotonic()
        logger.info(f"sweep={stats.name} event=start")

        stocks = await self.repository.list_stocks_with_subreddit()
        for index, stock in enumerate(stocks):
            if index:
                await self._pause()
            stats.attempted += 1
            try:
                response = await self.fetcher.get_json(
                    subreddit_new_url(stock.official_subreddit, self.reddit_base_url),
                    params={"limit": self.subreddit_listing_limit},
                    summary=f"r/{stock.official_subreddit} new",
                )
                posts = parse_subreddit_listing(response.data, self.reddit_base_url)
                await self.repository.upsert_posts(stock.id, posts, source=SOURCE_SUBREDDIT)
                stats.succeeded += 1
                logger.info(f"r/{stock.official_subreddit}: upserted {len(posts)} posts for {stock.symbol}")
                if self.prometheus_exporter:
                    self.prometheus_exporter.record_posts_discovered(SOURCE_SUBREDDIT, len(posts))
            except Exception as e:
                stats.failed += 1
                logger.error(f"Subreddit discovery failed for {stock.symbol} (r/{stock.official_subreddit}): {e}")

        return self._finish(stats, started)

    async def refresh_symbols(self, query: str) -> int:
        """Upsert stocks matching a symbol search query. Returns the number upserted."""
        if self.symbol_client is None:
            raise IngestionError("Symbol search is not configured (FINNHUB_API_KEY missing)")
        matches = await self.symbol_client.search(query)
        return await self.repository.upsert_stocks(matches)

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------

    def spawn_refresh(self, post_ids: Sequence[int]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self.scrape_posts_by_ids(list(post_ids)))
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            logger.warning("Background refresh was cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background refresh failed: {exc}", exc_info=exc)

    @property
    def background_tasks(self) -> int:
        return len(self._background)

    async def wait_for_background(self) -> None:
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def close(self) -> None:
        await self.wait_for_background()
