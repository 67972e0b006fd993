"""Repository interface used by the orchestrator, and its SQLAlchemy implementation."""

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from sqlalchemy import func, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticker_sentiment.collector.api_logger import SERVICES
from ticker_sentiment.collector.errors import PersistenceError
from ticker_sentiment.models import (
    ExternalApiLogORM,
    ExternalServiceORM,
    RedditCommentORM,
    RedditPostContentORM,
    RedditPostORM,
    StockORM,
)
from ticker_sentiment.models.dtos import (
    PostDTO,
    RequestLogEntry,
    SentimentScore,
    StockDTO,
    SymbolMatch,
    UnscoredCommentDTO,
)
from ticker_sentiment.models.reddit_post_orm import SOURCE_SEARCH
from ticker_sentiment.models.records import CommentRecord, DiscoveredPost, PostSnapshot
from ticker_sentiment.storage.database import session_scope

logger = logging.getLogger(__name__)

UPSERT_CHUNK_SIZE = 200


class IngestionRepository(Protocol):
    """
    Persistence operations the pipeline needs.

    Implementations raise PersistenceError when a read or write fails.
    """

    async def get_or_create_stock(self, symbol: str) -> StockDTO: ...

    async def upsert_stocks(self, matches: Sequence[SymbolMatch]) -> int: ...

    async def set_official_subreddit(self, stock_id: int, subreddit: str) -> None: ...

    async def list_stocks_with_subreddit(self) -> List[StockDTO]: ...

    async def last_discovery_at(self, stock_id: int) -> Optional[datetime]: ...

    async def upsert_posts(self, stock_id: int, posts: Sequence[DiscoveredPost], source: str = SOURCE_SEARCH) -> List[int]: ...

    async def list_posts(
        self,
        stock_id: Optional[int] = None,
        post_ids: Optional[Sequence[int]] = None,
        posted_after: Optional[datetime] = None,
    ) -> List[PostDTO]: ...

    async def save_post_content(
        self,
        post_id: int,
        snapshot: PostSnapshot,
        comments: Sequence[CommentRecord],
        scraped_at: datetime,
    ) -> int: ...

    async def fetch_unscored_comments(self, limit: int) -> List[UnscoredCommentDTO]: ...

    async def save_comment_score(self, comment_id: int, score: SentimentScore, scored_at: datetime) -> None: ...

    async def record_api_call(self, entry: RequestLogEntry) -> None: ...


def _chunks(items: Sequence, size: int) -> Iterable[Sequence]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _from_timestamp(value: Optional[float]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


class SQLAlchemyIngestionRepository:
    """IngestionRepository backed by an async SQLAlchemy session factory (PostgreSQL or SQLite)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self._service_ids: Dict[str, int] = {}

    @staticmethod
    def _insert(session: AsyncSession, model):
        if session.bind.dialect.name == "sqlite":
            return sqlite.insert(model)
        return postgresql.insert(model)

    async def get_or_create_stock(self, symbol: str) -> StockDTO:
        symbol = symbol.strip().upper()
        try:
            async with session_scope(self.session_factory) as session:
                stmt = self._insert(session, StockORM).values(symbol=symbol)
                await session.execute(stmt.on_conflict_do_nothing(index_elements=["symbol"]))
                stock = (await session.execute(select(StockORM).where(StockORM.symbol == symbol))).scalar_one()
                return StockDTO.model_validate(stock)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load stock {symbol}: {e}") from e

    async def upsert_stocks(self, matches: Sequence[SymbolMatch]) -> int:
        values = [
            {
                "symbol": match.symbol.upper(),
                "description": match.description,
                "display_symbol": match.display_symbol,
                "type": match.type,
            }
            for match in matches
            if match.symbol
        ]
        if not values:
            return 0
        try:
            async with session_scope(self.session_factory) as session:
                stmt = self._insert(session, StockORM).values(values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["symbol"],
                    set_={
                        "description": stmt.excluded.description,
                        "display_symbol": stmt.excluded.display_symbol,
                        "type": stmt.excluded.type,
                        "updated_at": datetime.now(timezone.utc),
                    },
                )
                await session.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to upsert {len(values)} stocks: {e}") from e
        return len(values)

    async def set_official_subreddit(self, stock_id: int, subreddit: str) -> None:
        try:
            async with session_scope(self.session_factory) as session:
                await session.execute(
                    update(StockORM).where(StockORM.id == stock_id).values(official_subreddit=subreddit)
                )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to set official subreddit for stock {stock_id}: {e}") from e

    async def list_stocks_with_subreddit(self) -> List[StockDTO]:
        try:
            async with session_scope(self.session_factory) as session:
                result = await session.execute(
                    select(StockORM).where(StockORM.official_subreddit.is_not(None)).order_by(StockORM.id)
                )
                return [StockDTO.model_validate(stock) for stock in result.scalars()]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list stocks with a subreddit: {e}") from e

    async def last_discovery_at(self, stock_id: int) -> Optional[datetime]:
        try:
            async with session_scope(self.session_factory) as session:
                return (await session.execute(
                    select(func.max(RedditPostORM.updated_at)).where(
                        RedditPostORM.stock_id == stock_id,
                        RedditPostORM.source == SOURCE_SEARCH,
                    )
                )).scalar()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read last discovery time for stock {stock_id}: {e}") from e

    async def upsert_posts(self, stock_id: int, posts: Sequence[DiscoveredPost], source: str = SOURCE_SEARCH) -> List[int]:
        """
        Insert new post stubs and touch existing ones.

        Existing posts keep their owning stock, source and scrape state.

        Returns:
            Database ids of all given posts, new and existing
        """
        if not posts:
            return []
        now = datetime.now(timezone.utc)
        ids: List[int] = []
        try:
            async with session_scope(self.session_factory) as session:
                for chunk in _chunks(list(posts), UPSERT_CHUNK_SIZE):
                    values = [
                        {
                            "reddit_id": post["reddit_id"],
                            "stock_id": stock_id,
                            "url": post["url"],
                            "source": source,
                            "post_time": post["post_time"],
                            "created_at": now,
                            "updated_at": now,
                        }
                        for post in chunk
                    ]
                    stmt = self._insert(session, RedditPostORM).values(values)
                    stmt = stmt.on_conflict_do_update(
                        index_elements=["reddit_id"],
                        set_={"url": stmt.excluded.url, "updated_at": now},
                    ).returning(RedditPostORM.id)
                    ids.extend((await session.execute(stmt)).scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to upsert {len(posts)} posts for stock {stock_id}: {e}") from e
        return ids

    async def list_posts(
        self,
        stock_id: Optional[int] = None,
        post_ids: Optional[Sequence[int]] = None,
        posted_after: Optional[datetime] = None,
    ) -> List[PostDTO]:
        stmt = (
            select(RedditPostORM, StockORM.symbol)
            .join(StockORM, StockORM.id == RedditPostORM.stock_id)
            .order_by(RedditPostORM.post_time.desc())
        )
        if stock_id is not None:
            stmt = stmt.where(RedditPostORM.stock_id == stock_id)
        if post_ids is not None:
            stmt = stmt.where(RedditPostORM.id.in_(list(post_ids)))
        if posted_after is not None:
            stmt = stmt.where(RedditPostORM.post_time >= posted_after)

        try:
            async with session_scope(self.session_factory) as session:
                rows = (await session.execute(stmt)).all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list posts: {e}") from e
        return [
            PostDTO(
                id=post.id,
                reddit_id=post.reddit_id,
                url=post.url,
                source=post.source,
                post_time=post.post_time,
                last_scraped_at=post.last_scraped_at,
                stock_id=post.stock_id,
                ticker=symbol,
            )
            for post, symbol in rows
        ]

    async def save_post_content(
        self,
        post_id: int,
        snapshot: PostSnapshot,
        comments: Sequence[CommentRecord],
        scraped_at: datetime,
    ) -> int:
        """
        Upsert the content snapshot and comments, then advance last_scraped_at.

        Everything happens in one transaction. ``last_scraped_at`` is only
        moved forward, never back.

        Returns:
            Number of comments written
        """
        try:
            async with session_scope(self.session_factory) as session:
                content_stmt = self._insert(session, RedditPostContentORM).values(
                    post_id=post_id, content=dict(snapshot), scraped_at=scraped_at
                )
                await session.execute(content_stmt.on_conflict_do_update(
                    index_elements=["post_id"],
                    set_={"content": content_stmt.excluded.content, "scraped_at": scraped_at},
                ))

                for chunk in _chunks(list(comments), UPSERT_CHUNK_SIZE):
                    values = [
                        {
                            "reddit_id": comment["comment_id"],
                            "post_id": post_id,
                            "parent_id": comment["parent_id"],
                            "depth": comment["depth"],
                            "author": comment["author"] or None,
                            "body": comment["body"],
                            "upvotes": comment["score"],
                            "created_at_utc": _from_timestamp(comment["created_utc"]),
                            "scraped_at": scraped_at,
                        }
                        for comment in chunk
                    ]
                    stmt = self._insert(session, RedditCommentORM).values(values)
                    await session.execute(stmt.on_conflict_do_update(
                        index_elements=["reddit_id"],
                        set_={
                            "body": stmt.excluded.body,
                            "upvotes": stmt.excluded.upvotes,
                            "created_at_utc": stmt.excluded.created_at_utc,
                            "scraped_at": stmt.excluded.scraped_at,
                        },
                    ))

                await session.execute(
                    update(RedditPostORM)
                    .where(
                        RedditPostORM.id == post_id,
                        or_(RedditPostORM.last_scraped_at.is_(None), RedditPostORM.last_scraped_at < scraped_at),
                    )
                    .values(last_scraped_at=scraped_at)
                )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to save content for post {post_id}: {e}") from e
        return len(comments)

    async def fetch_unscored_comments(self, limit: int) -> List[UnscoredCommentDTO]:
        stmt = (
            select(
                RedditCommentORM.id,
                RedditCommentORM.reddit_id,
                RedditCommentORM.body,
                RedditCommentORM.upvotes,
                StockORM.symbol.label("ticker"),
            )
            .join(RedditPostORM, RedditPostORM.id == RedditCommentORM.post_id)
            .join(StockORM, StockORM.id == RedditPostORM.stock_id)
            .where(RedditCommentORM.scored_at.is_(None))
            .order_by(RedditCommentORM.id)
            .limit(limit)
        )
        try:
            async with session_scope(self.session_factory) as session:
                rows = (await session.execute(stmt)).mappings().all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to fetch unscored comments: {e}") from e
        return [UnscoredCommentDTO.model_validate(dict(row)) for row in rows]

    async def save_comment_score(self, comment_id: int, score: SentimentScore, scored_at: datetime) -> None:
        try:
            async with session_scope(self.session_factory) as session:
                result = await session.execute(
                    update(RedditCommentORM)
                    .where(RedditCommentORM.id == comment_id)
                    .values(
                        sentiment=score.sentiment,
                        flag_for_delete=score.flag_for_delete,
                        scored_at=scored_at,
                    )
                )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to save score for comment {comment_id}: {e}") from e
        if result.rowcount == 0:
            raise PersistenceError(f"Comment {comment_id} no longer exists")

    async def _service_id(self, session: AsyncSession, name: str) -> int:
        if name in self._service_ids:
            return self._service_ids[name]
        stmt = self._insert(session, ExternalServiceORM).values(name=name, base_url=SERVICES.get(name))
        await session.execute(stmt.on_conflict_do_nothing(index_elements=["name"]))
        return (await session.execute(
            select(ExternalServiceORM.id).where(ExternalServiceORM.name == name)
        )).scalar_one()

    async def record_api_call(self, entry: RequestLogEntry) -> None:
        try:
            async with session_scope(self.session_factory) as session:
                service_id = await self._service_id(session, entry.service)
                session.add(ExternalApiLogORM(
                    service_id=service_id,
                    **entry.model_dump(exclude={"service"}),
                ))
            # Cached only once the service row is committed.
            self._service_ids[entry.service] = service_id
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to record {entry.service} request: {e}") from e
