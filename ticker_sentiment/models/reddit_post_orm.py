"""
SQLAlchemy ORM models for discovered Reddit posts and their fetched content.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import ForeignKey, Index, String, Text, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from .base import Base, BigIntPK, JSONDocument, utcnow

SOURCE_SEARCH = "search"
SOURCE_SUBREDDIT = "subreddit"


class RedditPostORM(Base):
    """
    A post stub created at discovery time.

    ``last_scraped_at`` is NULL until the first successful content fetch and is
    only ever moved forward. ``updated_at`` is touched by every discovery
    upsert and is what the discovery dedup window looks at.
    """
    __tablename__ = "reddit_posts"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    reddit_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, comment="Reddit fullname, e.g. t3_abc123")
    stock_id: Mapped[int] = mapped_column(ForeignKey("stocks.id", ondelete="CASCADE"), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    source: Mapped[str] = mapped_column(String(16), nullable=False, default=SOURCE_SEARCH, comment="How the post was found: search or subreddit")
    post_time: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    last_scraped_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow)

    stock = relationship("StockORM", back_populates="posts")
    content = relationship("RedditPostContentORM", back_populates="post", uselist=False, cascade="all, delete-orphan", passive_deletes=True)
    comments = relationship("RedditCommentORM", back_populates="post", cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        Index("ix_reddit_posts_stock_id", "stock_id"),
        Index("ix_reddit_posts_post_time", "post_time"),
    )

    def __repr__(self) -> str:
        return f"<RedditPostORM(id={self.id}, reddit_id='{self.reddit_id}', last_scraped_at={self.last_scraped_at})>"


class RedditPostContentORM(Base):
    """Latest fetched snapshot of a post. One row per post, overwritten on re-fetch."""
    __tablename__ = "reddit_post_contents"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(ForeignKey("reddit_posts.id", ondelete="CASCADE"), nullable=False, unique=True)
    content: Mapped[Dict[str, Any]] = mapped_column(JSONDocument, nullable=False)
    scraped_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)

    post = relationship("RedditPostORM", back_populates="content")
