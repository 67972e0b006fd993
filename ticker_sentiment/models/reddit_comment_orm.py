"""
SQLAlchemy ORM model for the 'reddit_comments' table.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Float, ForeignKey, Index, Integer, String, Text, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import expression

from .base import Base, BigIntPK, utcnow


class RedditCommentORM(Base):
    """
    A flattened comment that passed the persist filter.

    Attributes:
        reddit_id: Reddit fullname of the comment (t1_...), globally unique.
        parent_id: Fullname of the parent comment, or of the post for top-level comments.
        depth: 0 for top-level comments.
        upvotes: Net score at the time of the last fetch.
        sentiment: Score in [-1, 1], NULL until scored.
        flag_for_delete: Set by the scorer for off-topic or non-opinion comments.
        scored_at: When the comment was scored, NULL while pending.
    """
    __tablename__ = "reddit_comments"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    reddit_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    post_id: Mapped[int] = mapped_column(ForeignKey("reddit_posts.id", ondelete="CASCADE"), nullable=False)
    parent_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    depth: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    author: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    upvotes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at_utc: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    scraped_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    sentiment: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    flag_for_delete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=expression.false())
    scored_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    post = relationship("RedditPostORM", back_populates="comments")

    __table_args__ = (
        Index("ix_reddit_comments_post_id", "post_id"),
        Index("ix_reddit_comments_unscored", "id", postgresql_where=expression.column("scored_at").is_(None)),
    )

    def __repr__(self) -> str:
        return f"<RedditCommentORM(id={self.id}, reddit_id='{self.reddit_id}', sentiment={self.sentiment})>"
