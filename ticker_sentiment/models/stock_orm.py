"""
SQLAlchemy ORM model for the 'stocks' table.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from .base import Base, BigIntPK, utcnow


class StockORM(Base):
    """
    A tracked ticker symbol.

    Rows are created on first lookup of a ticker or when a symbol search
    returns it. ``official_subreddit`` drives subreddit discovery.
    """
    __tablename__ = "stocks"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    symbol: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, comment="Upper-case ticker symbol")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    display_symbol: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, comment="Security type as reported by symbol search")
    official_subreddit: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow)

    posts = relationship("RedditPostORM", back_populates="stock", cascade="all, delete-orphan", passive_deletes=True)

    def __repr__(self) -> str:
        return f"<StockORM(id={self.id}, symbol='{self.symbol}')>"
