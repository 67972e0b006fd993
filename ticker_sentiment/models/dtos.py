"""
Pydantic Data Transfer Objects (DTOs) for the ingestion pipeline.

These models carry rows out of the repository and results between components.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class StockDTO(BaseModel):
    id: int
    symbol: str
    description: Optional[str] = None
    display_symbol: Optional[str] = None
    type: Optional[str] = None
    official_subreddit: Optional[str] = None

    model_config = {"from_attributes": True}


class PostDTO(BaseModel):
    """
    DTO for a discovered post, as read by the freshness sweep.

    ``ticker`` is denormalised from the owning stock so scrape logs and
    scoring can name it without another query.
    """
    id: int
    reddit_id: str
    url: str
    source: str
    post_time: datetime
    last_scraped_at: Optional[datetime] = None
    stock_id: int
    ticker: Optional[str] = None

    model_config = {"from_attributes": True}


class UnscoredCommentDTO(BaseModel):
    id: int
    reddit_id: str
    body: str
    upvotes: int
    ticker: str

    model_config = {"from_attributes": True}


class SentimentScore(BaseModel):
    """
    Outcome of scoring one comment.

    Accepts the camelCase ``flagForDelete`` key used by the scoring prompt.
    """
    sentiment: float = Field(ge=-1.0, le=1.0)
    flag_for_delete: bool = Field(default=False, alias="flagForDelete")

    model_config = ConfigDict(populate_by_name=True)


class SymbolMatch(BaseModel):
    symbol: str
    description: Optional[str] = None
    display_symbol: Optional[str] = Field(default=None, alias="displaySymbol")
    type: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class RequestLogEntry(BaseModel):
    """One outbound request, written to external_api_logs."""
    service: str
    endpoint: str
    method: str = "GET"
    requested_at: datetime
    responded_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    status_code: Optional[int] = None
    success: bool
    error_message: Optional[str] = None
    request_summary: Optional[str] = None
    response_summary: Optional[str] = None
    proxy_used: Optional[str] = None
