from .base import Base
from .stock_orm import StockORM
from .reddit_post_orm import RedditPostORM, RedditPostContentORM
from .reddit_comment_orm import RedditCommentORM
from .api_log_orm import ExternalServiceORM, ExternalApiLogORM

__all__ = [
    "Base",
    "StockORM",
    "RedditPostORM",
    "RedditPostContentORM",
    "RedditCommentORM",
    "ExternalServiceORM",
    "ExternalApiLogORM",
]
