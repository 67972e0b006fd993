"""Record shapes produced by parsing Reddit JSON, before persistence."""

from datetime import datetime
from typing import Optional, TypedDict


class CommentRecord(TypedDict):
    """A single comment flattened out of a reply tree."""
    comment_id: str  # Reddit fullname, e.g. "t1_h2k3j4"
    post_id: str  # Fullname of the post the tree belongs to
    parent_id: str  # Fullname of the parent comment, or post_id at depth 0
    depth: int
    author: str
    body: str
    score: int
    created_utc: Optional[float]  # Unix timestamp, None if the node carried none


class PostSnapshot(TypedDict):
    """Post fields captured from the first element of a post's .json payload."""
    post_id: str
    subreddit: Optional[str]
    title: Optional[str]
    url: Optional[str]
    author: Optional[str]
    score: int
    created_utc: Optional[float]
    num_comments: int
    selftext: str


class DiscoveredPost(TypedDict):
    """A post found by search or a subreddit listing, not yet fetched."""
    reddit_id: str
    url: str
    title: str
    subreddit: Optional[str]
    post_time: datetime
