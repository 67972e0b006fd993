"""Parsing of Reddit's public JSON listings."""

import logging
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional, Tuple
from urllib.parse import quote

from ticker_sentiment.collector.errors import ParseError
from ticker_sentiment.models.records import DiscoveredPost, PostSnapshot

logger = logging.getLogger(__name__)

POST_KIND = "t3"
SUBREDDIT_KIND = "t5"
REDDIT_BASE_URL = "https://www.reddit.com"


def post_json_url(url: str) -> str:
    """The .json document URL for a post permalink."""
    return f"{url}.json" if url.endswith("/") else f"{url}/.json"


def search_url(base_url: str = REDDIT_BASE_URL) -> str:
    return f"{base_url}/search.json"


def subreddit_new_url(subreddit: str, base_url: str = REDDIT_BASE_URL) -> str:
    return f"{base_url}/r/{quote(subreddit)}/new.json"


def _listing_children(payload: Any) -> List[Any]:
    if not isinstance(payload, Mapping):
        raise ParseError(f"Expected a Listing object, got {type(payload).__name__}")
    data = payload.get("data")
    if not isinstance(data, Mapping) or not isinstance(data.get("children"), list):
        raise ParseError("Listing is missing data.children")
    return data["children"]


def _post_from_child(child: Any, base_url: str) -> Optional[DiscoveredPost]:
    if not isinstance(child, Mapping) or child.get("kind") != POST_KIND:
        return None
    data = child.get("data")
    if not isinstance(data, Mapping):
        return None

    name = data.get("name")
    permalink = data.get("permalink")
    created = data.get("created_utc")
    if not name or not permalink or created is None:
        return None
    try:
        post_time = datetime.fromtimestamp(float(created), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None

    return DiscoveredPost(
        reddit_id=name,
        url=f"{base_url}{permalink}",
        title=data.get("title") or "",
        subreddit=data.get("subreddit"),
        post_time=post_time,
    )


def parse_search_results(payload: Any, ticker: str, base_url: str = REDDIT_BASE_URL) -> List[DiscoveredPost]:
    """
    Posts from a search listing whose title mentions the ticker.

    Entries missing an id, permalink or creation time are skipped.
    """
    needle = ticker.lower()
    posts = []
    for child in _listing_children(payload):
        post = _post_from_child(child, base_url)
        if post is not None and needle in post["title"].lower():
            posts.append(post)
    return posts


def parse_subreddit_listing(payload: Any, base_url: str = REDDIT_BASE_URL) -> List[DiscoveredPost]:
    posts = []
    for child in _listing_children(payload):
        post = _post_from_child(child, base_url)
        if post is not None:
            posts.append(post)
    return posts


def parse_subreddit_search(payload: Any) -> Optional[str]:
    """Display name of the first community in a subreddit search listing."""
    for child in _listing_children(payload):
        if isinstance(child, Mapping) and child.get("kind") == SUBREDDIT_KIND:
            name = (child.get("data") or {}).get("display_name")
            if name:
                return name
    return None


def parse_post_payload(payload: Any) -> Tuple[PostSnapshot, Any]:
    """
    Split a post's .json payload into its snapshot and its comments listing.

    Raises:
        ParseError: If the payload is not the two-element [post, comments] array
    """
    if not isinstance(payload, list) or len(payload) < 2:
        raise ParseError("Expected a [post, comments] array")

    post_children = _listing_children(payload[0])
    if not post_children or not isinstance(post_children[0], Mapping):
        raise ParseError("Post listing is empty")
    data = post_children[0].get("data")
    if not isinstance(data, Mapping) or not data.get("name"):
        raise ParseError("Post listing entry has no data.name")

    snapshot = PostSnapshot(
        post_id=data["name"],
        subreddit=data.get("subreddit"),
        title=data.get("title"),
        url=data.get("url"),
        author=data.get("author"),
        score=int(data.get("score") or 0),
        created_utc=data.get("created_utc"),
        num_comments=int(data.get("num_comments") or 0),
        selftext=data.get("selftext") or "",
    )
    return snapshot, payload[1]
