"""Flattening of Reddit reply trees into comment records."""

import logging
from typing import Any, Iterable, List, Mapping, Tuple

from ticker_sentiment.models.records import CommentRecord

logger = logging.getLogger(__name__)

COMMENT_KIND = "t1"

MIN_ABS_SCORE = 2
MIN_BODY_LENGTH = 10


def _children(container: Any) -> List[Any]:
    """
    Children of a reply container.

    Accepts a Listing object, a bare list of nodes, or the empty string Reddit
    sends for comments without replies.
    """
    if not container:
        return []
    if isinstance(container, list):
        return container
    if isinstance(container, Mapping):
        data = container.get("data")
        if isinstance(data, Mapping):
            children = data.get("children")
            if isinstance(children, list):
                return children
    return []


def _to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _to_timestamp(value: Any):
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def extract_comments(forest: Any, post_id: str) -> List[CommentRecord]:
    """
    Flatten a reply forest into records, depth first, in source order.

    Only ``t1`` nodes become records; ``more`` stubs and other kinds are
    skipped together with anything beneath them. Top-level comments get the
    post id as their parent.

    Args:
        forest: Comments listing (second element of a post's .json payload)
        post_id: Fullname of the post

    Returns:
        One record per comment node, parents before their replies
    """
    records: List[CommentRecord] = []
    # Reversed so that popping yields nodes in their original order.
    stack: List[Tuple[Any, str, int]] = [(node, post_id, 0) for node in reversed(_children(forest))]

    while stack:
        node, parent_id, depth = stack.pop()
        if not isinstance(node, Mapping) or node.get("kind") != COMMENT_KIND:
            continue
        data = node.get("data")
        if not isinstance(data, Mapping):
            continue

        comment_id = data.get("name") or (f"{COMMENT_KIND}_{data['id']}" if data.get("id") else None)
        if not comment_id:
            logger.debug(f"Skipping comment node without an id under {parent_id}")
            continue

        records.append(CommentRecord(
            comment_id=comment_id,
            post_id=post_id,
            parent_id=parent_id,
            depth=depth,
            author=data.get("author") or "",
            body=data.get("body") or "",
            score=_to_int(data.get("score")),
            created_utc=_to_timestamp(data.get("created_utc")),
        ))

        replies = _children(data.get("replies"))
        for child in reversed(replies):
            stack.append((child, comment_id, depth + 1))

    return records


def should_persist(comment: Mapping[str, Any]) -> bool:
    """Keep comments with enough engagement and enough text to score."""
    return abs(_to_int(comment.get("score"))) >= MIN_ABS_SCORE and len(comment.get("body") or "") >= MIN_BODY_LENGTH


def filter_persistable(records: Iterable[CommentRecord]) -> List[CommentRecord]:
    return [record for record in records if should_persist(record)]
