"""Fakes and payload builders shared by the test suite."""

from typing import Any, Dict, List, Optional


def comment_node(name: str, body: str = "A reasonably long comment body", score: int = 5,
                 replies: Any = "", author: str = "someone", created_utc: float = 1700000000.0) -> Dict[str, Any]:
    return {
        "kind": "t1",
        "data": {
            "name": name,
            "author": author,
            "body": body,
            "score": score,
            "created_utc": created_utc,
            "replies": replies,
        },
    }


def listing(children: List[Any], kind: str = "Listing") -> Dict[str, Any]:
    return {"kind": kind, "data": {"children": children}}


def post_payload(post_id: str, comments: List[Any], title: str = "TSLA discussion",
                 subreddit: str = "stocks") -> List[Any]:
    post = {
        "kind": "t3",
        "data": {
            "name": post_id,
            "subreddit": subreddit,
            "title": title,
            "url": f"https://www.reddit.com/r/{subreddit}/comments/{post_id[3:]}/",
            "author": "op",
            "score": 42,
            "created_utc": 1700000000.0,
            "num_comments": len(comments),
            "selftext": "body text",
        },
    }
    return [listing([post]), listing(comments)]


def search_child(name: str, title: str, created_utc: Optional[float] = 1700000000.0,
                 subreddit: str = "stocks", kind: str = "t3") -> Dict[str, Any]:
    data = {
        "name": name,
        "title": title,
        "subreddit": subreddit,
        "permalink": f"/r/{subreddit}/comments/{name[3:]}/slug/",
    }
    if created_utc is not None:
        data["created_utc"] = created_utc
    return {"kind": kind, "data": data}


class FakeResponse:
    def __init__(self, status: int = 200, payload: Any = None, invalid_json: bool = False):
        self.status = status
        self._payload = payload
        self._invalid_json = invalid_json

    async def json(self, content_type=None):
        if self._invalid_json:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload


class _RequestContext:
    def __init__(self, outcome):
        self._outcome = outcome

    async def __aenter__(self):
        if isinstance(self._outcome, BaseException):
            raise self._outcome
        return self._outcome

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """
    Stands in for aiohttp.ClientSession.

    ``routes`` maps a URL substring to a FakeResponse, an exception, or a
    callable taking (url, kwargs) and returning either; the first matching
    route wins. ``outcomes`` is a queue used when no route matches.
    """

    def __init__(self, routes: Optional[Dict[str, Any]] = None, outcomes: Optional[List[Any]] = None):
        self.routes = routes or {}
        self.outcomes = list(outcomes or [])
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        for fragment, outcome in self.routes.items():
            if fragment in url:
                if callable(outcome):
                    outcome = outcome(url, kwargs)
                return _RequestContext(outcome)
        return _RequestContext(self.outcomes.pop(0))

    def get(self, url, **kwargs):
        return self.request("GET", url, **kwargs)

    async def close(self):
        self.closed = True
