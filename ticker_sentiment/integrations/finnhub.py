"""
Finnhub symbol search client.

A thin pass-through used to refresh the stocks table from a free-text query.
"""

import logging
import time
from datetime import datetime, timezone
from typing import List, Optional

import httpx
from pydantic import ValidationError

from ticker_sentiment.collector.api_logger import ApiLogger
from ticker_sentiment.collector.errors import ParseError, UpstreamHttpError, NetworkError
from ticker_sentiment.models.dtos import RequestLogEntry, SymbolMatch

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://finnhub.io/api/v1"


class FinnhubClient:
    """
    Async client for Finnhub's /search endpoint.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        exchange: str = "US",
        timeout: float = 30.0,
        api_logger: Optional[ApiLogger] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the Finnhub client.

        Args:
            api_key: Finnhub API token
            base_url: API base URL
            exchange: Exchange filter passed with every search
            timeout: Request timeout in seconds
            api_logger: Optional request telemetry sink
            client: Pre-built httpx client, mainly for tests
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.exchange = exchange
        self.api_logger = api_logger
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def close(self) -> None:
        await self.client.aclose()

    async def search(self, query: str) -> List[SymbolMatch]:
        """
        Search symbols matching a query.

        Raises:
            NetworkError: On transport failures
            UpstreamHttpError: On non-2xx responses
            ParseError: If the response body is not the expected shape
        """
        url = f"{self.base_url}/search"
        requested_at = datetime.now(timezone.utc)
        started = time.monotonic()
        status = None
        try:
            response = await self.client.get(
                url, params={"q": query, "exchange": self.exchange, "token": self.api_key}
            )
            status = response.status_code
            response.raise_for_status()
            payload = response.json()
            matches = [SymbolMatch.model_validate(item) for item in payload.get("result", [])]
        except httpx.HTTPStatusError as e:
            self._record(query, requested_at, started, status, error=str(e))
            raise UpstreamHttpError(e.response.status_code, url) from e
        except httpx.HTTPError as e:
            self._record(query, requested_at, started, status, error=str(e))
            raise NetworkError(f"Finnhub request failed: {e}") from e
        except (ValueError, AttributeError, ValidationError) as e:
            self._record(query, requested_at, started, status, error=f"Invalid response: {e}")
            raise ParseError(f"Unexpected Finnhub search response for {query!r}") from e

        self._record(query, requested_at, started, status, summary=f"{len(matches)} matches")
        logger.info(f"Finnhub search for {query!r} returned {len(matches)} matches")
        return matches

    def _record(self, query, requested_at, started, status, error=None, summary=None) -> None:
        if self.api_logger is None:
            return
        self.api_logger.log(RequestLogEntry(
            service="finnhub",
            endpoint="/search",
            method="GET",
            requested_at=requested_at,
            responded_at=datetime.now(timezone.utc),
            duration_ms=int((time.monotonic() - started) * 1000),
            status_code=status,
            success=error is None,
            error_message=error,
            request_summary=f"q={query} exchange={self.exchange}",
            response_summary=summary,
        ))
