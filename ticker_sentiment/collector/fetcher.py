"""HTTP fetcher that routes requests through the proxy pool and records telemetry."""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import urlencode, urlsplit

import aiohttp

from ticker_sentiment.collector.api_logger import PROXY_VALIDATION_SERVICE, ApiLogger
from ticker_sentiment.collector.errors import (
    IngestionError,
    ParseError,
    ProxyNetworkError,
    UpstreamHttpError,
    classify_exception,
    PROXY_AUTH_REQUIRED,
)
from ticker_sentiment.collector.proxy_pool import ProxyEndpoint, ProxyPool
from ticker_sentiment.models.dtos import RequestLogEntry

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; ticker-sentiment/0.1)"
DEFAULT_TIMEOUT_SECONDS = 30.0


@dataclass
class FetchRequest:
    url: str
    method: str = "GET"
    params: Optional[Dict[str, Any]] = None
    json_body: Optional[Any] = None
    headers: Dict[str, str] = field(default_factory=dict)
    service: str = "reddit"
    summary: Optional[str] = None

    @property
    def endpoint(self) -> str:
        return urlsplit(self.url).path or "/"

    def describe(self) -> str:
        if self.summary:
            return self.summary
        query = f"?{urlencode(self.params)}" if self.params else ""
        return f"{self.method} {self.url}{query}"


@dataclass
class FetchResponse:
    status: int
    data: Any
    proxy: Optional[ProxyEndpoint] = None


def summarize_payload(data: Any) -> str:
    """Short description of a JSON payload for the request log."""
    if isinstance(data, list):
        kinds = [item.get("kind", "?") if isinstance(item, dict) else type(item).__name__ for item in data]
        return f"array[{len(data)}]: {', '.join(kinds)}"
    if isinstance(data, dict):
        children = data.get("data", {}).get("children") if isinstance(data.get("data"), dict) else None
        if isinstance(children, list):
            return f"{data.get('kind', 'object')} with {len(children)} children"
        return f"object with keys: {', '.join(list(data.keys())[:10])}"
    return type(data).__name__


class Fetcher:
    """
    Performs one HTTP request per call, with no retry.

    Connection-level failures and proxy authentication failures demote the
    proxy in the pool before the error is raised. Upstream HTTP errors (403,
    429, 5xx, ...) are raised as UpstreamHttpError and leave the proxy alone.
    """

    def __init__(
        self,
        proxy_pool: ProxyPool,
        api_logger: Optional[ApiLogger] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        user_agent: str = DEFAULT_USER_AGENT,
        session: Optional[aiohttp.ClientSession] = None,
        prometheus_exporter=None,
    ):
        self.proxy_pool = proxy_pool
        self.api_logger = api_logger
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.user_agent = user_agent
        self.prometheus_exporter = prometheus_exporter
        self._session = session
        self._owns_session = session is None

    async def start(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(headers={"User-Agent": self.user_agent})
            self._owns_session = True

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "Fetcher":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _require_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("Fetcher session not started; call start() or use 'async with'")
        return self._session

    async def fetch(self, request: FetchRequest, proxy: Optional[ProxyEndpoint]) -> FetchResponse:
        """
        Perform a single request through the given proxy (None for direct).

        Raises:
            NetworkError: Connection-level failure (ProxyNetworkError when proxied)
            UpstreamHttpError: Non-2xx response from upstream
            ParseError: Body was not valid JSON
        """
        session = self._require_session()
        proxy_id = proxy.identifier if proxy else None
        requested_at = datetime.now(timezone.utc)
        started = time.monotonic()
        status: Optional[int] = None

        headers = {"User-Agent": self.user_agent, **request.headers}
        try:
            async with session.request(
                request.method,
                request.url,
                params=request.params,
                json=request.json_body,
                headers=headers,
                proxy=proxy.url if proxy else None,
                timeout=self.timeout,
            ) as response:
                status = response.status
                if status == PROXY_AUTH_REQUIRED:
                    raise ProxyNetworkError(
                        f"Proxy authentication required for {request.url}", proxy_id=proxy_id, status=status
                    )
                if not 200 <= status < 300:
                    raise UpstreamHttpError(status, request.url)
                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    raise ParseError(f"Invalid JSON from {request.url}: {e}") from e
        except Exception as exc:
            error = classify_exception(exc, proxy_id)
            if isinstance(error, ProxyNetworkError) and proxy_id:
                self.proxy_pool.mark_failed(proxy_id)
                if self.prometheus_exporter:
                    self.prometheus_exporter.record_proxy_failure()
            self._record(request, proxy, requested_at, started, status if status is not None else error_status(error), error=error)
            if error is exc:
                raise
            raise error from exc

        self._record(request, proxy, requested_at, started, status, response_summary=summarize_payload(data))
        return FetchResponse(status=status, data=data, proxy=proxy)

    async def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        service: str = "reddit",
        summary: Optional[str] = None,
    ) -> FetchResponse:
        """Acquire the next proxy from the pool and GET a JSON document."""
        proxy = self.proxy_pool.next_proxy()
        return await self.fetch(FetchRequest(url=url, params=params, service=service, summary=summary), proxy)

    async def validate_proxy(self, endpoint: ProxyEndpoint, url: str, timeout_seconds: float = 10.0) -> bool:
        """
        Lightweight validation GET through a proxy, recorded in the request log like any other call.

        Returns:
            True when the proxy relayed a 200 response

        Raises:
            Exception: Transport errors propagate unchanged to the caller
        """
        session = self._require_session()
        request = FetchRequest(url=url, service=PROXY_VALIDATION_SERVICE, summary=f"validate proxy {endpoint.masked}")
        requested_at = datetime.now(timezone.utc)
        started = time.monotonic()
        try:
            async with session.get(
                url,
                headers={"User-Agent": self.user_agent},
                proxy=endpoint.url,
                timeout=aiohttp.ClientTimeout(total=timeout_seconds),
            ) as response:
                status = response.status
        except Exception as exc:
            error = classify_exception(exc, endpoint.identifier)
            self._record(request, endpoint, requested_at, started, error_status(error), error=error)
            raise

        passed = status == 200
        error = None if passed else UpstreamHttpError(status, url)
        self._record(request, endpoint, requested_at, started, status, error=error)
        return passed

    def _record(
        self,
        request: FetchRequest,
        proxy: Optional[ProxyEndpoint],
        requested_at: datetime,
        started: float,
        status: Optional[int],
        error: Optional[IngestionError] = None,
        response_summary: Optional[str] = None,
    ) -> None:
        if self.api_logger is None:
            return
        duration_ms = int((time.monotonic() - started) * 1000)
        self.api_logger.log(RequestLogEntry(
            service=request.service,
            endpoint=request.endpoint,
            method=request.method,
            requested_at=requested_at,
            responded_at=datetime.now(timezone.utc),
            duration_ms=duration_ms,
            status_code=status,
            success=error is None,
            error_message=str(error) if error else None,
            request_summary=request.describe(),
            response_summary=response_summary,
            proxy_used=proxy.url if proxy else None,
        ))


def error_status(error: IngestionError) -> Optional[int]:
    return getattr(error, "status", None)
