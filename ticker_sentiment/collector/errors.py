"""Error taxonomy for the ingestion pipeline."""

import asyncio
from typing import Optional

import aiohttp


class IngestionError(Exception):
    """Base class for errors raised while ingesting or scoring content."""


class ConfigurationError(IngestionError):
    """Invalid or missing configuration detected at startup."""


class NetworkError(IngestionError):
    """
    Connection-level failure (refused, reset, timeout, DNS, protocol).

    Attributes:
        proxy_id: Identifier of the proxy the request went through, if any.
        status: HTTP status when the failure came from the proxy itself (407).
    """

    proxy_related = False

    def __init__(self, message: str, proxy_id: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.proxy_id = proxy_id
        self.status = status


class ProxyNetworkError(NetworkError):
    """A network failure attributed to the proxy; the proxy gets demoted."""

    proxy_related = True


class UpstreamHttpError(IngestionError):
    """Non-2xx response from the upstream service. Never demotes a proxy."""

    def __init__(self, status: int, url: str, message: Optional[str] = None):
        super().__init__(message or f"HTTP {status} from {url}")
        self.status = status
        self.url = url


class ParseError(IngestionError):
    """Response body did not have the expected shape."""


class ScoringError(IngestionError):
    """Scorer could not produce a valid result for a comment."""


class PersistenceError(IngestionError):
    """A repository write failed."""


PROXY_AUTH_REQUIRED = 407

CONNECTION_ERRORS = (
    aiohttp.ClientConnectionError,
    aiohttp.ClientPayloadError,
    asyncio.TimeoutError,
    ConnectionError,
)


def classify_exception(exc: BaseException, proxy_id: Optional[str] = None) -> IngestionError:
    """
    Map a transport exception to the pipeline taxonomy.

    Connection-level failures and proxy authentication failures (407) become
    ProxyNetworkError when a proxy was in use and NetworkError otherwise.
    Other HTTP errors become UpstreamHttpError.
    """
    if isinstance(exc, IngestionError):
        return exc

    error_cls = ProxyNetworkError if proxy_id else NetworkError

    if isinstance(exc, aiohttp.ClientResponseError):
        if exc.status == PROXY_AUTH_REQUIRED or isinstance(exc, aiohttp.ClientHttpProxyError):
            return error_cls(f"Proxy error HTTP {exc.status}: {exc.message}", proxy_id=proxy_id, status=exc.status)
        url = str(exc.request_info.real_url) if exc.request_info else ""
        return UpstreamHttpError(exc.status, url, message=f"HTTP {exc.status}: {exc.message}")

    if isinstance(exc, CONNECTION_ERRORS):
        description = str(exc) or type(exc).__name__
        return error_cls(f"{type(exc).__name__}: {description}", proxy_id=proxy_id)

    return IngestionError(f"Unexpected {type(exc).__name__}: {exc}")
