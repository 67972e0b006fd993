"""Fire-and-forget recording of outbound requests."""

import asyncio
import logging
from typing import Optional, Protocol, Set

from ticker_sentiment.collector.proxy_pool import mask_proxy_url
from ticker_sentiment.models.dtos import RequestLogEntry

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 1000
MAX_SUMMARY_LENGTH = 500
MAX_PROXY_LENGTH = 255

PROXY_VALIDATION_SERVICE = "proxy_validation"

# Known upstream services and their base URLs.
SERVICES = {
    "reddit": "https://www.reddit.com",
    "finnhub": "https://finnhub.io/api/v1",
    "openai": "https://api.openai.com/v1",
    PROXY_VALIDATION_SERVICE: None,
}


class RequestLogSink(Protocol):
    """Anything that can persist a RequestLogEntry."""

    async def record_api_call(self, entry: RequestLogEntry) -> None:
        ...


def _truncate(value: Optional[str], limit: int) -> Optional[str]:
    if value is None:
        return None
    return value if len(value) <= limit else value[:limit]


def prepare_entry(entry: RequestLogEntry) -> RequestLogEntry:
    """Apply length limits and mask proxy credentials."""
    return entry.model_copy(update={
        "error_message": _truncate(entry.error_message, MAX_ERROR_LENGTH),
        "request_summary": _truncate(entry.request_summary, MAX_SUMMARY_LENGTH),
        "response_summary": _truncate(entry.response_summary, MAX_SUMMARY_LENGTH),
        "proxy_used": _truncate(mask_proxy_url(entry.proxy_used), MAX_PROXY_LENGTH),
    })


class ApiLogger:
    """
    Writes request telemetry in the background.

    ``log()`` never blocks the caller and never raises: the write runs as a
    tracked task and any failure is logged and dropped. ``drain()`` waits for
    pending writes and should be called before shutdown.
    """

    def __init__(self, sink: Optional[RequestLogSink], prometheus_exporter=None):
        self.sink = sink
        self.prometheus_exporter = prometheus_exporter
        self._pending: Set[asyncio.Task] = set()

    def log(self, entry: RequestLogEntry) -> None:
        if self.prometheus_exporter:
            self.prometheus_exporter.record_request(
                entry.service, entry.success, (entry.duration_ms or 0) / 1000.0
            )

        if self.sink is None:
            return

        try:
            task = asyncio.get_running_loop().create_task(self._write(prepare_entry(entry)))
        except RuntimeError:
            logger.debug("No running event loop, dropping request log entry")
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, entry: RequestLogEntry) -> None:
        try:
            await self.sink.record_api_call(entry)
        except Exception as e:
            logger.warning(f"Failed to record {entry.service} request log: {e}")

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for all in-flight log writes."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
