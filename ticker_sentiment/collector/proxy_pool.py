"""Round-robin pool of outbound proxies with failure cooldown."""

import asyncio
import logging
import re
import threading
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_SECONDS = 300.0

_CREDENTIALS_RE = re.compile(r":([^:@]+)@")


def mask_proxy_url(url: Optional[str]) -> Optional[str]:
    """Replace the password segment of a proxy URL with ***."""
    if url is None:
        return None
    return _CREDENTIALS_RE.sub(":***@", url)


@dataclass(frozen=True)
class ProxyEndpoint:
    """A configured proxy. ``url`` is what gets handed to the HTTP client."""
    host: str
    port: int
    username: str
    password: str

    @property
    def url(self) -> str:
        return f"http://{self.username}:{self.password}@{self.host}:{self.port}"

    @property
    def identifier(self) -> str:
        return self.url

    @property
    def masked(self) -> str:
        return mask_proxy_url(self.url)

    def __repr__(self) -> str:
        return f"ProxyEndpoint({self.masked})"


@dataclass
class ProxyHealth:
    healthy: bool = True
    last_failure: Optional[float] = None


def parse_proxy_list(raw: Optional[str]) -> List[ProxyEndpoint]:
    """
    Parse a comma-separated list of host:port:user:pass entries.

    Malformed entries are dropped with a warning.

    Args:
        raw: Raw configuration string, may be empty or None

    Returns:
        Parsed endpoints in configuration order
    """
    if not raw:
        return []

    endpoints = []
    for position, entry in enumerate(raw.split(",")):
        entry = entry.strip()
        if not entry:
            continue
        parts = entry.split(":")
        if len(parts) != 4 or not all(parts):
            logger.warning(f"Dropping malformed proxy entry #{position}: expected host:port:user:pass")
            continue
        host, port, username, password = parts
        try:
            port_number = int(port)
        except ValueError:
            logger.warning(f"Dropping proxy entry #{position} ({host}): port {port!r} is not a number")
            continue
        endpoints.append(ProxyEndpoint(host=host, port=port_number, username=username, password=password))

    return endpoints


ProxyProbe = Callable[[ProxyEndpoint], Awaitable[bool]]


class ProxyPool:
    """
    Rotating proxy selection with per-proxy health and cooldown.

    All cursor and health-map access happens under a lock, so one pool can be
    shared by concurrent sweeps.
    """

    def __init__(
        self,
        endpoints: List[ProxyEndpoint],
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the pool.

        Args:
            endpoints: Proxies in rotation order; an empty list means direct connections
            cooldown_seconds: How long a failed proxy is skipped before being retried
            clock: Monotonic time source, injectable for tests
        """
        self._endpoints = list(endpoints)
        self._cooldown = cooldown_seconds
        self._clock = clock
        self._cursor = 0
        self._health: Dict[str, ProxyHealth] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, proxy_list: Optional[str], cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS) -> "ProxyPool":
        endpoints = parse_proxy_list(proxy_list)
        if endpoints:
            logger.info(f"Loaded {len(endpoints)} proxies")
        else:
            logger.warning("No proxies configured, requests will use direct connections")
        return cls(endpoints, cooldown_seconds=cooldown_seconds)

    def __len__(self) -> int:
        return len(self._endpoints)

    @property
    def endpoints(self) -> List[ProxyEndpoint]:
        return list(self._endpoints)

    def _is_available_locked(self, identifier: str) -> bool:
        health = self._health.get(identifier)
        if health is None or health.healthy:
            return True
        if health.last_failure is None:
            return True
        return self._clock() - health.last_failure >= self._cooldown

    def is_available(self, identifier: str) -> bool:
        """True if the proxy was never marked failed, is healthy, or its cooldown elapsed."""
        with self._lock:
            return self._is_available_locked(identifier)

    def next_proxy(self) -> Optional[ProxyEndpoint]:
        """
        Return the next available proxy in rotation.

        Scans at most one full cycle starting from the cursor. If every proxy is
        cooling down, the proxy at the cursor is returned anyway. Returns None
        only when no proxies are configured.
        """
        with self._lock:
            count = len(self._endpoints)
            if count == 0:
                return None

            for _ in range(count):
                endpoint = self._endpoints[self._cursor]
                self._cursor = (self._cursor + 1) % count
                if self._is_available_locked(endpoint.identifier):
                    return endpoint

            endpoint = self._endpoints[self._cursor]
            self._cursor = (self._cursor + 1) % count
            logger.warning(f"All {count} proxies are cooling down, falling back to {endpoint.masked}")
            return endpoint

    def mark_failed(self, identifier: str) -> None:
        with self._lock:
            self._health[identifier] = ProxyHealth(healthy=False, last_failure=self._clock())
        logger.warning(f"Proxy marked failed: {mask_proxy_url(identifier)}")

    def mark_healthy(self, identifier: str) -> None:
        with self._lock:
            self._health[identifier] = ProxyHealth(healthy=True, last_failure=None)

    def healthy_count(self) -> int:
        with self._lock:
            return sum(1 for e in self._endpoints if self._is_available_locked(e.identifier))

    async def validate_all(self, probe: ProxyProbe) -> int:
        """
        Probe every proxy once and record the outcome.

        Failures are logged and never raised.

        Args:
            probe: Coroutine returning True when the proxy answered correctly

        Returns:
            Number of proxies that passed
        """
        if not self._endpoints:
            return 0

        results = await asyncio.gather(
            *(probe(endpoint) for endpoint in self._endpoints),
            return_exceptions=True,
        )

        passed = 0
        for endpoint, result in zip(self._endpoints, results):
            if result is True:
                self.mark_healthy(endpoint.identifier)
                passed += 1
            else:
                reason = result if isinstance(result, BaseException) else "probe returned failure"
                logger.warning(f"Proxy validation failed for {endpoint.masked}: {reason}")
                self.mark_failed(endpoint.identifier)

        logger.info(f"Proxy validation complete: {passed}/{len(self._endpoints)} healthy")
        return passed
