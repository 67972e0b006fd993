"""Prometheus metrics for monitoring the ingestion pipeline."""

import logging

from prometheus_client import Counter, Gauge, Histogram, start_http_server

logger = logging.getLogger(__name__)

# Define metrics
OUTBOUND_REQUESTS = Counter(
    "ticker_sentiment_outbound_requests_total",
    "Outbound requests by upstream service and outcome",
    ["service", "outcome"],
)

REQUEST_DURATION = Histogram(
    "ticker_sentiment_request_duration_seconds",
    "Duration of outbound requests in seconds",
    ["service"],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
)

PROXY_FAILURES = Counter(
    "ticker_sentiment_proxy_failures_total",
    "Number of times a proxy was marked failed",
)

HEALTHY_PROXIES = Gauge(
    "ticker_sentiment_healthy_proxies",
    "Proxies currently available for rotation",
)

POSTS_SCRAPED = Counter(
    "ticker_sentiment_posts_scraped_total",
    "Post content fetches by outcome",
    ["outcome"],
)

COMMENTS_PERSISTED = Counter(
    "ticker_sentiment_comments_persisted_total",
    "Comments written after passing the persist filter",
)

COMMENTS_SCORED = Counter(
    "ticker_sentiment_comments_scored_total",
    "Comments scored by outcome",
    ["outcome"],
)

POSTS_DISCOVERED = Counter(
    "ticker_sentiment_posts_discovered_total",
    "Posts upserted by discovery source",
    ["source"],
)

SWEEP_RUNS = Counter(
    "ticker_sentiment_sweep_runs_total",
    "Sweep runs by sweep name and outcome",
    ["sweep", "outcome"],
)

SWEEP_DURATION = Histogram(
    "ticker_sentiment_sweep_duration_seconds",
    "Duration of sweep runs in seconds",
    ["sweep"],
    buckets=[1.0, 5.0, 15.0, 60.0, 300.0, 900.0, 3600.0],
)


class PrometheusExporter:
    """Prometheus metrics exporter for the ingestion pipeline."""

    def __init__(self, port: int = 8000):
        """
        Initialize the Prometheus exporter.

        Args:
            port: Port to expose metrics on
        """
        self.port = port
        self.server_started = False

    def start_server(self) -> None:
        """Start the Prometheus metrics server."""
        if not self.server_started:
            try:
                start_http_server(self.port)
                self.server_started = True
                logger.info(f"Started Prometheus metrics server on port {self.port}")
            except OSError as e:
                logger.error(f"Failed to start Prometheus metrics server: {str(e)}")

    def record_request(self, service: str, success: bool, duration_seconds: float) -> None:
        OUTBOUND_REQUESTS.labels(service=service, outcome="success" if success else "error").inc()
        REQUEST_DURATION.labels(service=service).observe(duration_seconds)

    def record_proxy_failure(self) -> None:
        PROXY_FAILURES.inc()

    def set_healthy_proxies(self, count: int) -> None:
        HEALTHY_PROXIES.set(count)

    def record_post_scraped(self, success: bool) -> None:
        POSTS_SCRAPED.labels(outcome="success" if success else "error").inc()

    def record_comments_persisted(self, count: int) -> None:
        COMMENTS_PERSISTED.inc(count)

    def record_comment_scored(self, outcome: str) -> None:
        """
        Record a scoring attempt.

        Args:
            outcome: 'scored', 'flagged' or 'error'
        """
        COMMENTS_SCORED.labels(outcome=outcome).inc()

    def record_posts_discovered(self, source: str, count: int) -> None:
        POSTS_DISCOVERED.labels(source=source).inc(count)

    def record_sweep(self, sweep: str, outcome: str, duration_seconds: float = 0.0) -> None:
        """
        Record a sweep trigger.

        Args:
            sweep: Sweep name
            outcome: 'completed', 'failed' or 'skipped'
            duration_seconds: Run time, ignored for skipped triggers
        """
        SWEEP_RUNS.labels(sweep=sweep, outcome=outcome).inc()
        if outcome != "skipped":
            SWEEP_DURATION.labels(sweep=sweep).observe(duration_seconds)
