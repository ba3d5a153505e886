"""
Prometheus metrics collection.

Collectors are owned by an ``HTTPMetrics`` instance with its own registry, so
the admin exporter only shows what the API server records (no default process
or platform collectors) and tests can build as many instances as they like.
"""

from prometheus_client import CollectorRegistry, Counter, Histogram
from prometheus_client.exposition import choose_encoder

LATENCY_BUCKETS = (0.0001, 0.001, 0.01, 0.1)


class HTTPMetrics:
    """Request count and latency collectors for one server."""

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry if registry is not None else CollectorRegistry()

        self.requests_total = Counter(
            "http_requests_total",
            "the total number of requests received",
            ["path", "code"],
            registry=self.registry,
        )
        self.request_latency_seconds = Histogram(
            "http_request_latency_seconds",
            "request latency in seconds",
            buckets=LATENCY_BUCKETS,
            registry=self.registry,
        )

    def observe(self, path: str, status_code: int, latency: float) -> None:
        self.requests_total.labels(path=path, code=str(status_code)).inc()
        self.request_latency_seconds.observe(latency)

    def render(self, accept_header: str | None = None) -> tuple[bytes, str]:
        """Render the registry, negotiating OpenMetrics via the Accept header.

        Returns:
            The exposition body and its content type
        """
        encoder, content_type = choose_encoder(accept_header or "")
        return encoder(self.registry), content_type
