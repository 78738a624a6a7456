"""Metrics collection for embedding runs.

Provides a thin convenience wrapper around ``prometheus_client`` so the
orchestrator and backends record item, chunk, and backend-call metrics with
consistent label sets.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
- A single registry is kept per collector (can be injected for tests)
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest
import structlog

logger = structlog.get_logger("metrics")


class MetricsCollector:
    """Centralized metrics collection.

    Parameters
    - service_name: Logical name used for scoping
    - registry: Optional custom ``CollectorRegistry`` (e.g. for testing)
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()

        self.items_processed = Counter(
            'embed_items_total',
            'Items (files, pages, image batches) processed by status',
            ['source', 'status'],
            registry=self.registry
        )

        self.items_in_flight = Gauge(
            'embed_items_in_flight',
            'Items currently holding an admission slot',
            registry=self.registry
        )

        self.chunks_embedded = Counter(
            'embed_chunks_total',
            'Chunks turned into EmbedData records',
            ['source'],
            registry=self.registry
        )

        self.embedding_duration = Histogram(
            'embed_backend_call_duration_seconds',
            'Duration of a single Embedder.embed call',
            ['backend'],
            registry=self.registry
        )

        self.backend_errors = Counter(
            'embed_backend_errors_total',
            'Failed Embedder.embed calls',
            ['backend'],
            registry=self.registry
        )

    def record_item(self, source: str, status: str) -> None:
        """Record a terminal item state (``completed`` or ``failed``)."""
        self.items_processed.labels(source=source, status=status).inc()

    def record_chunks(self, source: str, count: int) -> None:
        """Record the number of records produced for a source kind."""
        self.chunks_embedded.labels(source=source).inc(count)

    def record_embedding_call(self, backend: str, duration: float) -> None:
        """Record backend call latency in seconds."""
        self.embedding_duration.labels(backend=backend).observe(duration)

    def record_backend_error(self, backend: str) -> None:
        """Record a failed backend call."""
        self.backend_errors.labels(backend=backend).inc()

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format for scraping."""
        return generate_latest(self.registry).decode('utf-8')


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector(service_name: str = "embedflow") -> MetricsCollector:
    """Get or create the process-wide metrics collector."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector(service_name)
    return _metrics_collector
