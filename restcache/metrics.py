"""
Prometheus metrics for restcache engines.
"""

import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram


class MetricsCollector:
    """Counters and histograms recorded by the read/write engines."""

    def __init__(self, namespace: str = "restcache", registry: Optional[CollectorRegistry] = None):
        self.namespace = namespace
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self) -> None:
        """Register engine metrics."""
        self._metrics["requests_total"] = Counter(
            "requests_total",
            "Requests dispatched through the request executor",
            ["operation", "method", "outcome"],
            namespace=self.namespace,
            registry=self.registry
        )

        self._metrics["request_duration_seconds"] = Histogram(
            "request_duration_seconds",
            "Request duration in seconds",
            ["operation", "method"],
            namespace=self.namespace,
            registry=self.registry
        )

        self._metrics["retries_total"] = Counter(
            "retries_total",
            "Read retries scheduled",
            ["operation"],
            namespace=self.namespace,
            registry=self.registry
        )

        self._metrics["invalidations_total"] = Counter(
            "invalidations_total",
            "Cache invalidations issued after mutations",
            ["operation", "kind"],
            namespace=self.namespace,
            registry=self.registry
        )

        self._metrics["invalidation_warnings_total"] = Counter(
            "invalidation_warnings_total",
            "Invalidations skipped with a warning",
            ["operation"],
            namespace=self.namespace,
            registry=self.registry
        )

        self._metrics["cache_hits_total"] = Counter(
            "cache_hits_total",
            "Reads served from a fresh cache entry",
            ["operation"],
            namespace=self.namespace,
            registry=self.registry
        )

        self._metrics["cache_misses_total"] = Counter(
            "cache_misses_total",
            "Reads that required a network fetch",
            ["operation"],
            namespace=self.namespace,
            registry=self.registry
        )

    def get_metric(self, name: str) -> Any:
        """Get a metric by name."""
        return self._metrics.get(name)

    def increment_counter(self, metric_name: str, **labels: str) -> None:
        """Increment a counter metric."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).inc()

    def observe_histogram(self, metric_name: str, value: float, **labels: str) -> None:
        """Observe a histogram metric."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).observe(value)

    @contextmanager
    def time_request(self, operation: str, method: str) -> Iterator[None]:
        """Time a dispatched request."""
        start_time = time.perf_counter()
        try:
            yield
        finally:
            self.observe_histogram(
                "request_duration_seconds",
                time.perf_counter() - start_time,
                operation=operation,
                method=method,
            )
