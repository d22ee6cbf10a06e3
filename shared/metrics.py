"""
Shared metrics configuration for bucketgate.
"""

from typing import Dict, Any, Optional

from prometheus_client import Counter, Histogram, Info, CollectorRegistry


DELAY_BUCKETS = (0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)


class MetricsCollector:
    """Centralized metrics collector for limiter processes."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        # Service info
        self._metrics["service_info"] = Info(
            "service",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # Store metrics
        self._metrics["store_errors_total"] = Counter(
            "store_errors_total",
            "Total counter store failures",
            ["operation"],
            registry=self.registry
        )

        self._setup_token_bucket_metrics()

    def _setup_token_bucket_metrics(self):
        """Set up token bucket metrics."""
        self._metrics["token_bucket_acquire_total"] = Counter(
            "token_bucket_acquire_total",
            "Token acquisition attempts",
            ["bucket", "outcome"],
            registry=self.registry
        )

        self._metrics["token_bucket_release_total"] = Counter(
            "token_bucket_release_total",
            "Tokens returned to the bucket",
            ["bucket"],
            registry=self.registry
        )

        self._metrics["token_bucket_delay_seconds"] = Histogram(
            "token_bucket_delay_seconds",
            "Throttling delay applied by acquire",
            ["bucket"],
            buckets=DELAY_BUCKETS,
            registry=self.registry
        )

    def record_store_error(self, operation: str):
        """Record a counter store failure."""
        self._metrics["store_errors_total"].labels(operation=operation).inc()

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).inc()

    def observe_histogram(self, metric_name: str, value: float, **labels):
        """Observe a histogram metric."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).observe(value)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
