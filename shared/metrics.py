"""
Shared metrics configuration for the Submission Ingest Layer.
"""

from typing import Dict, Any, Optional
import threading
import time
from contextlib import contextmanager

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram, Info


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else REGISTRY
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        self._setup_ingest_metrics()

    def _setup_ingest_metrics(self):
        """Set up ingestion pipeline metrics."""
        self._metrics["ingest_requests_total"] = Counter(
            "ingest_requests_total",
            "Ingestion calls by outcome",
            ["outcome"],
            registry=self.registry
        )

        self._metrics["ingest_duration_seconds"] = Histogram(
            "ingest_duration_seconds",
            "Time spent in the check-then-insert sequence",
            registry=self.registry
        )

        self._metrics["auth_failures_total"] = Counter(
            "auth_failures_total",
            "Rejected bearer tokens by reason",
            ["reason"],
            registry=self.registry
        )

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_ingest(self, outcome: str):
        """Record an ingestion outcome (created, already_exists, persistence_failure)."""
        self._metrics["ingest_requests_total"].labels(outcome=outcome).inc()

    def record_auth_failure(self, reason: str):
        """Record a rejected token."""
        self._metrics["auth_failures_total"].labels(reason=reason).inc()

    @contextmanager
    def time_operation(self, operation_name: str, **labels):
        """Context manager to time an operation."""
        start_time = time.time()
        try:
            yield
        finally:
            duration = time.time() - start_time
            metric = self._metrics.get(operation_name)
            if metric is not None:
                if labels:
                    metric = metric.labels(**labels)
                metric.observe(duration)


_collectors: Dict[str, MetricsCollector] = {}
_collectors_lock = threading.Lock()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get the metrics collector for a service.

    Collectors on the default registry are shared per service name, since
    prometheus refuses to register the same series twice.
    """
    if registry is not None:
        return MetricsCollector(service_name, registry)

    with _collectors_lock:
        collector = _collectors.get(service_name)
        if collector is None:
            collector = MetricsCollector(service_name)
            _collectors[service_name] = collector
        return collector
