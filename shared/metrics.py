"""
Shared metrics configuration for the IAM Todo service.
"""

from typing import Dict, Any, Optional
import time
from contextlib import contextmanager

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info


class MetricsCollector:
    """Centralized metrics collector for services.

    Each collector owns its registry so several service instances (tests,
    embedded apps) can coexist in one process.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        # Service info
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

        # Health check metrics
        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        # Error metrics
        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        # Business metrics
        self._metrics["business_events_total"] = Counter(
            "business_events_total",
            "Total business events",
            ["event_type", "service"],
            registry=self.registry
        )

        self._setup_pool_metrics()

    def _setup_pool_metrics(self):
        """Set up database pool metrics."""
        self._metrics["db_auth_tokens_total"] = Counter(
            "db_auth_tokens_total",
            "IAM auth token generations",
            ["status"],
            registry=self.registry
        )

        self._metrics["db_connections_opened_total"] = Counter(
            "db_connections_opened_total",
            "Physical database connections opened",
            registry=self.registry
        )

        self._metrics["db_connections_closed_total"] = Counter(
            "db_connections_closed_total",
            "Physical database connections closed",
            ["reason"],
            registry=self.registry
        )

        self._metrics["db_connect_failures_total"] = Counter(
            "db_connect_failures_total",
            "Failed attempts to open a physical connection",
            registry=self.registry
        )

        self._metrics["db_idle_connection_errors_total"] = Counter(
            "db_idle_connection_errors_total",
            "Idle connections terminated unexpectedly",
            registry=self.registry
        )

        self._metrics["db_pool_acquire_seconds"] = Histogram(
            "db_pool_acquire_seconds",
            "Time spent waiting for a pooled connection",
            registry=self.registry
        )

        self._metrics["db_pool_outstanding_connections"] = Gauge(
            "db_pool_outstanding_connections",
            "Physical connections owned by the pool, including ones being opened",
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

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def record_business_event(self, event_type: str, service: Optional[str] = None):
        """Record business event metrics."""
        service_name = service or self.service_name
        self._metrics["business_events_total"].labels(event_type=event_type, service=service_name).inc()

    def record_auth_token(self, status: str):
        self._metrics["db_auth_tokens_total"].labels(status=status).inc()

    def record_connection_opened(self):
        self._metrics["db_connections_opened_total"].inc()

    def record_connection_closed(self, reason: str):
        self._metrics["db_connections_closed_total"].labels(reason=reason).inc()

    def record_connect_failure(self):
        self._metrics["db_connect_failures_total"].inc()

    def record_idle_connection_error(self):
        self._metrics["db_idle_connection_errors_total"].inc()

    def set_outstanding_connections(self, value: int):
        self._metrics["db_pool_outstanding_connections"].set(value)

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
                (metric.labels(**labels) if labels else metric).observe(duration)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
