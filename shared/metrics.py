"""
Shared metrics configuration for the BR Visibility extension.
"""

from typing import Dict, Any, Optional
import time
from contextlib import contextmanager

from prometheus_client import Counter, Histogram, Info, CollectorRegistry, generate_latest


class MetricsCollector:
    """Centralized metrics collector for the engine and its settings surface."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        # A private registry keeps several collectors in one process apart.
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up metrics."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        self._metrics["visibility_runs_total"] = Counter(
            "visibility_runs_total",
            "Total application runs",
            ["source", "outcome"],
            registry=self.registry
        )

        self._metrics["visibility_run_duration_seconds"] = Histogram(
            "visibility_run_duration_seconds",
            "Application run duration in seconds",
            registry=self.registry
        )

        self._metrics["visibility_markers_hidden_total"] = Counter(
            "visibility_markers_hidden_total",
            "Markers hidden, by deciding rule",
            ["rule"],
            registry=self.registry
        )

        self._metrics["visibility_scope_failures_total"] = Counter(
            "visibility_scope_failures_total",
            "Scopes whose processing raised",
            registry=self.registry
        )

        self._metrics["visibility_triggers_dropped_total"] = Counter(
            "visibility_triggers_dropped_total",
            "Triggers dropped because a run was in progress",
            registry=self.registry
        )

        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def record_run(self, source: str, outcome: str, duration: float):
        """Record a finished application run."""
        self._metrics["visibility_runs_total"].labels(source=source, outcome=outcome).inc()
        self._metrics["visibility_run_duration_seconds"].observe(duration)

    def record_hidden(self, rule: str, count: int = 1):
        self._metrics["visibility_markers_hidden_total"].labels(rule=rule).inc(count)

    def record_scope_failure(self):
        self._metrics["visibility_scope_failures_total"].inc()

    def record_dropped_trigger(self):
        self._metrics["visibility_triggers_dropped_total"].inc()

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    @contextmanager
    def time_operation(self, operation_name: str, **labels):
        """Context manager to time an operation."""
        start_time = time.time()
        try:
            yield
        finally:
            duration = time.time() - start_time
            if operation_name in self._metrics:
                metric = self._metrics[operation_name]
                (metric.labels(**labels) if labels else metric).observe(duration)

    def get_sample(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        """Read a sample value back from the registry."""
        value = self.registry.get_sample_value(name, labels or {})
        return value or 0.0

    def export(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
