"""Metrics collection with Prometheus integration."""

from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram, Info, generate_latest


class MetricsCollector:
    """Counters and histograms for provider resolution.

    Each collector owns its metric objects; pass a fresh ``CollectorRegistry``
    to get an isolated set (tests do this).
    """

    def __init__(self, namespace: str = "tutor_orchestrator", registry: Optional[CollectorRegistry] = None):
        """Initialize metrics collector."""
        self.namespace = namespace
        self.registry = registry if registry is not None else REGISTRY
        self._counters: dict[str, Counter] = {}
        self._histograms: dict[str, Histogram] = {}
        self._info: dict[str, Info] = {}
        self._init_default_metrics()

    def _init_default_metrics(self):
        """Initialize default application metrics."""
        ns, reg = self.namespace, self.registry

        self._info["build"] = Info(f"{ns}_build", "Build information", registry=reg)

        # HTTP surface
        self._counters["requests_total"] = Counter(
            f"{ns}_requests_total",
            "Total number of HTTP requests",
            ["method", "endpoint", "status"],
            registry=reg,
        )
        self._histograms["request_duration"] = Histogram(
            f"{ns}_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
            registry=reg,
        )

        # Provider resolution
        self._counters["provider_attempts"] = Counter(
            f"{ns}_provider_attempts_total",
            "Provider invocations by outcome",
            ["provider", "capability", "outcome"],
            registry=reg,
        )
        self._counters["retries"] = Counter(
            f"{ns}_retries_total",
            "Retries scheduled by the retry executor",
            ["provider", "kind"],
            registry=reg,
        )
        self._counters["fallbacks"] = Counter(
            f"{ns}_fallbacks_total",
            "Fallbacks from a failed provider to the next one",
            ["capability", "provider"],
            registry=reg,
        )
        self._histograms["resolve_duration"] = Histogram(
            f"{ns}_resolve_duration_seconds",
            "End-to-end resolution latency",
            ["capability", "status"],
            buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
            registry=reg,
        )
        self._counters["poll_checks"] = Counter(
            f"{ns}_poll_checks_total",
            "Status checks issued by the job poller",
            ["provider", "state"],
            registry=reg,
        )
        self._counters["errors"] = Counter(
            f"{ns}_errors_total",
            "Total errors",
            ["error_type", "component"],
            registry=reg,
        )

    def increment_counter(self, name: str, value: float = 1.0, labels: dict[str, str] | None = None):
        """Increment a counter metric."""
        counter = self._counters[name]
        if labels:
            counter.labels(**labels).inc(value)
        else:
            counter.inc(value)

    def observe_histogram(self, name: str, value: float, labels: dict[str, str] | None = None):
        """Observe a histogram value."""
        histogram = self._histograms[name]
        if labels:
            histogram.labels(**labels).observe(value)
        else:
            histogram.observe(value)

    def record_request(self, method: str, endpoint: str, status: int, duration: float):
        """Record HTTP request metrics."""
        self.increment_counter(
            "requests_total", labels={"method": method, "endpoint": endpoint, "status": str(status)}
        )
        self.observe_histogram("request_duration", duration, labels={"method": method, "endpoint": endpoint})

    def record_provider_attempt(self, provider: str, capability: str, outcome: str):
        self.increment_counter(
            "provider_attempts",
            labels={"provider": provider, "capability": capability, "outcome": outcome},
        )

    def record_retry(self, provider: str, kind: str):
        self.increment_counter("retries", labels={"provider": provider, "kind": kind})

    def record_fallback(self, capability: str, provider: str):
        self.increment_counter("fallbacks", labels={"capability": capability, "provider": provider})

    def record_resolution(self, capability: str, status: str, duration: float):
        self.observe_histogram(
            "resolve_duration", duration, labels={"capability": capability, "status": status}
        )

    def record_poll_check(self, provider: str, state: str):
        self.increment_counter("poll_checks", labels={"provider": provider, "state": state})

    def record_error(self, error_type: str, component: str):
        """Record error metrics."""
        self.increment_counter("errors", labels={"error_type": error_type, "component": component})

    def set_build_info(self, version: str, environment: str):
        """Set build information."""
        self._info["build"].info({"version": version, "environment": environment})

    def sample(self, name: str, labels: dict[str, str] | None = None) -> float:
        """Current value of a sample in this collector's registry (0.0 when absent)."""
        value = self.registry.get_sample_value(f"{self.namespace}_{name}", labels or {})
        return value or 0.0

    def export_prometheus(self) -> bytes:
        """Export metrics in Prometheus format."""
        return generate_latest(self.registry)


# Global metrics instance
metrics_collector = MetricsCollector()
