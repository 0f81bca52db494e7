"""
Prometheus instrumentation.

Each ``BridgeMetrics`` owns its own ``CollectorRegistry`` so several apps
(tests, for one) can coexist in a process without name collisions.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)

from vault_bridge.services.circuit_breaker import CircuitBreaker, CircuitState

BREAKER_STATE_VALUES = {
    CircuitState.CLOSED: 0,
    CircuitState.OPEN: 1,
    CircuitState.HALF_OPEN: 2,
}

REQUEST_BUCKETS = (0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0)


class BridgeMetrics:
    """Metric instruments for the HTTP surface, cache, breaker and re-auth."""

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()
        ProcessCollector(registry=self.registry)
        PlatformCollector(registry=self.registry)

        self.http_requests_total = Counter(
            "http_requests_total",
            "Total number of HTTP requests",
            ["method", "route", "status_code"],
            registry=self.registry,
        )
        self.http_request_duration_seconds = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "route"],
            buckets=REQUEST_BUCKETS,
            registry=self.registry,
        )
        self.cache_hits_total = Counter(
            "cache_hits_total", "Total number of cache hits", registry=self.registry
        )
        self.cache_misses_total = Counter(
            "cache_misses_total", "Total number of cache misses", registry=self.registry
        )
        self.secret_retrievals_total = Counter(
            "secret_retrievals_total",
            "Secret lookups by outcome (fresh, cache, stale, error)",
            ["outcome"],
            registry=self.registry,
        )
        self.reauth_attempts_total = Counter(
            "reauth_attempts_total",
            "Upstream re-authentication attempts by result",
            ["result"],
            registry=self.registry,
        )
        self.circuit_breaker_state = Gauge(
            "circuit_breaker_state",
            "Circuit breaker state (0=closed, 1=open, 2=half-open)",
            registry=self.registry,
        )

    def track_breaker(self, breaker: CircuitBreaker) -> None:
        """Report the breaker's live state on every scrape."""
        self.circuit_breaker_state.set_function(
            lambda: BREAKER_STATE_VALUES[breaker.state]
        )

    def observe_request(
        self, method: str, route: str, status_code: int, duration: float
    ) -> None:
        self.http_requests_total.labels(method, route, str(status_code)).inc()
        self.http_request_duration_seconds.labels(method, route).observe(duration)

    def record_reauth(self, succeeded: bool) -> None:
        self.reauth_attempts_total.labels("success" if succeeded else "failure").inc()

    def render(self) -> tuple[bytes, str]:
        """Exposition payload and its content type."""
        return generate_latest(self.registry), CONTENT_TYPE_LATEST
