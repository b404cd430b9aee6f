"""Prometheus metrics for the discovery engine.

Collectors live on a DiscoveryMetrics instance bound to its own
CollectorRegistry. The engine, coordinator and cache receive the instance
explicitly, so each test can build an isolated one.

Usage:
    metrics = DiscoveryMetrics()
    metrics.provider_call("citation_network", "success", 0.42)
    metrics.cache_hit("memory")

    # Exposition (served by the health server at /metrics)
    body = metrics.render()
"""

from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Buckets for whole-request and per-provider latency (seconds)
DISCOVERY_BUCKETS = (0.1, 0.5, 1, 2, 5, 10, 30, 60, 120, 300, float("inf"))
PROVIDER_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30, 60, float("inf"))

CIRCUIT_STATE_VALUES = {"closed": 0, "half_open": 1, "open": 2}


class DiscoveryMetrics:
    """Counters, gauges and histograms for one engine instance"""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry(auto_describe=True)

        # =====================================================================
        # COUNTERS - Monotonically increasing values
        # =====================================================================

        self.discovery_requests = Counter(
            name="discovery_requests_total",
            documentation="Discovery requests by outcome",
            labelnames=["status"],  # success, partial_success, failed, cached
            registry=self.registry,
        )

        self.provider_calls = Counter(
            name="discovery_provider_calls_total",
            documentation="Provider calls by outcome",
            labelnames=["provider", "status"],  # success/partial/failed/timeout/skipped
            registry=self.registry,
        )

        self.admission_denials = Counter(
            name="discovery_admission_denials_total",
            documentation="Provider calls skipped by admission control",
            labelnames=["provider", "reason"],  # rate_limit, circuit_open
            registry=self.registry,
        )

        self.cache_hits = Counter(
            name="discovery_cache_hits_total",
            documentation="Cache hits by tier",
            labelnames=["tier"],  # memory, durable
            registry=self.registry,
        )

        self.cache_misses = Counter(
            name="discovery_cache_misses_total",
            documentation="Cache misses",
            registry=self.registry,
        )

        self.cache_evictions = Counter(
            name="discovery_cache_evictions_total",
            documentation="Cache entries removed",
            labelnames=["reason"],  # expired, capacity, invalidated
            registry=self.registry,
        )

        self.cache_errors = Counter(
            name="discovery_cache_errors_total",
            documentation="Durable tier errors",
            labelnames=["operation"],  # read, write
            registry=self.registry,
        )

        # =====================================================================
        # GAUGES - Values that can go up and down
        # =====================================================================

        self.cache_entries = Gauge(
            name="discovery_cache_entries",
            documentation="Entries in the in-process cache tier",
            registry=self.registry,
        )

        self.circuit_state = Gauge(
            name="discovery_circuit_state",
            documentation="Circuit breaker state (0=closed, 1=half_open, 2=open)",
            labelnames=["provider"],
            registry=self.registry,
        )

        self.active_provider_calls = Gauge(
            name="discovery_active_provider_calls",
            documentation="Provider calls currently holding a worker slot",
            registry=self.registry,
        )

        # =====================================================================
        # HISTOGRAMS - Distribution of values
        # =====================================================================

        self.discovery_duration = Histogram(
            name="discovery_duration_seconds",
            documentation="End-to-end discovery duration (cache misses only)",
            buckets=DISCOVERY_BUCKETS,
            registry=self.registry,
        )

        self.provider_latency = Histogram(
            name="discovery_provider_latency_seconds",
            documentation="Provider call duration",
            labelnames=["provider"],
            buckets=PROVIDER_BUCKETS,
            registry=self.registry,
        )

        self.candidates_returned = Histogram(
            name="discovery_candidates_returned",
            documentation="Candidates per discovery result",
            buckets=(0, 1, 5, 10, 25, 50, 100, 200, float("inf")),
            registry=self.registry,
        )

    def discovery_completed(self, status: str, duration: float, candidates: int) -> None:
        self.discovery_requests.labels(status=status).inc()
        self.discovery_duration.observe(duration)
        self.candidates_returned.observe(candidates)

    def discovery_cached(self) -> None:
        self.discovery_requests.labels(status="cached").inc()

    def provider_call(self, provider: str, status: str, duration: float) -> None:
        self.provider_calls.labels(provider=provider, status=status).inc()
        if status != "skipped":
            self.provider_latency.labels(provider=provider).observe(duration)

    def admission_denied(self, provider: str, reason: str) -> None:
        self.admission_denials.labels(provider=provider, reason=reason).inc()

    def set_circuit_state(self, provider: str, state: str) -> None:
        self.circuit_state.labels(provider=provider).set(CIRCUIT_STATE_VALUES.get(state, 0))

    def cache_hit(self, tier: str) -> None:
        self.cache_hits.labels(tier=tier).inc()

    def cache_miss(self) -> None:
        self.cache_misses.inc()

    def cache_eviction(self, reason: str, count: int = 1) -> None:
        if count > 0:
            self.cache_evictions.labels(reason=reason).inc(count)

    def cache_error(self, operation: str) -> None:
        self.cache_errors.labels(operation=operation).inc()

    def set_cache_entries(self, count: int) -> None:
        self.cache_entries.set(count)

    def render(self) -> bytes:
        """Prometheus text exposition for this registry"""
        return generate_latest(self.registry)


def get_metrics_content_type() -> str:
    """Get the content type for Prometheus metrics response."""
    return CONTENT_TYPE_LATEST
