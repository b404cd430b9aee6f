"""Tests for per-provider admission control."""

import pytest

from src.models.admission import AdmissionConfig, CircuitBreakerConfig, TokenBucketConfig
from src.models.paper import ProviderType
from src.services.admission_controller import (
    DENIED_CIRCUIT_OPEN,
    DENIED_RATE_LIMIT,
    AdmissionController,
    AdmissionRegistry,
)
from src.utils.circuit_breaker import CircuitState
from src.utils.exceptions import ProviderRateLimited


@pytest.fixture
def config():
    return AdmissionConfig(
        rate_limit=TokenBucketConfig(capacity=2, refill_per_second=1),
        circuit_breaker=CircuitBreakerConfig(failure_threshold=2, cooldown_seconds=10),
    )


@pytest.fixture
def controller(config, clock):
    return AdmissionController("citation_network", config, clock=clock)


class TestCheck:
    def test_grants_until_bucket_empty(self, controller):
        assert controller.check() is None
        assert controller.check() is None
        assert controller.check() == DENIED_RATE_LIMIT

    def test_open_circuit_denies_without_consuming_token(self, controller):
        controller.record_failure()
        controller.record_failure()
        assert controller.circuit_state == CircuitState.OPEN
        assert controller.check() == DENIED_CIRCUIT_OPEN
        assert controller.bucket.available_tokens == 2

    def test_half_open_admits_single_probe(self, controller, clock):
        controller.record_failure()
        controller.record_failure()
        clock.advance(10)
        assert controller.try_acquire()
        assert controller.check() == DENIED_CIRCUIT_OPEN

    def test_rate_limited_probe_is_released(self, controller, clock):
        controller.bucket.try_acquire()
        controller.bucket.try_acquire()
        controller.record_failure()
        controller.record_failure()
        clock.advance(10)
        # Bucket refilled during the cooldown; drain it to force a rate denial
        controller.bucket.try_acquire()
        controller.bucket.try_acquire()
        assert controller.check() == DENIED_RATE_LIMIT
        clock.advance(1)
        assert controller.check() is None

    def test_snapshot_counts(self, controller):
        controller.check()
        controller.check()
        controller.check()
        controller.record_success()
        snapshot = controller.snapshot()
        assert snapshot.provider == "citation_network"
        assert snapshot.total_requests == 3
        assert snapshot.total_denied == 1
        assert snapshot.last_denial_reason == DENIED_RATE_LIMIT
        assert snapshot.total_successes == 1
        assert snapshot.circuit_state == "closed"
        assert snapshot.capacity == 2

    def test_reset(self, controller):
        controller.check()
        controller.record_failure()
        controller.record_failure()
        controller.reset()
        assert controller.circuit_state == CircuitState.CLOSED
        assert controller.bucket.available_tokens == 2


class TestAcquire:
    @pytest.mark.asyncio
    async def test_acquire_raises_when_circuit_open(self, controller):
        controller.record_failure()
        controller.record_failure()
        with pytest.raises(ProviderRateLimited) as exc_info:
            await controller.acquire(timeout=1)
        assert exc_info.value.reason == DENIED_CIRCUIT_OPEN

    @pytest.mark.asyncio
    async def test_acquire_raises_on_timeout(self, controller):
        controller.check()
        controller.check()
        with pytest.raises(ProviderRateLimited) as exc_info:
            await controller.acquire(timeout=0.1)
        assert exc_info.value.reason == DENIED_RATE_LIMIT
        assert controller.snapshot().total_denied == 1


class TestRegistry:
    def test_from_config_builds_one_controller_per_provider(self, config, clock):
        registry = AdmissionRegistry.from_config(
            {p: config for p in ProviderType}, clock=clock
        )
        assert set(registry.snapshots()) == {p.value for p in ProviderType}

    def test_get_creates_default_controller(self):
        registry = AdmissionRegistry()
        controller = registry.get(ProviderType.TREND_DISCOVERY)
        assert registry.get(ProviderType.TREND_DISCOVERY) is controller
        assert "trend_discovery" in registry.snapshots()

    def test_reset_all(self, config, clock):
        registry = AdmissionRegistry.from_config(
            {ProviderType.CITATION_NETWORK: config}, clock=clock
        )
        controller = registry.get(ProviderType.CITATION_NETWORK)
        controller.record_failure()
        controller.record_failure()
        registry.reset()
        assert controller.circuit_state == CircuitState.CLOSED

    def test_registries_are_independent(self, config, clock):
        a = AdmissionRegistry.from_config({ProviderType.CITATION_NETWORK: config}, clock=clock)
        b = AdmissionRegistry.from_config({ProviderType.CITATION_NETWORK: config}, clock=clock)
        a.get(ProviderType.CITATION_NETWORK).record_failure()
        a.get(ProviderType.CITATION_NETWORK).record_failure()
        assert b.get(ProviderType.CITATION_NETWORK).circuit_state == CircuitState.CLOSED
