"""Tests for the sliding-window circuit breaker."""

import pytest

from src.models.admission import CircuitBreakerConfig
from src.utils.circuit_breaker import CircuitBreaker, CircuitState


@pytest.fixture
def breaker(clock):
    config = CircuitBreakerConfig(
        failure_threshold=3,
        window_seconds=60,
        cooldown_seconds=30,
        backoff_multiplier=2,
        max_cooldown_seconds=100,
    )
    return CircuitBreaker("test-provider", config, clock=clock)


def _trip(breaker):
    for _ in range(3):
        breaker.record_failure()


class TestStateTransitions:
    def test_initial_state_is_closed(self, breaker):
        assert breaker.state == CircuitState.CLOSED
        assert breaker.allow_request()

    def test_opens_after_threshold(self, breaker):
        _trip(breaker)
        assert breaker.state == CircuitState.OPEN
        assert not breaker.allow_request()

    def test_failures_outside_window_do_not_count(self, breaker, clock):
        breaker.record_failure()
        breaker.record_failure()
        clock.advance(61)
        breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.recent_failures == 1

    def test_success_clears_failures(self, breaker):
        breaker.record_failure()
        breaker.record_failure()
        breaker.record_success()
        breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED

    def test_half_open_after_cooldown(self, breaker, clock):
        _trip(breaker)
        clock.advance(29)
        assert breaker.state == CircuitState.OPEN
        clock.advance(1)
        assert breaker.state == CircuitState.HALF_OPEN


class TestHalfOpenProbe:
    def test_single_probe_allowed(self, breaker, clock):
        _trip(breaker)
        clock.advance(30)
        assert breaker.allow_request()
        assert not breaker.allow_request()

    def test_probe_success_closes(self, breaker, clock):
        _trip(breaker)
        clock.advance(30)
        breaker.allow_request()
        breaker.record_success()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.current_cooldown == 30

    def test_probe_failure_reopens_with_longer_cooldown(self, breaker, clock):
        _trip(breaker)
        clock.advance(30)
        breaker.allow_request()
        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN
        assert breaker.current_cooldown == 60
        clock.advance(30)
        assert breaker.state == CircuitState.OPEN
        clock.advance(30)
        assert breaker.state == CircuitState.HALF_OPEN

    def test_cooldown_capped(self, breaker, clock):
        _trip(breaker)
        for _ in range(4):
            clock.advance(breaker.current_cooldown)
            assert breaker.allow_request()
            breaker.record_failure()
        assert breaker.current_cooldown == 100

    def test_released_probe_can_be_granted_again(self, breaker, clock):
        _trip(breaker)
        clock.advance(30)
        assert breaker.allow_request()
        breaker.release_probe()
        assert breaker.allow_request()


class TestDisabledAndStats:
    def test_disabled_breaker_always_allows(self, clock):
        breaker = CircuitBreaker(
            "off", CircuitBreakerConfig(enabled=False, failure_threshold=1), clock=clock
        )
        breaker.record_failure()
        assert breaker.allow_request()

    def test_stats_and_cooldown_remaining(self, breaker, clock):
        _trip(breaker)
        clock.advance(10)
        stats = breaker.get_stats()
        assert stats["state"] == "open"
        assert stats["total_failures"] == 3
        assert stats["cooldown_remaining"] == pytest.approx(20)

    def test_reset(self, breaker):
        _trip(breaker)
        breaker.reset()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.cooldown_remaining() == 0.0
