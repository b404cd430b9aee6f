"""Circuit Breaker Utility

Implements the circuit breaker pattern to stop calling a provider that is
failing repeatedly.

States:
- CLOSED: Normal operation, requests allowed
- OPEN: After failure threshold, requests blocked
- HALF_OPEN: After cooldown, exactly one probe request allowed

State Transitions:
- CLOSED → OPEN: failure_threshold consecutive failures inside window_seconds
- OPEN → HALF_OPEN: After the current cooldown
- HALF_OPEN → CLOSED: Probe succeeded (counters and cooldown reset)
- HALF_OPEN → OPEN: Probe failed (cooldown grows by backoff_multiplier)
"""

import threading
import time
from collections import deque
from enum import Enum
from typing import Callable, Deque, Dict, Optional

import structlog

from src.models.admission import CircuitBreakerConfig

logger = structlog.get_logger()


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Thread-safe circuit breaker implementation.

    Tracks failures to determine when to open/close the circuit.
    Automatically transitions from OPEN to HALF_OPEN after cooldown period.
    """

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize circuit breaker.

        Args:
            name: Identifier for this circuit breaker (provider name)
            config: Circuit breaker configuration
            clock: Monotonic time source, injectable for tests
        """
        self.name = name
        self.config = config
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failures: Deque[float] = deque()
        self._opened_at: Optional[float] = None
        self._current_cooldown = config.cooldown_seconds
        self._probe_in_flight = False
        self._total_successes = 0
        self._total_failures = 0
        self._lock = threading.RLock()

    @property
    def state(self) -> CircuitState:
        """Get current state, auto-transitioning OPEN to HALF_OPEN after cooldown."""
        with self._lock:
            if self._state == CircuitState.OPEN and self._cooldown_elapsed():
                self._state = CircuitState.HALF_OPEN
                self._probe_in_flight = False
                logger.info("circuit_half_open", provider=self.name)
            return self._state

    @property
    def recent_failures(self) -> int:
        with self._lock:
            self._prune(self._clock())
            return len(self._failures)

    @property
    def current_cooldown(self) -> float:
        with self._lock:
            return self._current_cooldown

    def _cooldown_elapsed(self) -> bool:
        if self._opened_at is None:
            return True
        return self._clock() - self._opened_at >= self._current_cooldown

    def _prune(self, now: float) -> None:
        horizon = now - self.config.window_seconds
        while self._failures and self._failures[0] < horizon:
            self._failures.popleft()

    def _open(self, now: float) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = now
        self._probe_in_flight = False
        logger.warning(
            "circuit_opened",
            provider=self.name,
            cooldown_seconds=self._current_cooldown,
        )

    def allow_request(self) -> bool:
        """Check if a request should be allowed.

        In HALF_OPEN only the first caller gets through; everyone else is
        blocked until that probe is recorded.

        Returns:
            True if request should proceed, False if blocked
        """
        if not self.config.enabled:
            return True
        with self._lock:
            current_state = self.state
            if current_state == CircuitState.CLOSED:
                return True
            if current_state == CircuitState.HALF_OPEN and not self._probe_in_flight:
                self._probe_in_flight = True
                return True
            return False

    def release_probe(self) -> None:
        """Give back a granted half-open probe that was never executed."""
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._probe_in_flight = False

    def record_success(self) -> None:
        """Record a successful request."""
        with self._lock:
            self._total_successes += 1
            self._failures.clear()
            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.CLOSED
                self._current_cooldown = self.config.cooldown_seconds
                self._probe_in_flight = False
                logger.info("circuit_closed", provider=self.name)

    def record_failure(self) -> None:
        """Record a failed request."""
        with self._lock:
            now = self._clock()
            self._total_failures += 1

            if self._state == CircuitState.HALF_OPEN:
                self._current_cooldown = min(
                    self._current_cooldown * self.config.backoff_multiplier,
                    self.config.max_cooldown_seconds,
                )
                self._open(now)
                return

            if self._state == CircuitState.OPEN:
                return

            self._failures.append(now)
            self._prune(now)
            if len(self._failures) >= self.config.failure_threshold:
                self._open(now)

    def reset(self) -> None:
        """Manually reset circuit breaker to CLOSED state."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failures.clear()
            self._opened_at = None
            self._current_cooldown = self.config.cooldown_seconds
            self._probe_in_flight = False

    def cooldown_remaining(self) -> float:
        with self._lock:
            if self._state != CircuitState.OPEN or self._opened_at is None:
                return 0.0
            elapsed = self._clock() - self._opened_at
            return max(0.0, self._current_cooldown - elapsed)

    def get_stats(self) -> Dict:
        """Get circuit breaker statistics.

        Returns:
            Dictionary with state and counter information
        """
        with self._lock:
            return {
                "name": self.name,
                "state": self.state.value,
                "recent_failures": self.recent_failures,
                "total_successes": self._total_successes,
                "total_failures": self._total_failures,
                "cooldown_seconds": self._current_cooldown,
                "cooldown_remaining": self.cooldown_remaining(),
            }
