"""Per-provider admission control.

An AdmissionController pairs a token bucket with a circuit breaker. The
coordinator asks it before every provider call; a denial means the
provider is unavailable right now and is skipped, not counted as failed.
"""

import threading
from typing import Callable, Dict, Iterable, Optional

import structlog

from src.models.admission import AdmissionConfig, AdmissionSnapshot
from src.models.paper import ProviderType
from src.utils.circuit_breaker import CircuitBreaker, CircuitState
from src.utils.exceptions import ProviderRateLimited
from src.utils.rate_limiter import TokenBucket

logger = structlog.get_logger()

DENIED_CIRCUIT_OPEN = "circuit_open"
DENIED_RATE_LIMIT = "rate_limit"


class AdmissionController:
    """Rate limiter + circuit breaker gate for one provider"""

    def __init__(
        self,
        name: str,
        config: AdmissionConfig,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.name = name
        self.config = config
        if clock is None:
            self.bucket = TokenBucket(name, config.rate_limit)
            self.breaker = CircuitBreaker(name, config.circuit_breaker)
        else:
            self.bucket = TokenBucket(name, config.rate_limit, clock=clock)
            self.breaker = CircuitBreaker(name, config.circuit_breaker, clock=clock)

        self._counter_lock = threading.Lock()
        self._total_requests = 0
        self._total_denied = 0
        self._last_denial_reason: Optional[str] = None

    def _count(self, denied_reason: Optional[str]) -> None:
        with self._counter_lock:
            self._total_requests += 1
            if denied_reason:
                self._total_denied += 1
                self._last_denial_reason = denied_reason

    def check(self) -> Optional[str]:
        """Non-blocking admission; returns None when granted, else the reason.

        The breaker is consulted first so a short-circuited call never
        consumes a token.
        """
        if not self.breaker.allow_request():
            self._count(DENIED_CIRCUIT_OPEN)
            logger.debug("admission_denied", provider=self.name, reason=DENIED_CIRCUIT_OPEN)
            return DENIED_CIRCUIT_OPEN
        if not self.bucket.try_acquire():
            self.release_probe()
            self._count(DENIED_RATE_LIMIT)
            logger.debug("admission_denied", provider=self.name, reason=DENIED_RATE_LIMIT)
            return DENIED_RATE_LIMIT
        self._count(None)
        return None

    def try_acquire(self) -> bool:
        return self.check() is None

    async def acquire(self, timeout: Optional[float] = None) -> None:
        """Wait for a token, bounded by timeout.

        Raises:
            ProviderRateLimited: circuit open, or no token before timeout
        """
        if not self.breaker.allow_request():
            self._count(DENIED_CIRCUIT_OPEN)
            raise ProviderRateLimited(
                f"Circuit breaker '{self.name}' is OPEN",
                provider=self.name,
                reason=DENIED_CIRCUIT_OPEN,
            )
        try:
            await self.bucket.acquire(timeout=timeout)
        except ProviderRateLimited:
            self.release_probe()
            self._count(DENIED_RATE_LIMIT)
            raise
        self._count(None)

    def release_probe(self) -> None:
        """Hand back a granted half-open probe whose call never ran."""
        self.breaker.release_probe()

    def record_success(self) -> None:
        self.breaker.record_success()

    def record_failure(self) -> None:
        self.breaker.record_failure()

    @property
    def circuit_state(self) -> CircuitState:
        return self.breaker.state

    def snapshot(self) -> AdmissionSnapshot:
        breaker_stats = self.breaker.get_stats()
        with self._counter_lock:
            return AdmissionSnapshot(
                provider=self.name,
                available_tokens=round(self.bucket.available_tokens, 3),
                capacity=self.bucket.capacity,
                circuit_state=breaker_stats["state"],
                recent_failures=breaker_stats["recent_failures"],
                cooldown_remaining=round(breaker_stats["cooldown_remaining"], 3),
                total_requests=self._total_requests,
                total_denied=self._total_denied,
                total_successes=breaker_stats["total_successes"],
                total_failures=breaker_stats["total_failures"],
                last_denial_reason=self._last_denial_reason,
            )

    def reset(self) -> None:
        self.bucket.reset()
        self.breaker.reset()


class AdmissionRegistry:
    """Explicitly constructed set of controllers, one per provider"""

    def __init__(self, controllers: Iterable[AdmissionController] = ()):
        self._controllers: Dict[str, AdmissionController] = {}
        self._lock = threading.Lock()
        for controller in controllers:
            self._controllers[controller.name] = controller

    @classmethod
    def from_config(
        cls,
        admission: Dict[ProviderType, AdmissionConfig],
        clock: Optional[Callable[[], float]] = None,
    ) -> "AdmissionRegistry":
        return cls(
            AdmissionController(provider.value, config, clock=clock)
            for provider, config in admission.items()
        )

    def get(self, provider: ProviderType) -> AdmissionController:
        """Controller for provider, created with defaults on first use"""
        with self._lock:
            controller = self._controllers.get(provider.value)
            if controller is None:
                controller = AdmissionController(provider.value, AdmissionConfig())
                self._controllers[provider.value] = controller
            return controller

    def snapshots(self) -> Dict[str, AdmissionSnapshot]:
        with self._lock:
            controllers = list(self._controllers.values())
        return {c.name: c.snapshot() for c in controllers}

    def reset(self) -> None:
        with self._lock:
            for controller in self._controllers.values():
                controller.reset()
