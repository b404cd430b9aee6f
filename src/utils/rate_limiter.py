import asyncio
import threading
import time
from typing import Callable, Optional

import structlog

from src.models.admission import TokenBucketConfig
from src.utils.exceptions import ProviderRateLimited

logger = structlog.get_logger()


class TokenBucket:
    """Token bucket rate limiter for API governance

    Safe to share between concurrent discovery requests: the lock guards
    only the refill arithmetic and is never held across an await.
    """

    def __init__(
        self,
        name: str,
        config: TokenBucketConfig,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.capacity = config.capacity
        self.rate = config.refill_per_second
        self._clock = clock
        self._tokens = float(config.capacity)
        self._last_update = clock()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_update)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._last_update = now

    @property
    def available_tokens(self) -> float:
        with self._lock:
            self._refill()
            return self._tokens

    def try_acquire(self) -> bool:
        """Take a token if one is available, without waiting"""
        with self._lock:
            self._refill()
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False

    def time_until_token(self) -> float:
        with self._lock:
            self._refill()
            if self._tokens >= 1.0:
                return 0.0
            return (1.0 - self._tokens) / self.rate

    async def acquire(self, timeout: Optional[float] = None) -> None:
        """Acquire a token, waiting if necessary

        Raises:
            ProviderRateLimited: If no token is available within timeout
        """
        deadline = None if timeout is None else self._clock() + timeout
        while not self.try_acquire():
            wait_time = self.time_until_token()
            if deadline is not None:
                remaining = deadline - self._clock()
                if remaining <= 0 or wait_time > remaining:
                    logger.warning(
                        "rate_limit_wait_exceeded",
                        provider=self.name,
                        wait_seconds=round(wait_time, 3),
                    )
                    raise ProviderRateLimited(
                        f"No token for '{self.name}' within {timeout}s",
                        provider=self.name,
                    )
            await asyncio.sleep(max(wait_time, 0.001))

    def reset(self) -> None:
        with self._lock:
            self._tokens = float(self.capacity)
            self._last_update = self._clock()
