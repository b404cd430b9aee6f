"""Retry policy for provider HTTP calls

Wraps tenacity so every provider retries the same way: exponential backoff
for retryable ProviderErrors (remote 429, 5xx, connection errors, timeouts),
immediate re-raise for everything else.
"""

from typing import Awaitable, Callable, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from src.models.admission import RetryConfig
from src.utils.exceptions import ProviderError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, ProviderError) and exc.retryable


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "provider_request_retry",
        attempt=retry_state.attempt_number,
        provider=getattr(exc, "provider", None),
        error=str(exc),
        error_type=type(exc).__name__ if exc else None,
    )


def build_retrying(config: RetryConfig) -> AsyncRetrying:
    """Create a tenacity controller for one request"""
    return AsyncRetrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential(
            multiplier=config.base_delay_seconds,
            min=config.base_delay_seconds,
            max=config.max_delay_seconds,
        ),
        retry=retry_if_exception(_is_retryable),
        before_sleep=_log_retry,
        reraise=True,
    )


async def with_retry(config: RetryConfig, func: Callable[[], Awaitable[T]]) -> T:
    """Execute func, retrying transient provider failures"""
    async for attempt in build_retrying(config):
        with attempt:
            return await func()
    raise AssertionError("unreachable")  # pragma: no cover
