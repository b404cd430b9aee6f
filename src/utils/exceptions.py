"""Custom exceptions for the related-paper discovery engine

This module defines the exception hierarchy for discovery:
- Provider errors, captured per provider and attached to the result
- Cache errors, always non-fatal (read error == miss, write error logged)
- Configuration errors, raised at startup

All exceptions inherit from DiscoveryError to allow catching every
engine-related error in a single except block when needed.
"""

from typing import Optional


class DiscoveryError(Exception):
    """Base exception for all discovery engine errors"""

    pass


class ProviderError(DiscoveryError):
    """A discovery provider could not produce candidates

    Carries the provider name and whether the failure is transient.
    Never propagated past the coordinator: it is recorded on the
    provider's report inside the DiscoveryResult.
    """

    retryable: bool = False

    def __init__(
        self,
        message: str,
        provider: str = "unknown",
        retryable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        if retryable is not None:
            self.retryable = retryable


class ProviderTimeout(ProviderError):
    """Provider did not answer within its deadline"""

    retryable = True


class ProviderRateLimited(ProviderError):
    """Admission denied by the local token bucket or an open circuit

    Raised when:
    - No token became available before the deadline
    - The provider's circuit breaker is OPEN

    The provider is treated as unavailable, not failed.
    """

    def __init__(self, message: str, provider: str = "unknown", reason: str = "rate_limit"):
        super().__init__(message, provider=provider, retryable=False)
        self.reason = reason


class ProviderTransportError(ProviderError):
    """Network or HTTP failure talking to a provider

    Raised when:
    - Connection errors
    - HTTP 429 from the remote service (retryable)
    - HTTP 5xx (retryable)
    - Other non-200 responses (non-retryable)
    """

    def __init__(
        self,
        message: str,
        provider: str = "unknown",
        status: Optional[int] = None,
        retryable: Optional[bool] = None,
    ) -> None:
        if retryable is None:
            retryable = status is None or status == 429 or status >= 500
        super().__init__(message, provider=provider, retryable=retryable)
        self.status = status


class ProviderParseError(ProviderError):
    """Provider response was malformed or had an unexpected shape"""

    pass


class CacheError(DiscoveryError):
    """Base class for cache tier failures"""

    pass


class CacheReadError(CacheError):
    """Durable tier read failed; treated as a miss"""

    pass


class CacheWriteError(CacheError):
    """Durable tier write failed; logged and discarded"""

    pass


class ConfigurationError(DiscoveryError):
    """Engine configuration problem"""

    pass


class ConfigValidationError(ConfigurationError):
    """Configuration file could not be read or validated"""

    pass
