"""Admission control and retry configuration models.

Per-provider token bucket, circuit breaker and retry settings, plus the
read-only snapshot exposed through engine stats and the health server.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TokenBucketConfig(BaseModel):
    """Token bucket sizing for one provider"""

    capacity: float = Field(default=10.0, ge=1.0, description="Maximum burst size")
    refill_per_second: float = Field(
        default=1.0, gt=0.0, description="Tokens added per second"
    )

    model_config = ConfigDict(
        json_schema_extra={"example": {"capacity": 10.0, "refill_per_second": 1.0}}
    )


class CircuitBreakerConfig(BaseModel):
    """Configuration for circuit breaker pattern

    - CLOSED: Normal operation, failures counted within a sliding window
    - OPEN: After failure threshold, calls short-circuited until cooldown
    - HALF_OPEN: After cooldown, exactly one probe call allowed
    """

    enabled: bool = Field(
        default=True, description="Whether circuit breaker is enabled"
    )
    failure_threshold: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Failures within the window that open the circuit",
    )
    window_seconds: float = Field(
        default=60.0,
        gt=0.0,
        le=3600.0,
        description="Sliding window for counting failures",
    )
    cooldown_seconds: float = Field(
        default=60.0,
        gt=0.0,
        le=3600.0,
        description="Seconds before transitioning from OPEN to HALF_OPEN",
    )
    backoff_multiplier: float = Field(
        default=2.0,
        ge=1.0,
        le=10.0,
        description="Cooldown growth after a failed half-open probe",
    )
    max_cooldown_seconds: float = Field(
        default=900.0,
        gt=0.0,
        le=86400.0,
        description="Upper bound for the grown cooldown",
    )


class RetryConfig(BaseModel):
    """Retry policy for transient transport failures"""

    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum attempts (1 initial + N-1 retries)",
    )
    base_delay_seconds: float = Field(default=1.0, gt=0.0, le=60.0)
    max_delay_seconds: float = Field(default=10.0, gt=0.0, le=300.0)


class AdmissionConfig(BaseModel):
    """Combined admission settings for one provider"""

    rate_limit: TokenBucketConfig = Field(default_factory=TokenBucketConfig)
    circuit_breaker: CircuitBreakerConfig = Field(
        default_factory=CircuitBreakerConfig
    )


class AdmissionSnapshot(BaseModel):
    """Point-in-time admission state for one provider"""

    provider: str
    available_tokens: float
    capacity: float
    circuit_state: str
    recent_failures: int
    cooldown_remaining: float = 0.0
    total_requests: int = 0
    total_denied: int = 0
    total_successes: int = 0
    total_failures: int = 0
    last_denial_reason: Optional[str] = None
