"""Concurrency configuration models.

Bounds the worker pool that executes provider calls so request volume
cannot translate into unbounded in-flight HTTP requests.
"""

from pydantic import BaseModel, Field


class ConcurrencyConfig(BaseModel):
    """Concurrency configuration for parallel provider calls"""

    # Worker pool settings
    max_concurrent_provider_calls: int = Field(default=8, ge=1, le=64)

    # Per-connection HTTP settings
    http_connection_limit: int = Field(default=20, ge=1, le=200)
    request_timeout_seconds: float = Field(default=30.0, gt=0.0, le=600.0)
