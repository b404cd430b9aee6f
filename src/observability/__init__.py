"""Observability for the discovery engine.

Provides:
- Correlation id and caller context for request tracing
- structlog configuration with context propagation
- Prometheus metrics bound to an injected registry

Usage:
    from src.observability import configure_logging, discovery_context, DiscoveryMetrics

    configure_logging(level="INFO")
    metrics = DiscoveryMetrics()
"""

from src.observability.context import (
    set_correlation_id,
    get_correlation_id,
    clear_correlation_id,
    discovery_context,
)
from src.observability.logging import (
    configure_logging,
    add_correlation_id_processor,
)
from src.observability.metrics import (
    DiscoveryMetrics,
    get_metrics_content_type,
)

__all__ = [
    # Context
    "set_correlation_id",
    "get_correlation_id",
    "clear_correlation_id",
    "discovery_context",
    # Logging
    "configure_logging",
    "add_correlation_id_processor",
    # Metrics
    "DiscoveryMetrics",
    "get_metrics_content_type",
]
