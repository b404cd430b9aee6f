"""Health checks and the FastAPI health/metrics server.

Usage:
    from src.health import HealthChecker, create_health_app

    checker = HealthChecker(engine)
    report = await checker.check_all()

    app = create_health_app(engine)
"""

from src.health.checks import (
    HealthChecker,
    HealthStatus,
    CheckStatus,
    CheckResult,
    HealthReport,
)
from src.health.server import create_health_app, run_health_server

__all__ = [
    "HealthChecker",
    "HealthStatus",
    "CheckStatus",
    "CheckResult",
    "HealthReport",
    "create_health_app",
    "run_health_server",
]
