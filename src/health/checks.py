"""Health checks for the discovery engine.

Provides checks for:
- Provider admission state (circuit breakers, token buckets)
- Cache tier health (read/write error counts)
- Durable cache directory accessibility

Usage:
    checker = HealthChecker(engine, cache_dir=Path("./cache/discovery"))

    report = await checker.check_all()
    ready = checker.is_ready()
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from src.models.admission import AdmissionSnapshot
from src.services.discovery_service import DiscoveryEngine
from src.utils.circuit_breaker import CircuitState

logger = structlog.get_logger()


class HealthStatus(str, Enum):
    """Overall health status."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class CheckStatus(str, Enum):
    """Individual check status."""

    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CheckResult:
    """Result of a single health check."""

    name: str
    status: CheckStatus
    message: str
    duration_ms: float = 0.0
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
            "duration_ms": round(self.duration_ms, 2),
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class HealthReport:
    """Complete health report with all check results."""

    status: HealthStatus
    checks: List[CheckResult]
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "checks": [c.to_dict() for c in self.checks],
            "timestamp": self.timestamp.isoformat(),
        }


class HealthChecker:
    """Health checker for a running DiscoveryEngine.

    A single open circuit degrades the service; it is unhealthy (and not
    ready) only when every provider's circuit is open.
    """

    def __init__(
        self,
        engine: DiscoveryEngine,
        cache_dir: Optional[Path] = None,
        error_warning_threshold: int = 1,
    ):
        """Initialize health checker.

        Args:
            engine: Engine whose providers and cache are inspected
            cache_dir: Durable cache directory to check (skipped when None)
            error_warning_threshold: Cache read/write errors that trigger a warning
        """
        self.engine = engine
        self.cache_dir = cache_dir
        self.error_warning_threshold = error_warning_threshold

    def _snapshots(self) -> Dict[str, AdmissionSnapshot]:
        return self.engine.coordinator.admission.snapshots()

    async def check_all(self) -> HealthReport:
        """Run all health checks and return comprehensive report."""
        checks: List[CheckResult] = list(self.check_providers())

        names = ("cache", "cache_directory")
        results = await asyncio.gather(
            self.check_cache(), self.check_cache_directory(), return_exceptions=True
        )
        for name, result in zip(names, results):
            if isinstance(result, Exception):
                logger.error("health_check_crashed", check=name, error=str(result))
                checks.append(
                    CheckResult(name=name, status=CheckStatus.FAIL, message=f"{name} check crashed: {result}")
                )
            else:
                checks.append(result)

        return HealthReport(status=self._determine_overall_status(checks), checks=checks)

    def _determine_overall_status(self, checks: List[CheckResult]) -> HealthStatus:
        if not self.is_ready() or any(c.status == CheckStatus.FAIL for c in checks):
            return HealthStatus.UNHEALTHY
        if any(c.status == CheckStatus.WARN for c in checks):
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY

    def check_providers(self) -> List[CheckResult]:
        """One check per provider from its admission snapshot."""
        results = []
        for name, snapshot in sorted(self._snapshots().items()):
            state = CircuitState(snapshot.circuit_state)
            if state == CircuitState.CLOSED:
                status, message = CheckStatus.PASS, "Circuit closed"
            elif state == CircuitState.HALF_OPEN:
                status, message = CheckStatus.WARN, "Circuit half-open, probing"
            else:
                status = CheckStatus.WARN
                message = f"Circuit open, {snapshot.cooldown_remaining:.0f}s cooldown remaining"
            results.append(
                CheckResult(
                    name=f"provider_{name}",
                    status=status,
                    message=message,
                    details=snapshot.model_dump(),
                )
            )
        return results

    async def check_cache(self) -> CheckResult:
        start = time.time()
        stats = self.engine.cache.stats()
        errors = stats.read_errors + stats.write_errors
        details = stats.as_dict()
        duration_ms = (time.time() - start) * 1000

        if not self.engine.cache.enabled:
            return CheckResult(
                name="cache",
                status=CheckStatus.WARN,
                message="Cache disabled",
                duration_ms=duration_ms,
                details=details,
            )
        if errors >= self.error_warning_threshold:
            return CheckResult(
                name="cache",
                status=CheckStatus.WARN,
                message=f"Durable tier errors: {errors}",
                duration_ms=duration_ms,
                details=details,
            )
        return CheckResult(
            name="cache",
            status=CheckStatus.PASS,
            message=f"Cache OK: {stats.entry_count} entries",
            duration_ms=duration_ms,
            details=details,
        )

    async def check_cache_directory(self) -> CheckResult:
        """Check durable cache directory accessibility."""
        start = time.time()
        name = "cache_directory"

        if self.cache_dir is None:
            return CheckResult(
                name=name,
                status=CheckStatus.PASS,
                message="No durable cache directory configured",
            )

        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            test_file = self.cache_dir / ".health_check"
            test_file.write_text("health_check")
            test_file.unlink()
            return CheckResult(
                name=name,
                status=CheckStatus.PASS,
                message="Cache directory accessible",
                duration_ms=(time.time() - start) * 1000,
                details={"path": str(self.cache_dir.absolute())},
            )
        except OSError as e:
            logger.error("cache_directory_check_failed", error=str(e))
            return CheckResult(
                name=name,
                status=CheckStatus.WARN,
                message=f"Cache directory not writable: {str(e)}",
                duration_ms=(time.time() - start) * 1000,
            )

    def is_ready(self) -> bool:
        """Ready unless every provider circuit is open."""
        snapshots = self._snapshots()
        if not snapshots:
            return bool(self.engine.coordinator.providers)
        return any(
            s.circuit_state != CircuitState.OPEN.value for s in snapshots.values()
        )

    def is_alive(self) -> bool:
        return True
