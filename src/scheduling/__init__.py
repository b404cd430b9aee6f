"""Background cache maintenance.

Usage:
    from src.scheduling import MaintenanceScheduler

    scheduler = MaintenanceScheduler(cache, settings.maintenance)
    scheduler.start()
"""

from src.scheduling.scheduler import (
    MaintenanceScheduler,
    TTL_SWEEP_JOB,
    CAPACITY_CHECK_JOB,
)

__all__ = [
    "MaintenanceScheduler",
    "TTL_SWEEP_JOB",
    "CAPACITY_CHECK_JOB",
]
