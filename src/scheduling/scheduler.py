"""APScheduler wrapper for discovery cache maintenance.

Provides:
- Interval job sweeping expired cache entries
- Interval job evicting the memory tier back under capacity
- Job event logging and on-demand execution

Usage:
    scheduler = MaintenanceScheduler(cache, settings.maintenance)
    scheduler.start()          # inside a running event loop
    scheduler.run_now("ttl_sweep")
    scheduler.stop()
"""

from typing import Any, Callable, Dict, List

import structlog
from apscheduler.events import (
    EVENT_JOB_ERROR,
    EVENT_JOB_EXECUTED,
    EVENT_JOB_MISSED,
    JobExecutionEvent,
)
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from src.models.config import MaintenanceSettings
from src.services.cache_service import DiscoveryCache

logger = structlog.get_logger()

TTL_SWEEP_JOB = "ttl_sweep"
CAPACITY_CHECK_JOB = "capacity_check"


class MaintenanceScheduler:
    """Runs cache maintenance off the request path.

    Wraps APScheduler's AsyncIOScheduler with:
    - One interval job per maintenance task
    - Coalesced, single-instance execution
    - Error and missed-run logging
    """

    def __init__(
        self,
        cache: DiscoveryCache,
        settings: MaintenanceSettings,
        timezone: str = "UTC",
    ):
        """Initialize maintenance scheduler.

        Args:
            cache: Cache whose sweep/eviction the jobs run
            settings: Job intervals
            timezone: Scheduler timezone
        """
        self.cache = cache
        self.settings = settings
        self.scheduler = AsyncIOScheduler(
            timezone=timezone,
            job_defaults={
                "max_instances": 1,
                "coalesce": True,
                "misfire_grace_time": 60,
            },
        )
        self._jobs: Dict[str, Callable[[], int]] = {
            TTL_SWEEP_JOB: cache.sweep_expired,
            CAPACITY_CHECK_JOB: cache.evict_to_capacity,
        }
        self._running = False

        self.scheduler.add_listener(self._on_job_executed, EVENT_JOB_EXECUTED)
        self.scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)
        self.scheduler.add_listener(self._on_job_missed, EVENT_JOB_MISSED)

    def _register_jobs(self) -> None:
        intervals = {
            TTL_SWEEP_JOB: self.settings.ttl_sweep_minutes,
            CAPACITY_CHECK_JOB: self.settings.capacity_check_minutes,
        }
        for job_id, func in self._jobs.items():
            self.scheduler.add_job(
                func,
                trigger=IntervalTrigger(minutes=intervals[job_id]),
                id=job_id,
                name=job_id,
                replace_existing=True,
            )
            logger.info("maintenance_job_added", job_id=job_id, every_minutes=intervals[job_id])

    def start(self) -> bool:
        """Start the scheduler on the running event loop.

        Returns:
            True if started, False if disabled or already running
        """
        if not self.settings.enabled:
            logger.info("maintenance_disabled")
            return False
        if self._running:
            logger.warning("maintenance_already_running")
            return False

        self._register_jobs()
        self.scheduler.start()
        self._running = True
        logger.info("maintenance_started", jobs=len(self._jobs))
        return True

    def stop(self, wait: bool = False) -> None:
        if not self._running:
            return
        self.scheduler.shutdown(wait=wait)
        self._running = False
        logger.info("maintenance_stopped")

    def run_now(self, job: str) -> int:
        """Run a maintenance job immediately.

        Args:
            job: Job id (ttl_sweep or capacity_check)

        Returns:
            Number of cache entries removed

        Raises:
            KeyError: Unknown job id
        """
        if job not in self._jobs:
            raise KeyError(f"Unknown maintenance job: {job}")
        removed = self._jobs[job]()
        logger.info("maintenance_job_ran", job_id=job, removed=removed)
        return removed

    def get_jobs(self) -> List[Dict[str, Any]]:
        jobs = []
        for job in self.scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append(
                {
                    "id": job.id,
                    "name": job.name,
                    "next_run_time": str(next_run) if next_run else None,
                }
            )
        return jobs

    def _on_job_executed(self, event: JobExecutionEvent) -> None:
        logger.info("maintenance_job_executed", job_id=event.job_id, removed=event.retval)

    def _on_job_error(self, event: JobExecutionEvent) -> None:
        logger.error(
            "maintenance_job_failed",
            job_id=event.job_id,
            exception=str(event.exception),
            traceback=event.traceback,
        )

    def _on_job_missed(self, event: JobExecutionEvent) -> None:
        logger.warning(
            "maintenance_job_missed",
            job_id=event.job_id,
            scheduled_run_time=str(event.scheduled_run_time),
        )

    @property
    def is_running(self) -> bool:
        return self._running
