"""
Scheduler manager for automated jobs.

Handles:
- ServiceM8 auto-sync (every AUTO_SYNC_INTERVAL_MINUTES)
- One initial sync shortly after startup
"""

import logging
from typing import Optional
from datetime import datetime, timedelta
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
import pytz

from config import settings
from ..database.models import SyncTypeEnum
from ..integrations.servicem8 import ServiceM8NotConfigured
from ..services.sync import get_sync_service

logger = logging.getLogger(__name__)

SYNC_JOB_ID = "servicem8_sync"
INITIAL_SYNC_JOB_ID = "servicem8_initial_sync"


class SchedulerManager:
    """Manages the background ServiceM8 sync jobs."""

    def __init__(self, sync_service=None):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.timezone = pytz.timezone(settings.timezone)
        self._sync_service = sync_service

    @property
    def sync_service(self):
        if self._sync_service is None:
            self._sync_service = get_sync_service()
        return self._sync_service

    @property
    def running(self) -> bool:
        return bool(self.scheduler and self.scheduler.running)

    def start(self) -> None:
        """Start the scheduler with the sync jobs."""
        self.scheduler = AsyncIOScheduler(timezone=self.timezone)

        self.scheduler.add_job(
            self._auto_sync_job,
            IntervalTrigger(minutes=settings.auto_sync_interval_minutes),
            id=SYNC_JOB_ID,
            name="ServiceM8 Auto Sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        # Give the app time to finish starting before the first pull
        self.scheduler.add_job(
            self._auto_sync_job,
            DateTrigger(
                run_date=datetime.now(self.timezone) + timedelta(seconds=settings.auto_sync_initial_delay_seconds)
            ),
            id=INITIAL_SYNC_JOB_ID,
            name="ServiceM8 Initial Sync",
            replace_existing=True,
        )

        self.scheduler.start()
        logger.info(
            f"Scheduler started: ServiceM8 sync every {settings.auto_sync_interval_minutes} minutes"
        )

    def stop(self) -> None:
        """Stop the scheduler."""
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")

    async def _auto_sync_job(self) -> None:
        """Automatic sync. Failures are logged; the next interval tries again."""
        logger.info("Running automatic ServiceM8 sync")
        try:
            result = await self.sync_service.run_sync(SyncTypeEnum.AUTOMATIC.value)
            if result.get("skipped"):
                logger.info("Automatic sync skipped: a sync is already running")
        except ServiceM8NotConfigured:
            logger.info("ServiceM8 not configured, skipping automatic sync")
        except Exception as e:
            logger.error(f"Automatic sync failed: {e}")

    def trigger_job(self, job_id: str) -> bool:
        """Manually trigger a job."""
        if not self.scheduler:
            return False

        job = self.scheduler.get_job(job_id)
        if job:
            job.modify(next_run_time=datetime.now(self.timezone))
            return True

        return False

    def get_job_status(self) -> dict:
        """Get status of all scheduled jobs."""
        if not self.scheduler:
            return {}

        jobs = {}
        for job in self.scheduler.get_jobs():
            jobs[job.id] = {
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
                "trigger": str(job.trigger),
            }

        return jobs


_scheduler_manager: Optional[SchedulerManager] = None


def get_scheduler_manager() -> SchedulerManager:
    """Get the scheduler manager instance."""
    global _scheduler_manager
    if _scheduler_manager is None:
        _scheduler_manager = SchedulerManager()
    return _scheduler_manager
