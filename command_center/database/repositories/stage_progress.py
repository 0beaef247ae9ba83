"""
Repository for per-job stage progress.

Each (job, stage) pair has at most one progress row holding its completion
status, notes and a simple elapsed-time timer. Rows are created in bulk when
a work type is assigned, or lazily the first time a stage is touched.
"""

import logging
from datetime import datetime
from typing import Optional, List, Dict, Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert

from ..connection import get_database
from ..models import JobStageProgressDB, WorkTypeStageDB, StageProgressStatusEnum
from ..exceptions import DatabaseOperationError, ValidationError
from ...utils.datetime_utils import get_local_now

logger = logging.getLogger(__name__)

VALID_STATUSES = {s.value for s in StageProgressStatusEnum}


def format_duration(seconds: int) -> str:
    """Format seconds as '2h 30m', '45m' or '20s'."""
    if seconds is None or seconds <= 0:
        return "0m"

    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)

    if hours == 0 and minutes == 0:
        return f"{secs}s"
    if hours == 0:
        return f"{minutes}m"
    if minutes == 0:
        return f"{hours}h"
    return f"{hours}h {minutes}m"


def surface_flags(stage: WorkTypeStageDB, status: Optional[str]) -> Dict[str, bool]:
    """
    Which views a job should surface in once this stage is completed.

    A completed stage flagged triggers_scheduler puts the job in the
    install scheduler, triggers_purchase_order in the purchase-order view.
    """
    completed = status == StageProgressStatusEnum.COMPLETED.value
    return {
        "scheduler": bool(completed and stage.triggers_scheduler),
        "purchase_order": bool(completed and stage.triggers_purchase_order),
    }


def _apply_status(progress: JobStageProgressDB, status: str, now: datetime) -> None:
    progress.status = status
    if status == StageProgressStatusEnum.COMPLETED.value:
        progress.completed_at = now
    else:
        progress.completed_at = None


class StageProgressRepository:
    """Repository for job stage progress and timers."""

    def __init__(self):
        self.db = get_database()

    async def initialize_job_stages(self, job_id: int, work_type_id: int) -> int:
        """
        Create a pending row for every stage of the work type.

        Existing rows are left untouched (insert ... on conflict do nothing),
        so calling this twice yields one row per stage. Returns rows inserted.
        """
        async with self.db.session() as session:
            try:
                result = await session.execute(
                    select(WorkTypeStageDB.id)
                    .where(WorkTypeStageDB.work_type_id == work_type_id)
                    .order_by(WorkTypeStageDB.order_index)
                )
                stage_ids = list(result.scalars().all())
                if not stage_ids:
                    return 0

                now = get_local_now()
                stmt = insert(JobStageProgressDB).values([
                    {
                        "job_id": job_id,
                        "stage_id": stage_id,
                        "status": StageProgressStatusEnum.PENDING.value,
                        "timer_running": False,
                        "total_time_seconds": 0,
                        "created_at": now,
                        "updated_at": now,
                    }
                    for stage_id in stage_ids
                ]).on_conflict_do_nothing(index_elements=["job_id", "stage_id"])

                result = await session.execute(stmt)
                inserted = result.rowcount if result.rowcount is not None else 0
                logger.info(
                    f"Initialized stages for job {job_id} from work type {work_type_id}: "
                    f"{inserted} new of {len(stage_ids)}"
                )
                return inserted

            except Exception as e:
                logger.error(f"Failed to initialize stages for job {job_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to initialize stages for job {job_id}: {e}")

    async def list_for_job(self, job_id: int) -> List[JobStageProgressDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(JobStageProgressDB)
                .where(JobStageProgressDB.job_id == job_id)
                .order_by(JobStageProgressDB.stage_id)
            )
            return list(result.scalars().all())

    async def _get_or_create(self, session, job_id: int, stage_id: int) -> JobStageProgressDB:
        result = await session.execute(
            select(JobStageProgressDB).where(
                JobStageProgressDB.job_id == job_id,
                JobStageProgressDB.stage_id == stage_id,
            )
        )
        progress = result.scalar_one_or_none()
        if progress is None:
            now = get_local_now()
            progress = JobStageProgressDB(
                job_id=job_id,
                stage_id=stage_id,
                status=StageProgressStatusEnum.PENDING.value,
                timer_running=False,
                total_time_seconds=0,
                created_at=now,
                updated_at=now,
            )
            session.add(progress)
            await session.flush()
        return progress

    async def update_progress(
        self,
        job_id: int,
        stage_id: int,
        status: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> JobStageProgressDB:
        """Set status and/or notes, creating the row if needed."""
        if status is not None and status not in VALID_STATUSES:
            raise ValidationError(f"Invalid stage status: {status}")

        async with self.db.session() as session:
            progress = await self._get_or_create(session, job_id, stage_id)
            now = get_local_now()
            if status is not None:
                _apply_status(progress, status, now)
            if notes is not None:
                progress.notes = notes
            progress.updated_at = now
            await session.flush()
            return progress

    async def toggle_completion(self, job_id: int, stage_id: int) -> JobStageProgressDB:
        """Completed goes back to pending; pending or in_progress becomes completed."""
        async with self.db.session() as session:
            progress = await self._get_or_create(session, job_id, stage_id)
            now = get_local_now()
            if progress.status == StageProgressStatusEnum.COMPLETED.value:
                _apply_status(progress, StageProgressStatusEnum.PENDING.value, now)
            else:
                _apply_status(progress, StageProgressStatusEnum.COMPLETED.value, now)
            progress.updated_at = now
            await session.flush()
            return progress

    async def start_timer(self, job_id: int, stage_id: int) -> JobStageProgressDB:
        """
        Start the stage timer and mark the stage in progress.

        Starting a running timer is a no-op: the original start time is kept
        so elapsed time is never lost.
        """
        async with self.db.session() as session:
            progress = await self._get_or_create(session, job_id, stage_id)
            if progress.timer_running:
                logger.debug(f"Timer already running for job {job_id} stage {stage_id}")
                return progress

            now = get_local_now()
            progress.timer_running = True
            progress.timer_started_at = now
            _apply_status(progress, StageProgressStatusEnum.IN_PROGRESS.value, now)
            progress.updated_at = now
            await session.flush()
            logger.info(f"Started timer for job {job_id} stage {stage_id}")
            return progress

    async def stop_timer(self, job_id: int, stage_id: int) -> JobStageProgressDB:
        """Stop the timer and add the elapsed seconds. Safe no-op when not running."""
        async with self.db.session() as session:
            progress = await self._get_or_create(session, job_id, stage_id)
            if not progress.timer_running:
                return progress

            now = get_local_now()
            elapsed = 0
            if progress.timer_started_at:
                elapsed = max(0, int((now - progress.timer_started_at).total_seconds()))

            progress.total_time_seconds = (progress.total_time_seconds or 0) + elapsed
            progress.timer_running = False
            progress.timer_started_at = None
            progress.updated_at = now
            await session.flush()
            logger.info(f"Stopped timer for job {job_id} stage {stage_id} after {format_duration(elapsed)}")
            return progress

    def to_dict(self, progress: JobStageProgressDB) -> Dict[str, Any]:
        return {
            "id": progress.id,
            "job_id": progress.job_id,
            "stage_id": progress.stage_id,
            "status": progress.status,
            "notes": progress.notes,
            "timer_running": progress.timer_running,
            "timer_started_at": progress.timer_started_at.isoformat() if progress.timer_started_at else None,
            "total_time_seconds": progress.total_time_seconds or 0,
            "total_time_display": format_duration(progress.total_time_seconds or 0),
            "completed_at": progress.completed_at.isoformat() if progress.completed_at else None,
        }


# Singleton
_stage_progress_repository: Optional[StageProgressRepository] = None


def get_stage_progress_repository() -> StageProgressRepository:
    """Get the stage progress repository singleton."""
    global _stage_progress_repository
    if _stage_progress_repository is None:
        _stage_progress_repository = StageProgressRepository()
    return _stage_progress_repository
