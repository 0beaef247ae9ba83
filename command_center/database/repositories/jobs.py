"""
Job repository.

Jobs arrive from the ServiceM8 sync (upsert by external UUID) or are created
manually. Scheduling, install-stage and production fields are owned locally
and are never overwritten by a sync of an existing job. The board column
(scheduler_stage) is re-derived only when the job moved phase or status in
ServiceM8; otherwise a column the user dragged the card to is kept.
"""

import logging
from typing import Optional, List, Dict, Any, Tuple
from datetime import date, datetime

from sqlalchemy import select, or_, and_
from sqlalchemy.exc import IntegrityError

from ..connection import get_database
from ..models import JobDB
from ..exceptions import DatabaseConstraintError, DatabaseOperationError
from ...utils.datetime_utils import get_local_now

logger = logging.getLogger(__name__)


# Fields edited in the dashboard that a ServiceM8 refresh must not clobber.
LOCAL_ONLY_FIELDS = frozenset({
    "install_stage",
    "post_install_date",
    "panel_install_date",
    "tentative_post_date",
    "tentative_panel_date",
    "tentative_notes",
    "estimated_production_duration",
    "post_install_duration",
    "post_install_crew_size",
    "panel_install_duration",
    "panel_install_crew_size",
    "purchase_order_status",
    "production_tasks",
    "work_type_id",
    "urgency",
    "due_date",
})

# Re-derived by sync only when lifecycle_phase or status changed
BOARD_STAGE_FIELD = "scheduler_stage"

# Columns a PATCH may touch. Identity and sync bookkeeping stay read-only.
UPDATABLE_FIELDS = frozenset(
    c.name for c in JobDB.__table__.columns
) - {"id", "servicem8_uuid", "created_at", "updated_at", "synced_at"}


def _iso(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class JobRepository:
    """Repository for job operations."""

    def __init__(self):
        self.db = get_database()

    async def get_all(
        self,
        phase: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[JobDB]:
        """All jobs, newest first, optionally filtered by lifecycle phase or status."""
        async with self.db.session() as session:
            query = select(JobDB)
            if phase:
                query = query.where(JobDB.lifecycle_phase == phase)
            if status:
                query = query.where(JobDB.status == status)
            result = await session.execute(query.order_by(JobDB.created_at.desc()))
            return list(result.scalars().all())

    async def get_by_id(self, job_id: int) -> Optional[JobDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(JobDB).where(JobDB.id == job_id)
            )
            return result.scalar_one_or_none()

    async def get_by_servicem8_uuid(self, uuid: str) -> Optional[JobDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(JobDB).where(JobDB.servicem8_uuid == uuid)
            )
            return result.scalar_one_or_none()

    async def create(self, data: Dict[str, Any]) -> JobDB:
        """Create a job from a column dict."""
        async with self.db.session() as session:
            try:
                now = get_local_now()
                job = JobDB(**data)
                job.created_at = now
                job.updated_at = now
                session.add(job)
                await session.flush()
                logger.info(f"Created job {job.job_code} ({job.servicem8_uuid})")
                return job

            except IntegrityError as e:
                logger.error(f"Constraint violation creating job {data.get('servicem8_uuid')}: {e}")
                raise DatabaseConstraintError(
                    f"Cannot create job {data.get('servicem8_uuid')}: duplicate or constraint violation"
                )

            except Exception as e:
                logger.error(f"Job creation failed for {data.get('servicem8_uuid')}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to create job: {e}")

    async def update(self, job_id: int, updates: Dict[str, Any]) -> Optional[JobDB]:
        """
        Apply a partial update.

        Unknown keys are ignored. Returns None when the job does not exist.
        """
        async with self.db.session() as session:
            try:
                result = await session.execute(
                    select(JobDB).where(JobDB.id == job_id)
                )
                job = result.scalar_one_or_none()
                if not job:
                    return None

                for key, value in updates.items():
                    if key in UPDATABLE_FIELDS:
                        setattr(job, key, value)
                job.updated_at = get_local_now()

                await session.flush()
                return job

            except IntegrityError as e:
                logger.error(f"Constraint violation updating job {job_id}: {e}")
                raise DatabaseConstraintError(f"Cannot update job {job_id}: constraint violation")

            except Exception as e:
                logger.error(f"Job update failed for {job_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to update job {job_id}: {e}")

    async def upsert_by_servicem8_uuid(self, data: Dict[str, Any]) -> Tuple[JobDB, bool]:
        """
        Insert or refresh a job keyed by its ServiceM8 UUID.

        Returns (job, created). Existing jobs only receive ServiceM8-sourced
        fields; anything in LOCAL_ONLY_FIELDS is left alone, and scheduler_stage
        follows the mapping only when phase or status changed.
        """
        uuid = data["servicem8_uuid"]
        async with self.db.session() as session:
            try:
                result = await session.execute(
                    select(JobDB).where(JobDB.servicem8_uuid == uuid)
                )
                job = result.scalar_one_or_none()
                now = get_local_now()

                if job is None:
                    job = JobDB(**data)
                    job.created_at = now
                    job.updated_at = now
                    job.synced_at = now
                    session.add(job)
                    await session.flush()
                    return job, True

                moved = (
                    data.get("lifecycle_phase", job.lifecycle_phase) != job.lifecycle_phase
                    or data.get("status", job.status) != job.status
                )
                if moved and BOARD_STAGE_FIELD in data:
                    logger.info(
                        f"Job {uuid} moved to {data.get('lifecycle_phase', job.lifecycle_phase)}/"
                        f"{data.get('status', job.status)}, board stage -> {data[BOARD_STAGE_FIELD]}"
                    )

                for key, value in data.items():
                    if key in LOCAL_ONLY_FIELDS or key == "servicem8_uuid":
                        continue
                    if key == BOARD_STAGE_FIELD and not moved:
                        continue
                    setattr(job, key, value)
                job.synced_at = now
                job.updated_at = now

                await session.flush()
                return job, False

            except IntegrityError as e:
                logger.error(f"Constraint violation upserting job {uuid}: {e}")
                raise DatabaseConstraintError(f"Cannot upsert job {uuid}: constraint violation")

            except Exception as e:
                logger.error(f"Job upsert failed for {uuid}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to upsert job {uuid}: {e}")

    async def get_scheduled_between(self, start: date, end: date) -> List[JobDB]:
        """Jobs with a confirmed post or panel install date in [start, end]."""
        async with self.db.session() as session:
            result = await session.execute(
                select(JobDB).where(
                    or_(
                        and_(JobDB.post_install_date >= start, JobDB.post_install_date <= end),
                        and_(JobDB.panel_install_date >= start, JobDB.panel_install_date <= end),
                    )
                )
            )
            return list(result.scalars().all())

    def to_dict(self, job: JobDB) -> Dict[str, Any]:
        """Serialize a job for the API."""
        return {
            column.name: _iso(getattr(job, column.name))
            for column in JobDB.__table__.columns
        }


# Singleton
_job_repository: Optional[JobRepository] = None


def get_job_repository() -> JobRepository:
    """Get the job repository singleton."""
    global _job_repository
    if _job_repository is None:
        _job_repository = JobRepository()
    return _job_repository
