"""
Repository for ServiceM8 sync logs.

One row per sync attempt. Rows are created in_progress and finished exactly
once with success or error; they are never deleted.
"""

import logging
from typing import Optional, List, Dict, Any

from sqlalchemy import select

from ..connection import get_database
from ..models import SyncLogDB, SyncStatusEnum
from ...utils.datetime_utils import get_local_now

logger = logging.getLogger(__name__)


class SyncLogRepository:
    """Repository for sync log operations."""

    def __init__(self):
        self.db = get_database()

    async def start(self, sync_type: str) -> SyncLogDB:
        """Open a new in-progress log row."""
        async with self.db.session() as session:
            log = SyncLogDB(
                sync_type=sync_type,
                status=SyncStatusEnum.IN_PROGRESS.value,
                jobs_processed=0,
                started_at=get_local_now(),
            )
            session.add(log)
            await session.flush()
            return log

    async def finish(
        self,
        log_id: int,
        status: str,
        jobs_processed: int,
        error_message: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Optional[SyncLogDB]:
        """Close a log row with its outcome and (possibly partial) job count."""
        async with self.db.session() as session:
            result = await session.execute(
                select(SyncLogDB).where(SyncLogDB.id == log_id)
            )
            log = result.scalar_one_or_none()
            if not log:
                logger.warning(f"Sync log {log_id} not found when finishing")
                return None

            log.status = status
            log.jobs_processed = jobs_processed
            log.error_message = error_message
            log.extra = extra
            log.completed_at = get_local_now()
            await session.flush()
            return log

    async def get_latest(self) -> Optional[SyncLogDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(SyncLogDB).order_by(SyncLogDB.started_at.desc()).limit(1)
            )
            return result.scalar_one_or_none()

    async def get_recent(self, limit: int = 20) -> List[SyncLogDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(SyncLogDB).order_by(SyncLogDB.started_at.desc()).limit(limit)
            )
            return list(result.scalars().all())

    def to_dict(self, log: SyncLogDB) -> Dict[str, Any]:
        return {
            "id": log.id,
            "sync_type": log.sync_type,
            "status": log.status,
            "jobs_processed": log.jobs_processed,
            "error_message": log.error_message,
            "metadata": log.extra,
            "started_at": log.started_at.isoformat() if log.started_at else None,
            "completed_at": log.completed_at.isoformat() if log.completed_at else None,
        }


# Singleton
_sync_log_repository: Optional[SyncLogRepository] = None


def get_sync_log_repository() -> SyncLogRepository:
    """Get the sync log repository singleton."""
    global _sync_log_repository
    if _sync_log_repository is None:
        _sync_log_repository = SyncLogRepository()
    return _sync_log_repository
