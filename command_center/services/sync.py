"""
ServiceM8 job sync.

Pulls active jobs plus lookup data from ServiceM8, maps each job and upserts
it by UUID. One sync runs at a time; an overlapping request is skipped rather
than queued. There is no rollback: jobs upserted before a failure stay, and
the sync log records the partial count.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from ..database.models import SyncStatusEnum, SyncTypeEnum
from ..integrations.servicem8 import (
    ServiceM8AuthError,
    ServiceM8Client,
    ServiceM8Error,
    create_servicem8_client,
)
from ..monitoring import sync_duration, sync_jobs_processed, sync_runs_total
from .communications import (
    communications_from_feed,
    communications_from_notes,
    communication_fields,
    latest_communications,
)
from .lifecycle import map_servicem8_job, resolve_customer_name, resolve_staff_assigned

logger = logging.getLogger(__name__)


class SyncFailed(ServiceM8Error):
    """A sync started but did not finish. Carries the partial job count."""

    def __init__(self, message: str, jobs_processed: int):
        super().__init__(message)
        self.jobs_processed = jobs_processed


class ServiceM8SyncService:
    """Runs full pull-and-upsert syncs, one at a time."""

    def __init__(
        self,
        job_repository=None,
        sync_log_repository=None,
        client_factory: Optional[Callable[[], Awaitable[ServiceM8Client]]] = None,
    ):
        if job_repository is None:
            from ..database.repositories import get_job_repository
            job_repository = get_job_repository()
        if sync_log_repository is None:
            from ..database.repositories import get_sync_log_repository
            sync_log_repository = get_sync_log_repository()
        self.jobs = job_repository
        self.sync_logs = sync_log_repository
        self._client_factory = client_factory or create_servicem8_client
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def run_sync(self, sync_type: str = SyncTypeEnum.MANUAL.value) -> Dict[str, Any]:
        """
        Run one sync.

        Returns {"skipped": True} if another sync holds the lock. Raises
        ServiceM8NotConfigured before any log row is written when there are no
        credentials, and ServiceM8Error after logging the failure otherwise.
        """
        if self._lock.locked():
            logger.info(f"Skipping {sync_type} sync: another sync is in progress")
            sync_runs_total.labels(sync_type=sync_type, outcome="skipped").inc()
            return {"skipped": True, "message": "Sync already in progress"}

        async with self._lock:
            client = await self._client_factory()
            started = time.monotonic()
            log = await self.sync_logs.start(sync_type)
            logger.info(f"Starting {sync_type} ServiceM8 sync (log {log.id})")

            processed = 0
            created = 0
            try:
                async with client:
                    sm8_jobs, contacts, companies, custom_fields, feed_items, notes = await asyncio.gather(
                        client.fetch_jobs(),
                        client.fetch_all_job_contacts(),
                        client.fetch_all_companies(),
                        client.fetch_job_custom_fields(),
                        client.fetch_feed_items(),
                        client.fetch_notes(),
                    )

                communications = communications_from_feed(feed_items) + communications_from_notes(notes)
                latest, latest_inbound = latest_communications(communications)
                now = datetime.now(timezone.utc)

                for record in sm8_jobs:
                    uuid = record.get("uuid")
                    if not uuid:
                        continue
                    data = map_servicem8_job(
                        record,
                        customer_name=resolve_customer_name(record, contacts, companies),
                        staff_assigned=resolve_staff_assigned(custom_fields.get(uuid)),
                        now=now,
                    )
                    data.update(communication_fields(latest.get(uuid), latest_inbound.get(uuid), now))

                    _, was_created = await self.jobs.upsert_by_servicem8_uuid(data)
                    processed += 1
                    if was_created:
                        created += 1

                extra = {
                    "created": created,
                    "updated": processed - created,
                    "communications": len(communications),
                }
                await self.sync_logs.finish(log.id, SyncStatusEnum.SUCCESS.value, processed, extra=extra)
                logger.info(f"ServiceM8 sync complete: {processed} jobs ({created} new)")
                sync_runs_total.labels(sync_type=sync_type, outcome="success").inc()
                sync_jobs_processed.labels(sync_type=sync_type).inc(processed)
                sync_duration.labels(sync_type=sync_type).observe(time.monotonic() - started)

                return {
                    "success": True,
                    "sync_log_id": log.id,
                    "jobs_processed": processed,
                    "created": created,
                    "updated": processed - created,
                    "message": f"Successfully synced {processed} jobs from ServiceM8",
                }

            except Exception as e:
                logger.error(f"ServiceM8 sync failed after {processed} jobs: {e}", exc_info=True)
                await self.sync_logs.finish(
                    log.id, SyncStatusEnum.ERROR.value, processed, error_message=str(e)
                )
                sync_runs_total.labels(sync_type=sync_type, outcome="error").inc()
                sync_jobs_processed.labels(sync_type=sync_type).inc(processed)
                if isinstance(e, ServiceM8AuthError):
                    raise
                # Provider and database detail stays in the log and the sync log row
                raise SyncFailed(f"Sync failed after {processed} jobs", processed) from e


_sync_service: Optional[ServiceM8SyncService] = None


def get_sync_service() -> ServiceM8SyncService:
    """Get the sync service singleton."""
    global _sync_service
    if _sync_service is None:
        _sync_service = ServiceM8SyncService()
    return _sync_service
