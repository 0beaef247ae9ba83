"""
Sync routes: manual ServiceM8 sync, sync status and history, plus read-through
ServiceM8 lookups (job history, job contact, company directory).
"""

import asyncio
import logging

from fastapi import APIRouter, Query

from ..database.exceptions import EntityNotFoundError
from ..database.models import SyncTypeEnum
from ..database.repositories import get_sync_log_repository
from ..integrations.servicem8 import create_servicem8_client
from ..scheduler.jobs import get_scheduler_manager
from ..services.communications import build_job_history
from ..services.sync import get_sync_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["sync"])


@router.post("/sync/servicem8")
async def sync_servicem8():
    """
    Pull jobs from ServiceM8 now.

    Not configured gives 400, a rejected token 401, and any other failure
    500 carrying how many jobs were processed before it stopped.
    """
    return await get_sync_service().run_sync(SyncTypeEnum.MANUAL.value)


@router.get("/sync/status")
async def sync_status():
    repo = get_sync_log_repository()
    latest = await repo.get_latest()
    manager = get_scheduler_manager()
    return {
        "running": get_sync_service().is_running,
        "latest": repo.to_dict(latest) if latest else None,
        "scheduler_running": manager.running,
        "scheduled_jobs": manager.get_job_status(),
    }


@router.get("/sync/history")
async def sync_history(limit: int = Query(20, ge=1, le=100)):
    repo = get_sync_log_repository()
    return [repo.to_dict(log) for log in await repo.get_recent(limit)]


@router.get("/servicem8/job-history/{job_uuid}")
async def job_history(job_uuid: str):
    """Notes and scheduled activities for one job, newest first."""
    async with await create_servicem8_client(prefer_oauth=True) as client:
        activities = await client.fetch_job_activities(job_uuid)
        notes = await client.fetch_job_notes(job_uuid)

    history = build_job_history(activities, notes)
    return {"job_uuid": job_uuid, "count": len(history), "history": history}


@router.get("/servicem8/job-contact/{job_uuid}")
async def job_contact(job_uuid: str):
    """Phone and email of a job's contact, for the SMS and email dialogs."""
    async with await create_servicem8_client(prefer_oauth=True) as client:
        contact = await client.fetch_job_contact(job_uuid)
    if contact is None:
        raise EntityNotFoundError(f"No contact on ServiceM8 job {job_uuid}")
    return {"job_uuid": job_uuid, **contact}


@router.get("/servicem8/companies")
async def company_directory():
    """Companies with their contacts, primary contact first."""
    async with await create_servicem8_client(prefer_oauth=True) as client:
        companies, contacts = await asyncio.gather(
            client.fetch_all_companies_full(),
            client.fetch_all_company_contacts(),
        )

    directory = []
    for uuid, company in companies.items():
        people = sorted(contacts.get(uuid, []), key=lambda c: not c["is_primary"])
        directory.append({**company, "contacts": people})
    directory.sort(key=lambda c: c["name"].lower())
    return directory
