"""
Job routes: CRUD, stage progress and timers, and install scheduling.
"""

import logging
import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Query

from ..database.exceptions import EntityNotFoundError
from ..database.repositories import (
    get_job_repository,
    get_stage_progress_repository,
    get_work_type_repository,
)
from ..database.repositories.stage_progress import surface_flags
from ..models.api_validation import (
    InitializeStagesRequest,
    JobCreate,
    JobUpdate,
    Milestone,
    ScheduleRequest,
    StageProgressUpdate,
)
from ..services.scheduling import get_scheduling_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["jobs"])


async def _require_job(job_id: int):
    job = await get_job_repository().get_by_id(job_id)
    if not job:
        raise EntityNotFoundError(f"Job {job_id} not found")
    return job


async def _require_stage(stage_id: int):
    stage = await get_work_type_repository().get_stage(stage_id)
    if not stage:
        raise EntityNotFoundError(f"Stage {stage_id} not found")
    return stage


# ============================================================================
# Jobs
# ============================================================================

@router.get("/jobs")
async def list_jobs(
    phase: Optional[str] = Query(None, pattern="^(quote|work_order)$"),
    status: Optional[str] = Query(None, max_length=50),
):
    repo = get_job_repository()
    jobs = await repo.get_all(phase=phase, status=status)
    return [repo.to_dict(job) for job in jobs]


@router.get("/jobs/{job_id}")
async def get_job(job_id: int):
    repo = get_job_repository()
    return repo.to_dict(await _require_job(job_id))


@router.post("/jobs", status_code=201)
async def create_job(body: JobCreate):
    """Create a job by hand. Manual jobs get a local placeholder UUID."""
    repo = get_job_repository()
    data = body.model_dump(exclude_none=True)
    data.setdefault("servicem8_uuid", f"manual-{uuid.uuid4()}")
    data.setdefault("job_code", "#MANUAL")
    job = await repo.create(data)
    return repo.to_dict(job)


@router.patch("/jobs/{job_id}")
async def update_job(job_id: int, body: JobUpdate):
    repo = get_job_repository()
    job = await repo.update(job_id, body.model_dump(exclude_unset=True))
    if not job:
        raise EntityNotFoundError(f"Job {job_id} not found")
    return repo.to_dict(job)


# ============================================================================
# Stage progress
# ============================================================================

@router.get("/jobs/{job_id}/stage-progress")
async def list_stage_progress(job_id: int):
    await _require_job(job_id)
    repo = get_stage_progress_repository()
    return [repo.to_dict(p) for p in await repo.list_for_job(job_id)]


@router.post("/jobs/{job_id}/initialize-stages")
async def initialize_stages(job_id: int, body: InitializeStagesRequest):
    """Assign a work type and create its pending stage rows (idempotent)."""
    await _require_job(job_id)
    work_type = await get_work_type_repository().get_by_id(body.work_type_id)
    if not work_type:
        raise EntityNotFoundError(f"Work type {body.work_type_id} not found")

    await get_job_repository().update(job_id, {"work_type_id": body.work_type_id})
    repo = get_stage_progress_repository()
    inserted = await repo.initialize_job_stages(job_id, body.work_type_id)
    progress = await repo.list_for_job(job_id)
    return {
        "inserted": inserted,
        "progress": [repo.to_dict(p) for p in progress],
    }


@router.patch("/jobs/{job_id}/stage-progress/{stage_id}")
async def update_stage_progress(job_id: int, stage_id: int, body: StageProgressUpdate):
    await _require_job(job_id)
    stage = await _require_stage(stage_id)
    repo = get_stage_progress_repository()
    progress = await repo.update_progress(job_id, stage_id, status=body.status, notes=body.notes)
    return {"progress": repo.to_dict(progress), "surface": surface_flags(stage, progress.status)}


@router.post("/jobs/{job_id}/stage-progress/{stage_id}/toggle")
async def toggle_stage(job_id: int, stage_id: int):
    await _require_job(job_id)
    stage = await _require_stage(stage_id)
    repo = get_stage_progress_repository()
    progress = await repo.toggle_completion(job_id, stage_id)
    return {"progress": repo.to_dict(progress), "surface": surface_flags(stage, progress.status)}


@router.post("/jobs/{job_id}/stage-progress/{stage_id}/timer/start")
async def start_stage_timer(job_id: int, stage_id: int):
    await _require_job(job_id)
    await _require_stage(stage_id)
    repo = get_stage_progress_repository()
    return repo.to_dict(await repo.start_timer(job_id, stage_id))


@router.post("/jobs/{job_id}/stage-progress/{stage_id}/timer/stop")
async def stop_stage_timer(job_id: int, stage_id: int):
    await _require_job(job_id)
    await _require_stage(stage_id)
    repo = get_stage_progress_repository()
    return repo.to_dict(await repo.stop_timer(job_id, stage_id))


# ============================================================================
# Scheduling
# ============================================================================

@router.post("/jobs/{job_id}/schedule/{milestone}")
async def schedule_confirmed(job_id: int, milestone: Milestone, body: ScheduleRequest):
    """Confirmed install date. Beyond the lockout window the result has applied=false."""
    result = await get_scheduling_service().schedule_confirmed(job_id, milestone, body.date)
    return result.to_dict()


@router.delete("/jobs/{job_id}/schedule/{milestone}")
async def unschedule_confirmed(job_id: int, milestone: Milestone):
    result = await get_scheduling_service().unschedule_confirmed(job_id, milestone)
    return result.to_dict()


@router.post("/jobs/{job_id}/tentative/{milestone}")
async def schedule_tentative(job_id: int, milestone: Milestone, body: ScheduleRequest):
    result = await get_scheduling_service().schedule_tentative(job_id, milestone, body.date, body.notes)
    return result.to_dict()


@router.delete("/jobs/{job_id}/tentative/{milestone}")
async def unschedule_tentative(job_id: int, milestone: Milestone):
    result = await get_scheduling_service().unschedule_tentative(job_id, milestone)
    return result.to_dict()


@router.post("/jobs/{job_id}/tentative/{milestone}/confirm")
async def confirm_tentative(job_id: int, milestone: Milestone):
    result = await get_scheduling_service().confirm_tentative(job_id, milestone)
    return result.to_dict()


@router.get("/scheduler/capacity")
async def get_capacity(
    start: Optional[date] = None,
    days: int = Query(28, ge=1, le=120),
    candidate_hours: int = Query(0, ge=0, le=100),
):
    """Per-weekday booked hours against install capacity."""
    calendar = await get_scheduling_service().get_capacity_calendar(start, days, candidate_hours)
    return [day.to_dict() for day in calendar]
