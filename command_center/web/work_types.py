"""
Work type and stage routes.
"""

import logging

from fastapi import APIRouter

from ..database.exceptions import EntityNotFoundError
from ..database.repositories import get_work_type_repository
from ..models.api_validation import (
    StageReorderRequest,
    WorkTypeCreate,
    WorkTypeStageCreate,
    WorkTypeStageUpdate,
    WorkTypeUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/work-types", tags=["work-types"])


@router.get("")
async def list_work_types(active_only: bool = False):
    repo = get_work_type_repository()
    return [repo.to_dict(wt) for wt in await repo.get_all(active_only=active_only)]


@router.get("/{work_type_id}")
async def get_work_type(work_type_id: int):
    repo = get_work_type_repository()
    work_type = await repo.get_by_id(work_type_id)
    if not work_type:
        raise EntityNotFoundError(f"Work type {work_type_id} not found")
    return repo.to_dict(work_type)


@router.post("", status_code=201)
async def create_work_type(body: WorkTypeCreate):
    repo = get_work_type_repository()
    work_type = await repo.create(
        name=body.name,
        description=body.description,
        color=body.color,
        is_default=body.is_default,
        is_active=body.is_active,
        stages=[s.model_dump() for s in body.stages],
    )
    return repo.to_dict(work_type)


@router.patch("/{work_type_id}")
async def update_work_type(work_type_id: int, body: WorkTypeUpdate):
    repo = get_work_type_repository()
    work_type = await repo.update(work_type_id, body.model_dump(exclude_unset=True))
    if not work_type:
        raise EntityNotFoundError(f"Work type {work_type_id} not found")
    return repo.to_dict(work_type)


@router.delete("/{work_type_id}")
async def delete_work_type(work_type_id: int):
    if not await get_work_type_repository().delete(work_type_id):
        raise EntityNotFoundError(f"Work type {work_type_id} not found")
    return {"success": True}


# ============================================================================
# Stages
# ============================================================================

@router.post("/{work_type_id}/stages", status_code=201)
async def add_stage(work_type_id: int, body: WorkTypeStageCreate):
    repo = get_work_type_repository()
    stage = await repo.add_stage(work_type_id, **body.model_dump())
    return repo.stage_to_dict(stage)


# Registered before /{stage_id} so "reorder" is not parsed as a stage id
@router.post("/{work_type_id}/stages/reorder")
async def reorder_stages(work_type_id: int, body: StageReorderRequest):
    """Rewrite order_index to 1..n following stage_ids (must list every stage once)."""
    repo = get_work_type_repository()
    stages = await repo.reorder_stages(work_type_id, body.stage_ids)
    return [repo.stage_to_dict(s) for s in stages]


@router.patch("/{work_type_id}/stages/{stage_id}")
async def update_stage(work_type_id: int, stage_id: int, body: WorkTypeStageUpdate):
    repo = get_work_type_repository()
    stage = await repo.update_stage(work_type_id, stage_id, body.model_dump(exclude_unset=True))
    if not stage:
        raise EntityNotFoundError(f"Stage {stage_id} not found in work type {work_type_id}")
    return repo.stage_to_dict(stage)


@router.delete("/{work_type_id}/stages/{stage_id}")
async def delete_stage(work_type_id: int, stage_id: int):
    if not await get_work_type_repository().delete_stage(work_type_id, stage_id):
        raise EntityNotFoundError(f"Stage {stage_id} not found in work type {work_type_id}")
    return {"success": True}
