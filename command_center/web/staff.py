"""
Staff routes.

The staff table drives capacity; the settings store keeps a mirrored copy
for the dashboard's settings blob.
"""

import logging

from fastapi import APIRouter

from ..database.exceptions import EntityNotFoundError
from ..database.repositories import get_staff_repository
from ..models.api_validation import StaffCreate, StaffUpdate
from ..models.settings import StaffEntry
from ..services.settings_store import get_settings_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/staff", tags=["staff"])


@router.get("")
async def list_staff():
    repo = get_staff_repository()
    return [repo.to_dict(m) for m in await repo.get_all()]


@router.get("/{staff_id}")
async def get_staff_member(staff_id: str):
    repo = get_staff_repository()
    member = await repo.get_by_id(staff_id)
    if not member:
        raise EntityNotFoundError(f"Staff member {staff_id} not found")
    return repo.to_dict(member)


@router.post("", status_code=201)
async def create_staff_member(body: StaffCreate):
    repo = get_staff_repository()
    member = await repo.create(
        staff_id=body.id,
        name=body.name,
        role=body.role,
        daily_capacity_hours=body.daily_capacity_hours,
        skills=body.skills,
        color=body.color,
        active=body.active,
    )
    data = repo.to_dict(member)
    get_settings_store().upsert_staff(StaffEntry.model_validate(data))
    return data


@router.patch("/{staff_id}")
async def update_staff_member(staff_id: str, body: StaffUpdate):
    repo = get_staff_repository()
    member = await repo.update(staff_id, body.model_dump(exclude_unset=True))
    if not member:
        raise EntityNotFoundError(f"Staff member {staff_id} not found")
    data = repo.to_dict(member)
    get_settings_store().upsert_staff(StaffEntry.model_validate(data))
    return data


@router.delete("/{staff_id}")
async def delete_staff_member(staff_id: str):
    if not await get_staff_repository().delete(staff_id):
        raise EntityNotFoundError(f"Staff member {staff_id} not found")
    get_settings_store().delete_staff(staff_id)
    return {"success": True}
