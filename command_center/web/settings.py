"""
Settings routes: the staff/pipelines/app-settings blob and pipeline columns.

Mutations land in the in-memory store and are written back by its debouncer.
A staff list saved from the settings panel is written to the staff table
first, since install capacity is computed from that table.
"""

import logging

from fastapi import APIRouter

from ..database.exceptions import EntityNotFoundError
from ..database.repositories import get_staff_repository
from ..models.api_validation import ColumnReorderRequest, ColumnUpdate, SettingsUpdate
from ..models.settings import AppSettings, PipelineColumn, PipelineName
from ..services.settings_store import get_settings_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("")
async def get_settings_blob():
    return get_settings_store().snapshot()


@router.post("")
async def update_settings_blob(body: SettingsUpdate):
    if body.staff is not None:
        await get_staff_repository().replace_all([s.model_dump() for s in body.staff])
    store = get_settings_store()
    store.replace(staff=body.staff, pipelines=body.pipelines, app_settings=body.app_settings)
    await store.flush()
    return store.snapshot()


@router.put("/app-settings")
async def update_app_settings(body: AppSettings):
    return get_settings_store().set_app_settings(body).model_dump(mode="json")


@router.post("/pipelines/{pipeline}/columns", status_code=201)
async def add_column(pipeline: PipelineName, body: PipelineColumn):
    return get_settings_store().add_column(pipeline, body).model_dump()


@router.post("/pipelines/{pipeline}/reorder")
async def reorder_columns(pipeline: PipelineName, body: ColumnReorderRequest):
    columns = get_settings_store().reorder_columns(pipeline, body.column_ids)
    return [c.model_dump() for c in columns]


@router.patch("/pipelines/{pipeline}/columns/{column_id}")
async def update_column(pipeline: PipelineName, column_id: str, body: ColumnUpdate):
    column = get_settings_store().update_column(pipeline, column_id, body.model_dump(exclude_unset=True))
    return column.model_dump()


@router.delete("/pipelines/{pipeline}/columns/{column_id}")
async def delete_column(pipeline: PipelineName, column_id: str):
    if not get_settings_store().delete_column(pipeline, column_id):
        raise EntityNotFoundError(f"Column {column_id} not found in {pipeline}")
    return {"success": True}
