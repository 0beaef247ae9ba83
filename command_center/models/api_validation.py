"""
Pydantic models for API request bodies.

Request bodies are validated before reaching services; failures surface as
HTTP 400 with pydantic's error list.
"""

import datetime
from typing import Optional, List, Dict, Any, Literal
from pydantic import BaseModel, Field, field_validator, EmailStr

from .settings import StaffEntry, PipelineConfig, AppSettings


Milestone = Literal["posts", "panels"]


# ============================================
# JOBS
# ============================================

class JobCreate(BaseModel):
    """Manual job creation (jobs not coming from ServiceM8)."""
    customer_name: str = Field(..., min_length=1, max_length=255)
    address: str = Field(..., min_length=1)
    description: Optional[str] = None
    job_code: Optional[str] = Field(None, max_length=50)
    servicem8_uuid: Optional[str] = Field(None, max_length=64)
    lifecycle_phase: Literal["quote", "work_order"] = "quote"
    status: str = Field("new_lead", min_length=1, max_length=50)
    quote_value: Optional[float] = Field(None, ge=0)
    assigned_staff: Optional[str] = Field(None, max_length=100)
    work_type_id: Optional[int] = None

    @field_validator("customer_name", "address")
    @classmethod
    def strip_required(cls, v):
        stripped = v.strip()
        if not stripped:
            raise ValueError("cannot be empty after stripping whitespace")
        return stripped


class JobUpdate(BaseModel):
    """Partial job update from drag-and-drop and edit dialogs. Unset fields are left alone."""
    customer_name: Optional[str] = Field(None, min_length=1, max_length=255)
    address: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = Field(None, min_length=1, max_length=50)
    lifecycle_phase: Optional[Literal["quote", "work_order"]] = None
    scheduler_stage: Optional[Literal[
        "new_jobs_won", "in_production", "waiting_supplier", "waiting_client",
        "need_to_go_back", "recently_completed", "quotes_sent",
    ]] = None
    sales_stage: Optional[str] = Field(None, max_length=50)
    install_stage: Optional[Literal[
        "pending_posts", "tentative_posts", "posts_scheduled", "measuring",
        "manufacturing_panels", "pending_panels", "tentative_panels",
        "panels_scheduled", "completed",
    ]] = None
    urgency: Optional[Literal["low", "medium", "high", "critical"]] = None
    quote_value: Optional[float] = Field(None, ge=0)
    purchase_order_status: Optional[Literal["none", "ordered", "received", "delayed"]] = None
    assigned_staff: Optional[str] = Field(None, max_length=100)
    last_note: Optional[str] = None
    production_tasks: Optional[List[Dict[str, Any]]] = None
    tentative_notes: Optional[str] = None
    estimated_production_duration: Optional[int] = Field(None, ge=0, le=365)
    post_install_duration: Optional[int] = Field(None, ge=0, le=100)
    post_install_crew_size: Optional[int] = Field(None, ge=1, le=20)
    panel_install_duration: Optional[int] = Field(None, ge=0, le=100)
    panel_install_crew_size: Optional[int] = Field(None, ge=1, le=20)
    work_type_id: Optional[int] = None

    @field_validator("customer_name", "address", "status")
    @classmethod
    def not_null(cls, v):
        # Columns are NOT NULL; omit the field to leave it unchanged
        if v is None:
            raise ValueError("cannot be null")
        return v


class ScheduleRequest(BaseModel):
    """Date for a confirmed or tentative install."""
    date: datetime.date
    notes: Optional[str] = Field(None, max_length=2000)


class InitializeStagesRequest(BaseModel):
    work_type_id: int = Field(..., gt=0)


class StageProgressUpdate(BaseModel):
    status: Optional[Literal["pending", "in_progress", "completed"]] = None
    notes: Optional[str] = Field(None, max_length=5000)


# ============================================
# STAFF
# ============================================

class StaffCreate(StaffEntry):
    """Staff creation uses the same shape as the settings entry."""

    @field_validator("id")
    @classmethod
    def reject_filter_id(cls, v):
        if v == "all":
            raise ValueError("'all' is reserved for the staff filter")
        return v


class StaffUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    role: Optional[Literal["sales", "production", "install"]] = None
    daily_capacity_hours: Optional[int] = Field(None, ge=0, le=24)
    skills: Optional[List[str]] = None
    color: Optional[str] = None
    active: Optional[bool] = None


# ============================================
# WORK TYPES
# ============================================

StageCategory = Literal["purchase_order", "production", "install", "external", "admin"]


class WorkTypeStageCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    key: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-z0-9_]+$")
    category: StageCategory = "production"
    triggers_scheduler: bool = False
    triggers_purchase_order: bool = False


class WorkTypeStageUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    key: Optional[str] = Field(None, min_length=1, max_length=100, pattern=r"^[a-z0-9_]+$")
    category: Optional[StageCategory] = None
    triggers_scheduler: Optional[bool] = None
    triggers_purchase_order: Optional[bool] = None


class WorkTypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    color: str = Field("blue", max_length=20)
    is_default: bool = False
    is_active: bool = True
    stages: List[WorkTypeStageCreate] = Field(default_factory=list)


class WorkTypeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    color: Optional[str] = Field(None, max_length=20)
    is_default: Optional[bool] = None
    is_active: Optional[bool] = None


class StageReorderRequest(BaseModel):
    stage_ids: List[int] = Field(..., min_length=1)


# ============================================
# SETTINGS
# ============================================

class SettingsUpdate(BaseModel):
    """Replace any of the three settings blobs wholesale."""
    staff: Optional[List[StaffEntry]] = None
    pipelines: Optional[PipelineConfig] = None
    app_settings: Optional[AppSettings] = None


class ColumnUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    color: Optional[str] = None


class ColumnReorderRequest(BaseModel):
    column_ids: List[str] = Field(..., min_length=1)


# ============================================
# MESSAGING
# ============================================

class SmsRequest(BaseModel):
    to: str = Field(..., min_length=6, max_length=20, pattern=r"^\+?[0-9 ]+$")
    message: str = Field(..., min_length=1, max_length=1600)
    job_uuid: Optional[str] = Field(None, max_length=64)


class EmailRequest(BaseModel):
    to: EmailStr
    subject: str = Field(..., min_length=1, max_length=255)
    body: str = Field(..., min_length=1, max_length=50000)
    job_uuid: Optional[str] = Field(None, max_length=64)
