"""
Settings state models and factory defaults.

The settings store keeps three blobs, each persisted under its own key in
app_settings: the staff list, the pipeline column configs and the general
app settings (company name, work hours, install-stage templates).
"""

from typing import List, Literal
from pydantic import BaseModel, Field

PipelineName = Literal["leads", "quotes", "production"]

STAFF_KEY = "staff"
PIPELINES_KEY = "pipelines"
APP_SETTINGS_KEY = "app_settings"


class StaffEntry(BaseModel):
    """A staff member as held in the settings blob."""
    id: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    role: Literal["sales", "production", "install"]
    daily_capacity_hours: int = Field(8, ge=0, le=24)
    skills: List[str] = Field(default_factory=list)
    color: str = "bg-gray-500"
    active: bool = True


class PipelineColumn(BaseModel):
    """One kanban column. Its id is the value stored in job.status / sales_stage."""
    id: str = Field(..., min_length=1, max_length=50)
    title: str = Field(..., min_length=1, max_length=100)
    color: str = "bg-slate-500"


class PipelineConfig(BaseModel):
    leads: List[PipelineColumn] = Field(default_factory=list)
    quotes: List[PipelineColumn] = Field(default_factory=list)
    production: List[PipelineColumn] = Field(default_factory=list)


class InstallStageTemplate(BaseModel):
    id: str
    title: str
    order: int


class AppSettings(BaseModel):
    company_name: str = "PROBUILD"
    default_work_hours_per_day: int = 8
    install_stages: List[InstallStageTemplate] = Field(default_factory=list)


class AppSettingsState(BaseModel):
    """Everything the settings store holds."""
    staff: List[StaffEntry]
    pipelines: PipelineConfig
    app_settings: AppSettings


# ==================== DEFAULTS ====================

DEFAULT_STAFF = [
    StaffEntry(id="all", name="All Staff", role="sales", daily_capacity_hours=0, color="bg-gray-500"),
    StaffEntry(id="wayne", name="Wayne", role="sales", color="bg-blue-500"),
    StaffEntry(id="dave", name="Dave", role="sales", color="bg-blue-500"),
    StaffEntry(id="craig", name="Craig", role="production", skills=["production"], color="bg-amber-500"),
    StaffEntry(id="sarah", name="Sarah", role="production", skills=["production"], color="bg-amber-500"),
    # Install Team A
    StaffEntry(id="mike", name="Mike (Team A)", role="install", skills=["posts", "panels"], color="bg-emerald-500"),
    StaffEntry(id="tom", name="Tom (Team A)", role="install", skills=["posts", "panels"], color="bg-emerald-500"),
    # Install Team B
    StaffEntry(id="josh", name="Josh (Team B)", role="install", skills=["posts", "panels"], color="bg-indigo-500"),
    StaffEntry(id="sam", name="Sam (Team B)", role="install", skills=["posts", "panels"], color="bg-indigo-500"),
]

DEFAULT_PIPELINES = PipelineConfig(
    leads=[
        PipelineColumn(id="new_lead", title="New Lead", color="bg-slate-500"),
        PipelineColumn(id="contacted", title="Contacted/Waiting", color="bg-blue-500"),
        PipelineColumn(id="need_quote", title="Need to Quote", color="bg-amber-500"),
        PipelineColumn(id="book_inspection", title="Book Inspection", color="bg-purple-500"),
        PipelineColumn(id="quote_sent", title="Quote Sent", color="bg-cyan-500"),
        PipelineColumn(id="deposit_paid", title="Deposit Paid", color="bg-green-500"),
    ],
    quotes=[
        PipelineColumn(id="fresh", title="Fresh (0-3 Days)", color="bg-green-500"),
        PipelineColumn(id="in_discussion", title="In Discussion", color="bg-blue-500"),
        PipelineColumn(id="awaiting_reply", title="Awaiting Reply", color="bg-amber-500"),
        PipelineColumn(id="follow_up", title="Follow Up Required", color="bg-orange-500"),
        PipelineColumn(id="hot", title="Hot Lead", color="bg-red-500"),
        PipelineColumn(id="revision", title="Revision Requested", color="bg-purple-500"),
        PipelineColumn(id="on_hold", title="On Hold", color="bg-slate-500"),
        PipelineColumn(id="lost", title="Lost", color="bg-gray-500"),
    ],
    production=[
        PipelineColumn(id="man_posts", title="Manufacture Posts", color="bg-amber-500"),
        PipelineColumn(id="inst_posts", title="Install Posts", color="bg-blue-500"),
        PipelineColumn(id="man_panels", title="Manufacture Panels", color="bg-purple-500"),
        PipelineColumn(id="inst_panels", title="Install Panels", color="bg-cyan-500"),
        PipelineColumn(id="complete", title="Complete", color="bg-green-500"),
    ],
)

DEFAULT_INSTALL_STAGES = [
    InstallStageTemplate(id="pending_posts", title="Pending Posts", order=1),
    InstallStageTemplate(id="posts_scheduled", title="Posts Scheduled", order=2),
    InstallStageTemplate(id="measuring", title="Measuring", order=3),
    InstallStageTemplate(id="manufacturing_panels", title="Manufacturing Panels", order=4),
    InstallStageTemplate(id="pending_panels", title="Pending Panels", order=5),
    InstallStageTemplate(id="panels_scheduled", title="Panels Scheduled", order=6),
    InstallStageTemplate(id="completed", title="Completed", order=7),
]

DEFAULT_APP_SETTINGS = AppSettings(
    company_name="PROBUILD",
    default_work_hours_per_day=8,
    install_stages=DEFAULT_INSTALL_STAGES,
)


def default_state() -> AppSettingsState:
    """A fresh copy of the factory defaults."""
    return AppSettingsState(
        staff=[s.model_copy() for s in DEFAULT_STAFF],
        pipelines=DEFAULT_PIPELINES.model_copy(deep=True),
        app_settings=DEFAULT_APP_SETTINGS.model_copy(deep=True),
    )
