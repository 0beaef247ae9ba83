"""
SQLAlchemy models for PostgreSQL database.

Schema includes:
- Jobs synced from ServiceM8 (or created manually)
- Staff members and their install capacity
- Work types with ordered stage checklists
- Per-job stage progress with timers
- ServiceM8 sync log
- OAuth tokens
- Key/value app settings (JSON blobs)
"""

from datetime import datetime, date
from typing import Optional, List, Dict, Any
from sqlalchemy import (
    String,
    Text,
    Integer,
    Boolean,
    DateTime,
    Date,
    Float,
    ForeignKey,
    JSON,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship, Mapped, mapped_column
from sqlalchemy.sql import func
import enum


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# ==================== ENUMS ====================

class LifecyclePhaseEnum(str, enum.Enum):
    QUOTE = "quote"
    WORK_ORDER = "work_order"


class SchedulerStageEnum(str, enum.Enum):
    NEW_JOBS_WON = "new_jobs_won"
    IN_PRODUCTION = "in_production"
    WAITING_SUPPLIER = "waiting_supplier"
    WAITING_CLIENT = "waiting_client"
    NEED_TO_GO_BACK = "need_to_go_back"
    RECENTLY_COMPLETED = "recently_completed"
    QUOTES_SENT = "quotes_sent"  # quote-phase jobs with a sent quote


class InstallStageEnum(str, enum.Enum):
    PENDING_POSTS = "pending_posts"
    TENTATIVE_POSTS = "tentative_posts"
    POSTS_SCHEDULED = "posts_scheduled"
    MEASURING = "measuring"
    MANUFACTURING_PANELS = "manufacturing_panels"
    PENDING_PANELS = "pending_panels"
    TENTATIVE_PANELS = "tentative_panels"
    PANELS_SCHEDULED = "panels_scheduled"
    COMPLETED = "completed"


class JobStatusEnum(str, enum.Enum):
    """Statuses produced by the ServiceM8 mapping (pipeline columns may add more)."""
    NEW_LEAD = "new_lead"
    QUOTE_PENDING = "quote_pending"
    QUOTE_SENT = "quote_sent"
    WORK_ORDER = "work_order"
    IN_PRODUCTION = "in_production"
    SCHEDULED = "scheduled"
    COMPLETE = "complete"
    UNSUCCESSFUL = "unsuccessful"


class SalesStageEnum(str, enum.Enum):
    NEW_LEAD = "new_lead"
    FRESH = "fresh"
    AWAITING_REPLY = "awaiting_reply"


class PurchaseOrderStatusEnum(str, enum.Enum):
    NONE = "none"
    ORDERED = "ordered"
    RECEIVED = "received"
    DELAYED = "delayed"


class StageCategoryEnum(str, enum.Enum):
    PURCHASE_ORDER = "purchase_order"
    PRODUCTION = "production"
    INSTALL = "install"
    EXTERNAL = "external"
    ADMIN = "admin"


class StageProgressStatusEnum(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class StaffRoleEnum(str, enum.Enum):
    SALES = "sales"
    PRODUCTION = "production"
    INSTALL = "install"


class CommunicationTypeEnum(str, enum.Enum):
    EMAIL = "email"
    SMS = "sms"
    CALL = "call"
    NOTE = "note"


class ContactDirectionEnum(str, enum.Enum):
    INBOUND = "inbound"    # client contacted us
    OUTBOUND = "outbound"  # we contacted the client


class SyncTypeEnum(str, enum.Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"


class SyncStatusEnum(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    ERROR = "error"


# ==================== JOBS ====================

class JobDB(Base):
    """One customer engagement through its full lifecycle."""
    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    servicem8_uuid: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    job_code: Mapped[str] = mapped_column(String(50), nullable=False)  # "#1042"

    # Customer
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Classification
    lifecycle_phase: Mapped[str] = mapped_column(String(20), default="quote")
    status: Mapped[str] = mapped_column(String(50), nullable=False)  # pipeline column id
    scheduler_stage: Mapped[str] = mapped_column(String(30), default="new_jobs_won")
    sales_stage: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    install_stage: Mapped[str] = mapped_column(String(30), default="pending_posts")
    urgency: Mapped[str] = mapped_column(String(20), default="low")

    # Commercial
    quote_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    purchase_order_status: Mapped[str] = mapped_column(String(20), default="none")
    days_since_quote_sent: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    hours_since_quote_sent: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Assignment / notes
    assigned_staff: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    production_tasks: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSON, nullable=True)

    # Confirmed install dates
    post_install_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    panel_install_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Advance planning (never both tentative and confirmed for the same milestone)
    tentative_post_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    tentative_panel_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    tentative_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Durations
    estimated_production_duration: Mapped[int] = mapped_column(Integer, default=7)  # days
    post_install_duration: Mapped[int] = mapped_column(Integer, default=6)  # hours
    post_install_crew_size: Mapped[int] = mapped_column(Integer, default=2)
    panel_install_duration: Mapped[int] = mapped_column(Integer, default=8)  # hours
    panel_install_crew_size: Mapped[int] = mapped_column(Integer, default=2)

    # Work type (drives the stage checklist)
    work_type_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("work_types.id", ondelete="SET NULL"), nullable=True
    )

    # Communication tracking (any direction)
    days_since_last_contact: Mapped[int] = mapped_column(Integer, default=0)
    last_contact_who: Mapped[str] = mapped_column(String(10), default="us")  # us, client
    last_communication_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_communication_type: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    last_communication_direction: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    # Client-initiated contact only
    last_client_contact_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_client_contact_type: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    days_since_client_contact: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())
    synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    work_type: Mapped[Optional["WorkTypeDB"]] = relationship("WorkTypeDB")

    __table_args__ = (
        Index("idx_jobs_lifecycle_phase", "lifecycle_phase"),
        Index("idx_jobs_status", "status"),
        Index("idx_jobs_post_install_date", "post_install_date"),
        Index("idx_jobs_panel_install_date", "panel_install_date"),
    )


# ==================== STAFF ====================

class StaffMemberDB(Base):
    """Sales, production and install staff."""
    __tablename__ = "staff_members"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)  # slug, e.g. "mike"
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    daily_capacity_hours: Mapped[int] = mapped_column(Integer, default=8)
    skills: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    color: Mapped[str] = mapped_column(String(30), default="bg-gray-500")
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_staff_role_active", "role", "active"),
    )


# ==================== WORK TYPES ====================

class WorkTypeDB(Base):
    """Named job template with an ordered stage checklist."""
    __tablename__ = "work_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    color: Mapped[str] = mapped_column(String(20), default="blue")
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    stages: Mapped[List["WorkTypeStageDB"]] = relationship(
        "WorkTypeStageDB",
        back_populates="work_type",
        cascade="all, delete-orphan",
        order_by="WorkTypeStageDB.order_index",
    )


class WorkTypeStageDB(Base):
    """One checklist step within a work type."""
    __tablename__ = "work_type_stages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    work_type_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("work_types.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    key: Mapped[str] = mapped_column(String(100), nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[str] = mapped_column(String(30), default="production")
    triggers_scheduler: Mapped[bool] = mapped_column(Boolean, default=False)
    triggers_purchase_order: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    work_type: Mapped["WorkTypeDB"] = relationship("WorkTypeDB", back_populates="stages")

    __table_args__ = (
        Index("idx_work_type_stages_order", "work_type_id", "order_index"),
    )


class JobStageProgressDB(Base):
    """Completion status and elapsed time of one stage for one job."""
    __tablename__ = "job_stage_progress"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[int] = mapped_column(Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False)
    stage_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("work_type_stages.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), default="pending")
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    timer_running: Mapped[bool] = mapped_column(Boolean, default=False)
    timer_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    total_time_seconds: Mapped[int] = mapped_column(Integer, default=0)

    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("job_id", "stage_id", name="uq_job_stage_progress"),
        Index("idx_job_stage_progress_job", "job_id"),
    )


# ==================== SYNC LOG ====================

class SyncLogDB(Base):
    """One ServiceM8 sync attempt (append-only)."""
    __tablename__ = "sync_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sync_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    jobs_processed: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    extra: Mapped[Optional[Dict[str, Any]]] = mapped_column("metadata", JSON, nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_sync_logs_started", "started_at"),
    )


# ==================== OAUTH ====================

class OAuthTokenDB(Base):
    """
    OAuth tokens for the ServiceM8 connection.

    One active token per provider. Tokens are Fernet-encrypted at rest.
    """
    __tablename__ = "oauth_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    provider: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    scope: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())


# ==================== APP SETTINGS ====================

class AppSettingDB(Base):
    """Generic key/value settings (staff list, pipelines, general settings)."""
    __tablename__ = "app_settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())
