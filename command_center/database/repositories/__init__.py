"""
Repository classes for database operations.

Each repository handles CRUD and queries for its entity type and exposes a
module-level singleton getter.
"""

from .jobs import JobRepository, get_job_repository
from .staff import StaffRepository, get_staff_repository
from .work_types import WorkTypeRepository, get_work_type_repository
from .stage_progress import StageProgressRepository, get_stage_progress_repository
from .sync_log import SyncLogRepository, get_sync_log_repository
from .oauth import OAuthTokenRepository, get_oauth_repository
from .app_settings import AppSettingsRepository, get_app_settings_repository

__all__ = [
    "JobRepository",
    "get_job_repository",
    "StaffRepository",
    "get_staff_repository",
    "WorkTypeRepository",
    "get_work_type_repository",
    "StageProgressRepository",
    "get_stage_progress_repository",
    "SyncLogRepository",
    "get_sync_log_repository",
    "OAuthTokenRepository",
    "get_oauth_repository",
    "AppSettingsRepository",
    "get_app_settings_repository",
]
