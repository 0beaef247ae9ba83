"""
PostgreSQL Database Module for the Command Center.

Handles:
- Jobs synced from ServiceM8, with local scheduling fields
- Staff and install capacity
- Work types, stages and per-job stage progress
- Sync logs, OAuth tokens and app settings
"""

from .connection import (
    get_database,
    Database,
    init_database,
    close_database,
)
from .models import (
    Base,
    JobDB,
    StaffMemberDB,
    WorkTypeDB,
    WorkTypeStageDB,
    JobStageProgressDB,
    SyncLogDB,
    OAuthTokenDB,
    AppSettingDB,
)

__all__ = [
    "get_database",
    "Database",
    "init_database",
    "close_database",
    "Base",
    "JobDB",
    "StaffMemberDB",
    "WorkTypeDB",
    "WorkTypeStageDB",
    "JobStageProgressDB",
    "SyncLogDB",
    "OAuthTokenDB",
    "AppSettingDB",
]
