"""HTTP routers for the dashboard API."""

from .jobs import router as jobs_router
from .staff import router as staff_router
from .work_types import router as work_types_router
from .settings import router as settings_router
from .sync import router as sync_router
from .messaging import router as messaging_router
from .auth import router as auth_router

all_routers = [
    jobs_router,
    staff_router,
    work_types_router,
    settings_router,
    sync_router,
    messaging_router,
    auth_router,
]

__all__ = [
    "all_routers",
    "jobs_router",
    "staff_router",
    "work_types_router",
    "settings_router",
    "sync_router",
    "messaging_router",
    "auth_router",
]
