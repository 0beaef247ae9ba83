"""
Command Center - Main Application Entry Point

FastAPI application serving the fencing job dashboard, with a background
ServiceM8 sync scheduler.
"""

import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings
from .database import init_database, close_database, get_database
from .database.exceptions import DatabaseConstraintError, EntityNotFoundError, ValidationError
from .database.repositories import get_staff_repository, get_work_type_repository
from .integrations.servicem8 import ServiceM8AuthError, ServiceM8NotConfigured
from .middleware.rate_limit import setup_rate_limiting
from .monitoring import metrics_middleware, update_db_pool_metrics
from .scheduler.jobs import get_scheduler_manager
from .services.settings_store import get_settings_store
from .services.sync import SyncFailed
from .web import all_routers

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown."""
    logger.info(f"Starting {settings.app_name}...")

    try:
        if await init_database():
            logger.info("PostgreSQL database initialized")
        else:
            logger.warning("PostgreSQL not configured or failed to initialize")
    except Exception as e:
        logger.warning(f"PostgreSQL init failed: {e}")

    store = get_settings_store()
    try:
        await store.load()
    except Exception as e:
        logger.warning(f"Settings load failed, using defaults: {e}")

    try:
        await get_staff_repository().seed_defaults([s.model_dump() for s in store.state.staff])
        await get_work_type_repository().seed_default()
    except Exception as e:
        logger.warning(f"Default data seed failed: {e}")

    if settings.auto_sync_enabled:
        try:
            get_scheduler_manager().start()
        except Exception as e:
            logger.error(f"Scheduler failed to start: {e}")
    else:
        logger.info("Automatic ServiceM8 sync disabled")

    logger.info(f"{settings.app_name} started successfully!")

    yield

    logger.info(f"Shutting down {settings.app_name}...")

    try:
        await store.flush()
    except Exception as e:
        logger.warning(f"Failed to flush settings during shutdown: {e}")

    try:
        get_scheduler_manager().stop()
    except Exception as e:
        logger.warning(f"Failed to stop scheduler during shutdown: {e}")

    try:
        await close_database()
    except Exception as e:
        logger.warning(f"Failed to close database during shutdown: {e}")

    logger.info("Shutdown complete")


app = FastAPI(
    title="Command Center",
    description="Fencing job tracker backed by ServiceM8",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.middleware("http")(metrics_middleware)
setup_rate_limiting(app)

for router in all_routers:
    app.include_router(router)


@app.get("/")
async def root():
    """Root endpoint - health check."""
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": "1.0.0"
    }


@app.get("/health")
async def health_check():
    """Detailed health check endpoint."""
    db_health = {"status": "not_configured"}
    try:
        db_health = await get_database().health_check()
    except Exception as e:
        db_health = {"status": "error", "error": str(e)}

    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "services": {
            "database": db_health.get("status", "unknown"),
            "servicem8_api_key": bool(settings.servicem8_api_key),
            "servicem8_oauth_client": bool(settings.servicem8_client_id),
            "scheduler": get_scheduler_manager().running,
        }
    }


@app.get("/health/db")
async def db_health():
    """Database connection pool health check."""
    try:
        db = get_database()
        status = await db.get_pool_status()
        if db.engine is not None:
            update_db_pool_metrics(db.engine.pool)
        status["timestamp"] = datetime.now().isoformat()
        return status
    except Exception as e:
        logger.error(f"Error checking database health: {e}")
        return {
            "status": "error",
            "error": str(e),
            "timestamp": datetime.now().isoformat()
        }


@app.get("/metrics")
async def metrics():
    """Prometheus scrape endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# Error handlers
@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Validation failed", "details": jsonable_encoder(exc.errors())}
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(EntityNotFoundError)
async def not_found_handler(request: Request, exc: EntityNotFoundError):
    return JSONResponse(status_code=404, content={"error": str(exc)})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(DatabaseConstraintError)
async def constraint_error_handler(request: Request, exc: DatabaseConstraintError):
    return JSONResponse(status_code=409, content={"error": str(exc)})


@app.exception_handler(ServiceM8NotConfigured)
async def servicem8_not_configured_handler(request: Request, exc: ServiceM8NotConfigured):
    return JSONResponse(
        status_code=400,
        content={"error": "ServiceM8 not configured", "message": str(exc)}
    )


@app.exception_handler(ServiceM8AuthError)
async def servicem8_auth_handler(request: Request, exc: ServiceM8AuthError):
    return JSONResponse(
        status_code=401,
        content={"error": "ServiceM8 authorization required", "message": str(exc)}
    )


@app.exception_handler(SyncFailed)
async def sync_failed_handler(request: Request, exc: SyncFailed):
    return JSONResponse(
        status_code=500,
        content={"error": "Sync failed", "message": str(exc), "jobs_processed": exc.jobs_processed}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "message": str(exc)}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "command_center.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
