"""
Async engine and session handling for the Command Center database.

The schema is created from the ORM models on first use. Columns that were
added to the jobs table after the first deployment are patched in with
ADD COLUMN IF NOT EXISTS, so an older database catches up on startup.
"""

import logging
from typing import AsyncGenerator, Optional, Dict, Any
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
    AsyncEngine,
)
from sqlalchemy.pool import NullPool

from config import settings
from .models import Base

logger = logging.getLogger(__name__)


# (table, column, DDL type) for columns newer than the original jobs table
LATE_COLUMNS = [
    ("jobs", "tentative_post_date", "DATE"),
    ("jobs", "tentative_panel_date", "DATE"),
    ("jobs", "tentative_notes", "TEXT"),
    ("jobs", "work_type_id", "INTEGER"),
    ("jobs", "sales_stage", "VARCHAR(50)"),
    ("jobs", "hours_since_quote_sent", "INTEGER"),
    ("jobs", "last_communication_direction", "VARCHAR(10)"),
    ("jobs", "last_client_contact_date", "TIMESTAMP"),
    ("jobs", "last_client_contact_type", "VARCHAR(10)"),
    ("jobs", "days_since_client_contact", "INTEGER"),
]

# Pool utilization thresholds for /health/db
POOL_WARNING = 0.8
POOL_CRITICAL = 0.9


def normalize_database_url(database_url: str) -> str:
    """Hosted Postgres hands out postgres:// URLs; asyncpg needs postgresql+asyncpg://."""
    for prefix in ("postgres://", "postgresql://"):
        if database_url.startswith(prefix):
            return "postgresql+asyncpg://" + database_url[len(prefix):]
    return database_url


def _engine_options() -> Dict[str, Any]:
    # Test runs get a fresh event loop per test; pooled asyncpg connections can't cross loops
    if settings.environment == "test":
        return {"poolclass": NullPool}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_timeout": settings.db_pool_timeout,
        "pool_recycle": settings.db_pool_recycle,
        "pool_pre_ping": True,
    }


class Database:
    """Owns the engine and hands out transactional sessions."""

    def __init__(self):
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> bool:
        """
        Create the engine, the tables and any late columns.

        Returns False (and logs) when DATABASE_URL is missing or the database
        is unreachable, so the API can still start and report it in /health.
        """
        if self._initialized:
            return True

        if not settings.database_url:
            logger.warning("DATABASE_URL not configured, database features are unavailable")
            return False

        options = _engine_options()
        try:
            self.engine = create_async_engine(
                normalize_database_url(settings.database_url),
                echo=settings.database_echo,
                **options
            )
            self.session_factory = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
                await self._add_late_columns(conn)

        except Exception as e:
            logger.error(f"Could not initialize database: {e}")
            return False

        self._initialized = True
        if "pool_size" in options:
            logger.info(
                f"Database ready (pool size={options['pool_size']}, "
                f"max_overflow={options['max_overflow']})"
            )
        else:
            logger.info("Database ready (no pooling)")
        return True

    async def _add_late_columns(self, conn) -> None:
        for table, column, ddl_type in LATE_COLUMNS:
            if not (table.replace("_", "").isalnum() and column.replace("_", "").isalnum()):
                raise ValueError(f"Refusing unsafe identifier {table}.{column}")
            try:
                await conn.execute(text(
                    f"ALTER TABLE {table} ADD COLUMN IF NOT EXISTS {column} {ddl_type}"
                ))
            except Exception as e:
                logger.warning(f"Could not add column {table}.{column}: {e}")

    async def close(self):
        if self.engine:
            await self.engine.dispose()
            logger.info("Database engine disposed")
        self.engine = None
        self.session_factory = None
        self._initialized = False

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Yield a session inside a transaction.

        Commits when the block exits normally, rolls back and re-raises when
        it raises. Initializes the database lazily on first use.
        """
        if not self._initialized and not await self.initialize():
            raise RuntimeError("Database is not available")

        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception as e:
                await session.rollback()
                logger.error(f"Rolled back database session: {e}")
                raise

    async def health_check(self) -> Dict[str, Any]:
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
        except Exception as e:
            return {"status": "unhealthy", "error": str(e)}

        return {
            "status": "healthy",
            "initialized": self._initialized,
            "pool": await self.get_pool_status(),
        }

    async def get_pool_status(self) -> Dict[str, Any]:
        """Connection counts and a healthy/warning/critical rating by utilization."""
        if self.engine is None:
            return {"status": "not_initialized", "error": "Engine not created"}

        pool = self.engine.pool
        if isinstance(pool, NullPool):
            return {"pool_type": "NullPool", "status": "no_pooling"}

        try:
            checked_out = pool.checkedout()
            capacity = pool.size() + settings.db_max_overflow
            utilization = checked_out / max(capacity, 1)
        except Exception as e:
            logger.error(f"Could not read pool status: {e}")
            return {"status": "error", "error": str(e)}

        if utilization > POOL_CRITICAL:
            rating = "critical"
        elif utilization > POOL_WARNING:
            rating = "warning"
        else:
            rating = "healthy"

        return {
            "pool_type": type(pool).__name__,
            "status": rating,
            "size": pool.size(),
            "checked_in": pool.checkedin(),
            "checked_out": checked_out,
            "overflow": pool.overflow(),
            "max_connections": capacity,
            "utilization": f"{utilization:.1%}",
        }


_database: Optional[Database] = None


def get_database() -> Database:
    global _database
    if _database is None:
        _database = Database()
    return _database


async def init_database() -> bool:
    return await get_database().initialize()


async def close_database():
    global _database
    if _database is not None:
        await _database.close()
        _database = None
