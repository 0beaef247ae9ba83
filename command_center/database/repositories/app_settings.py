"""
Repository for key/value app settings.

Values are opaque JSON blobs (staff list, pipeline configs, general settings)
owned by the settings store.
"""

import logging
from typing import Optional, Dict, Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert

from ..connection import get_database
from ..models import AppSettingDB
from ..exceptions import DatabaseOperationError
from ...utils.datetime_utils import get_local_now

logger = logging.getLogger(__name__)


class AppSettingsRepository:
    """Repository for app settings operations."""

    def __init__(self):
        self.db = get_database()

    async def get_all(self) -> Dict[str, Any]:
        """All settings as a {key: value} dict."""
        async with self.db.session() as session:
            result = await session.execute(select(AppSettingDB))
            return {row.key: row.value for row in result.scalars().all()}

    async def get(self, key: str) -> Optional[Any]:
        async with self.db.session() as session:
            result = await session.execute(
                select(AppSettingDB).where(AppSettingDB.key == key)
            )
            row = result.scalar_one_or_none()
            return row.value if row else None

    async def set_many(self, values: Dict[str, Any]) -> None:
        """Upsert several keys in one transaction."""
        if not values:
            return

        async with self.db.session() as session:
            try:
                now = get_local_now()
                for key, value in values.items():
                    stmt = insert(AppSettingDB).values(key=key, value=value, updated_at=now)
                    stmt = stmt.on_conflict_do_update(
                        index_elements=["key"],
                        set_={"value": stmt.excluded.value, "updated_at": now},
                    )
                    await session.execute(stmt)
                logger.debug(f"Saved settings keys: {', '.join(values)}")

            except Exception as e:
                logger.error(f"Failed to save settings: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to save settings: {e}")


# Singleton
_app_settings_repository: Optional[AppSettingsRepository] = None


def get_app_settings_repository() -> AppSettingsRepository:
    """Get the app settings repository singleton."""
    global _app_settings_repository
    if _app_settings_repository is None:
        _app_settings_repository = AppSettingsRepository()
    return _app_settings_repository
