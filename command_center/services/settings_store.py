"""
Settings store.

One container for the staff list, pipeline columns and general app
settings. load() merges the in-memory last-known state with what is
persisted (persisted wins per key, defaults fill gaps). Every mutation
updates memory at once and schedules a single debounced write-back.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from config import settings
from ..database.exceptions import EntityNotFoundError, ValidationError
from ..models.settings import (
    APP_SETTINGS_KEY,
    PIPELINES_KEY,
    STAFF_KEY,
    AppSettings,
    AppSettingsState,
    PipelineColumn,
    PipelineConfig,
    StaffEntry,
    default_state,
)
from ..utils.debounce import Debouncer

logger = logging.getLogger(__name__)

PIPELINE_NAMES = ("leads", "quotes", "production")


class SettingsStore:
    """In-memory settings state with debounced persistence."""

    def __init__(self, repository=None, save_delay: Optional[float] = None):
        if repository is None:
            from ..database.repositories import get_app_settings_repository
            repository = get_app_settings_repository()
        self.repository = repository
        self._state: AppSettingsState = default_state()
        self._loaded = False
        self._debouncer = Debouncer(
            self._save,
            settings.settings_save_delay_seconds if save_delay is None else save_delay,
            name="settings-save",
        )

    @property
    def state(self) -> AppSettingsState:
        return self._state

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def save_pending(self) -> bool:
        return self._debouncer.pending

    # ==================== LIFECYCLE ====================

    async def load(self) -> AppSettingsState:
        """Reconcile local state with persisted values."""
        persisted = await self.repository.get_all()

        staff = self._state.staff
        pipelines = self._state.pipelines
        app_settings = self._state.app_settings

        try:
            if persisted.get(STAFF_KEY) is not None:
                staff = [StaffEntry.model_validate(s) for s in persisted[STAFF_KEY]]
        except PydanticValidationError as e:
            logger.warning(f"Ignoring invalid persisted staff settings: {e}")
        try:
            if persisted.get(PIPELINES_KEY) is not None:
                pipelines = PipelineConfig.model_validate(persisted[PIPELINES_KEY])
        except PydanticValidationError as e:
            logger.warning(f"Ignoring invalid persisted pipeline settings: {e}")
        try:
            if persisted.get(APP_SETTINGS_KEY) is not None:
                app_settings = AppSettings.model_validate(persisted[APP_SETTINGS_KEY])
        except PydanticValidationError as e:
            logger.warning(f"Ignoring invalid persisted app settings: {e}")

        self._state = AppSettingsState(staff=staff, pipelines=pipelines, app_settings=app_settings)
        self._loaded = True
        logger.info(f"Settings loaded ({len(persisted)} persisted keys)")
        return self._state

    async def _save(self) -> None:
        await self.repository.set_many({
            STAFF_KEY: [s.model_dump(mode="json") for s in self._state.staff],
            PIPELINES_KEY: self._state.pipelines.model_dump(mode="json"),
            APP_SETTINGS_KEY: self._state.app_settings.model_dump(mode="json"),
        })
        logger.info("Settings saved")

    def _changed(self) -> None:
        self._debouncer.trigger()

    async def flush(self) -> None:
        """Write any pending change now."""
        await self._debouncer.flush()

    def snapshot(self) -> Dict[str, Any]:
        return self._state.model_dump(mode="json")

    def replace(
        self,
        staff: Optional[List[StaffEntry]] = None,
        pipelines: Optional[PipelineConfig] = None,
        app_settings: Optional[AppSettings] = None,
    ) -> AppSettingsState:
        """Replace whichever blobs are given."""
        if staff is not None:
            self._state.staff = list(staff)
        if pipelines is not None:
            self._state.pipelines = pipelines
        if app_settings is not None:
            self._state.app_settings = app_settings
        self._changed()
        return self._state

    def set_app_settings(self, app_settings: AppSettings) -> AppSettings:
        self._state.app_settings = app_settings
        self._changed()
        return app_settings

    # ==================== STAFF ====================

    def _staff_index(self, staff_id: str) -> int:
        for index, member in enumerate(self._state.staff):
            if member.id == staff_id:
                return index
        raise EntityNotFoundError(f"Staff member {staff_id} not found")

    def upsert_staff(self, member: StaffEntry) -> StaffEntry:
        """Mirror a staff_members row into the blob. Capacity reads the table, not this list."""
        try:
            index = self._staff_index(member.id)
        except EntityNotFoundError:
            self._state.staff.append(member)
        else:
            self._state.staff[index] = member
        self._changed()
        return member

    def delete_staff(self, staff_id: str) -> bool:
        before = len(self._state.staff)
        self._state.staff = [s for s in self._state.staff if s.id != staff_id]
        if len(self._state.staff) == before:
            return False
        self._changed()
        return True

    # ==================== PIPELINE COLUMNS ====================

    def _columns(self, pipeline: str) -> List[PipelineColumn]:
        if pipeline not in PIPELINE_NAMES:
            raise EntityNotFoundError(f"Unknown pipeline: {pipeline}")
        return getattr(self._state.pipelines, pipeline)

    def add_column(self, pipeline: str, column: PipelineColumn) -> PipelineColumn:
        columns = self._columns(pipeline)
        if any(c.id == column.id for c in columns):
            raise ValidationError(f"Column {column.id} already exists in {pipeline}")
        columns.append(column)
        self._changed()
        return column

    def update_column(self, pipeline: str, column_id: str, updates: Dict[str, Any]) -> PipelineColumn:
        columns = self._columns(pipeline)
        for index, column in enumerate(columns):
            if column.id == column_id:
                merged = column.model_dump()
                merged.update({k: v for k, v in updates.items() if k != "id" and v is not None})
                columns[index] = PipelineColumn.model_validate(merged)
                self._changed()
                return columns[index]
        raise EntityNotFoundError(f"Column {column_id} not found in {pipeline}")

    def delete_column(self, pipeline: str, column_id: str) -> bool:
        """Remove a column. Jobs still carrying its id keep it as an orphaned status."""
        columns = self._columns(pipeline)
        remaining = [c for c in columns if c.id != column_id]
        if len(remaining) == len(columns):
            return False
        setattr(self._state.pipelines, pipeline, remaining)
        self._changed()
        return True

    def reorder_columns(self, pipeline: str, column_ids: List[str]) -> List[PipelineColumn]:
        """
        Reorder to match column_ids; position in the list is the order (0..n-1).

        column_ids must name every existing column exactly once.
        """
        columns = {c.id: c for c in self._columns(pipeline)}
        if len(column_ids) != len(set(column_ids)) or set(column_ids) != set(columns):
            raise ValidationError(
                f"Reorder for {pipeline} must list each of its {len(columns)} columns exactly once"
            )
        reordered = [columns[column_id] for column_id in column_ids]
        setattr(self._state.pipelines, pipeline, reordered)
        self._changed()
        return reordered


_settings_store: Optional[SettingsStore] = None


def get_settings_store() -> SettingsStore:
    """Get the settings store singleton."""
    global _settings_store
    if _settings_store is None:
        _settings_store = SettingsStore()
    return _settings_store
