"""
Unit tests for the settings store: load reconciliation, staff and pipeline
column edits, and debounced persistence.
"""

import asyncio
import pytest
from unittest.mock import AsyncMock, Mock

from command_center.database.exceptions import EntityNotFoundError, ValidationError
from command_center.models.settings import (
    APP_SETTINGS_KEY,
    PIPELINES_KEY,
    STAFF_KEY,
    AppSettings,
    PipelineColumn,
    StaffEntry,
)
from command_center.services.settings_store import SettingsStore


@pytest.fixture
def repository():
    repo = Mock()
    repo.get_all = AsyncMock(return_value={})
    repo.set_many = AsyncMock()
    return repo


@pytest.fixture
def store(repository):
    return SettingsStore(repository=repository, save_delay=0.02)


# ============================================================
# LOAD
# ============================================================

class TestLoad:

    @pytest.mark.asyncio
    async def test_defaults_when_nothing_persisted(self, store):
        state = await store.load()

        assert store.loaded is True
        assert state.app_settings.company_name == "PROBUILD"
        assert [c.id for c in state.pipelines.leads][0] == "new_lead"
        assert any(s.id == "all" for s in state.staff)

    @pytest.mark.asyncio
    async def test_persisted_wins_per_key(self, store, repository):
        repository.get_all.return_value = {
            APP_SETTINGS_KEY: {"company_name": "Fence Co", "default_work_hours_per_day": 7},
        }
        state = await store.load()

        assert state.app_settings.company_name == "Fence Co"
        # Keys not persisted keep their defaults
        assert len(state.pipelines.quotes) == 8

    @pytest.mark.asyncio
    async def test_invalid_blob_ignored(self, store, repository):
        repository.get_all.return_value = {STAFF_KEY: [{"id": "x"}], PIPELINES_KEY: {"leads": "nope"}}
        state = await store.load()

        assert any(s.id == "mike" for s in state.staff)
        assert len(state.pipelines.leads) == 6

    @pytest.mark.asyncio
    async def test_load_does_not_schedule_save(self, store, repository):
        await store.load()
        assert store.save_pending is False


# ============================================================
# PERSISTENCE
# ============================================================

class TestPersistence:

    @pytest.mark.asyncio
    async def test_burst_of_edits_saves_once(self, store, repository):
        store.set_app_settings(AppSettings(company_name="A"))
        store.set_app_settings(AppSettings(company_name="B"))
        store.update_column("leads", "new_lead", {"title": "Fresh Enquiry"})

        await asyncio.sleep(0.1)

        repository.set_many.assert_awaited_once()
        saved = repository.set_many.call_args.args[0]
        assert saved[APP_SETTINGS_KEY]["company_name"] == "B"
        assert saved[PIPELINES_KEY]["leads"][0]["title"] == "Fresh Enquiry"
        assert STAFF_KEY in saved

    @pytest.mark.asyncio
    async def test_flush_writes_pending(self, repository):
        store = SettingsStore(repository=repository, save_delay=60)
        store.set_app_settings(AppSettings(company_name="Now"))

        await store.flush()

        repository.set_many.assert_awaited_once()
        assert store.save_pending is False

    @pytest.mark.asyncio
    async def test_replace_only_given_blobs(self, store):
        store.replace(app_settings=AppSettings(company_name="Only this"))
        assert store.state.app_settings.company_name == "Only this"
        assert len(store.state.staff) > 0
        await store.flush()

    @pytest.mark.asyncio
    async def test_snapshot_is_json_ready(self, store):
        snapshot = store.snapshot()
        assert set(snapshot) == {"staff", "pipelines", "app_settings"}
        assert isinstance(snapshot["pipelines"]["production"], list)


# ============================================================
# STAFF
# ============================================================

class TestStaff:

    @pytest.mark.asyncio
    async def test_upsert_replaces_in_place(self, store):
        position = [s.id for s in store.state.staff].index("mike")
        store.upsert_staff(StaffEntry(id="mike", name="Mike", role="install", daily_capacity_hours=4))

        assert store.state.staff[position].daily_capacity_hours == 4
        assert [s.id for s in store.state.staff].count("mike") == 1
        await store.flush()

    @pytest.mark.asyncio
    async def test_upsert_appends_new(self, store):
        store.upsert_staff(StaffEntry(id="lee", name="Lee", role="install"))
        assert store.state.staff[-1].id == "lee"
        assert store.save_pending is True
        await store.flush()

    @pytest.mark.asyncio
    async def test_delete(self, store):
        assert store.delete_staff("mike") is True
        assert store.delete_staff("mike") is False
        await store.flush()


# ============================================================
# PIPELINE COLUMNS
# ============================================================

class TestColumns:

    @pytest.mark.asyncio
    async def test_add_column(self, store):
        store.add_column("quotes", PipelineColumn(id="won", title="Won"))
        assert store.state.pipelines.quotes[-1].id == "won"
        with pytest.raises(ValidationError):
            store.add_column("quotes", PipelineColumn(id="won", title="Won again"))
        await store.flush()

    def test_unknown_pipeline(self, store):
        with pytest.raises(EntityNotFoundError):
            store.add_column("warehouse", PipelineColumn(id="x", title="X"))

    @pytest.mark.asyncio
    async def test_update_ignores_none(self, store):
        column = store.update_column("production", "complete", {"title": None, "color": "bg-black"})
        assert column.title == "Complete"
        assert column.color == "bg-black"
        await store.flush()

    def test_update_missing_column(self, store):
        with pytest.raises(EntityNotFoundError):
            store.update_column("production", "nope", {"title": "X"})

    @pytest.mark.asyncio
    async def test_delete_column(self, store):
        assert store.delete_column("leads", "deposit_paid") is True
        assert store.delete_column("leads", "deposit_paid") is False
        assert "deposit_paid" not in [c.id for c in store.state.pipelines.leads]
        await store.flush()

    @pytest.mark.asyncio
    async def test_reorder_is_list_order(self, store):
        ids = ["complete", "inst_panels", "man_panels", "inst_posts", "man_posts"]
        columns = store.reorder_columns("production", ids)
        assert [c.id for c in columns] == ids
        assert [c.id for c in store.state.pipelines.production] == ids
        await store.flush()

    @pytest.mark.parametrize("ids", [
        ["complete", "inst_panels"],
        ["complete", "complete", "man_panels", "inst_posts", "man_posts"],
        ["complete", "inst_panels", "man_panels", "inst_posts", "unknown"],
    ])
    def test_reorder_requires_permutation(self, store, ids):
        with pytest.raises(ValidationError):
            store.reorder_columns("production", ids)
