"""
Unit tests for JobRepository.

Focus on the sync upsert: ServiceM8 fields refresh, local scheduling fields
survive.
"""

import pytest
from datetime import date
from unittest.mock import Mock
from sqlalchemy.exc import IntegrityError

from command_center.database.exceptions import DatabaseConstraintError
from command_center.database.models import JobDB
from command_center.database.repositories.jobs import (
    LOCAL_ONLY_FIELDS,
    UPDATABLE_FIELDS,
    JobRepository,
)
from command_center.services.lifecycle import map_servicem8_job


@pytest.fixture
def job_repository(mock_database):
    db, session = mock_database
    repo = JobRepository()
    repo.db = db
    return repo, session


def result_with(value):
    result = Mock()
    result.scalar_one_or_none = Mock(return_value=value)
    return result


@pytest.fixture
def existing_job():
    return JobDB(
        id=5,
        servicem8_uuid="job-uuid-1",
        job_code="#1042",
        customer_name="Old Name",
        address="12 Fence Rd",
        status="quote_pending",
        lifecycle_phase="quote",
        install_stage="posts_scheduled",
        scheduler_stage="in_production",
        post_install_date=date(2026, 3, 12),
        purchase_order_status="ordered",
    )


class TestUpsert:

    @pytest.mark.asyncio
    async def test_new_job_created(self, job_repository):
        repo, session = job_repository
        session.execute.return_value = result_with(None)

        job, created = await repo.upsert_by_servicem8_uuid({
            "servicem8_uuid": "job-uuid-9",
            "job_code": "#9",
            "customer_name": "Jane",
            "address": "1 Rd",
            "status": "new_lead",
            "lifecycle_phase": "quote",
        })

        assert created is True
        assert job.servicem8_uuid == "job-uuid-9"
        assert job.synced_at is not None
        session.add.assert_called_once()

    @pytest.mark.asyncio
    async def test_existing_job_keeps_local_fields(self, job_repository, existing_job):
        repo, session = job_repository
        session.execute.return_value = result_with(existing_job)

        job, created = await repo.upsert_by_servicem8_uuid({
            "servicem8_uuid": "job-uuid-1",
            "customer_name": "Jane Citizen",
            "status": "quote_pending",
            "lifecycle_phase": "quote",
            "scheduler_stage": "quotes_sent",
            "install_stage": "pending_posts",
            "post_install_date": None,
        })

        assert created is False
        assert job.customer_name == "Jane Citizen"
        assert job.install_stage == "posts_scheduled"
        assert job.scheduler_stage == "in_production"
        assert job.post_install_date == date(2026, 3, 12)
        assert job.purchase_order_status == "ordered"
        session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_completed_job_moves_to_recently_completed(self, job_repository):
        repo, session = job_repository
        job = JobDB(
            id=7, servicem8_uuid="u1", customer_name="Jane", address="1 Rd",
            lifecycle_phase="quote", status="quote_sent", scheduler_stage="quotes_sent",
        )
        session.execute.return_value = result_with(job)

        job, created = await repo.upsert_by_servicem8_uuid(
            map_servicem8_job({"uuid": "u1", "status": "Completed"})
        )

        assert created is False
        assert job.lifecycle_phase == "work_order"
        assert job.status == "complete"
        assert job.scheduler_stage == "recently_completed"

    @pytest.mark.asyncio
    async def test_won_quote_leaves_quotes_column(self, job_repository, existing_job):
        repo, session = job_repository
        existing_job.scheduler_stage = "quotes_sent"
        session.execute.return_value = result_with(existing_job)

        job, _ = await repo.upsert_by_servicem8_uuid({
            "servicem8_uuid": "job-uuid-1",
            "lifecycle_phase": "work_order",
            "status": "work_order",
            "scheduler_stage": "new_jobs_won",
        })

        assert job.scheduler_stage == "new_jobs_won"
        assert job.install_stage == "posts_scheduled"

    @pytest.mark.asyncio
    async def test_integrity_error_wrapped(self, job_repository):
        repo, session = job_repository
        session.execute.return_value = result_with(None)
        session.flush.side_effect = IntegrityError("insert", {}, Exception("duplicate"))

        with pytest.raises(DatabaseConstraintError):
            await repo.upsert_by_servicem8_uuid({"servicem8_uuid": "dup", "customer_name": "x", "address": "y"})


class TestUpdate:

    @pytest.mark.asyncio
    async def test_partial_update_ignores_unknown_and_identity(self, job_repository, existing_job):
        repo, session = job_repository
        session.execute.return_value = result_with(existing_job)

        job = await repo.update(5, {
            "urgency": "high",
            "servicem8_uuid": "hijack",
            "not_a_column": 1,
        })

        assert job.urgency == "high"
        assert job.servicem8_uuid == "job-uuid-1"
        assert not hasattr(job, "not_a_column")

    @pytest.mark.asyncio
    async def test_missing_job(self, job_repository):
        repo, session = job_repository
        session.execute.return_value = result_with(None)

        assert await repo.update(404, {"urgency": "low"}) is None


def test_local_fields_are_updatable_by_dashboard():
    assert LOCAL_ONLY_FIELDS <= UPDATABLE_FIELDS
    assert "servicem8_uuid" not in UPDATABLE_FIELDS


def test_to_dict_isoformats_dates(existing_job):
    data = JobRepository.to_dict(Mock(), existing_job)
    assert data["post_install_date"] == "2026-03-12"
    assert data["servicem8_uuid"] == "job-uuid-1"
