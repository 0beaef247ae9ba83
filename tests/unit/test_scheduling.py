"""
Unit tests for install scheduling: capacity, confirmation window and the
install-stage transitions.
"""

import pytest
from datetime import date, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch

from command_center.database.exceptions import EntityNotFoundError
from command_center.services.scheduling import (
    LockoutViolation,
    SchedulingError,
    SchedulingService,
    booked_hours,
    capacity_calendar,
    confirm_tentative,
    daily_install_capacity,
    day_capacity,
    days_until,
    ensure_within_confirm_window,
    schedule_confirmed,
    schedule_tentative,
    unschedule_confirmed,
    unschedule_tentative,
    within_confirm_window,
)

TODAY = date(2026, 3, 2)  # a Monday


def make_job(**overrides):
    fields = {
        "id": 1,
        "install_stage": "pending_posts",
        "post_install_date": None,
        "panel_install_date": None,
        "tentative_post_date": None,
        "tentative_panel_date": None,
        "post_install_duration": 8,
        "panel_install_duration": 6,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


# ============================================================
# CAPACITY
# ============================================================

class TestCapacity:

    def test_daily_capacity_counts_active_install_staff(self, sample_staff):
        # mike + tom; "all", inactive josh and sales wayne are excluded
        assert daily_install_capacity(sample_staff) == 16

    def test_booked_hours_sums_confirmed_only(self):
        day = TODAY
        jobs = [
            make_job(post_install_date=day, post_install_duration=8),
            make_job(panel_install_date=day, panel_install_duration=6),
            make_job(tentative_post_date=day, post_install_duration=10),
        ]
        assert booked_hours(jobs, day) == 14

    def test_missing_duration_counts_as_zero(self):
        jobs = [make_job(post_install_date=TODAY, post_install_duration=None)]
        assert booked_hours(jobs, TODAY) == 0

    def test_day_capacity_over(self):
        jobs = [make_job(post_install_date=TODAY, post_install_duration=20)]
        state = day_capacity(jobs, TODAY, 16)
        assert state.booked_hours == 20
        assert state.percent == 125
        assert state.is_over_capacity is True

    def test_day_capacity_exactly_full_is_not_over(self):
        jobs = [make_job(post_install_date=TODAY, post_install_duration=16)]
        state = day_capacity(jobs, TODAY, 16)
        assert state.is_over_capacity is False
        assert state.would_overbook is False

    def test_candidate_hours_flag_overbooking(self):
        jobs = [make_job(post_install_date=TODAY, post_install_duration=12)]
        state = day_capacity(jobs, TODAY, 16, candidate_hours=8)
        assert state.is_over_capacity is False
        assert state.would_overbook is True

    def test_zero_capacity(self):
        assert day_capacity([], TODAY, 0).percent == 0
        busy = [make_job(post_install_date=TODAY)]
        assert day_capacity(busy, TODAY, 0).percent == 100

    def test_calendar_skips_weekends(self, sample_staff):
        calendar = capacity_calendar([], sample_staff, TODAY, days=7)
        assert [d.day.weekday() for d in calendar] == [0, 1, 2, 3, 4]
        assert all(d.capacity == 16 for d in calendar)

    def test_day_to_dict(self):
        data = day_capacity([], TODAY, 16).to_dict()
        assert data["date"] == "2026-03-02"
        assert data["capacity"] == 16


# ============================================================
# CONFIRMATION WINDOW
# ============================================================

class TestConfirmWindow:

    def test_days_until(self):
        assert days_until(TODAY + timedelta(days=5), TODAY) == 5
        assert days_until(TODAY - timedelta(days=1), TODAY) == -1

    def test_boundary_is_inside_window(self):
        assert within_confirm_window(TODAY + timedelta(days=14), TODAY, 14) is True
        assert within_confirm_window(TODAY + timedelta(days=15), TODAY, 14) is False

    def test_past_dates_allowed(self):
        ensure_within_confirm_window(TODAY - timedelta(days=30), TODAY, 14)

    def test_beyond_window_raises(self):
        with pytest.raises(LockoutViolation) as exc:
            ensure_within_confirm_window(TODAY + timedelta(days=15), TODAY, 14)
        assert "15 days" in str(exc.value)

    def test_lockout_is_scheduling_error(self):
        assert issubclass(LockoutViolation, SchedulingError)


# ============================================================
# ACTIONS
# ============================================================

class TestScheduleTentative:

    def test_sets_tentative_and_stage(self):
        job = make_job(post_install_date=TODAY)
        target = TODAY + timedelta(days=40)
        result = schedule_tentative(job, "posts", target, notes="Client prefers mornings")

        assert result.applied is True
        assert result.updates == {
            "tentative_post_date": target,
            "post_install_date": None,
            "install_stage": "tentative_posts",
            "tentative_notes": "Client prefers mornings",
        }

    def test_far_future_is_allowed(self):
        result = schedule_tentative(make_job(), "panels", TODAY + timedelta(days=200))
        assert result.applied is True
        assert result.updates["install_stage"] == "tentative_panels"

    def test_completed_job_rejected(self):
        result = schedule_tentative(make_job(install_stage="completed"), "posts", TODAY)
        assert result.applied is False
        assert result.updates == {}

    def test_unknown_milestone(self):
        with pytest.raises(SchedulingError):
            schedule_tentative(make_job(), "gates", TODAY)


class TestUnscheduleTentative:

    def test_resets_tentative_stage(self):
        job = make_job(install_stage="tentative_posts", tentative_post_date=TODAY)
        result = unschedule_tentative(job, "posts")
        assert result.updates == {"tentative_post_date": None, "install_stage": "pending_posts"}

    def test_keeps_unrelated_stage(self):
        job = make_job(install_stage="measuring", tentative_panel_date=TODAY)
        result = unschedule_tentative(job, "panels")
        assert result.updates == {"tentative_panel_date": None}

    def test_nothing_to_clear(self):
        result = unschedule_tentative(make_job(), "posts")
        assert result.applied is False


class TestConfirmTentative:

    def test_inside_window_moves_date(self):
        target = TODAY + timedelta(days=10)
        job = make_job(install_stage="tentative_posts", tentative_post_date=target)
        result = confirm_tentative(job, "posts", TODAY, 14)

        assert result.applied is True
        assert result.updates == {
            "post_install_date": target,
            "tentative_post_date": None,
            "install_stage": "posts_scheduled",
        }

    def test_beyond_window_is_rejected_without_changes(self):
        job = make_job(install_stage="tentative_panels", tentative_panel_date=TODAY + timedelta(days=21))
        result = confirm_tentative(job, "panels", TODAY, 14)

        assert result.applied is False
        assert result.updates == {}
        assert "within 14 days" in result.warning

    def test_missing_tentative_date(self):
        result = confirm_tentative(make_job(), "posts", TODAY, 14)
        assert result.applied is False
        assert "No tentative posts date" in result.warning


class TestConfirmedSchedule:

    def test_schedule_confirmed(self):
        target = TODAY + timedelta(days=3)
        job = make_job(tentative_panel_date=TODAY + timedelta(days=30))
        result = schedule_confirmed(job, "panels", target, TODAY, 14)
        assert result.updates == {
            "panel_install_date": target,
            "tentative_panel_date": None,
            "install_stage": "panels_scheduled",
        }

    def test_schedule_confirmed_lockout(self):
        result = schedule_confirmed(make_job(), "posts", TODAY + timedelta(days=15), TODAY, 14)
        assert result.applied is False
        assert result.to_dict() == {"applied": False, "updates": {}, "warning": result.warning}

    def test_unschedule_confirmed(self):
        job = make_job(install_stage="panels_scheduled", panel_install_date=TODAY)
        result = unschedule_confirmed(job, "panels")
        assert result.updates == {"panel_install_date": None, "install_stage": "pending_panels"}

    def test_result_dates_serialised(self):
        result = schedule_confirmed(make_job(), "posts", TODAY, TODAY, 14)
        assert result.to_dict()["updates"]["post_install_date"] == "2026-03-02"


# ============================================================
# SERVICE
# ============================================================

@pytest.fixture
def repos(sample_staff):
    jobs = Mock()
    jobs.get_by_id = AsyncMock(return_value=None)
    jobs.update = AsyncMock()
    jobs.get_scheduled_between = AsyncMock(return_value=[])
    staff = Mock()
    staff.get_install_staff = AsyncMock(return_value=[s for s in sample_staff if s.role == "install"])
    return jobs, staff


class TestSchedulingService:

    @pytest.mark.asyncio
    async def test_missing_job_raises_not_found(self, repos):
        jobs, staff = repos
        service = SchedulingService(jobs, staff)
        with pytest.raises(EntityNotFoundError):
            await service.schedule_tentative(99, "posts", TODAY)

    @pytest.mark.asyncio
    async def test_applied_result_is_persisted(self, repos):
        jobs, staff = repos
        jobs.get_by_id.return_value = make_job()
        service = SchedulingService(jobs, staff)

        result = await service.schedule_tentative(1, "posts", TODAY + timedelta(days=60))

        assert result.applied is True
        jobs.update.assert_awaited_once_with(1, result.updates)

    @pytest.mark.asyncio
    async def test_lockout_is_not_persisted(self, repos):
        jobs, staff = repos
        target = TODAY + timedelta(days=30)
        jobs.get_by_id.return_value = make_job(tentative_post_date=target)
        service = SchedulingService(jobs, staff)

        with patch("command_center.services.scheduling.get_local_today", return_value=TODAY):
            result = await service.confirm_tentative(1, "posts")

        assert result.applied is False
        jobs.update.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_overbooking_warns_but_books(self, repos):
        jobs, staff = repos
        target = TODAY + timedelta(days=2)
        job = make_job(id=1, post_install_duration=8)
        other = make_job(id=2, post_install_date=target, post_install_duration=12)
        jobs.get_by_id.return_value = job
        jobs.get_scheduled_between.return_value = [other]
        service = SchedulingService(jobs, staff)

        with patch("command_center.services.scheduling.get_local_today", return_value=TODAY):
            result = await service.schedule_confirmed(1, "posts", target)

        assert result.applied is True
        assert "overbooked" in result.warning
        jobs.update.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rescheduling_same_job_does_not_count_itself(self, repos):
        jobs, staff = repos
        target = TODAY + timedelta(days=2)
        job = make_job(id=1, post_install_date=target, post_install_duration=16)
        jobs.get_by_id.return_value = job
        jobs.get_scheduled_between.return_value = [job]
        service = SchedulingService(jobs, staff)

        with patch("command_center.services.scheduling.get_local_today", return_value=TODAY):
            result = await service.schedule_confirmed(1, "posts", target)

        assert result.warning is None

    @pytest.mark.asyncio
    async def test_same_day_sibling_milestone_counts(self, repos):
        jobs, staff = repos
        staff.get_install_staff.return_value = [SimpleNamespace(id="mike", role="install", active=True, daily_capacity_hours=8)]
        target = TODAY + timedelta(days=2)
        job = make_job(id=1, panel_install_date=target, panel_install_duration=8, post_install_duration=6)
        jobs.get_by_id.return_value = job
        jobs.get_scheduled_between.return_value = [job]
        service = SchedulingService(jobs, staff)

        with patch("command_center.services.scheduling.get_local_today", return_value=TODAY):
            result = await service.schedule_confirmed(1, "posts", target)

        assert result.applied is True
        assert "14h booked against 8h" in result.warning

    @pytest.mark.asyncio
    async def test_capacity_calendar(self, repos):
        jobs, staff = repos
        jobs.get_scheduled_between.return_value = [make_job(post_install_date=TODAY, post_install_duration=8)]
        service = SchedulingService(jobs, staff)

        calendar = await service.get_capacity_calendar(TODAY, days=7)

        assert len(calendar) == 5
        assert calendar[0].booked_hours == 8
        assert calendar[0].capacity == 16
        jobs.get_scheduled_between.assert_awaited_once_with(TODAY, TODAY + timedelta(days=7))
