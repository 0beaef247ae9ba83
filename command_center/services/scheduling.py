"""
Install capacity and scheduling rules.

Capacity is plain arithmetic: the hours of confirmed installs booked on a day
against the summed daily hours of active install staff. Tentative dates are
advance planning and never count against capacity. Confirming a date is only
allowed inside the confirmation window (14 days by default).

install_stage moves only through the actions below:

    pending_posts -> tentative_posts <-> posts_scheduled -> pending_panels
    -> tentative_panels <-> panels_scheduled -> completed
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Literal, Optional

from config import settings
from ..database.models import InstallStageEnum
from ..database.exceptions import EntityNotFoundError
from ..monitoring import record_schedule_action
from ..utils.datetime_utils import get_local_today

logger = logging.getLogger(__name__)

Milestone = Literal["posts", "panels"]

ALL_STAFF_ID = "all"


class SchedulingError(Exception):
    """A scheduling action could not be applied."""
    pass


class LockoutViolation(SchedulingError):
    """Confirmed date is further out than the confirmation window."""
    pass


@dataclass
class DayCapacity:
    day: date
    booked_hours: int
    capacity: int
    percent: int
    is_over_capacity: bool
    would_overbook: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.day.isoformat(),
            "booked_hours": self.booked_hours,
            "capacity": self.capacity,
            "percent": self.percent,
            "is_over_capacity": self.is_over_capacity,
            "would_overbook": self.would_overbook,
        }


@dataclass
class ScheduleResult:
    """
    Outcome of a scheduling action.

    When applied is False, updates is empty and nothing should be persisted.
    """
    applied: bool
    updates: Dict[str, Any] = field(default_factory=dict)
    warning: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "applied": self.applied,
            "updates": {k: (v.isoformat() if isinstance(v, date) else v) for k, v in self.updates.items()},
            "warning": self.warning,
        }


# Field names per milestone
_FIELDS = {
    "posts": {
        "confirmed": "post_install_date",
        "tentative": "tentative_post_date",
        "duration": "post_install_duration",
        "pending": InstallStageEnum.PENDING_POSTS,
        "tentative_stage": InstallStageEnum.TENTATIVE_POSTS,
        "scheduled": InstallStageEnum.POSTS_SCHEDULED,
    },
    "panels": {
        "confirmed": "panel_install_date",
        "tentative": "tentative_panel_date",
        "duration": "panel_install_duration",
        "pending": InstallStageEnum.PENDING_PANELS,
        "tentative_stage": InstallStageEnum.TENTATIVE_PANELS,
        "scheduled": InstallStageEnum.PANELS_SCHEDULED,
    },
}

_SIBLING = {"posts": "panels", "panels": "posts"}


def _fields(milestone: str) -> Dict[str, Any]:
    try:
        return _FIELDS[milestone]
    except KeyError:
        raise SchedulingError(f"Unknown milestone: {milestone}")


# ==================== CAPACITY ====================

def daily_install_capacity(staff: Iterable[Any]) -> int:
    """Sum of daily hours over active install staff, ignoring the "all" filter entry."""
    return sum(
        (member.daily_capacity_hours or 0)
        for member in staff
        if member.role == "install" and member.active and member.id != ALL_STAFF_ID
    )


def booked_hours(jobs: Iterable[Any], day: date) -> int:
    """Hours of confirmed post and panel installs on a day."""
    total = 0
    for job in jobs:
        if job.post_install_date == day:
            total += job.post_install_duration or 0
        if job.panel_install_date == day:
            total += job.panel_install_duration or 0
    return total


def day_capacity(jobs: Iterable[Any], day: date, capacity: int, candidate_hours: int = 0) -> DayCapacity:
    """
    Capacity state for one day.

    is_over_capacity: booked > capacity.
    would_overbook: booked + candidate_hours > capacity, a softer warning
    that colours the calendar but does not block scheduling.
    """
    booked = booked_hours(jobs, day)
    if capacity:
        percent = round(booked / capacity * 100)
    else:
        percent = 100 if booked else 0
    return DayCapacity(
        day=day,
        booked_hours=booked,
        capacity=capacity,
        percent=percent,
        is_over_capacity=booked > capacity,
        would_overbook=booked + candidate_hours > capacity,
    )


def capacity_calendar(
    jobs: Iterable[Any],
    staff: Iterable[Any],
    start: date,
    days: int = 28,
    candidate_hours: int = 0,
) -> List[DayCapacity]:
    """Capacity for each weekday in [start, start + days)."""
    jobs = list(jobs)
    capacity = daily_install_capacity(staff)
    calendar = []
    for offset in range(days):
        day = start + timedelta(days=offset)
        if day.weekday() >= 5:
            continue
        calendar.append(day_capacity(jobs, day, capacity, candidate_hours))
    return calendar


# ==================== LOCKOUT ====================

def days_until(target: date, today: Optional[date] = None) -> int:
    """Whole calendar days from today to target (negative in the past)."""
    return (target - (today or get_local_today())).days


def within_confirm_window(target: date, today: Optional[date] = None, window: Optional[int] = None) -> bool:
    if window is None:
        window = settings.confirm_window_days
    return days_until(target, today) <= window


def ensure_within_confirm_window(target: date, today: Optional[date] = None, window: Optional[int] = None) -> None:
    if window is None:
        window = settings.confirm_window_days
    remaining = days_until(target, today)
    if remaining > window:
        raise LockoutViolation(
            f"Cannot confirm an install {remaining} days out; "
            f"confirmed dates must be within {window} days"
        )


# ==================== ACTIONS ====================

def schedule_tentative(job: Any, milestone: Milestone, target: date, notes: Optional[str] = None) -> ScheduleResult:
    """Pencil in an advance-planning date. Clears any confirmed date for the milestone."""
    f = _fields(milestone)
    if job.install_stage == InstallStageEnum.COMPLETED.value:
        return ScheduleResult(applied=False, warning="Job installation is already completed")

    updates = {
        f["tentative"]: target,
        f["confirmed"]: None,
        "install_stage": f["tentative_stage"].value,
    }
    if notes is not None:
        updates["tentative_notes"] = notes
    return ScheduleResult(applied=True, updates=updates)


def unschedule_tentative(job: Any, milestone: Milestone) -> ScheduleResult:
    """Clear a tentative date. A job with no tentative date is left untouched."""
    f = _fields(milestone)
    if getattr(job, f["tentative"]) is None:
        return ScheduleResult(applied=False)

    updates: Dict[str, Any] = {f["tentative"]: None}
    if job.install_stage == f["tentative_stage"].value:
        updates["install_stage"] = f["pending"].value
    return ScheduleResult(applied=True, updates=updates)


def confirm_tentative(
    job: Any,
    milestone: Milestone,
    today: Optional[date] = None,
    window: Optional[int] = None,
) -> ScheduleResult:
    """
    Turn the tentative date into the confirmed date.

    Rejected (no updates) when the date is beyond the confirmation window;
    the tentative date stays as it was.
    """
    f = _fields(milestone)
    tentative = getattr(job, f["tentative"])
    if tentative is None:
        return ScheduleResult(applied=False, warning=f"No tentative {milestone} date to confirm")

    try:
        ensure_within_confirm_window(tentative, today, window)
    except LockoutViolation as e:
        return ScheduleResult(applied=False, warning=str(e))

    return ScheduleResult(applied=True, updates={
        f["confirmed"]: tentative,
        f["tentative"]: None,
        "install_stage": f["scheduled"].value,
    })


def schedule_confirmed(
    job: Any,
    milestone: Milestone,
    target: date,
    today: Optional[date] = None,
    window: Optional[int] = None,
) -> ScheduleResult:
    """Put a job directly on the confirmed calendar, clearing any tentative date."""
    f = _fields(milestone)
    try:
        ensure_within_confirm_window(target, today, window)
    except LockoutViolation as e:
        return ScheduleResult(applied=False, warning=str(e))

    return ScheduleResult(applied=True, updates={
        f["confirmed"]: target,
        f["tentative"]: None,
        "install_stage": f["scheduled"].value,
    })


def unschedule_confirmed(job: Any, milestone: Milestone) -> ScheduleResult:
    """Clear the confirmed date and send the job back to the pending queue."""
    f = _fields(milestone)
    if getattr(job, f["confirmed"]) is None:
        return ScheduleResult(applied=False)

    return ScheduleResult(applied=True, updates={
        f["confirmed"]: None,
        "install_stage": f["pending"].value,
    })


# ==================== SERVICE ====================

class SchedulingService:
    """Applies scheduling actions to stored jobs."""

    def __init__(self, job_repository=None, staff_repository=None):
        if job_repository is None:
            from ..database.repositories import get_job_repository
            job_repository = get_job_repository()
        if staff_repository is None:
            from ..database.repositories import get_staff_repository
            staff_repository = get_staff_repository()
        self.jobs = job_repository
        self.staff = staff_repository

    async def _load(self, job_id: int):
        job = await self.jobs.get_by_id(job_id)
        if not job:
            raise EntityNotFoundError(f"Job {job_id} not found")
        return job

    async def _persist(self, job_id: int, result: ScheduleResult, action: str) -> ScheduleResult:
        record_schedule_action(action, result.applied, result.warning)
        if result.applied and result.updates:
            await self.jobs.update(job_id, result.updates)
            logger.info(f"{action} applied to job {job_id}: {result.to_dict()['updates']}")
        elif result.warning:
            logger.warning(f"{action} rejected for job {job_id}: {result.warning}")
        return result

    async def schedule_tentative(
        self, job_id: int, milestone: Milestone, target: date, notes: Optional[str] = None
    ) -> ScheduleResult:
        job = await self._load(job_id)
        return await self._persist(job_id, schedule_tentative(job, milestone, target, notes), "Tentative schedule")

    async def unschedule_tentative(self, job_id: int, milestone: Milestone) -> ScheduleResult:
        job = await self._load(job_id)
        return await self._persist(job_id, unschedule_tentative(job, milestone), "Tentative unschedule")

    async def confirm_tentative(self, job_id: int, milestone: Milestone) -> ScheduleResult:
        job = await self._load(job_id)
        result = confirm_tentative(job, milestone, get_local_today())
        if result.applied:
            target = result.updates[_fields(milestone)["confirmed"]]
            result.warning = await self._capacity_warning(job, milestone, target)
        return await self._persist(job_id, result, "Confirm tentative")

    async def schedule_confirmed(self, job_id: int, milestone: Milestone, target: date) -> ScheduleResult:
        job = await self._load(job_id)
        result = schedule_confirmed(job, milestone, target, get_local_today())
        if result.applied:
            result.warning = await self._capacity_warning(job, milestone, target)
        return await self._persist(job_id, result, "Confirmed schedule")

    async def unschedule_confirmed(self, job_id: int, milestone: Milestone) -> ScheduleResult:
        job = await self._load(job_id)
        return await self._persist(job_id, unschedule_confirmed(job, milestone), "Confirmed unschedule")

    async def _capacity_warning(self, job: Any, milestone: Milestone, target: date) -> Optional[str]:
        """Overbooking only warns; the booking still goes ahead."""
        staff = await self.staff.get_install_staff()
        others = [j for j in await self.jobs.get_scheduled_between(target, target) if j.id != job.id]
        # The job's own hours that day: the milestone being moved plus its sibling if already there
        adding = getattr(job, _fields(milestone)["duration"]) or 0
        sibling = _fields(_SIBLING[milestone])
        if getattr(job, sibling["confirmed"]) == target:
            adding += getattr(job, sibling["duration"]) or 0
        state = day_capacity(others, target, daily_install_capacity(staff), adding)
        if state.would_overbook:
            return (
                f"{target.isoformat()} is overbooked: {state.booked_hours + adding}h "
                f"booked against {state.capacity}h capacity"
            )
        return None

    async def get_capacity_calendar(
        self, start: Optional[date] = None, days: int = 28, candidate_hours: int = 0
    ) -> List[DayCapacity]:
        start = start or get_local_today()
        end = start + timedelta(days=days)
        staff = await self.staff.get_install_staff()
        jobs = await self.jobs.get_scheduled_between(start, end)
        return capacity_calendar(jobs, staff, start, days, candidate_hours)


_scheduling_service: Optional[SchedulingService] = None


def get_scheduling_service() -> SchedulingService:
    """Get the scheduling service singleton."""
    global _scheduling_service
    if _scheduling_service is None:
        _scheduling_service = SchedulingService()
    return _scheduling_service
