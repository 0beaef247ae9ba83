"""
Centralized datetime and timezone utilities.

Database timestamps are naive local time in the configured business timezone.
ServiceM8 timestamps arrive as naive strings in the account's fixed UTC offset
and are converted to aware UTC datetimes before any arithmetic.
"""

from datetime import datetime, date, timedelta, timezone
from typing import Optional
import pytz

from config import settings

SERVICEM8_ZERO_STAMP = "0000-00-00 00:00:00"
SERVICEM8_STAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_local_tz() -> pytz.BaseTzInfo:
    """Get the configured local timezone."""
    return pytz.timezone(settings.timezone)


def get_local_now() -> datetime:
    """Get current time in local timezone (naive)."""
    local_tz = get_local_tz()
    return datetime.now(local_tz).replace(tzinfo=None)


def get_local_today() -> date:
    """Today's calendar date in the business timezone."""
    return get_local_now().date()


def to_naive_local(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Convert any datetime to naive local time for database storage.

    Aware datetimes are shifted into the local timezone first. Naive ones are
    assumed to already be local.
    """
    if dt is None:
        return None

    if dt.tzinfo is not None:
        local_dt = dt.astimezone(get_local_tz())
        return local_dt.replace(tzinfo=None)

    return dt


def parse_servicem8_timestamp(
    stamp: Optional[str],
    utc_offset_hours: Optional[int] = None,
) -> Optional[datetime]:
    """
    Parse a ServiceM8 timestamp into an aware UTC datetime.

    ServiceM8 sends "YYYY-MM-DD HH:MM:SS" with no zone, in a fixed offset
    (UTC+8 for this account). ISO strings with their own offset are honoured.
    Blank, zero ("0000-00-00 00:00:00") and malformed stamps give None.
    """
    if not stamp or not isinstance(stamp, str):
        return None

    stamp = stamp.strip()
    if not stamp or stamp == SERVICEM8_ZERO_STAMP or stamp.startswith("0000-00-00"):
        return None

    if utc_offset_hours is None:
        utc_offset_hours = settings.servicem8_source_utc_offset_hours
    source_tz = timezone(timedelta(hours=utc_offset_hours))

    try:
        parsed = datetime.strptime(stamp, SERVICEM8_STAMP_FORMAT)
    except ValueError:
        try:
            parsed = datetime.fromisoformat(stamp.replace("Z", "+00:00"))
        except ValueError:
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=source_tz)
    return parsed.astimezone(timezone.utc)


def whole_days_between(later: datetime, earlier: datetime) -> int:
    """Whole days elapsed, truncated toward zero."""
    seconds = (later - earlier).total_seconds()
    return int(seconds / 86400)
