"""
Clock and calendar helpers shared by the pipeline engine.

All stored timestamps are timezone-aware UTC. Anything that depends on a
civil day (due dates, "today"/"tomorrow" digests, clock times in reminder
text) is computed in the single configured business timezone, never in the
server's local time or the viewer's.
"""

from datetime import UTC, date, datetime
from functools import lru_cache
from zoneinfo import ZoneInfo

from app.config import settings

SECONDS_PER_DAY = 86400


def utc_now() -> datetime:
    return datetime.now(UTC)


@lru_cache(maxsize=4)
def _zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def business_tz() -> ZoneInfo:
    return _zone(settings.BUSINESS_TIMEZONE)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes coming from the store as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def days_between(earlier: datetime, now: datetime) -> int:
    """Whole days elapsed, floored, e.g. 47h -> 1."""
    delta = ensure_aware(now) - ensure_aware(earlier)
    return int(delta.total_seconds() // SECONDS_PER_DAY)


def business_date(moment: datetime) -> date:
    """Civil date of an instant in the business timezone."""
    return ensure_aware(moment).astimezone(business_tz()).date()


def as_due_date(value: date | datetime | None) -> date | None:
    """
    Reduce a stored due value to a calendar date.

    Due dates are written as plain dates; a timestamp column holds them as UTC
    midnight, so datetimes are read by their UTC date.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_aware(value).astimezone(UTC).date()
    return value


def business_clock(moment: datetime) -> str:
    """HH:MM wall-clock time in the business timezone."""
    return ensure_aware(moment).astimezone(business_tz()).strftime("%H:%M")
