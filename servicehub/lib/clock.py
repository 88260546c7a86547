"""
Time helpers shared by the booking engine.

All comparisons happen on timezone-aware UTC datetimes. SQLite hands back
naive datetimes for DateTime(timezone=True) columns, so values read from the
database go through `ensure_utc` before comparison.
"""
from datetime import date, datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from servicehub.lib.settings import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_hhmm(value: str) -> time:
    """Parse an `HH:MM` string; raises ValueError on anything else."""
    if not isinstance(value, str) or len(value) != 5 or value[2] != ":":
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    hours, minutes = value[:2], value[3:]
    if not (hours.isdigit() and minutes.isdigit()):
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    return time(int(hours), int(minutes))


def format_hhmm(value: time) -> str:
    return f"{value.hour:02d}:{value.minute:02d}"


def slot_start(scheduled_date: date, start_time: str) -> datetime:
    """Scheduled start of a slot as an aware UTC datetime."""
    local = datetime.combine(
        scheduled_date,
        parse_hhmm(start_time),
        tzinfo=ZoneInfo(settings.booking_timezone),
    )
    return local.astimezone(timezone.utc)


def local_date(now: Optional[datetime] = None) -> date:
    """Calendar date of `now` in BOOKING_TIMEZONE, the zone scheduled dates are read in."""
    return (now or utcnow()).astimezone(ZoneInfo(settings.booking_timezone)).date()
