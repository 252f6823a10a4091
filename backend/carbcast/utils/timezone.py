from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
ONE_DAY = timedelta(days=1)
SECONDS_PER_DAY = 86400


def ensure_aware(dt: datetime) -> datetime:
    """
    Returns an aware datetime.
    Assumes naive datetimes are UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def fixed_offset(minutes: int) -> timezone:
    if minutes == 0:
        return timezone.utc
    return timezone(timedelta(minutes=minutes))


def fixed_offset_for_zone(name: str, at: Optional[datetime] = None) -> timezone:
    """
    Freezes the UTC offset a named zone has at `at` (default: now).
    Schedules use fixed offsets so daylight-saving jumps never move a boundary.
    """
    when = ensure_aware(at) if at is not None else datetime.now(timezone.utc)
    offset = when.astimezone(ZoneInfo(name)).utcoffset()
    if not offset:
        return timezone.utc
    return timezone(offset)


def time_of_day(dt: datetime, tz: timezone = timezone.utc) -> timedelta:
    """Offset of `dt` from the preceding midnight of the reference zone."""
    shift = tz.utcoffset(None)
    return (ensure_aware(dt) - EPOCH + shift) % ONE_DAY


def start_of_day(dt: datetime, tz: timezone = timezone.utc) -> datetime:
    return ensure_aware(dt) - time_of_day(dt, tz)


def minutes_between(start: datetime, end: datetime) -> float:
    return (ensure_aware(end) - ensure_aware(start)).total_seconds() / 60.0


def format_time(dt: datetime, tz: timezone = timezone.utc) -> str:
    """
    Returns HH:MM in the reference zone.
    """
    return ensure_aware(dt).astimezone(tz).strftime("%H:%M")
