"""Date/time helpers for slots and scheduling"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator, Optional
from zoneinfo import ZoneInfo

from app.utils.errors import ValidationError


def minutes_since_midnight(value: str) -> int:
    """'HH:MM' -> minutes; raises ValueError on malformed input"""
    hours, minutes = value.split(":")
    h, m = int(hours), int(minutes)
    if not (0 <= h <= 23 and 0 <= m <= 59):
        raise ValueError(f"Invalid time of day: {value}")
    return h * 60 + m


def format_minutes(total: int) -> str:
    return f"{total // 60:02d}:{total % 60:02d}"


def validate_time_range(start_time: str, end_time: str) -> None:
    """End must be strictly after start. No timezone is applied."""
    if minutes_since_midnight(end_time) <= minutes_since_midnight(start_time):
        raise ValidationError("End time must be after start time")


def normalize_time(value: str) -> str:
    """'9:05' -> '09:05'"""
    return format_minutes(minutes_since_midnight(value))


def date_range(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def js_weekday(day: date) -> int:
    """0 = Sunday ... 6 = Saturday"""
    return (day.weekday() + 1) % 7


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def local_to_utc(day: date, time_of_day: str, tz_name: str) -> datetime:
    """Interpret a wall-clock date/time in ``tz_name`` and return naive UTC"""
    h, m = divmod(minutes_since_midnight(time_of_day), 60)
    local = datetime.combine(day, time(h, m), tzinfo=ZoneInfo(tz_name))
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def today_in(tz_name: str, now: Optional[datetime] = None) -> date:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(tz_name)).date()
