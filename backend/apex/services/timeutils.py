"""Date helpers shared by the nightly jobs (all calendar math is UTC)."""
from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_instant(value) -> datetime | None:
    """Parse an ISO-8601 string or datetime into an aware UTC datetime."""
    if isinstance(value, datetime):
        return as_utc(value)
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return as_utc(datetime.fromisoformat(value.strip()))
    except ValueError:
        return None


def parse_date(value) -> date | None:
    """Accept a date, a datetime, or a YYYY-MM-DD / ISO timestamp string."""
    if isinstance(value, datetime):
        return as_utc(value).date()
    if isinstance(value, date):
        return value
    instant = parse_instant(value)
    return instant.date() if instant else None


def start_of_day(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def next_midnight(value: date) -> datetime:
    return start_of_day(value + timedelta(days=1))


def at_utc(value: date, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(value, time(hour=hour, minute=minute), tzinfo=timezone.utc)


def parse_hhmm(value) -> tuple[int, int] | None:
    """Parse ``H:MM``/``HH:MM`` into (hour, minute); None when malformed."""
    if not isinstance(value, str):
        return None
    parts = value.strip().split(":")
    if len(parts) != 2 or not all(part.isdigit() for part in parts):
        return None
    if len(parts[0]) not in (1, 2) or len(parts[1]) != 2:
        return None
    hour, minute = int(parts[0]), int(parts[1])
    if hour > 23 or minute > 59:
        return None
    return hour, minute
