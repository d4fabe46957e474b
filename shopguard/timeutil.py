"""UTC time helpers shared by models and services."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def age_in_days(since: datetime, now: datetime | None = None) -> int:
    """Whole days elapsed since `since` (floored, never negative)."""
    now = now or utcnow()
    seconds = (now - as_utc(since)).total_seconds()
    return max(0, int(seconds // 86400))


def hours_between(start: datetime, end: datetime) -> float:
    return (as_utc(end) - as_utc(start)).total_seconds() / 3600
