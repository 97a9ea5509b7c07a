from __future__ import annotations

from datetime import datetime, timezone

from dateutil.parser import parse as parse_dt

__all__ = ["now_utc", "ensure_utc", "parse_datetime", "to_db", "from_db"]


def now_utc() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    # Naive datetimes are taken to be UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: str | datetime) -> datetime:
    """Parse an ISO-ish timestamp (or pass through a datetime) into aware UTC.

    Raises ValueError / TypeError for anything that is not a timestamp.
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str) or not value.strip():
        raise TypeError(f"not a timestamp: {value!r}")
    return ensure_utc(parse_dt(value))


def to_db(value: datetime | None) -> str | None:
    """Format for storage: UTC, second precision, so SQL string order == time order."""
    if value is None:
        return None
    return ensure_utc(value).replace(microsecond=0).isoformat()


def from_db(value: str | None) -> datetime | None:
    if not value:
        return None
    return ensure_utc(datetime.fromisoformat(value))
