"""Datetime parsing and UTC normalization helpers shared across the service.

Everything the store persists is an ISO 8601 string in UTC; everything the
service hands around internally is a timezone-aware ``datetime`` in UTC.
"""

from __future__ import annotations

import datetime


def ensure_utc(value: datetime.datetime) -> datetime.datetime:
    """Return ``value`` as an aware UTC datetime, treating naive values as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


def normalize_rfc3339(dt_value: datetime.datetime) -> str:
    """Return an RFC3339 string in canonical UTC form with 'Z' suffix.

    Args:
        dt_value: Datetime to normalize

    Returns:
        RFC3339 string in UTC ending with 'Z' (e.g., '2025-11-17T13:42:00Z')
    """
    normalized = ensure_utc(dt_value).isoformat()
    if normalized.endswith("+00:00"):
        normalized = normalized[:-6] + "Z"
    return normalized


def parse_db_timestamp(value: str | None) -> datetime.datetime | None:
    """Parse a timestamp stored in SQLite and normalize to UTC."""
    if value is None:
        return None
    try:
        parsed = datetime.datetime.fromisoformat(value)
    except ValueError:
        return None
    return ensure_utc(parsed)


def end_of_day_utc(moment: datetime.datetime) -> datetime.datetime:
    """Return the last second of ``moment``'s UTC calendar day."""

    moment = ensure_utc(moment)
    return moment.replace(hour=23, minute=59, second=59, microsecond=0)


__all__ = [
    "ensure_utc",
    "normalize_rfc3339",
    "parse_db_timestamp",
    "end_of_day_utc",
]
