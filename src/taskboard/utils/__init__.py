"""Utility helpers for taskboard services."""

from .datetime_utils import (
    end_of_day_utc,
    ensure_utc,
    normalize_rfc3339,
    parse_db_timestamp,
)

__all__ = [
    "end_of_day_utc",
    "ensure_utc",
    "normalize_rfc3339",
    "parse_db_timestamp",
]
