"""Shared utility functions."""

from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """Return aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Normalize datetime to UTC timezone."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_wall_clock(dt: datetime, zone: ZoneInfo) -> datetime:
    """Convert an instant to naive local wall-clock time in ``zone``."""
    return ensure_utc(dt).astimezone(zone).replace(tzinfo=None)
