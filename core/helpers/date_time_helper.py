"""
date_time_helper.py

Helper functions for conversion and formatting of date and time values.
Storage and audit timestamps are always UTC; the local zone is only used
for human-readable labels.
"""

from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from typing import Optional

try:
    from zoneinfo import ZoneInfo  # Python 3.9+
except ImportError:
    raise ImportError("Python 3.9+ with zoneinfo is required for timezone support.")

# Local timezone for display (can be overridden per call)
LOCAL_TZ: tzinfo = ZoneInfo("Europe/Berlin")


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    """ISO8601 string of a UTC datetime (``None`` passes through)."""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat()


def from_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO8601 string back into an aware UTC datetime."""
    if not value:
        return None
    return ensure_utc(datetime.fromisoformat(value))


def format_local_date(dt: Optional[datetime], tz: Optional[tzinfo] = None) -> str:
    """
    Format a UTC datetime as a local date string ("DD.MM.YYYY").

    :param dt: UTC datetime (``None`` yields an empty string)
    :param tz: display zone, defaults to :data:`LOCAL_TZ`
    """
    if dt is None:
        return ""
    return ensure_utc(dt).astimezone(tz or LOCAL_TZ).strftime("%d.%m.%Y")
