"""Clock abstraction injected into every time-dependent service."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Protocol

from core.helpers.date_time_helper import ensure_utc


class Clock(Protocol):
    def now(self) -> datetime:
        """Current time as an aware UTC datetime."""
        ...


class SystemClock:
    """Wall clock (UTC)."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Manually advanced clock for deterministic tests and replays."""

    def __init__(self, start: datetime) -> None:
        self._now = ensure_utc(start)
        self._lock = Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, **delta: float) -> datetime:
        """Move forward by ``timedelta(**delta)`` and return the new time."""
        with self._lock:
            self._now = self._now + timedelta(**delta)
            return self._now

    def set(self, value: datetime) -> None:
        with self._lock:
            self._now = ensure_utc(value)
