"""Injectable time source so sweeps and deadlines can be driven deterministically."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import threading
from typing import Protocol

from .timezone_service import ensure_utc


class Clock(Protocol):
    def now(self) -> datetime:
        """Return the current aware UTC instant."""


class SystemClock:
    """Wall-clock time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock:
    """Manually driven clock for tests and replays."""

    def __init__(self, start: datetime) -> None:
        self._now = ensure_utc(start)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def set(self, value: datetime) -> None:
        with self._lock:
            self._now = ensure_utc(value)

    def advance(self, delta: timedelta | None = None, **kwargs: float) -> datetime:
        step = delta if delta is not None else timedelta(**kwargs)
        with self._lock:
            self._now = self._now + step
            return self._now


system_clock = SystemClock()
