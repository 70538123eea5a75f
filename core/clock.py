"""Time sources.

Everything that needs the current time takes a ``Clock`` so tests can pin
and move time explicitly.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


def _utc(t: datetime) -> datetime:
    if t.tzinfo is None:
        t = t.replace(tzinfo=timezone.utc)
    return t.astimezone(timezone.utc).replace(microsecond=0)


class Clock(ABC):
    @abstractmethod
    def now_utc(self) -> datetime:
        """Current time, UTC, whole seconds."""

    def since(self, t: datetime) -> timedelta:
        """Elapsed time between ``t`` and now."""
        return self.now_utc() - _utc(t)


class SystemClock(Clock):
    def now_utc(self) -> datetime:
        return _utc(datetime.now(timezone.utc))


class FixedClock(Clock):
    """Clock that returns the same instant until moved by hand.

    Meant for tests.
    """

    def __init__(self, t: datetime) -> None:
        self._t = _utc(t)

    def now_utc(self) -> datetime:
        return self._t

    def set(self, t: datetime) -> None:
        self._t = _utc(t)

    def add(self, delta: timedelta) -> None:
        self._t = _utc(self._t + delta)

    def sub(self, delta: timedelta) -> None:
        self._t = _utc(self._t - delta)
