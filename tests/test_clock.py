"""Tests for the clock abstraction."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from core.clock import FixedClock, SystemClock


def test_fixed_clock_normalizes_to_utc() -> None:
    plus_two = timezone(timedelta(hours=2))
    clock = FixedClock(datetime(2024, 1, 1, 14, 0, 0, 123456, tzinfo=plus_two))

    assert clock.now_utc() == datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    assert clock.now_utc().tzinfo == timezone.utc


def test_fixed_clock_moves_only_when_told() -> None:
    start = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    clock = FixedClock(start)

    clock.add(timedelta(hours=1))
    assert clock.now_utc() == start + timedelta(hours=1)

    clock.sub(timedelta(minutes=30))
    assert clock.now_utc() == start + timedelta(minutes=30)

    clock.set(datetime(2030, 5, 5, 5, 5, 5))
    assert clock.now_utc() == datetime(2030, 5, 5, 5, 5, 5, tzinfo=timezone.utc)


def test_since() -> None:
    start = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    clock = FixedClock(start + timedelta(minutes=61))

    assert clock.since(start) == timedelta(minutes=61)


def test_system_clock_is_utc_whole_seconds() -> None:
    now = SystemClock().now_utc()

    assert now.tzinfo == timezone.utc
    assert now.microsecond == 0
    assert abs(datetime.now(timezone.utc) - now) < timedelta(seconds=5)
