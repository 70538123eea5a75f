"""Shared fixtures and fakes for the stream monitor tests."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import pytest

from core.clock import FixedClock
from core.store import ReportStore
from core.watcher import BatchChannel, Watcher
from messengers.base import Messenger, MessengerError
from models.stream import Stream, User

BASELINE = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_stream(
    stream_id: str,
    user_id: str = "user1",
    started_at: datetime = BASELINE,
    title: str = "",
) -> Stream:
    return Stream(
        id=stream_id,
        user=User(id=user_id, login=user_id, display_name=user_id.upper()),
        title=title or f"{stream_id} title",
        started_at=started_at,
    )


@dataclass
class RoomBag:
    streams: list[Stream] = field(default_factory=list)
    lists: list[list[Stream]] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)


class RecordingMessenger(Messenger):
    """Keeps every delivery per room; rooms in ``failing`` raise instead."""

    def __init__(self, failing: Sequence[str] = ()) -> None:
        self.rooms: dict[str, RoomBag] = {}
        self.failing = set(failing)
        self.attempts: list[tuple[str, str]] = []

    def room(self, room_id: str) -> RoomBag:
        return self.rooms.setdefault(room_id, RoomBag())

    async def notify(self, room_id: str, stream: Stream) -> None:
        self.attempts.append((room_id, stream.id))
        if room_id in self.failing:
            raise MessengerError(f"room {room_id} is unreachable")
        self.room(room_id).streams.append(stream)

    async def notify_list(self, room_id: str, streams: Sequence[Stream]) -> None:
        self.room(room_id).lists.append(list(streams))

    async def notify_text(self, room_id: str, text: str) -> None:
        self.room(room_id).messages.append(text)


class ManualWatcher(Watcher):
    """Watcher driven by the test: ``send()`` pushes a batch, ``close()`` ends it."""

    def __init__(self) -> None:
        self._channel = BatchChannel()

    def source(self) -> BatchChannel:
        return self._channel

    async def watch(self, stop: asyncio.Event) -> None:
        await stop.wait()
        self._channel.close()

    async def send(self, batch: Sequence[Stream]) -> None:
        await self._channel.put(batch)

    def close(self) -> None:
        self._channel.close()


def reported_ids(bag: RoomBag) -> list[str]:
    return [s.id for s in bag.streams]


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(BASELINE)


@pytest.fixture
async def store(tmp_path: Path) -> ReportStore:  # type: ignore[misc]
    report_store = ReportStore(tmp_path / "reports.db")
    await report_store.init()
    yield report_store  # type: ignore[misc]
    await report_store.close()


@pytest.fixture
def messenger() -> RecordingMessenger:
    return RecordingMessenger()
