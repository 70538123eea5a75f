"""Tests for the periodic watcher and its batch channel."""

from __future__ import annotations

import asyncio
import logging

import pytest

from conftest import make_stream
from core.watcher import BatchChannel, PeriodicWatcher
from models.stream import Stream
from providers.base import FetchError, StreamProvider


class ScriptedProvider(StreamProvider):
    """Replays a script of results; exceptions in the script are raised."""

    def __init__(self, script: list[object]) -> None:
        super().__init__(client=None)  # type: ignore[arg-type]
        self._script = list(script)
        self.calls = 0

    @property
    def name(self) -> str:
        return "Scripted"

    async def fetch_streams(self) -> list[Stream]:
        self.calls += 1
        item = self._script.pop(0) if self._script else []
        if isinstance(item, BaseException):
            raise item
        return list(item)  # type: ignore[call-overload]


class HangingProvider(StreamProvider):
    def __init__(self) -> None:
        super().__init__(client=None)  # type: ignore[arg-type]
        self.started = asyncio.Event()
        self.cancelled = False

    @property
    def name(self) -> str:
        return "Hanging"

    async def fetch_streams(self) -> list[Stream]:
        self.started.set()
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return []


async def _collect(channel: BatchChannel, stop: asyncio.Event, count: int) -> list[tuple[Stream, ...]]:
    batches = []
    async for batch in channel:
        batches.append(batch)
        if len(batches) == count:
            stop.set()
    return batches


@pytest.mark.asyncio
async def test_channel_iterates_until_closed() -> None:
    channel = BatchChannel()
    await channel.put([make_stream("stream1")])
    await channel.put([])
    channel.close()
    channel.close()

    batches = [b async for b in channel]

    assert [[s.id for s in b] for b in batches] == [["stream1"], []]
    assert channel.closed


@pytest.mark.asyncio
async def test_channel_rejects_put_after_close() -> None:
    channel = BatchChannel()
    channel.close()
    with pytest.raises(RuntimeError):
        await channel.put([])


@pytest.mark.asyncio
async def test_watcher_emits_each_successful_fetch() -> None:
    provider = ScriptedProvider([[make_stream("stream1")], [], [make_stream("stream2")]])
    watcher = PeriodicWatcher(provider, interval=0.01)
    stop = asyncio.Event()

    watch_task = asyncio.create_task(watcher.watch(stop))
    batches = await asyncio.wait_for(_collect(watcher.source(), stop, 3), timeout=5)
    await asyncio.wait_for(watch_task, timeout=5)

    assert [[s.id for s in b] for b in batches[:3]] == [["stream1"], [], ["stream2"]]
    assert watcher.source().closed


@pytest.mark.asyncio
async def test_fetch_error_skips_tick(caplog: pytest.LogCaptureFixture) -> None:
    provider = ScriptedProvider([FetchError("service down"), RuntimeError("boom"), [make_stream("stream1")]])
    watcher = PeriodicWatcher(provider, interval=0.01)
    stop = asyncio.Event()

    with caplog.at_level(logging.ERROR):
        watch_task = asyncio.create_task(watcher.watch(stop))
        batches = await asyncio.wait_for(_collect(watcher.source(), stop, 1), timeout=5)
        await asyncio.wait_for(watch_task, timeout=5)

    assert [s.id for s in batches[0]] == ["stream1"]
    assert provider.calls >= 3
    assert "Failed to fetch stream list from Scripted: service down" in caplog.text
    assert "fetch failed" in caplog.text


@pytest.mark.asyncio
async def test_stop_interrupts_fetch_without_error(caplog: pytest.LogCaptureFixture) -> None:
    provider = HangingProvider()
    watcher = PeriodicWatcher(provider, interval=60)
    stop = asyncio.Event()

    with caplog.at_level(logging.DEBUG):
        watch_task = asyncio.create_task(watcher.watch(stop))
        await asyncio.wait_for(provider.started.wait(), timeout=5)
        stop.set()
        await asyncio.wait_for(watch_task, timeout=5)

    assert provider.cancelled
    assert [b async for b in watcher.source()] == []
    assert not [r for r in caplog.records if r.levelno >= logging.ERROR]


@pytest.mark.asyncio
async def test_stop_during_sleep_ends_promptly() -> None:
    provider = ScriptedProvider([[make_stream("stream1")]])
    watcher = PeriodicWatcher(provider, interval=3600)
    stop = asyncio.Event()

    watch_task = asyncio.create_task(watcher.watch(stop))
    batches = await asyncio.wait_for(_collect(watcher.source(), stop, 1), timeout=5)
    await asyncio.wait_for(watch_task, timeout=5)

    assert len(batches) == 1
    assert provider.calls == 1


class SlowProvider(StreamProvider):
    """Takes ``delay`` seconds per fetch and records when each fetch began."""

    def __init__(self, delay: float) -> None:
        super().__init__(client=None)  # type: ignore[arg-type]
        self._delay = delay
        self.started_at: list[float] = []

    @property
    def name(self) -> str:
        return "Slow"

    async def fetch_streams(self) -> list[Stream]:
        self.started_at.append(asyncio.get_running_loop().time())
        await asyncio.sleep(self._delay)
        return []


@pytest.mark.asyncio
async def test_fetch_time_is_not_added_to_the_interval() -> None:
    provider = SlowProvider(delay=0.3)
    watcher = PeriodicWatcher(provider, interval=0.4)
    stop = asyncio.Event()

    watch_task = asyncio.create_task(watcher.watch(stop))
    await asyncio.wait_for(_collect(watcher.source(), stop, 3), timeout=5)
    await asyncio.wait_for(watch_task, timeout=5)

    gaps = [b - a for a, b in zip(provider.started_at, provider.started_at[1:])]
    assert len(gaps) >= 2
    # Sleeping a full interval after each fetch would give gaps of 0.7s.
    assert all(0.3 < gap < 0.6 for gap in gaps)


@pytest.mark.asyncio
async def test_first_tick_can_wait_one_interval() -> None:
    provider = SlowProvider(delay=0)
    watcher = PeriodicWatcher(provider, interval=0.3, immediate=False)
    stop = asyncio.Event()
    began = asyncio.get_running_loop().time()

    watch_task = asyncio.create_task(watcher.watch(stop))
    await asyncio.wait_for(_collect(watcher.source(), stop, 1), timeout=5)
    await asyncio.wait_for(watch_task, timeout=5)

    assert provider.started_at[0] - began >= 0.25


@pytest.mark.asyncio
async def test_stop_before_first_delayed_tick_fetches_nothing() -> None:
    provider = SlowProvider(delay=0)
    watcher = PeriodicWatcher(provider, interval=3600, immediate=False)
    stop = asyncio.Event()

    watch_task = asyncio.create_task(watcher.watch(stop))
    await asyncio.sleep(0)
    stop.set()
    await asyncio.wait_for(watch_task, timeout=5)

    assert provider.started_at == []
    assert [b async for b in watcher.source()] == []
