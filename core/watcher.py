from __future__ import annotations

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence

from models.stream import Stream
from providers.base import FetchError, StreamProvider

log = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 60.0

Batch = Sequence[Stream]

_CLOSED = object()


class _Stopped(Exception):
    """An in-flight fetch was abandoned because the watcher is stopping."""


class BatchChannel:
    """Single-consumer channel of stream batches backed by ``asyncio.Queue``.

    The producer calls ``put()`` for every successful poll and ``close()``
    once when it stops.  The consumer iterates with ``async for``; iteration
    ends after the last batch put before ``close()``.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def put(self, batch: Batch) -> None:
        if self._closed:
            raise RuntimeError("put() on a closed BatchChannel")
        await self._queue.put(tuple(batch))

    def close(self) -> None:
        """Mark the end of the stream.  Calling it again is a no-op."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    async def __aiter__(self) -> AsyncIterator[tuple[Stream, ...]]:
        while True:
            item = await self._queue.get()
            self._queue.task_done()
            if item is _CLOSED:
                return
            yield item  # type: ignore[misc]


class Watcher(ABC):
    """Source of stream batches for the tracker."""

    @abstractmethod
    async def watch(self, stop: asyncio.Event) -> None:
        """Produce batches until ``stop`` is set, then close the channel.

        Must be running before anything is received from ``source()``.
        """

    @abstractmethod
    def source(self) -> BatchChannel:
        """Channel the batches are delivered on."""


class PeriodicWatcher(Watcher):
    """Polls a provider on a fixed interval and forwards each snapshot.

    Ticks fall on a fixed schedule measured with the event loop's monotonic
    clock, so the time a fetch takes is not added to the period.  A fetch
    that overruns the next tick drops it.  The first tick fires at once
    unless ``immediate`` is False, in which case it fires one interval
    after ``watch()`` starts.

    Each tick:
    1. fetch the full stream list (interrupted if ``stop`` is set)
    2. put the list on the channel; on failure log it and skip the tick
    3. sleep until the next tick, waking early if ``stop`` is set
    """

    def __init__(
        self,
        provider: StreamProvider,
        interval: float = DEFAULT_POLL_INTERVAL,
        channel: BatchChannel | None = None,
        immediate: bool = True,
    ) -> None:
        self._provider = provider
        self._interval = interval
        self._channel = channel or BatchChannel()
        self._immediate = immediate

    def source(self) -> BatchChannel:
        return self._channel

    async def watch(self, stop: asyncio.Event) -> None:
        log.info(
            "Watcher started for %s (interval=%ss)",
            self._provider.name,
            self._interval,
        )
        loop = asyncio.get_running_loop()
        next_tick = loop.time() if self._immediate else loop.time() + self._interval
        try:
            while not await self._wait_for_tick(stop, next_tick - loop.time()):
                next_tick += self._interval
                await self._check(stop)
                next_tick = max(next_tick, loop.time())
        finally:
            self._channel.close()
            log.info("Watcher for %s stopped", self._provider.name)

    @staticmethod
    async def _wait_for_tick(stop: asyncio.Event, delay: float) -> bool:
        """Sleep ``delay`` seconds or until ``stop`` is set; return ``stop.is_set()``."""
        if delay > 0:
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(stop.wait(), timeout=delay)
        return stop.is_set()

    async def _check(self, stop: asyncio.Event) -> None:
        try:
            streams = await self._fetch(stop)
        except _Stopped:
            log.debug("Fetch from %s cancelled by shutdown", self._provider.name)
            return
        except FetchError as exc:
            log.error("Failed to fetch stream list from %s: %s", self._provider.name, exc)
            return
        except Exception:
            log.exception("Watcher %s fetch failed", self._provider.name)
            return

        await self._channel.put(streams)

    async def _fetch(self, stop: asyncio.Event) -> list[Stream]:
        """Run one fetch, racing it against ``stop``.

        Raises ``_Stopped`` when ``stop`` wins the race; the fetch is
        cancelled in that case.
        """
        fetch = asyncio.ensure_future(self._provider.fetch_streams())
        stopped = asyncio.ensure_future(stop.wait())
        try:
            done, _ = await asyncio.wait({fetch, stopped}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopped.cancel()
            if not fetch.done():
                fetch.cancel()

        if fetch not in done:
            with contextlib.suppress(asyncio.CancelledError, FetchError):
                await fetch
            raise _Stopped()

        return fetch.result()
