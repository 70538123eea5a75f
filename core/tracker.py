"""Tracking engine.

Consumes stream batches from a watcher, decides which streams are worth
announcing, records every decision in the report store and notifies each
registered room.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Sequence
from datetime import timedelta

from core.clock import Clock, SystemClock
from core.store import ReportStore
from core.watcher import Watcher
from messengers.base import Messenger
from models.report import Report
from models.stream import Stream

log = logging.getLogger(__name__)

RESTART_WINDOW = timedelta(hours=1)


class Tracker:
    """Single consumer of a watcher's batches.

    Batches are processed one at a time, in arrival order.  Two layers keep
    a stream from being announced twice: the in-memory set of streams that
    were live in the previous batch, and the persisted report log, which
    also drives the restart window.

    Per batch:
    1. refresh ``observed_at`` for every stream in the batch
    2. drop streams that were already live in the previous batch
    3. collapse repeats of the same stream within the batch
    4. drop streams that already have a report; record quick restarts
       (owner seen within ``RESTART_WINDOW``) without announcing them
    5. record each remaining stream, then announce it to every room in
       room order
    6. remember the whole batch as the live set
    """

    def __init__(
        self,
        watcher: Watcher,
        messenger: Messenger,
        store: ReportStore,
        clock: Clock | None = None,
    ) -> None:
        self._watcher = watcher
        self._messenger = messenger
        self._store = store
        self._clock = clock or SystemClock()
        self._live: tuple[Stream, ...] = ()
        self._live_lock = threading.Lock()

    def live(self) -> tuple[Stream, ...]:
        """Streams of the most recently processed batch."""
        with self._live_lock:
            return self._live

    def _set_live(self, streams: Sequence[Stream]) -> None:
        snapshot = tuple(streams)
        with self._live_lock:
            self._live = snapshot

    async def track(self, stop: asyncio.Event) -> None:
        """Run the watcher and process its batches until it closes its channel."""
        watch_task = asyncio.create_task(self._watcher.watch(stop), name="watcher")
        try:
            async for batch in self._watcher.source():
                await self.process(batch)
        finally:
            if not watch_task.done():
                stop.set()
            await watch_task
        log.info("Tracker stopped")

    async def process(self, batch: Sequence[Stream]) -> None:
        """Apply one batch.  Failures are logged; nothing here raises."""
        await self._update_observed_at(batch)

        candidates = self._exclude_duplicates(self._exclude_known(batch))
        reportable = await self._exclude_reported(candidates)

        if reportable:
            try:
                rooms = await self._store.list_rooms()
            except Exception:
                log.exception("Failed to retrieve rooms")
                rooms = None

            for stream in reportable:
                # False also covers a duplicate of a stream recorded earlier in this batch.
                if not await self._store_report(stream):
                    continue
                if rooms is not None:
                    await self._report(rooms, stream)

        self._set_live(batch)

    async def _update_observed_at(self, batch: Sequence[Stream]) -> None:
        try:
            await self._store.refresh_observed_at((s.id for s in batch), self._clock.now_utc())
        except Exception:
            log.exception("Failed to refresh observed_at for %d stream(s)", len(batch))

    def _exclude_known(self, batch: Sequence[Stream]) -> list[Stream]:
        known = {s.id for s in self.live()}
        return [s for s in batch if s.id not in known]

    @staticmethod
    def _exclude_duplicates(streams: Sequence[Stream]) -> list[Stream]:
        return list(dict.fromkeys(streams))

    async def _exclude_reported(self, streams: Sequence[Stream]) -> list[Stream]:
        reportable: list[Stream] = []
        suppressed = 0

        for stream in streams:
            try:
                # Never report the same stream id twice.
                if await self._store.report_exists(stream.id):
                    continue
                latest = await self._store.latest_report_by_owner(stream.owner_id)
            except Exception:
                log.exception("Failed to look up reports for stream %s", stream.id)
                continue

            if latest is None or self._clock.since(latest.observed_at) > RESTART_WINDOW:
                reportable.append(stream)
                continue

            # Quick restart: record it so it is never reported later.
            log.info(
                "Stream %s of %s restarted within %s, not reporting",
                stream.id,
                stream.owner_id,
                RESTART_WINDOW,
            )
            await self._store_report(stream)
            suppressed += 1

        if reportable or suppressed:
            log.info("%d stream(s) to report, %d restart(s) suppressed", len(reportable), suppressed)

        return reportable

    async def _store_report(self, stream: Stream) -> bool:
        now = self._clock.now_utc()
        report = Report(
            owner_id=stream.owner_id,
            stream_id=stream.id,
            started_at=stream.started_at or now,
            observed_at=now,
        )
        try:
            inserted = await self._store.insert_report(report)
        except Exception:
            log.exception("Failed to store report for stream %s", stream.id)
            return False
        if not inserted:
            log.info("Stream %s already has a report, not reporting", stream.id)
        return inserted

    async def _report(self, rooms: Sequence[str], stream: Stream) -> None:
        for room in rooms:
            try:
                await self._messenger.notify(room, stream)
            except Exception:
                log.exception("Failed to report stream %s to room %s", stream.id, room)
                return
