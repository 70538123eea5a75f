"""Report log and room list, persisted in SQLite."""
from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

import aiosqlite

from models.report import Report, format_time, parse_time

log = logging.getLogger(__name__)

_CREATE_ROOMS = """
CREATE TABLE IF NOT EXISTS rooms (
    room_id TEXT NOT NULL,
    UNIQUE (room_id)
);
"""

_CREATE_REPORTS = """
CREATE TABLE IF NOT EXISTS reports (
    owner_id    TEXT NOT NULL,
    stream_id   TEXT NOT NULL,
    started_at  TEXT NOT NULL,
    observed_at TEXT NOT NULL,
    UNIQUE (stream_id, started_at)
);
"""

_CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_reports_owner_id ON reports (owner_id);",
    "CREATE INDEX IF NOT EXISTS idx_reports_stream_id ON reports (stream_id);",
]

_REPORT_COLUMNS = "owner_id, stream_id, started_at, observed_at"


class StoreNotInitializedError(RuntimeError):
    """Raised when the store is used before ``init()``."""


def _row_to_report(row: aiosqlite.Row) -> Report:
    return Report(
        owner_id=row["owner_id"],
        stream_id=row["stream_id"],
        started_at=parse_time(row["started_at"]),
        observed_at=parse_time(row["observed_at"]),
    )


class ReportStore:
    """SQLite-backed log of report decisions plus the list of rooms.

    All writes commit immediately, so a report inserted by the tracker is
    visible to its next lookup on the same connection.  ``":memory:"`` is
    accepted as ``db_path`` for throwaway stores.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = str(db_path)
        if self._db_path != ":memory:":
            self._db_path = str(Path(db_path).expanduser())
        self._conn: aiosqlite.Connection | None = None

    async def init(self) -> None:
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute(_CREATE_ROOMS)
        await self._conn.execute(_CREATE_REPORTS)
        for idx_sql in _CREATE_INDEXES:
            await self._conn.execute(idx_sql)
        await self._conn.commit()
        log.debug("Report store opened at %s", self._db_path)

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _db(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StoreNotInitializedError("ReportStore not initialized. Call init() first.")
        return self._conn

    # -- reports ---------------------------------------------------------

    async def report_exists(self, stream_id: str) -> bool:
        """Whether any report was ever written for ``stream_id``."""
        cursor = await self._db().execute(
            "SELECT 1 FROM reports WHERE stream_id = ? LIMIT 1", (stream_id,)
        )
        return await cursor.fetchone() is not None

    async def latest_report_by_owner(self, owner_id: str) -> Report | None:
        """Most recently observed report for ``owner_id``, if any."""
        cursor = await self._db().execute(
            f"""
            SELECT {_REPORT_COLUMNS}
            FROM reports
            WHERE owner_id = ?
            ORDER BY observed_at DESC
            LIMIT 1
            """,
            (owner_id,),
        )
        row = await cursor.fetchone()
        return _row_to_report(row) if row else None

    async def insert_report(self, report: Report) -> bool:
        """Insert ``report``.

        Returns False without touching the existing row when a report with
        the same ``(stream_id, started_at)`` is already stored.
        """
        cursor = await self._db().execute(
            f"INSERT OR IGNORE INTO reports ({_REPORT_COLUMNS}) VALUES (?, ?, ?, ?)",
            (
                report.owner_id,
                report.stream_id,
                format_time(report.started_at),
                format_time(report.observed_at),
            ),
        )
        await self._db().commit()
        return cursor.rowcount > 0

    async def refresh_observed_at(self, stream_ids: Iterable[str], when: datetime) -> int:
        """Set ``observed_at`` to ``when`` on every report of the given streams."""
        ids = list(dict.fromkeys(stream_ids))
        if not ids:
            return 0
        placeholders = ", ".join("?" for _ in ids)
        cursor = await self._db().execute(
            f"UPDATE reports SET observed_at = ? WHERE stream_id IN ({placeholders})",
            (format_time(when), *ids),
        )
        await self._db().commit()
        return cursor.rowcount

    async def report_for(self, stream_id: str, started_at: datetime) -> Report | None:
        cursor = await self._db().execute(
            f"SELECT {_REPORT_COLUMNS} FROM reports WHERE stream_id = ? AND started_at = ?",
            (stream_id, format_time(started_at)),
        )
        row = await cursor.fetchone()
        return _row_to_report(row) if row else None

    async def all_reports(self) -> list[Report]:
        cursor = await self._db().execute(
            f"SELECT {_REPORT_COLUMNS} FROM reports ORDER BY observed_at, stream_id"
        )
        rows = await cursor.fetchall()
        return [_row_to_report(r) for r in rows]

    # -- rooms -----------------------------------------------------------

    async def list_rooms(self) -> list[str]:
        cursor = await self._db().execute("SELECT room_id FROM rooms ORDER BY rowid")
        rows = await cursor.fetchall()
        return [r["room_id"] for r in rows]

    async def add_room(self, room_id: str) -> bool:
        """Register a room.  Returns False if it was already registered."""
        cursor = await self._db().execute(
            "INSERT OR IGNORE INTO rooms (room_id) VALUES (?)", (room_id,)
        )
        await self._db().commit()
        return cursor.rowcount > 0

    async def remove_room(self, room_id: str) -> bool:
        """Unregister a room.  Returns False if it was not registered."""
        cursor = await self._db().execute("DELETE FROM rooms WHERE room_id = ?", (room_id,))
        await self._db().commit()
        return cursor.rowcount > 0
