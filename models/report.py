from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def format_time(t: datetime) -> str:
    """Render ``t`` as RFC 3339 UTC text with second precision."""
    if t.tzinfo is None:
        t = t.replace(tzinfo=timezone.utc)
    return t.astimezone(timezone.utc).strftime(TIME_FORMAT)


def parse_time(raw: str) -> datetime:
    cleaned = raw.replace("Z", "+00:00")
    return datetime.fromisoformat(cleaned).astimezone(timezone.utc).replace(microsecond=0)


@dataclass(frozen=True)
class Report:
    """Durable record of a decision to report a stream.

    ``(stream_id, started_at)`` is unique.  Only ``observed_at`` is ever
    refreshed after the record is written.
    """

    owner_id: str
    stream_id: str
    started_at: datetime
    observed_at: datetime
