from __future__ import annotations

from collections.abc import Sequence

from messengers.base import Messenger
from models.stream import Stream


def _display_name(stream: Stream) -> str:
    return stream.user.display_name or stream.user.login or stream.user.id


class ConsoleMessenger(Messenger):
    """Messenger that prints notifications to stdout."""

    async def notify(self, room_id: str, stream: Stream) -> None:
        since = stream.started_at.strftime("%Y-%m-%d %H:%M:%S") if stream.started_at else "?"
        print(
            f"[{room_id}] {_display_name(stream)} went live!\n"
            f"  Title: {stream.title}\n"
            f"  Channel: {stream.user.channel_url}\n"
            f"  Live since: {since}\n",
            flush=True,
        )

    async def notify_list(self, room_id: str, streams: Sequence[Stream]) -> None:
        lines = [f"[{room_id}] Currently live:"]
        lines.extend(f"  {_display_name(s)}: {s.title}" for s in streams)
        print("\n".join(lines) + "\n", flush=True)

    async def notify_text(self, room_id: str, text: str) -> None:
        print(f"[{room_id}] {text}\n", flush=True)
