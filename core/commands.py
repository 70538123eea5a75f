from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable, Sequence
from typing import Protocol

from core.store import ReportStore
from messengers.base import Messenger
from models.stream import Stream

log = logging.getLogger(__name__)

_COMMAND_RE = re.compile(r"^(?:<@!?\w+>\s+)?(\w+)((?:\s+\S+)*)\s*$")
_ROOM_RE = re.compile(r"^(?:<#(\w+)>|([\w-]+))$")

HELP_TEXT = (
    "```\n"
    "USAGE\n"
    "\tspam <room>   - Add room to the list of announcement rooms\n"
    "\tforget <room> - Remove room from the list of announcement rooms\n"
    "\tlist          - List currently live streamers\n"
    "\thelp          - Display this message\n"
    "```"
)


class LiveState(Protocol):
    def live(self) -> Sequence[Stream]: ...


class InvalidRoomError(ValueError):
    pass


def parse_command(message: str) -> tuple[str, list[str]] | None:
    """Split ``message`` into a command name and its arguments.

    A leading ``<@id>`` mention is dropped.  Returns None when the message
    is not shaped like a command.
    """
    m = _COMMAND_RE.match(message.strip())
    if m is None:
        return None
    return m.group(1).lower(), m.group(2).split()


def parse_room_id(raw: str) -> str:
    """Accept ``<#123>`` channel mentions as well as bare ids."""
    m = _ROOM_RE.match(raw)
    if m is None:
        raise InvalidRoomError(f"Improper room format: {raw}")
    return m.group(1) or m.group(2)


class CommandHandler:
    """Answers administrative commands addressed to the bot.

    Replies are sent back to the room the command came from.  Unknown
    commands are ignored.
    """

    def __init__(self, state: LiveState, store: ReportStore, messenger: Messenger) -> None:
        self._state = state
        self._store = store
        self._messenger = messenger
        self._commands: dict[str, Callable[[str, list[str]], Awaitable[None]]] = {
            "list": self._list,
            "spam": self._spam,
            "forget": self._forget,
            "help": self._help,
        }

    async def handle(self, source_id: str, message: str) -> bool:
        """Dispatch ``message``.  Returns True if a command was run."""
        parsed = parse_command(message)
        if parsed is None:
            return False

        name, args = parsed
        handler = self._commands.get(name)
        if handler is None:
            return False

        log.info("Command %r from %s", name, source_id)
        await handler(source_id, args)
        return True

    async def _list(self, source_id: str, args: list[str]) -> None:
        streams = self._state.live()
        if not streams:
            await self._messenger.notify_text(source_id, "Nobody is currently streaming :pensive:")
            return
        await self._messenger.notify_list(source_id, streams)

    async def _spam(self, source_id: str, args: list[str]) -> None:
        if not args:
            await self._messenger.notify_text(
                source_id, "Command `spam` requires an argument - room where it will spam"
            )
            return

        try:
            room_id = parse_room_id(args[0])
        except InvalidRoomError as exc:
            await self._messenger.notify_text(source_id, str(exc))
            return

        if not await self._store.add_room(room_id):
            await self._messenger.notify_text(
                source_id, f"Failed to add room <#{room_id}>: it is already added."
            )
            return

        await self._messenger.notify_text(source_id, f"Successfully added room <#{room_id}>")

    async def _forget(self, source_id: str, args: list[str]) -> None:
        if not args:
            await self._messenger.notify_text(
                source_id,
                "Command `forget` requires an argument - room which to exclude from spamming",
            )
            return

        try:
            room_id = parse_room_id(args[0])
        except InvalidRoomError as exc:
            await self._messenger.notify_text(source_id, str(exc))
            return

        if not await self._store.remove_room(room_id):
            await self._messenger.notify_text(
                source_id, f"Failed to remove room <#{room_id}>: it is not registered."
            )
            return

        await self._messenger.notify_text(source_id, f"Successfully removed room <#{room_id}>")

    async def _help(self, source_id: str, args: list[str]) -> None:
        await self._messenger.notify_text(source_id, HELP_TEXT)
