"""Discord gateway listener: @-mentions of the bot become commands."""
from __future__ import annotations

import asyncio
import contextlib
import importlib
import logging
from collections.abc import Awaitable, Callable
from types import ModuleType
from typing import Protocol

log = logging.getLogger(__name__)

CommandSink = Callable[[str, str], Awaitable[bool]]


class DiscordClientLike(Protocol):
    """Minimal discord.py client surface used by the listener."""

    user: object | None

    def event(self, coro: Callable[..., Awaitable[None]]) -> object: ...

    async def start(self, token: str) -> None: ...

    async def close(self) -> None: ...


class DiscordCommandListener:
    """Connects to the Discord gateway and forwards messages that mention the bot.

    ``on_command(channel_id, content)`` gets the raw message text; replies are
    expected to go back to ``channel_id``.  The bot's own messages are ignored.
    """

    def __init__(self, token: str, on_command: CommandSink) -> None:
        self._discord: ModuleType = importlib.import_module("discord")
        self._token = token
        self._on_command = on_command
        self._client: DiscordClientLike | None = None
        self._gateway_task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        """Create the client and run the gateway connection as a background task."""
        if not self._token:
            raise ValueError("A Discord bot token is required to listen for commands")

        intents = self._discord.Intents.default()
        intents.guilds = True
        intents.messages = True
        intents.message_content = True

        self._client = self._discord.Client(intents=intents)
        self._register_handlers()
        self._gateway_task = asyncio.create_task(self._client.start(self._token), name="discord-gateway")
        self._gateway_task.add_done_callback(self._gateway_done)

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.close()
        if self._gateway_task and not self._gateway_task.done():
            self._gateway_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._gateway_task

    def _register_handlers(self) -> None:
        if self._client is None:
            raise RuntimeError("Discord client not initialized")

        async def on_ready() -> None:
            log.info("Discord gateway ready as %s", getattr(self._client, "user", None))

        async def on_message(message: object) -> None:
            await self.handle_message(message)

        self._client.event(on_ready)
        self._client.event(on_message)

    @staticmethod
    def _gateway_done(task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("Discord gateway stopped: %s", exc)

    def _bot_id(self) -> object | None:
        return getattr(getattr(self._client, "user", None), "id", None)

    def _mentions_bot(self, message: object) -> bool:
        bot_id = self._bot_id()
        if bot_id is None:
            return False
        return any(getattr(u, "id", None) == bot_id for u in getattr(message, "mentions", ()))

    async def handle_message(self, message: object) -> None:
        author = getattr(message, "author", None)
        if author is None or getattr(author, "id", None) == self._bot_id():
            return
        if not self._mentions_bot(message):
            return

        channel_id = str(getattr(getattr(message, "channel", None), "id", ""))
        content = str(getattr(message, "content", ""))
        log.debug("Mention in channel %s: %r", channel_id, content)
        try:
            await self._on_command(channel_id, content)
        except Exception:
            log.exception("Command from channel %s failed", channel_id)
