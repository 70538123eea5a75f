"""Stream Monitor -- entry point.

Assembles the tracking pipeline:

    TwitchProvider (polled by PeriodicWatcher on a fixed interval)
        -> BatchChannel (asyncio.Queue)
        -> Tracker (dedup + restart window, single consumer)
        -> ReportStore (SQLite report log) and Messenger (one post per room)

A shared httpx.AsyncClient is injected into the provider and the Discord
messenger.  In Discord mode a gateway listener turns @-mentions of the bot
into commands.  SIGINT/SIGTERM set the stop event; the watcher closes its
channel and the tracker returns once the last batch is processed.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
import threading

import httpx

from core.clock import SystemClock
from core.commands import CommandHandler
from core.config import ConfigError, Settings, load_settings
from core.store import ReportStore
from core.tracker import Tracker
from core.watcher import PeriodicWatcher
from messengers.base import Messenger
from messengers.console import ConsoleMessenger
from messengers.discord import DiscordMessenger
from messengers.discord_gateway import DiscordCommandListener
from models.report import format_time
from providers.twitch_provider import TwitchProvider

CONSOLE_ROOM = "console"

log = logging.getLogger(__name__)


def _configure_logging(log_time: bool) -> None:
    fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    if not log_time:
        fmt = "[%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(
        level=logging.INFO,
        format=fmt,
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()

    def _shutdown() -> None:
        log.info("Program shutdown...")
        stop.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _shutdown)
        except NotImplementedError:
            pass


def _start_stdin_reader(loop: asyncio.AbstractEventLoop) -> asyncio.Queue[str | None]:
    """Read stdin on a daemon thread so shutdown never waits on a pending read."""
    lines: asyncio.Queue[str | None] = asyncio.Queue()

    def _pump() -> None:
        for line in sys.stdin:
            loop.call_soon_threadsafe(lines.put_nowait, line)
        loop.call_soon_threadsafe(lines.put_nowait, None)

    threading.Thread(target=_pump, name="stdin-commands", daemon=True).start()
    return lines


async def _read_commands(handler: CommandHandler, stop: asyncio.Event) -> None:
    """Feed stdin lines to the command handler until EOF or shutdown."""
    lines = _start_stdin_reader(asyncio.get_running_loop())
    while not stop.is_set():
        line = await lines.get()
        if line is None:
            return
        try:
            await handler.handle(CONSOLE_ROOM, line)
        except Exception:
            log.exception("Command %r failed", line.strip())


async def run(settings: Settings, console: bool, interactive: bool) -> None:
    store = ReportStore(settings.db_path)
    await store.init()

    try:
        async with httpx.AsyncClient(timeout=30.0) as client:
            provider = TwitchProvider(
                client=client,
                client_id=settings.twitch_client_id,
                client_secret=settings.twitch_secret,
                game_id=settings.game_id,
            )

            messenger: Messenger
            if console:
                messenger = ConsoleMessenger()
            else:
                messenger = DiscordMessenger(client=client, token=settings.discord_token)

            watcher = PeriodicWatcher(provider, interval=settings.poll_interval_seconds)
            tracker = Tracker(watcher, messenger, store, clock=SystemClock())

            stop = asyncio.Event()
            _install_signal_handlers(stop)

            handler = CommandHandler(tracker, store, messenger)
            commands_task = None
            listener = None
            if interactive:
                commands_task = asyncio.create_task(_read_commands(handler, stop), name="commands")
            if not console:
                listener = DiscordCommandListener(settings.discord_token, handler.handle)
                await listener.start()

            try:
                await tracker.track(stop)
            finally:
                if commands_task is not None:
                    commands_task.cancel()
                if listener is not None:
                    await listener.stop()
    finally:
        await store.close()


async def manage_rooms(settings: Settings, action: str, room_id: str | None) -> int:
    store = ReportStore(settings.db_path)
    await store.init()
    try:
        if action == "list":
            for room in await store.list_rooms():
                print(room)
            return 0
        if action == "add":
            if not await store.add_room(room_id or ""):
                print(f"Room {room_id} is already added.", file=sys.stderr)
                return 1
            print(f"Successfully added room {room_id}")
            return 0
        if not await store.remove_room(room_id or ""):
            print(f"Room {room_id} is not registered.", file=sys.stderr)
            return 1
        print(f"Successfully removed room {room_id}")
        return 0
    finally:
        await store.close()


async def dump_reports(settings: Settings) -> int:
    store = ReportStore(settings.db_path)
    await store.init()
    try:
        for r in await store.all_reports():
            print(
                f"{r.stream_id}\towner={r.owner_id}\t"
                f"started={format_time(r.started_at)}\tobserved={format_time(r.observed_at)}"
            )
        return 0
    finally:
        await store.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="stream-monitor", description="Announce live streams.")
    parser.add_argument("--config", help="Path to a JSON configuration file containing API keys.")
    parser.add_argument("--db", help="Path to a SQLite DB file to persist data.")
    parser.add_argument(
        "--no-log-time",
        dest="log_time",
        action="store_false",
        help="Do not prepend date/time in the logger output.",
    )

    sub = parser.add_subparsers(dest="command")

    run_p = sub.add_parser("run", help="Watch for live streams and announce them (default).")
    run_p.add_argument("--console", action="store_true", help="Print announcements instead of posting to Discord.")
    run_p.add_argument(
        "--interactive",
        action="store_true",
        help="Read bot commands from stdin (requires --console; Discord takes commands as @-mentions).",
    )

    rooms_p = sub.add_parser("rooms", help="Manage announcement rooms.")
    rooms_sub = rooms_p.add_subparsers(dest="action", required=True)
    rooms_sub.add_parser("list", help="List registered rooms.")
    add_p = rooms_sub.add_parser("add", help="Register a room.")
    add_p.add_argument("room_id")
    remove_p = rooms_sub.add_parser("remove", help="Unregister a room.")
    remove_p.add_argument("room_id")

    sub.add_parser("reports", help="Dump the report log.")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if getattr(args, "interactive", False) and not args.console:
        parser.error("--interactive requires --console")
    _configure_logging(args.log_time)

    try:
        settings = load_settings(args.config)
    except ConfigError as exc:
        log.error("Failed to load configuration: %s", exc)
        return 1

    if args.db:
        settings = settings.model_copy(update={"db_path": args.db})

    command = args.command or "run"
    try:
        if command == "rooms":
            return asyncio.run(manage_rooms(settings, args.action, getattr(args, "room_id", None)))
        if command == "reports":
            return asyncio.run(dump_reports(settings))
        asyncio.run(
            run(
                settings,
                console=getattr(args, "console", False),
                interactive=getattr(args, "interactive", False),
            )
        )
    except KeyboardInterrupt:
        print("\nShutting down.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
