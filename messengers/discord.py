from __future__ import annotations

import logging
import random
from collections.abc import Sequence
from typing import Any

import httpx

from messengers.base import Messenger, MessengerError
from models.report import format_time
from models.stream import Stream

_API_BASE = "https://discord.com/api/v10"
_TWITCH_ICON = "https://assets.help.twitch.tv/Glitch_Purple_RGB.png"
_LIVE_COLOR = 0x00AA00

log = logging.getLogger(__name__)


def _escape(name: str) -> str:
    return name.replace("_", "\\_")


def stream_title(stream: Stream) -> str:
    """Embed title, showing the login too when it differs from the display name."""
    user = stream.user
    display = user.display_name or user.login or user.id
    if user.login and user.login.lower() != display.lower():
        return f"{_escape(display)} ({_escape(user.login)}) Went Live!"
    return f"{_escape(display)} Went Live!"


def stream_embed(stream: Stream) -> dict[str, Any]:
    user = stream.user
    embed: dict[str, Any] = {
        "title": stream_title(stream),
        "description": f"[{stream.title}]({user.channel_url})",
        "color": _LIVE_COLOR,
        "author": {"name": "Twitch", "url": user.channel_url, "icon_url": _TWITCH_ICON},
        "footer": {"text": "Live since"},
    }
    if stream.thumbnail_url:
        # Cache-busting token, Discord keys embed images by URL.
        embed["image"] = {
            "url": f"{stream.thumbnail_url}?cache_invalidation_token={random.getrandbits(63)}",
            "width": 1280,
            "height": 720,
        }
    if user.picture_url:
        embed["thumbnail"] = {"url": user.picture_url, "width": 300, "height": 300}
    if stream.started_at is not None:
        embed["timestamp"] = format_time(stream.started_at)
    return embed


class DiscordMessenger(Messenger):
    """Messenger that posts to Discord channels through the REST API.

    Room ids are Discord channel ids.  The bot token must belong to a bot
    that can post in those channels.
    """

    def __init__(self, client: httpx.AsyncClient, token: str, api_base: str = _API_BASE) -> None:
        self._client = client
        self._token = token
        self._api_base = api_base.rstrip("/")

    async def notify(self, room_id: str, stream: Stream) -> None:
        await self._post(room_id, {"embeds": [stream_embed(stream)]})

    async def notify_list(self, room_id: str, streams: Sequence[Stream]) -> None:
        fields = [
            {
                "name": s.user.display_name or s.user.login or s.user.id,
                "value": f"[{s.title}]({s.user.channel_url})",
            }
            for s in streams
        ]
        await self._post(room_id, {"embeds": [{"title": "Currently Live", "fields": fields}]})

    async def notify_text(self, room_id: str, text: str) -> None:
        await self._post(room_id, {"content": text})

    async def _post(self, room_id: str, body: dict[str, Any]) -> None:
        url = f"{self._api_base}/channels/{room_id}/messages"
        try:
            resp = await self._client.post(
                url,
                json=body,
                headers={"Authorization": f"Bot {self._token}"},
            )
        except httpx.HTTPError as exc:
            raise MessengerError(f"HTTP error posting to room {room_id}: {exc}") from exc

        if resp.status_code >= 300:
            log.debug("Discord rejected message for %s: %s", room_id, resp.text)
            raise MessengerError(
                f"Discord replied with status {resp.status_code} for room {room_id}"
            )
