from __future__ import annotations

import logging
from typing import Any

import httpx

from models.report import parse_time
from models.stream import Stream, User
from providers.base import FetchError, StreamProvider

_TOKEN_URL = "https://id.twitch.tv/oauth2/token"
_STREAMS_URL = "https://api.twitch.tv/helix/streams"
_USERS_URL = "https://api.twitch.tv/helix/users"
_CHANNEL_URL = "https://twitch.tv/{login}"

DEFAULT_GAME_ID = "65360"
DEFAULT_PAGE_SIZE = 100
THUMBNAIL_WIDTH = 1280
THUMBNAIL_HEIGHT = 720

log = logging.getLogger(__name__)


def _thumbnail(template: str) -> str:
    return (
        template.replace("{width}", str(THUMBNAIL_WIDTH))
        .replace("{height}", str(THUMBNAIL_HEIGHT))
    )


class TwitchProvider(StreamProvider):
    """Provider adapter for the Twitch Helix API.

    Lists live streams for a single game category.  An app access token is
    obtained with the client credentials grant and reused until Twitch
    rejects it, at which point one fresh token is requested.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        client_id: str,
        client_secret: str,
        game_id: str = DEFAULT_GAME_ID,
        first: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        super().__init__(client)
        self._client_id = client_id
        self._client_secret = client_secret
        self._game_id = game_id
        self._first = first
        self._token: str | None = None

    @property
    def name(self) -> str:
        return "Twitch"

    async def fetch_streams(self) -> list[Stream]:
        payload = await self._get(_STREAMS_URL, {"game_id": self._game_id, "first": self._first})
        entries: list[dict[str, Any]] = payload.get("data", [])
        if not entries:
            return []

        user_ids = list(dict.fromkeys(e["user_id"] for e in entries))
        users = await self._fetch_users(user_ids)

        streams: list[Stream] = []
        for entry in entries:
            try:
                streams.append(self._build_stream(entry, users.get(entry["user_id"], {})))
            except (KeyError, ValueError, TypeError) as exc:
                raise FetchError(f"malformed stream entry {entry.get('id')!r}: {exc}") from exc
        return streams

    async def _fetch_users(self, user_ids: list[str]) -> dict[str, dict[str, Any]]:
        payload = await self._get(_USERS_URL, [("id", uid) for uid in user_ids])
        return {u["id"]: u for u in payload.get("data", [])}

    def _build_stream(self, entry: dict[str, Any], profile: dict[str, Any]) -> Stream:
        login = entry.get("user_login") or profile.get("login", "")
        user = User(
            id=entry["user_id"],
            login=login,
            display_name=entry.get("user_name") or profile.get("display_name", login),
            channel_url=_CHANNEL_URL.format(login=login) if login else "",
            picture_url=profile.get("profile_image_url", ""),
        )
        return Stream(
            id=entry["id"],
            user=user,
            title=entry.get("title", ""),
            thumbnail_url=_thumbnail(entry.get("thumbnail_url", "")),
            started_at=parse_time(entry["started_at"]),
        )

    async def _get(self, url: str, params: Any) -> dict[str, Any]:
        if self._token is None:
            await self._authenticate()

        resp = await self._request(url, params)
        if resp.status_code == 401:
            log.info("[%s] access token rejected, re-authenticating", self.name)
            await self._authenticate()
            resp = await self._request(url, params)

        if resp.status_code != 200:
            raise FetchError(f"{url} replied with status {resp.status_code}")

        try:
            return resp.json()
        except ValueError as exc:
            raise FetchError(f"{url} returned invalid JSON") from exc

    async def _request(self, url: str, params: Any) -> httpx.Response:
        headers = {
            "Client-Id": self._client_id,
            "Authorization": f"Bearer {self._token}",
        }
        try:
            return await self._client.get(url, params=params, headers=headers)
        except httpx.HTTPError as exc:
            raise FetchError(f"HTTP error talking to {url}: {exc}") from exc

    async def _authenticate(self) -> None:
        try:
            resp = await self._client.post(
                _TOKEN_URL,
                data={
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "grant_type": "client_credentials",
                },
            )
        except httpx.HTTPError as exc:
            raise FetchError(f"HTTP error during authentication: {exc}") from exc

        if resp.status_code != 200:
            raise FetchError(f"authentication failed with status {resp.status_code}")

        token = resp.json().get("access_token")
        if not token:
            raise FetchError("authentication response carried no access token")
        self._token = token
