from __future__ import annotations

from abc import ABC, abstractmethod

import httpx

from models.stream import Stream


class FetchError(Exception):
    """Raised when a provider cannot produce the current stream list."""


class StreamProvider(ABC):
    """Abstract base for streaming-service adapters.

    Each concrete provider fetches the full list of currently live streams
    from its service and normalizes entries into ``Stream`` objects.

    A shared ``httpx.AsyncClient`` is injected at construction time so
    that providers and messengers reuse one connection pool.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name (e.g. 'Twitch')."""

    @abstractmethod
    async def fetch_streams(self) -> list[Stream]:
        """Return every stream that is live right now.

        Implementations raise ``FetchError`` when the service cannot be
        queried; an empty list means nobody is live.  Cancellation must be
        allowed to propagate as ``asyncio.CancelledError``.
        """
