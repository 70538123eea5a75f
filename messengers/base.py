from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from models.stream import Stream


class MessengerError(Exception):
    """Raised when a message could not be delivered to a room."""


class Messenger(ABC):
    """Delivery sink for notifications.

    Rooms are opaque, messenger-specific identifiers.  Every method raises
    on delivery failure; callers decide whether to carry on.
    """

    @abstractmethod
    async def notify(self, room_id: str, stream: Stream) -> None:
        """Announce that a single stream went live."""

    @abstractmethod
    async def notify_list(self, room_id: str, streams: Sequence[Stream]) -> None:
        """Send an overview of several live streams."""

    @abstractmethod
    async def notify_text(self, room_id: str, text: str) -> None:
        """Send a freeform text message."""
