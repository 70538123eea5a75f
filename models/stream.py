from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class User:
    """Profile of the account that produces streams.

    Only ``id`` takes part in tracking; the remaining fields are used when
    formatting notifications and may be empty depending on the service.
    """

    id: str
    login: str = ""
    display_name: str = ""
    channel_url: str = ""
    picture_url: str = ""


@dataclass(frozen=True)
class Stream:
    """One live stream as observed at poll time.

    Fields:
        id:            Identifier of this stream instance.  A restart
                       produces a new id for the same user.
        user:          Owner of the stream, stable across restarts.
        title:         Stream title.
        thumbnail_url: Preview image URL.
        started_at:    When the stream went live (UTC).
    """

    id: str
    user: User
    title: str = ""
    thumbnail_url: str = ""
    started_at: datetime | None = None

    @property
    def owner_id(self) -> str:
        return self.user.id
