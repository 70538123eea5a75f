from providers.base import FetchError, StreamProvider
from providers.twitch_provider import TwitchProvider

__all__ = ["FetchError", "StreamProvider", "TwitchProvider"]
