"""Configuration loading.

Settings come from a JSON file (``~/.config/stream_monitor/config.json`` by
default), then ``STREAM_MONITOR_*`` environment variables override single
keys.  A ``.env`` file in the working directory is loaded first.
"""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from providers.twitch_provider import DEFAULT_GAME_ID

APP_NAME = "stream_monitor"
ENV_PREFIX = "STREAM_MONITOR_"


class ConfigError(Exception):
    pass


class Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    twitch_client_id: str = Field(default="", alias="twitch-client-id")
    twitch_secret: str = Field(default="", alias="twitch-secret")
    discord_token: str = Field(default="", alias="discord-api-key")
    game_id: str = Field(default=DEFAULT_GAME_ID, alias="game-id")
    poll_interval_seconds: float = Field(default=60.0, gt=0, alias="poll-interval-seconds")
    db_path: str = Field(default="", alias="db-path")


def config_dir() -> Path:
    """Default config directory, created on demand."""
    home = os.environ.get("HOME")
    if not home:
        raise ConfigError("no home directory to store config at")

    path = Path(home) / ".config" / APP_NAME
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigError(f"can't create config dir: {exc}") from exc

    if not path.is_dir():
        raise ConfigError(f"config directory isn't a directory: {path}")
    return path


def default_db_path() -> Path:
    return config_dir() / f"{APP_NAME}.db"


def _env_overrides() -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for name in Settings.model_fields:
        value = os.environ.get(ENV_PREFIX + name.upper())
        if value is not None:
            overrides[name] = value
    return overrides


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from ``path`` (or the default location) plus environment.

    A missing default file is tolerated so that everything can come from the
    environment; an explicitly given path must exist.
    """
    load_dotenv()

    explicit = path is not None
    config_path = Path(path).expanduser() if explicit else config_dir() / "config.json"

    raw: dict[str, Any] = {}
    if config_path.exists():
        try:
            raw = json.loads(config_path.read_text())
        except (OSError, ValueError) as exc:
            raise ConfigError(f"failed to read config file {config_path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigError(f"config file {config_path} must contain a JSON object")
    elif explicit:
        raise ConfigError(f"config file {config_path} does not exist")

    try:
        settings = Settings.model_validate(raw)
        overrides = _env_overrides()
        if overrides:
            settings = Settings.model_validate({**settings.model_dump(), **overrides})
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration: {exc}") from exc

    if not settings.db_path:
        settings = settings.model_copy(update={"db_path": str(default_db_path())})
    return settings
