from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass


DEFAULT_REDIS_URL = "redis://localhost:6379/0"

SESSIONS_COLLECTION_ENV = "LOBBY_SESSIONS_COLLECTION"
MEMBERS_COLLECTION_ENV = "LOBBY_MEMBERS_COLLECTION"


class ConfigError(RuntimeError):
    """Startup configuration is missing or invalid. Fatal: the app must not start."""


@dataclass(frozen=True, slots=True)
class Settings:
    sessions_collection: str
    members_collection: str
    redis_url: str = DEFAULT_REDIS_URL
    log_level: str = "INFO"


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Read settings from the environment once, at startup."""

    env = os.environ if environ is None else environ

    sessions = env.get(SESSIONS_COLLECTION_ENV, "").strip()
    members = env.get(MEMBERS_COLLECTION_ENV, "").strip()
    missing = [name for name, value in ((SESSIONS_COLLECTION_ENV, sessions), (MEMBERS_COLLECTION_ENV, members)) if not value]
    if missing:
        raise ConfigError(f"Environment variables not set: {', '.join(missing)}")
    if sessions == members:
        raise ConfigError("Session and member collections must be distinct")

    return Settings(
        sessions_collection=sessions,
        members_collection=members,
        redis_url=env.get("REDIS_URL", DEFAULT_REDIS_URL),
        log_level=env.get("LOBBY_LOG_LEVEL", "INFO").upper(),
    )
