from __future__ import annotations

from collections.abc import Generator

import redis
from fastapi import Depends, Request

from lobby.config import Settings
from lobby.coordinator import SessionCoordinator, collection_specs
from lobby.store import RedisEntityStore


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_redis(request: Request) -> Generator[redis.Redis, None, None]:
    # One client per process, created at startup; redis-py pools connections internally.
    yield request.app.state.redis


def get_coordinator(
    r: redis.Redis = Depends(get_redis),
    settings: Settings = Depends(get_settings),
) -> SessionCoordinator:
    store = RedisEntityStore(
        r=r,
        collections=collection_specs(
            sessions_collection=settings.sessions_collection,
            members_collection=settings.members_collection,
        ),
    )
    return SessionCoordinator(
        store=store,
        sessions_collection=settings.sessions_collection,
        members_collection=settings.members_collection,
    )
