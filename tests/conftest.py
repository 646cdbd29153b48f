from __future__ import annotations

import os
from collections.abc import Callable, Generator
from pathlib import Path

import fakeredis
import pytest

from lobby.coordinator import SessionCoordinator, collection_specs
from lobby.store import RedisEntityStore


SESSIONS = "sessions"
MEMBERS = "members"


@pytest.fixture(scope="session", autouse=True)
def _load_dotenv_for_tests() -> None:
    """Load repo .env for local runs.

    In CI, we *don't* auto-load `.env` by default so a developer's local Redis/collection
    settings never leak into the suite. Opt-in with: LOBBY_LOAD_DOTENV_FOR_TESTS=1
    """

    if os.environ.get("CI") and os.environ.get("LOBBY_LOAD_DOTENV_FOR_TESTS") != "1":
        return

    env_path = Path(__file__).resolve().parents[1] / ".env"
    if env_path.exists():
        from dotenv import load_dotenv

        load_dotenv(dotenv_path=env_path, override=False)


@pytest.fixture(autouse=True)
def _collection_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # Tests always run against fixed collection names, whatever .env says.
    monkeypatch.setenv("LOBBY_SESSIONS_COLLECTION", SESSIONS)
    monkeypatch.setenv("LOBBY_MEMBERS_COLLECTION", MEMBERS)


@pytest.fixture()
def r() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture()
def store_factory(r: fakeredis.FakeRedis) -> Callable[..., RedisEntityStore]:
    """Build a store over the shared fakeredis; pass a RedisEntityStore subclass to inject faults."""

    def _make(cls: type[RedisEntityStore] = RedisEntityStore) -> RedisEntityStore:
        return cls(r=r, collections=collection_specs(sessions_collection=SESSIONS, members_collection=MEMBERS))

    return _make


@pytest.fixture()
def coordinator_factory() -> Callable[[RedisEntityStore], SessionCoordinator]:
    def _make(store: RedisEntityStore) -> SessionCoordinator:
        return SessionCoordinator(store=store, sessions_collection=SESSIONS, members_collection=MEMBERS)

    return _make


@pytest.fixture()
def store(store_factory: Callable[..., RedisEntityStore]) -> RedisEntityStore:
    return store_factory()


@pytest.fixture()
def coordinator(
    store: RedisEntityStore,
    coordinator_factory: Callable[[RedisEntityStore], SessionCoordinator],
) -> SessionCoordinator:
    return coordinator_factory(store)


@pytest.fixture()
def client_and_redis(r: fakeredis.FakeRedis):
    """FastAPI TestClient wired to fakeredis through the get_redis dependency."""

    from fastapi.testclient import TestClient

    from lobby.api.deps import get_redis
    from lobby.main import app

    def _override() -> Generator[fakeredis.FakeRedis, None, None]:
        yield r

    app.dependency_overrides[get_redis] = _override
    with TestClient(app) as c:
        yield c, r
    app.dependency_overrides.clear()
