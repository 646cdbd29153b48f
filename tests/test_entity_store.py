from __future__ import annotations

import json

import fakeredis
import pytest

from lobby.errors import Conflict, CorruptRecord, NotFound
from lobby.store import PutIfAbsent, RedisEntityStore


def test_put_if_absent_rejects_duplicate_key(store: RedisEntityStore) -> None:
    store.put_if_absent("members", "p1", {"memberId": "p1", "displayName": "Ann", "sessionId": "s1"})

    with pytest.raises(Conflict):
        store.put_if_absent("members", "p1", {"memberId": "p1", "displayName": "Other", "sessionId": "s2"})

    # Original record untouched, and not indexed under the rejected session.
    assert store.get("members", "p1") == {"memberId": "p1", "displayName": "Ann", "sessionId": "s1"}
    assert store.query_by_index("members", "sessionId", "s2") == []


def test_transactional_write_is_all_or_nothing(store: RedisEntityStore) -> None:
    store.put_if_absent("members", "p1", {"memberId": "p1", "displayName": "Ann", "sessionId": "old"})

    with pytest.raises(Conflict):
        store.transactional_write(
            [
                PutIfAbsent(collection="sessions", key="s1", record={"sessionId": "s1", "name": "x", "ownerId": "p1"}),
                PutIfAbsent(collection="members", key="p1", record={"memberId": "p1", "displayName": "Ann", "sessionId": "s1"}),
            ]
        )

    assert store.get("sessions", "s1") is None
    assert store.query_by_index("members", "sessionId", "s1") == []


def test_transactional_write_writes_every_item(store: RedisEntityStore) -> None:
    store.transactional_write(
        [
            PutIfAbsent(collection="sessions", key="s1", record={"sessionId": "s1", "name": "x", "ownerId": "p1"}),
            PutIfAbsent(collection="members", key="p1", record={"memberId": "p1", "displayName": "Ann", "sessionId": "s1"}),
        ]
    )

    assert store.get("sessions", "s1") == {"sessionId": "s1", "name": "x", "ownerId": "p1"}
    hits = store.query_by_index("members", "sessionId", "s1")
    assert [h.key for h in hits] == ["p1"]


def test_update_merges_fields_and_never_creates(store: RedisEntityStore) -> None:
    store.put_if_absent("sessions", "s1", {"sessionId": "s1", "name": "x", "started": False, "ownerId": "p1"})

    store.update("sessions", "s1", {"started": True})
    assert store.get("sessions", "s1") == {"sessionId": "s1", "name": "x", "started": True, "ownerId": "p1"}

    with pytest.raises(NotFound):
        store.update("sessions", "missing", {"started": True})
    assert store.get("sessions", "missing") is None


def test_update_moves_index_entry(store: RedisEntityStore) -> None:
    store.put_if_absent("members", "p1", {"memberId": "p1", "displayName": "Ann", "sessionId": "s1"})

    store.update("members", "p1", {"sessionId": "s2"})

    assert store.query_by_index("members", "sessionId", "s1") == []
    assert [h.key for h in store.query_by_index("members", "sessionId", "s2")] == ["p1"]


def test_delete_is_idempotent_and_cleans_index(store: RedisEntityStore, r: fakeredis.FakeRedis) -> None:
    store.put_if_absent("members", "p1", {"memberId": "p1", "displayName": "Ann", "sessionId": "s1"})

    store.delete("members", "p1")
    store.delete("members", "p1")
    store.delete("members", "never-existed")

    assert store.get("members", "p1") is None
    assert r.smembers("members:idx:sessionId:s1") == set()


def test_query_skips_stale_entries_and_reports_corrupt_ones(store: RedisEntityStore, r: fakeredis.FakeRedis) -> None:
    store.put_if_absent("members", "p1", {"memberId": "p1", "displayName": "Ann", "sessionId": "s1"})
    r.sadd("members:idx:sessionId:s1", "ghost", "broken")
    r.set("members:item:broken", "{not json")

    hits = {h.key: h for h in store.query_by_index("members", "sessionId", "s1")}

    assert set(hits) == {"p1", "broken"}
    assert hits["p1"].record == {"memberId": "p1", "displayName": "Ann", "sessionId": "s1"}
    assert hits["broken"].record is None
    assert "not valid JSON" in (hits["broken"].error or "")


def test_get_raises_on_corrupt_document(store: RedisEntityStore, r: fakeredis.FakeRedis) -> None:
    r.set("sessions:item:s1", json.dumps(["not", "an", "object"]))

    with pytest.raises(CorruptRecord) as e:
        store.get("sessions", "s1")
    assert e.value.key == "s1"


def test_unknown_collection_and_unindexed_field(store: RedisEntityStore) -> None:
    with pytest.raises(ValueError):
        store.get("games", "g1")
    with pytest.raises(ValueError):
        store.query_by_index("sessions", "ownerId", "p1")
