from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import redis

from lobby.errors import Conflict, CorruptRecord, NotFound, StoreUnavailable


logger = logging.getLogger(__name__)

Record = dict[str, Any]


@dataclass(frozen=True, slots=True)
class CollectionSpec:
    """Describes one collection: its primary key field and its secondary indexes."""

    name: str
    key_field: str
    index_fields: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class PutIfAbsent:
    collection: str
    key: str
    record: Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class IndexedRecord:
    """One hit from a secondary index query.

    `record` is None when the stored document could not be decoded; `error` then says why.
    """

    key: str
    record: Record | None
    error: str | None = None


class EntityStore(Protocol):
    """Transactional key-value store consumed by the session coordinator."""

    def get(self, collection: str, key: str) -> Record | None: ...

    def put_if_absent(self, collection: str, key: str, record: Mapping[str, Any]) -> None: ...

    def update(self, collection: str, key: str, fields: Mapping[str, Any]) -> None: ...

    def delete(self, collection: str, key: str) -> None: ...

    def query_by_index(self, collection: str, field: str, value: str) -> list[IndexedRecord]: ...

    def transactional_write(self, puts: Sequence[PutIfAbsent]) -> None: ...


class RedisEntityStore:
    """EntityStore on Redis.

    Layout:
      - `{collection}:item:{key}` holds the JSON document.
      - `{collection}:idx:{field}:{value}` is a set of keys, one per indexed field value.

    Conditional writes use WATCH + MULTI: the transaction aborts if any watched key is
    touched before EXEC, so a duplicate create can never slip in between the check and the write.
    """

    def __init__(self, *, r: redis.Redis, collections: Sequence[CollectionSpec], max_watch_retries: int = 5) -> None:
        self._r = r
        self._collections = {c.name: c for c in collections}
        self._max_watch_retries = max_watch_retries

    def _spec(self, collection: str) -> CollectionSpec:
        spec = self._collections.get(collection)
        if spec is None:
            raise ValueError(f"Unknown collection: {collection}")
        return spec

    @staticmethod
    def _item_key(collection: str, key: str) -> str:
        return f"{collection}:item:{key}"

    @staticmethod
    def _index_key(collection: str, field: str, value: Any) -> str:
        return f"{collection}:idx:{field}:{value}"

    @staticmethod
    def _decode(collection: str, key: str, raw: str) -> Record:
        try:
            doc = json.loads(raw)
        except ValueError as e:
            raise CorruptRecord(f"{collection}/{key} is not valid JSON: {e}", key=key) from e
        if not isinstance(doc, dict):
            raise CorruptRecord(f"{collection}/{key} is not a JSON object", key=key)
        return doc

    def get(self, collection: str, key: str) -> Record | None:
        self._spec(collection)
        try:
            raw = self._r.get(self._item_key(collection, key))
        except redis.RedisError as e:
            raise StoreUnavailable(f"failed to get {collection}/{key}: {e}") from e
        if raw is None:
            return None
        return self._decode(collection, key, raw)

    def put_if_absent(self, collection: str, key: str, record: Mapping[str, Any]) -> None:
        self.transactional_write([PutIfAbsent(collection=collection, key=key, record=record)])

    def transactional_write(self, puts: Sequence[PutIfAbsent]) -> None:
        """Write every item or none of them; each item is conditioned on its key being absent."""

        if not puts:
            return

        item_keys = [self._item_key(p.collection, p.key) for p in puts]
        if len(set(item_keys)) != len(item_keys):
            raise Conflict("transaction writes the same item twice")

        # Encode up front so a bad record fails before anything is sent.
        payloads = [(p, self._spec(p.collection), json.dumps(dict(p.record))) for p in puts]

        try:
            with self._r.pipeline() as pipe:
                pipe.watch(*item_keys)
                existing = [k for k in item_keys if pipe.exists(k)]
                if existing:
                    raise Conflict(f"condition failed: {', '.join(existing)} already exists")

                pipe.multi()
                for (p, spec, payload), item_key in zip(payloads, item_keys):
                    pipe.set(item_key, payload)
                    for field in spec.index_fields:
                        value = p.record.get(field)
                        if value is not None:
                            pipe.sadd(self._index_key(p.collection, field, value), p.key)
                pipe.execute()
        except redis.WatchError as e:
            raise Conflict(f"condition failed: concurrent write on {', '.join(item_keys)}") from e
        except redis.RedisError as e:
            raise StoreUnavailable(f"transaction failed: {e}") from e

    def update(self, collection: str, key: str, fields: Mapping[str, Any]) -> None:
        """Merge `fields` into an existing document. Missing documents are not created."""

        spec = self._spec(collection)
        item_key = self._item_key(collection, key)

        for _ in range(self._max_watch_retries):
            try:
                with self._r.pipeline() as pipe:
                    pipe.watch(item_key)
                    raw = pipe.get(item_key)
                    if raw is None:
                        raise NotFound(f"{collection}/{key} not found")
                    current = self._decode(collection, key, raw)
                    updated = {**current, **fields}

                    pipe.multi()
                    pipe.set(item_key, json.dumps(updated))
                    for field in spec.index_fields:
                        old, new = current.get(field), updated.get(field)
                        if old == new:
                            continue
                        if old is not None:
                            pipe.srem(self._index_key(collection, field, old), key)
                        if new is not None:
                            pipe.sadd(self._index_key(collection, field, new), key)
                    pipe.execute()
                    return
            except redis.WatchError:
                logger.debug("update of %s/%s raced with another writer; retrying", collection, key)
            except redis.RedisError as e:
                raise StoreUnavailable(f"failed to update {collection}/{key}: {e}") from e

        raise StoreUnavailable(f"failed to update {collection}/{key}: too many concurrent writers")

    def delete(self, collection: str, key: str) -> None:
        """Delete a document and its index entries. Deleting an absent key is not an error."""

        spec = self._spec(collection)
        item_key = self._item_key(collection, key)

        for _ in range(self._max_watch_retries):
            try:
                with self._r.pipeline() as pipe:
                    pipe.watch(item_key)
                    raw = pipe.get(item_key)
                    if raw is None:
                        return
                    try:
                        current = self._decode(collection, key, raw)
                    except CorruptRecord:
                        # Index values are unknown; queries skip the dangling entries.
                        current = {}

                    pipe.multi()
                    pipe.delete(item_key)
                    for field in spec.index_fields:
                        value = current.get(field)
                        if value is not None:
                            pipe.srem(self._index_key(collection, field, value), key)
                    pipe.execute()
                    return
            except redis.WatchError:
                logger.debug("delete of %s/%s raced with another writer; retrying", collection, key)
            except redis.RedisError as e:
                raise StoreUnavailable(f"failed to delete {collection}/{key}: {e}") from e

        raise StoreUnavailable(f"failed to delete {collection}/{key}: too many concurrent writers")

    def query_by_index(self, collection: str, field: str, value: str) -> list[IndexedRecord]:
        spec = self._spec(collection)
        if field not in spec.index_fields:
            raise ValueError(f"{collection} has no index on {field}")

        try:
            keys = sorted(self._r.smembers(self._index_key(collection, field, value)))
            if not keys:
                return []
            raws = self._r.mget([self._item_key(collection, k) for k in keys])
        except redis.RedisError as e:
            raise StoreUnavailable(f"failed to query {collection} by {field}: {e}") from e

        out: list[IndexedRecord] = []
        for key, raw in zip(keys, raws):
            if raw is None:
                # Stale index entry: the document is already gone.
                continue
            try:
                doc = self._decode(collection, key, raw)
            except CorruptRecord as e:
                out.append(IndexedRecord(key=key, record=None, error=e.message))
                continue
            if doc.get(field) != value:
                continue
            out.append(IndexedRecord(key=key, record=doc))
        return out
