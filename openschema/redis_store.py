"""
Redis store implementation (in-memory key/value store).

Records live under "<collection>:<id>" string keys as JSON text. Redis has
no secondary indexes here, so every field lookup (the identifier included)
scans the collection's key namespace.
"""

from __future__ import annotations

import json
import logging
from typing import Iterator, List, Optional, Tuple

import redis

from observability import traced

from .base import (
    DocumentStore,
    Record,
    ensure_id,
    extract_id,
    field_matches,
    is_id_field,
    validate_collection_name,
    with_id,
)

logger = logging.getLogger(__name__)

_TRACE = {"db.system": "redis"}


def _to_url(connection: str) -> str:
    # "localhost" / "localhost:6379" style endpoints
    if "://" in connection:
        return connection
    return f"redis://{connection}"


class RedisStore(DocumentStore):
    """
    Redis-backed store.

    The client manages its own connection pool and is safe to share across
    threads. Lookups, updates and deletes are find-then-act and are not
    atomic against concurrent writers.
    """

    def __init__(self, redis_url: str = "redis://localhost:6379/0", client: Optional[redis.Redis] = None):
        self._url = _to_url(redis_url)
        if client is not None:
            self._client = client
        else:
            self._client = redis.Redis.from_url(
                self._url,
                decode_responses=True,
                socket_timeout=5.0,
                socket_connect_timeout=5.0,
            )
        logger.info(f"Redis store configured for {self._url}")

    @staticmethod
    def _key(collection: str, record_id: str) -> str:
        return f"{collection}:{record_id}"

    def _scan(self, collection: str) -> Iterator[Tuple[str, Record]]:
        pattern = f"{validate_collection_name(collection)}:*"
        for key in self._client.scan_iter(match=pattern):
            raw = self._client.get(key)
            if raw:
                yield key, json.loads(raw)

    def _find(self, collection: str, field: str, value: str) -> Optional[Tuple[str, Record]]:
        by_id = is_id_field(field)
        for key, record in self._scan(collection):
            if (extract_id(record) == value) if by_id else field_matches(record, field, value):
                return key, record
        return None

    @traced(attributes=_TRACE)
    def get_all(self, collection: str) -> List[Record]:
        return [record for _, record in self._scan(collection)]

    @traced(attributes=_TRACE)
    def get_by_field(self, collection: str, field: str, value: str) -> Optional[Record]:
        found = self._find(collection, field, value)
        return found[1] if found else None

    @traced(attributes=_TRACE)
    def insert(self, collection: str, record: Record) -> bool:
        record_id, stored = ensure_id(record)
        key = self._key(validate_collection_name(collection), record_id)
        logger.debug(f"Redis SET {key}")
        return bool(self._client.set(key, json.dumps(stored)))

    @traced(attributes=_TRACE)
    def update(self, collection: str, field: str, value: str, record: Record) -> bool:
        found = self._find(collection, field, value)
        if found is None:
            return False
        key = found[0]
        # the record stays under its key; the key suffix is its identifier
        record_id = key.split(":", 1)[1]
        return bool(self._client.set(key, json.dumps(with_id(record, record_id))))

    @traced(attributes=_TRACE)
    def delete(self, collection: str, field: str, value: str) -> bool:
        found = self._find(collection, field, value)
        if found is None:
            return False
        return bool(self._client.delete(found[0]))

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    def close(self) -> None:
        self._client.close()
