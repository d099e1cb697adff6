"""
Base store interface and factory for the generic document stores.
"""

from __future__ import annotations

import json
import os
import re
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from errors import InvalidCollectionNameError, UnsupportedProviderError
from observability import build_log_context, log_event, redact_connection

Record = Dict[str, Any]

ID_FIELD = "Id"

COLLECTION_NAME_PATTERN = r"^[A-Za-z_][A-Za-z0-9_]{0,62}$"
_COLLECTION_NAME_RE = re.compile(COLLECTION_NAME_PATTERN)


class DocumentStore(ABC):
    """
    Abstract base class for the generic storage service.

    Every backend stores schemaless records (plain dicts) in named
    collections and exposes the same CRUD surface:
    - get_all / get_by_field for reads
    - insert / update / delete for writes

    Lookups on the identifier field ("Id", any case) go through the
    backend's identifier path where it has one. "Not found" is never an
    error: reads return None, writes return False. Driver errors propagate.
    """

    @abstractmethod
    def get_all(self, collection: str) -> List[Record]:
        """Return every record in the collection."""
        pass

    @abstractmethod
    def get_by_field(self, collection: str, field: str, value: str) -> Optional[Record]:
        """Return the first record whose field matches value."""
        pass

    @abstractmethod
    def insert(self, collection: str, record: Record) -> bool:
        """Persist a new record, generating an identifier when it has none."""
        pass

    @abstractmethod
    def update(self, collection: str, field: str, value: str, record: Record) -> bool:
        """Replace the content of the first matching record, keeping its identifier."""
        pass

    @abstractmethod
    def delete(self, collection: str, field: str, value: str) -> bool:
        """Remove the first matching record."""
        pass

    # Health check
    @abstractmethod
    def ping(self) -> bool:
        """Check if the backend is reachable."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close connections."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def is_id_field(field: str) -> bool:
    return field.lower() == ID_FIELD.lower()


def extract_id(record: Record) -> Optional[str]:
    """
    Read the identifier off a record.

    The identifier key is matched case-insensitively. Returns None when the
    record has no identifier key or its value is null.
    """
    for key, value in record.items():
        if isinstance(key, str) and is_id_field(key):
            return None if value is None else str(value)
    return None


def ensure_id(record: Record) -> Tuple[str, Record]:
    """
    Return (identifier, record to store).

    A record without an identifier gets a fresh uuid4 under the "Id" key.
    The caller's dict is copied, never mutated.
    """
    stored = dict(record)
    record_id = extract_id(stored)
    if record_id is None:
        record_id = str(uuid.uuid4())
        stored = with_id(stored, record_id)
    return record_id, stored


def without_id(record: Record) -> Record:
    return {k: v for k, v in record.items() if not (isinstance(k, str) and is_id_field(k))}


def with_id(record: Record, record_id: str) -> Record:
    """
    Return a copy of record carrying record_id under "Id".

    Updates keep the identifier of the record they replace, whatever
    identifier (if any) the replacement carries.
    """
    stored = without_id(record)
    stored[ID_FIELD] = record_id
    return stored


def as_text(value: Any) -> Optional[str]:
    """
    Render a deserialized field value the way field lookups compare it.

    JSON scalars render as their JSON text (true/false, numbers), strings
    are unchanged, containers render as compact JSON and null never matches.
    Floats use Python's repr, so exponent forms (1e+16) can differ from
    the text a database renders for the same number.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, separators=(",", ":"), default=str)


def field_matches(record: Record, field: str, value: str) -> bool:
    if field not in record:
        return False
    text = as_text(record[field])
    return text is not None and text == value


def validate_collection_name(name: str) -> str:
    if not isinstance(name, str) or not _COLLECTION_NAME_RE.match(name):
        raise InvalidCollectionNameError(name, COLLECTION_NAME_PATTERN)
    return name


_PROVIDERS = {
    "litedb": ("litedb", "tinydb", "document"),
    "mongodb": ("mongodb", "mongo"),
    "redisdb": ("redisdb", "redis"),
    "postgresqldb": ("postgresqldb", "postgresql", "postgres", "pg"),
    "sqlitedb": ("sqlitedb", "sqlite"),
}


def list_providers() -> List[str]:
    return list(_PROVIDERS)


def resolve_provider(provider: str) -> str:
    name = (provider or "").strip().lower()
    for canonical, aliases in _PROVIDERS.items():
        if name in aliases:
            return canonical
    raise UnsupportedProviderError(provider, list_providers())


def get_store(provider: str, connection: Optional[str] = None, db_name: Optional[str] = None) -> DocumentStore:
    """
    Factory function returning the store for a provider name.

    Provider names are case-insensitive:
    - "litedb" / "tinydb": embedded document store (connection = file path)
    - "mongodb": MongoDB (connection = URI, db_name = database)
    - "redisdb" / "redis": Redis (connection = URL or host[:port])
    - "postgresqldb" / "postgres": PostgreSQL (connection = URL or Host=...;Database=... string)
    - "sqlitedb" / "sqlite": SQLite (connection = file path)

    When connection is None each store uses its own default. db_name is
    only used by MongoDB.
    """
    canonical = resolve_provider(provider)

    if canonical == "litedb":
        from .tinydb_store import TinyDbStore

        store = TinyDbStore(connection) if connection else TinyDbStore()

    elif canonical == "mongodb":
        from .mongo_store import MongoStore

        store = MongoStore(connection, db_name) if connection else MongoStore(db_name=db_name)

    elif canonical == "redisdb":
        from .redis_store import RedisStore

        store = RedisStore(connection) if connection else RedisStore()

    elif canonical == "postgresqldb":
        from .postgres_store import PostgresStore

        store = PostgresStore(connection) if connection else PostgresStore()

    else:
        from .sqlite_store import SqliteStore

        store = SqliteStore(connection) if connection else SqliteStore()

    log_event(
        "store_created",
        ctx=build_log_context(tool="get_store", provider=canonical),
        data={"store": type(store).__name__, "connection": redact_connection(connection), "db_name": db_name},
    )
    return store


def get_store_backend() -> DocumentStore:
    """
    Factory function to get the configured store from the environment.

    Configure via environment:
    - OPENSCHEMA_PROVIDER: provider name (default: "sqlitedb")
    - OPENSCHEMA_CONNECTION: connection string or path (default: store default)
    - OPENSCHEMA_DB_NAME: database name (mongodb only)
    """
    provider = os.getenv("OPENSCHEMA_PROVIDER", "sqlitedb")
    connection = os.getenv("OPENSCHEMA_CONNECTION") or None
    db_name = os.getenv("OPENSCHEMA_DB_NAME") or None
    return get_store(provider, connection, db_name)
