"""
Generic document storage over heterogeneous backends.

This package provides one CRUD interface with pluggable stores:
- TinyDB (embedded document store, provider "litedb")
- MongoDB (managed document database, provider "mongodb")
- Redis (key/value store, provider "redisdb")
- PostgreSQL (JSONB column, provider "postgresqldb")
- SQLite (embedded relational database, provider "sqlitedb")

Select a store with get_store(provider, connection, db_name), or from the
OPENSCHEMA_PROVIDER / OPENSCHEMA_CONNECTION / OPENSCHEMA_DB_NAME environment
variables with get_store_backend().

Backend modules are imported lazily so that a deployment only needs the
driver for the store it uses.
"""

from .base import (
    ID_FIELD,
    DocumentStore,
    Record,
    extract_id,
    get_store,
    get_store_backend,
    list_providers,
)

__all__ = [
    "ID_FIELD",
    "DocumentStore",
    "Record",
    "extract_id",
    "get_store",
    "get_store_backend",
    "list_providers",
]
