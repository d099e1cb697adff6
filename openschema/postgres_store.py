"""
PostgreSQL store implementation (relational database via a JSONB column).

Each collection is a table:
- "Id": TEXT primary key
- "Data": JSONB holding the full record

Field lookups use the `->>` text extraction operator with the field name as
a bound parameter; identifier lookups use the primary key.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError

from observability import traced

from .base import DocumentStore, Record, ensure_id, is_id_field, validate_collection_name, without_id

logger = logging.getLogger(__name__)

_TRACE = {"db.system": "postgresql"}

DEFAULT_CONNECTION = "Host=localhost;Port=5432;Username=postgres;Password=mysecretpassword;Database=openschema"

_ADO_KEYS = {
    "host": "host",
    "server": "host",
    "port": "port",
    "username": "username",
    "user id": "username",
    "userid": "username",
    "user": "username",
    "password": "password",
    "database": "database",
}


def to_sqlalchemy_url(connection: str):
    """
    Accept either a SQLAlchemy URL or an ADO-style key/value string.

    "Host=localhost;Port=5432;Username=postgres;Password=pw;Database=db"
    becomes postgresql+psycopg2://postgres:pw@localhost:5432/db.
    """
    if "://" in connection:
        return connection

    parts: Dict[str, Any] = {}
    for item in connection.split(";"):
        key, sep, value = item.partition("=")
        if not sep:
            continue
        name = _ADO_KEYS.get(key.strip().lower())
        if name:
            parts[name] = value.strip()
    if "port" in parts:
        parts["port"] = int(parts["port"])
    return URL.create("postgresql+psycopg2", **parts)


def _load(data: Any) -> Record:
    # psycopg2 decodes JSONB itself; plain TEXT comes back as a string
    return json.loads(data) if isinstance(data, str) else data


class PostgresStore(DocumentStore):
    """
    PostgreSQL-backed store.

    The SQLAlchemy engine owns the connection pool; every operation checks
    out a connection for its own duration.

    Requires: psycopg2-binary and sqlalchemy packages
    """

    def __init__(self, database_url: str = DEFAULT_CONNECTION):
        url = to_sqlalchemy_url(database_url)
        self._engine = create_engine(url, pool_pre_ping=True, pool_recycle=1800)
        logger.info(f"PostgreSQL store configured for {self._engine.url.render_as_string(hide_password=True)}")

    @staticmethod
    def _ensure_table(conn, collection: str) -> str:
        table = validate_collection_name(collection)
        conn.execute(
            text(f"""
                CREATE TABLE IF NOT EXISTS "{table}" (
                    "Id" TEXT PRIMARY KEY,
                    "Data" JSONB NOT NULL
                )
            """)
        )
        return table

    @staticmethod
    def _where(field: str, value: str) -> Tuple[str, Dict[str, Any]]:
        if is_id_field(field):
            return '"Id" = :value', {"value": value}
        return '"Data"->>:field = :value', {"field": field, "value": value}

    @traced(attributes=_TRACE)
    def get_all(self, collection: str) -> List[Record]:
        with self._engine.connect() as conn:
            table = self._ensure_table(conn, collection)
            rows = conn.execute(text(f'SELECT "Data" FROM "{table}"')).fetchall()
            conn.commit()
        return [_load(row[0]) for row in rows]

    @traced(attributes=_TRACE)
    def get_by_field(self, collection: str, field: str, value: str) -> Optional[Record]:
        where, params = self._where(field, value)
        with self._engine.connect() as conn:
            table = self._ensure_table(conn, collection)
            row = conn.execute(text(f'SELECT "Data" FROM "{table}" WHERE {where} LIMIT 1'), params).fetchone()
            conn.commit()
        return _load(row[0]) if row else None

    @traced(attributes=_TRACE)
    def insert(self, collection: str, record: Record) -> bool:
        record_id, stored = ensure_id(record)
        with self._engine.connect() as conn:
            table = self._ensure_table(conn, collection)
            result = conn.execute(
                text(f'INSERT INTO "{table}" ("Id", "Data") VALUES (:id, CAST(:data AS JSONB))'),
                {"id": record_id, "data": json.dumps(stored)},
            )
            conn.commit()
        logger.debug(f"PostgreSQL insert {table}:{record_id}")
        return result.rowcount > 0

    @traced(attributes=_TRACE)
    def update(self, collection: str, field: str, value: str, record: Record) -> bool:
        where, params = self._where(field, value)
        params["data"] = json.dumps(without_id(record))
        with self._engine.connect() as conn:
            table = self._ensure_table(conn, collection)
            # the row keeps its primary key, written back into the record
            result = conn.execute(
                text(f"""
                    UPDATE "{table}" SET "Data" = CAST(:data AS JSONB) || jsonb_build_object('Id', "Id")
                    WHERE "Id" = (SELECT "Id" FROM "{table}" WHERE {where} LIMIT 1)
                """),
                params,
            )
            conn.commit()
        return result.rowcount > 0

    @traced(attributes=_TRACE)
    def delete(self, collection: str, field: str, value: str) -> bool:
        where, params = self._where(field, value)
        with self._engine.connect() as conn:
            table = self._ensure_table(conn, collection)
            result = conn.execute(
                text(f'DELETE FROM "{table}" WHERE "Id" = (SELECT "Id" FROM "{table}" WHERE {where} LIMIT 1)'),
                params,
            )
            conn.commit()
        return result.rowcount > 0

    def ping(self) -> bool:
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.warning(f"PostgreSQL ping failed: {e}")
            return False

    def close(self) -> None:
        self._engine.dispose()
