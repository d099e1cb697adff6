"""
SQLite store implementation (embedded relational database).

Each collection is a table with two columns:
- "Id": TEXT primary key
- "Data": the record serialized as JSON text

Field lookups go through json_extract; the identifier uses the primary key.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from typing import List, Optional

from observability import traced

from .base import DocumentStore, Record, ensure_id, is_id_field, validate_collection_name, without_id

logger = logging.getLogger(__name__)

_TRACE = {"db.system": "sqlite"}

# json_extract yields 1/0 for JSON booleans; render them as JSON text so
# comparisons agree with the other stores.
_FIELD_TEXT = """
    CASE json_type("Data", :path)
        WHEN 'true' THEN 'true'
        WHEN 'false' THEN 'false'
        ELSE CAST(json_extract("Data", :path) AS TEXT)
    END
"""


def _json_path(field: str) -> str:
    return '$."' + field.replace('"', '') + '"'


class SqliteStore(DocumentStore):
    """
    SQLite-backed store holding one connection for its lifetime.

    Use as a context manager (or call close()) to release the database file.
    """

    def __init__(self, database_path: str = "openschema.db"):
        self._path = self._parse_path(database_path)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self._path, check_same_thread=False)
        logger.info(f"Opened SQLite database at {self._path}")

    @staticmethod
    def _parse_path(database_path: str) -> str:
        # Accept ADO-style "Data Source=<path>" connection strings
        for part in database_path.split(";"):
            key, sep, value = part.partition("=")
            if sep and key.strip().lower() in ("data source", "datasource", "filename"):
                return value.strip()
        return database_path.strip()

    def _ensure_table(self, collection: str) -> str:
        table = validate_collection_name(collection)
        self._conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS "{table}" (
                "Id" TEXT PRIMARY KEY,
                "Data" TEXT NOT NULL
            )
            """
        )
        return table

    def _where(self, field: str, value: str):
        if is_id_field(field):
            return '"Id" = :value', {"value": value}
        return f"{_FIELD_TEXT} = :value", {"path": _json_path(field), "value": value}

    @traced(attributes=_TRACE)
    def get_all(self, collection: str) -> List[Record]:
        with self._lock:
            table = self._ensure_table(collection)
            rows = self._conn.execute(f'SELECT "Data" FROM "{table}"').fetchall()
        return [json.loads(row[0]) for row in rows]

    @traced(attributes=_TRACE)
    def get_by_field(self, collection: str, field: str, value: str) -> Optional[Record]:
        where, params = self._where(field, value)
        with self._lock:
            table = self._ensure_table(collection)
            row = self._conn.execute(f'SELECT "Data" FROM "{table}" WHERE {where} LIMIT 1', params).fetchone()
        return json.loads(row[0]) if row else None

    @traced(attributes=_TRACE)
    def insert(self, collection: str, record: Record) -> bool:
        record_id, stored = ensure_id(record)
        with self._lock:
            table = self._ensure_table(collection)
            with self._conn:
                cur = self._conn.execute(
                    f'INSERT INTO "{table}" ("Id", "Data") VALUES (:id, :data)',
                    {"id": record_id, "data": json.dumps(stored)},
                )
        logger.debug(f"SQLite insert {table}:{record_id}")
        return cur.rowcount > 0

    @traced(attributes=_TRACE)
    def update(self, collection: str, field: str, value: str, record: Record) -> bool:
        where, params = self._where(field, value)
        params["data"] = json.dumps(without_id(record))
        with self._lock:
            table = self._ensure_table(collection)
            with self._conn:
                # Limit to the first match, the same record get_by_field returns.
                # The row keeps its primary key, written back into the record.
                cur = self._conn.execute(
                    f"""
                    UPDATE "{table}" SET "Data" = json_set(:data, '$."Id"', "Id")
                    WHERE "Id" = (SELECT "Id" FROM "{table}" WHERE {where} LIMIT 1)
                    """,
                    params,
                )
        return cur.rowcount > 0

    @traced(attributes=_TRACE)
    def delete(self, collection: str, field: str, value: str) -> bool:
        where, params = self._where(field, value)
        with self._lock:
            table = self._ensure_table(collection)
            with self._conn:
                cur = self._conn.execute(
                    f'DELETE FROM "{table}" WHERE "Id" = (SELECT "Id" FROM "{table}" WHERE {where} LIMIT 1)',
                    params,
                )
        return cur.rowcount > 0

    def ping(self) -> bool:
        try:
            with self._lock:
                self._conn.execute("SELECT 1")
            return True
        except sqlite3.Error as e:
            logger.warning(f"SQLite ping failed: {e}")
            return False

    def close(self) -> None:
        with self._lock:
            self._conn.close()
        logger.info(f"Closed SQLite database at {self._path}")
