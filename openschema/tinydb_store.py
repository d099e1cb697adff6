"""
TinyDB store implementation (embedded document store).

Documents are keyed by their record identifier, so identifier lookups hit
the table's document-id index directly; other fields use a Query filter.
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import List, Optional

from tinydb import Query, TinyDB
from tinydb.storages import MemoryStorage
from tinydb.table import Document, Table

from observability import traced

from .base import DocumentStore, Record, as_text, ensure_id, is_id_field, validate_collection_name, with_id

logger = logging.getLogger(__name__)

_TRACE = {"db.system": "tinydb"}


class RecordTable(Table):
    """TinyDB table whose document ids are the records' string identifiers."""

    document_id_class = str

    def _get_next_id(self):
        return str(uuid.uuid4())


class RecordDatabase(TinyDB):
    table_class = RecordTable


def _replace_with(record: Record):
    def transform(doc):
        doc.clear()
        doc.update(record)

    return transform


class TinyDbStore(DocumentStore):
    """
    TinyDB-backed store holding one open database handle.

    Pass ":memory:" for a non-persistent database. Use as a context manager
    (or call close()) to release the underlying file.
    """

    def __init__(self, path: str = "openschema.json"):
        self._path = path
        self._lock = threading.Lock()
        if path == ":memory:":
            self._db = RecordDatabase(storage=MemoryStorage)
        else:
            self._db = RecordDatabase(path)
        logger.info(f"Opened TinyDB database at {path}")

    def _table(self, collection: str) -> RecordTable:
        return self._db.table(validate_collection_name(collection))

    @staticmethod
    def _field_query(field: str, value: str):
        return Query()[field].test(lambda v: as_text(v) == value)

    def _find(self, table: RecordTable, field: str, value: str) -> Optional[Document]:
        if is_id_field(field):
            return table.get(doc_id=value)
        return table.get(self._field_query(field, value))

    @traced(attributes=_TRACE)
    def get_all(self, collection: str) -> List[Record]:
        with self._lock:
            return [dict(doc) for doc in self._table(collection).all()]

    @traced(attributes=_TRACE)
    def get_by_field(self, collection: str, field: str, value: str) -> Optional[Record]:
        with self._lock:
            doc = self._find(self._table(collection), field, value)
        return dict(doc) if doc is not None else None

    @traced(attributes=_TRACE)
    def insert(self, collection: str, record: Record) -> bool:
        record_id, stored = ensure_id(record)
        with self._lock:
            # raises ValueError when the identifier is already taken
            self._table(collection).insert(Document(stored, doc_id=record_id))
        logger.debug(f"TinyDB insert {collection}:{record_id}")
        return True

    @traced(attributes=_TRACE)
    def update(self, collection: str, field: str, value: str, record: Record) -> bool:
        with self._lock:
            table = self._table(collection)
            existing = self._find(table, field, value)
            if existing is None:
                return False
            updated = table.update(_replace_with(with_id(record, existing.doc_id)), doc_ids=[existing.doc_id])
        return len(updated) > 0

    @traced(attributes=_TRACE)
    def delete(self, collection: str, field: str, value: str) -> bool:
        with self._lock:
            table = self._table(collection)
            existing = self._find(table, field, value)
            if existing is None:
                return False
            removed = table.remove(doc_ids=[existing.doc_id])
        return len(removed) > 0

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        with self._lock:
            self._db.close()
        logger.info(f"Closed TinyDB database at {self._path}")
