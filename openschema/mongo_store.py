"""
MongoDB store implementation (managed document database).

Records are stored as native BSON documents. Records without an identifier
are left for the server to key with an ObjectId `_id`; returned records
expose that `_id` as "Id" when they carry no identifier of their own.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from observability import traced

from .base import ID_FIELD, DocumentStore, Record, extract_id, is_id_field, validate_collection_name, without_id

logger = logging.getLogger(__name__)

_TRACE = {"db.system": "mongodb"}

# every spelling extract_id accepts
_ID_KEYS = ("Id", "id", "ID", "iD")


def id_filter(field: str, value: str) -> Dict[str, Any]:
    """
    Build the filter for a field lookup.

    Identifier lookups ("Id", any case) whose value parses as an ObjectId
    target the `_id` primary key, otherwise they match an identifier key
    spelled in any case. Other fields are a plain equality filter on the
    field name.
    """
    if is_id_field(field):
        if ObjectId.is_valid(value):
            return {"_id": ObjectId(value)}
        return {"$or": [{key: value} for key in _ID_KEYS]}
    return {field: value}


def _to_record(doc: Optional[Dict[str, Any]]) -> Optional[Record]:
    if doc is None:
        return None
    record = dict(doc)
    native_id = record.pop("_id", None)
    if native_id is not None and extract_id(record) is None:
        record[ID_FIELD] = str(native_id)
    return record


class MongoStore(DocumentStore):
    """
    MongoDB-backed store.

    MongoClient pools connections and is safe to share across threads.
    With no db_name, the database named in the connection URI is used.
    """

    def __init__(
        self,
        connection_string: str = "mongodb://localhost:27017",
        db_name: Optional[str] = None,
        client: Optional[MongoClient] = None,
    ):
        self._client = client if client is not None else MongoClient(connection_string)
        self._db = self._client[db_name] if db_name else self._client.get_default_database()
        logger.info(f"MongoDB store configured for database {self._db.name}")

    def _collection(self, collection: str):
        return self._db[validate_collection_name(collection)]

    @traced(attributes=_TRACE)
    def get_all(self, collection: str) -> List[Record]:
        return [_to_record(doc) for doc in self._collection(collection).find({})]

    @traced(attributes=_TRACE)
    def get_by_field(self, collection: str, field: str, value: str) -> Optional[Record]:
        return _to_record(self._collection(collection).find_one(id_filter(field, value)))

    @traced(attributes=_TRACE)
    def insert(self, collection: str, record: Record) -> bool:
        # insert_one adds `_id` to the document it is given
        result = self._collection(collection).insert_one(dict(record))
        logger.debug(f"MongoDB insert {collection}:{result.inserted_id}")
        return result.acknowledged

    @traced(attributes=_TRACE)
    def update(self, collection: str, field: str, value: str, record: Record) -> bool:
        coll = self._collection(collection)
        existing = coll.find_one(id_filter(field, value))
        if existing is None:
            return False
        # keep the replaced document's identifier (its own key, or `_id` alone)
        replacement = without_id(record)
        for key, stored_id in existing.items():
            if is_id_field(key):
                replacement[key] = stored_id
        result = coll.replace_one({"_id": existing["_id"]}, replacement)
        return result.matched_count > 0

    @traced(attributes=_TRACE)
    def delete(self, collection: str, field: str, value: str) -> bool:
        result = self._collection(collection).delete_one(id_filter(field, value))
        return result.deleted_count > 0

    def ping(self) -> bool:
        try:
            self._client.admin.command("ping")
            return True
        except PyMongoError as e:
            logger.warning(f"MongoDB ping failed: {e}")
            return False

    def close(self) -> None:
        self._client.close()
