"""
Tests for the store contract shared by every backend.

Runs against the backends that work offline: SQLite, TinyDB, Redis via
fakeredis and MongoDB via mongomock.
"""

from __future__ import annotations

import uuid
from unittest.mock import patch

import fakeredis
import mongomock
import pytest


def _sqlite_store(tmp_path):
    from openschema.sqlite_store import SqliteStore

    return SqliteStore(":memory:")


def _tinydb_store(tmp_path):
    from openschema.tinydb_store import TinyDbStore

    return TinyDbStore(str(tmp_path / "openschema.json"))


def _redis_store(tmp_path):
    from openschema.redis_store import RedisStore

    return RedisStore(client=fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True))


def _mongo_store(tmp_path):
    from openschema.mongo_store import MongoStore

    return MongoStore(db_name=f"openschema_{uuid.uuid4().hex}", client=mongomock.MongoClient())


BACKENDS = {
    "sqlite": _sqlite_store,
    "tinydb": _tinydb_store,
    "redis": _redis_store,
    "mongodb": _mongo_store,
}


@pytest.fixture(params=sorted(BACKENDS))
def store(request, tmp_path):
    s = BACKENDS[request.param](tmp_path)
    yield s
    s.close()


def _is_mongo(store) -> bool:
    from openschema.mongo_store import MongoStore

    return isinstance(store, MongoStore)


ALICE = {"Id": "1", "Name": "Alice", "Age": 30}
BOB = {"Id": "2", "Name": "Bob", "Age": 25}


class TestStoreContract:
    """Test the CRUD contract against every offline backend."""

    def test_concrete_scenario(self, store):
        """Test the insert / read / update / delete walkthrough."""
        assert store.insert("T", dict(ALICE)) is True
        assert store.insert("T", dict(BOB)) is True

        records = store.get_all("T")
        assert len(records) == 2
        assert ALICE in records
        assert BOB in records

        assert store.get_by_field("T", "Name", "Alice") == ALICE

        assert store.update("T", "Id", "1", {"Id": "1", "Name": "Alice", "Age": 31}) is True
        assert store.get_by_field("T", "Id", "1")["Age"] == 31

        assert store.delete("T", "Id", "2") is True
        records = store.get_all("T")
        assert len(records) == 1
        assert records[0]["Name"] == "Alice"

    def test_get_all_empty_collection(self, store):
        """Test a collection that was never written returns no records."""
        assert store.get_all("Missing") == []

    def test_get_by_field_not_found(self, store):
        """Test lookups without a match return None."""
        store.insert("T", dict(ALICE))
        assert store.get_by_field("T", "Name", "Nobody") is None
        assert store.get_by_field("T", "Id", "404") is None
        assert store.get_by_field("T", "Unknown", "Alice") is None

    def test_get_by_id_returns_inserted_record(self, store):
        """Test insert then lookup by identifier returns the same record."""
        store.insert("T", dict(BOB))
        assert store.get_by_field("T", "Id", "2") == BOB

    def test_id_field_is_case_insensitive(self, store):
        """Test the identifier field name matches in any case."""
        store.insert("T", dict(ALICE))
        assert store.get_by_field("T", "id", "1") == ALICE
        assert store.get_by_field("T", "ID", "1") == ALICE

    def test_numeric_field_compared_as_text(self, store):
        """Test numeric fields match their string rendering."""
        if _is_mongo(store):
            pytest.skip("MongoDB compares typed values natively")
        store.insert("T", dict(ALICE))
        store.insert("T", dict(BOB))
        assert store.get_by_field("T", "Age", "25") == BOB

    def test_update_replaces_whole_record(self, store):
        """Test update does not merge old and new fields."""
        store.insert("T", {"Id": "1", "Name": "Alice", "Age": 30, "City": "Oslo"})
        assert store.update("T", "Id", "1", {"Id": "1", "Name": "Alicia"}) is True

        record = store.get_by_field("T", "Id", "1")
        assert record == {"Id": "1", "Name": "Alicia"}

    def test_update_by_non_id_field(self, store):
        """Test update locates the record by an arbitrary field."""
        store.insert("T", dict(ALICE))
        store.insert("T", dict(BOB))
        assert store.update("T", "Name", "Bob", {"Id": "2", "Name": "Robert", "Age": 26}) is True

        assert store.get_by_field("T", "Id", "2") == {"Id": "2", "Name": "Robert", "Age": 26}
        assert store.get_by_field("T", "Id", "1") == ALICE

    def test_update_missing_returns_false(self, store):
        """Test update never upserts."""
        store.insert("T", dict(ALICE))
        assert store.update("T", "Id", "404", {"Id": "404", "Name": "Ghost"}) is False
        assert store.update("T", "Name", "Ghost", {"Name": "Ghost"}) is False
        assert store.get_all("T") == [ALICE]

    def test_update_missing_collection_returns_false(self, store):
        """Test update against a collection never written returns False."""
        assert store.update("Missing", "Id", "1", dict(ALICE)) is False

    def test_update_keeps_identifier_when_replacement_changes_it(self, store):
        """Test the updated record stays reachable under its original identifier."""
        store.insert("T", dict(ALICE))
        assert store.update("T", "Id", "1", {"Id": "9", "Name": "Alice", "Age": 31}) is True

        assert store.get_by_field("T", "Id", "9") is None
        assert store.get_by_field("T", "Id", "1") == {"Id": "1", "Name": "Alice", "Age": 31}
        assert store.get_all("T") == [{"Id": "1", "Name": "Alice", "Age": 31}]

    def test_update_keeps_identifier_when_replacement_drops_it(self, store):
        """Test a replacement without identifier keeps the located one."""
        store.insert("T", dict(ALICE))
        store.insert("T", dict(BOB))
        assert store.update("T", "Name", "Bob", {"Name": "Robert"}) is True

        assert store.get_by_field("T", "Id", "2") == {"Id": "2", "Name": "Robert"}
        assert store.get_by_field("T", "Name", "Robert") == {"Id": "2", "Name": "Robert"}

    def test_identifier_key_in_any_case_is_found(self, store):
        """Test records stored with a lower-case identifier key match id lookups."""
        store.insert("T", {"id": "7", "Name": "Lower"})
        assert store.get_by_field("T", "Id", "7")["Name"] == "Lower"
        assert store.delete("T", "ID", "7") is True
        assert store.get_all("T") == []

    def test_delete_by_non_id_field(self, store):
        """Test delete locates the record by an arbitrary field."""
        store.insert("T", dict(ALICE))
        store.insert("T", dict(BOB))
        assert store.delete("T", "Name", "Alice") is True
        assert store.get_all("T") == [BOB]

    def test_delete_missing_returns_false(self, store):
        """Test delete without a match leaves the collection unchanged."""
        store.insert("T", dict(ALICE))
        assert store.delete("T", "Id", "404") is False
        assert store.delete("T", "Name", "Nobody") is False
        assert store.get_all("T") == [ALICE]

    def test_delete_removes_only_one_record(self, store):
        """Test delete removes a single match."""
        store.insert("T", {"Id": "1", "Team": "red"})
        store.insert("T", {"Id": "2", "Team": "red"})
        assert store.delete("T", "Team", "red") is True
        assert len(store.get_all("T")) == 1

    def test_insert_without_id_generates_one(self, store):
        """Test a record without identifier gets a fresh one."""
        assert store.insert("T", {"Name": "Anon"}) is True

        records = store.get_all("T")
        assert len(records) == 1
        generated = records[0]["Id"]
        assert isinstance(generated, str) and generated
        assert records[0]["Name"] == "Anon"
        assert store.get_by_field("T", "Id", generated)["Name"] == "Anon"

    def test_generated_ids_are_unique(self, store):
        """Test two records without identifier get distinct identifiers."""
        store.insert("T", {"Name": "A"})
        store.insert("T", {"Name": "B"})
        ids = {r["Id"] for r in store.get_all("T")}
        assert len(ids) == 2

    def test_insert_does_not_mutate_input(self, store):
        """Test the caller's record is left untouched."""
        record = {"Name": "Anon"}
        store.insert("T", record)
        assert record == {"Name": "Anon"}

    def test_collections_are_isolated(self, store):
        """Test records in one collection are invisible in another."""
        store.insert("People", dict(ALICE))
        store.insert("Pets", {"Id": "1", "Name": "Rex"})
        assert store.get_all("People") == [ALICE]
        assert store.get_by_field("Pets", "Id", "1")["Name"] == "Rex"

    def test_boolean_field_lookup(self, store):
        """Test booleans match their JSON text."""
        if _is_mongo(store):
            pytest.skip("MongoDB compares typed values natively")
        store.insert("T", {"Id": "1", "Active": True})
        store.insert("T", {"Id": "2", "Active": False})
        assert store.get_by_field("T", "Active", "false")["Id"] == "2"

    @pytest.mark.parametrize("name", ["", "1abc", "bad name", "x;DROP TABLE y", "a:*", "a" * 64])
    def test_invalid_collection_name_rejected(self, store, name):
        """Test collection names outside the allow-list raise."""
        from errors import InvalidCollectionNameError

        with pytest.raises(InvalidCollectionNameError):
            store.get_all(name)
        with pytest.raises(InvalidCollectionNameError):
            store.insert(name, dict(ALICE))

    def test_context_manager_closes(self, tmp_path):
        """Test the store closes its connection on exit."""
        import sqlite3

        from openschema.sqlite_store import SqliteStore

        with SqliteStore(str(tmp_path / "ctx.db")) as store:
            store.insert("T", dict(ALICE))
        with pytest.raises(sqlite3.ProgrammingError):
            store.get_all("T")


class TestStoreFactory:
    """Test store factory functions."""

    def test_sqlite_provider(self, tmp_path):
        """Test sqlitedb provider returns a SqliteStore."""
        from openschema import get_store
        from openschema.sqlite_store import SqliteStore

        with get_store("sqlitedb", str(tmp_path / "f.db")) as store:
            assert isinstance(store, SqliteStore)

    def test_litedb_provider(self, tmp_path):
        """Test litedb provider returns a TinyDbStore."""
        from openschema import get_store
        from openschema.tinydb_store import TinyDbStore

        with get_store("litedb", str(tmp_path / "f.json")) as store:
            assert isinstance(store, TinyDbStore)

    def test_provider_is_case_insensitive(self, tmp_path):
        """Test provider names ignore case and surrounding spaces."""
        from openschema import get_store
        from openschema.sqlite_store import SqliteStore

        with get_store("  SQLiteDB ", ":memory:") as store:
            assert isinstance(store, SqliteStore)

    @pytest.mark.parametrize(
        "provider,canonical",
        [
            ("tinydb", "litedb"),
            ("mongo", "mongodb"),
            ("redis", "redisdb"),
            ("postgres", "postgresqldb"),
            ("pg", "postgresqldb"),
            ("sqlite", "sqlitedb"),
        ],
    )
    def test_aliases(self, provider, canonical):
        """Test aliases resolve to canonical provider names."""
        from openschema.base import resolve_provider

        assert resolve_provider(provider) == canonical

    def test_unsupported_provider(self):
        """Test unknown providers fail fast."""
        from errors import UnsupportedProviderError
        from openschema import get_store, list_providers

        with pytest.raises(UnsupportedProviderError) as exc_info:
            get_store("cassandra", "localhost")

        assert exc_info.value.code == "CONFIG_101"
        assert exc_info.value.data["supported"] == list_providers()

    def test_redis_provider(self):
        """Test redisdb provider returns a RedisStore without connecting."""
        from openschema import get_store
        from openschema.redis_store import RedisStore

        store = get_store("redisdb", "localhost:6379")
        assert isinstance(store, RedisStore)
        assert store._url == "redis://localhost:6379"

    def test_mongodb_provider(self):
        """Test mongodb provider passes the database name."""
        from openschema import get_store
        from openschema.mongo_store import MongoStore

        with patch("openschema.mongo_store.MongoClient", mongomock.MongoClient):
            store = get_store("mongodb", "mongodb://localhost:27017", "testdb")
        assert isinstance(store, MongoStore)
        assert store._db.name == "testdb"

    def test_postgres_provider(self):
        """Test postgresqldb provider returns a PostgresStore."""
        from openschema import get_store
        from openschema.postgres_store import PostgresStore

        with patch("openschema.postgres_store.create_engine") as create_engine:
            store = get_store("postgresqldb", "Host=localhost;Port=5432;Username=postgres;Password=pw;Database=testdb")
        assert isinstance(store, PostgresStore)
        create_engine.assert_called_once()

    def test_store_created_event_logged(self, capsys):
        """Test the factory emits a structured log event."""
        import json

        from openschema import get_store

        get_store("sqlitedb", ":memory:").close()
        event = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert event["event"] == "store_created"
        assert event["provider"] == "sqlitedb"
        assert event["data"] == {"store": "SqliteStore", "connection": ":memory:"}

    def test_store_created_event_hides_password(self, capsys):
        """Test connection passwords never reach the log event."""
        import json

        from openschema import get_store

        with patch("openschema.postgres_store.create_engine"):
            get_store("postgres", "Host=db;Username=postgres;Password=secret;Database=app")
        out = capsys.readouterr().out
        assert "secret" not in out
        event = json.loads(out.strip().splitlines()[-1])
        assert event["data"]["connection"] == "Host=db;Username=postgres;Password=***;Database=app"

    def test_env_backend_default_is_sqlite(self, tmp_path):
        """Test the environment factory defaults to SQLite."""
        from openschema import get_store_backend
        from openschema.sqlite_store import SqliteStore

        with patch.dict("os.environ", {"OPENSCHEMA_CONNECTION": str(tmp_path / "env.db")}):
            with get_store_backend() as store:
                assert isinstance(store, SqliteStore)

    def test_env_backend_selects_provider(self, tmp_path):
        """Test OPENSCHEMA_PROVIDER selects the store."""
        from openschema import get_store_backend
        from openschema.tinydb_store import TinyDbStore

        env = {"OPENSCHEMA_PROVIDER": "litedb", "OPENSCHEMA_CONNECTION": str(tmp_path / "env.json")}
        with patch.dict("os.environ", env):
            with get_store_backend() as store:
                assert isinstance(store, TinyDbStore)
