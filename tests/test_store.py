"""Tests for the Store backends (in-memory rules and PostgreSQL SQL shape)."""

import os
from contextlib import contextmanager
from unittest.mock import MagicMock, patch

import pytest
from psycopg2 import errors as pg_errors

from chatsync.infra.memory_store import MemoryStore
from chatsync.infra.postgres_store import PostgresStore
from chatsync.infra.store import DuplicateRecordError, schema_for

from helpers import ORG_ID


class TestSchemaFor:
    def test_unknown_collection(self):
        with pytest.raises(ValueError, match="unknown collection"):
            schema_for("reservations")

    def test_unknown_field(self):
        with pytest.raises(ValueError, match="unknown contacts fields"):
            schema_for("contacts", {"remote_jid": "x", "password": "y"})

    def test_bookkeeping_fields_allowed(self):
        assert schema_for("messages", ["id", "created_at"]).table == "chat_messages"


class TestMemoryStore:
    def test_insert_applies_defaults(self):
        store = MemoryStore()
        row = store.insert("inboxes", {"name": "Support", "instance_name": "abc"})

        assert row["id"]
        assert row["channel_type"] == "whatsapp"
        assert row["connection_status"] == "pending"
        assert row["contacts_count"] == 0
        assert row["created_at"] is not None

    def test_unique_instance_name(self):
        store = MemoryStore()
        store.insert("inboxes", {"instance_name": "abc"})
        with pytest.raises(DuplicateRecordError) as exc_info:
            store.insert("inboxes", {"instance_name": "abc"})
        assert exc_info.value.constraint == ("instance_name",)

    def test_null_external_ids_never_collide(self):
        store = MemoryStore()
        store.insert("messages", {"conversation_id": "c1", "external_id": None})
        store.insert("messages", {"conversation_id": "c1", "external_id": None})
        assert store.count("messages", conversation_id="c1") == 2

    def test_update_rejects_duplicate(self):
        store = MemoryStore()
        store.insert("messages", {"conversation_id": "c1", "external_id": "A"})
        other = store.insert("messages", {"conversation_id": "c1", "external_id": "B"})
        with pytest.raises(DuplicateRecordError):
            store.update("messages", other["id"], {"external_id": "A"})
        assert store.get("messages", other["id"])["external_id"] == "B"

    def test_update_unknown_row_is_noop(self):
        store = MemoryStore()
        store.update("contacts", "missing", {"name": "x"})
        assert store.count("contacts") == 0

    def test_rows_are_copies(self):
        store = MemoryStore()
        row = store.insert("conversations", {"inbox_id": "i", "contact_id": "c"})
        row["labels"].append("mutated")
        assert store.get("conversations", row["id"])["labels"] == []

    def test_delete_cascades(self):
        store = MemoryStore()
        inbox = store.insert("inboxes", {"instance_name": "abc"})
        contact = store.insert("contacts", {"inbox_id": inbox["id"], "remote_jid": "1@s.whatsapp.net"})
        conversation = store.insert(
            "conversations", {"inbox_id": inbox["id"], "contact_id": contact["id"]}
        )
        store.insert("messages", {"conversation_id": conversation["id"], "external_id": "M1"})

        store.delete("inboxes", inbox["id"])

        assert store.count("contacts") == 0
        assert store.count("conversations") == 0
        assert store.count("messages") == 0

    def test_unknown_filter_field(self):
        with pytest.raises(ValueError):
            MemoryStore().find_one("contacts", phone="1")


@pytest.fixture
def cursor():
    cur = MagicMock()

    @contextmanager
    def fake_txn():
        yield cur

    with patch("chatsync.infra.postgres_store.txn", fake_txn):
        yield cur


class TestPostgresStore:
    def test_find_one_binds_filters(self, cursor):
        cursor.fetchone.return_value = {"id": "u1", "inbox_id": "i1"}

        row = PostgresStore().find_one("contacts", inbox_id="i1", remote_jid="j")

        query, params = cursor.execute.call_args[0]
        assert query == (
            "SELECT * FROM chat_contacts WHERE inbox_id = %s AND remote_jid = %s LIMIT 1"
        )
        assert params == ["i1", "j"]
        assert row == {"id": "u1", "inbox_id": "i1"}

    def test_none_filter_is_null_check(self, cursor):
        cursor.fetchone.return_value = {"n": 3}
        assert PostgresStore().count("messages", external_id=None) == 3
        query, params = cursor.execute.call_args[0]
        assert "external_id IS NULL" in query
        assert params == []

    def test_insert_returning(self, cursor):
        cursor.fetchone.return_value = {"id": "u1"}
        PostgresStore().insert("inboxes", {"name": "S", "instance_name": "abc"})
        query, params = cursor.execute.call_args[0]
        assert query == "INSERT INTO chat_inboxes (name, instance_name) VALUES (%s, %s) RETURNING *"
        assert params == ["S", "abc"]

    def test_unique_violation_maps_to_duplicate(self, cursor):
        cursor.execute.side_effect = pg_errors.UniqueViolation()
        with pytest.raises(DuplicateRecordError):
            PostgresStore().insert("messages", {"external_id": "M1"})

    def test_update_bumps_updated_at(self, cursor):
        PostgresStore().update("contacts", "u1", {"name": "Ana"})
        query, params = cursor.execute.call_args[0]
        assert query == "UPDATE chat_contacts SET name = %s, updated_at = now() WHERE id = %s"
        assert params == ["Ana", "u1"]

    def test_empty_update_skips_query(self, cursor):
        PostgresStore().update("contacts", "u1", {})
        cursor.execute.assert_not_called()

    def test_unknown_column_never_reaches_sql(self, cursor):
        with pytest.raises(ValueError):
            PostgresStore().find_one("contacts", **{"name; DROP TABLE x": "1"})
        cursor.execute.assert_not_called()


@pytest.mark.skipif(not os.environ.get("DATABASE_URL"), reason="DATABASE_URL not set")
class TestPostgresStoreIntegration:
    def test_inbox_round_trip_and_cascade(self):
        store = PostgresStore()
        inbox = store.insert(
            "inboxes",
            {"organization_id": ORG_ID, "name": "it", "instance_name": f"it-{os.getpid()}"},
        )
        try:
            contact = store.insert(
                "contacts", {"inbox_id": inbox["id"], "remote_jid": "1@s.whatsapp.net", "name": "x"}
            )
            with pytest.raises(DuplicateRecordError):
                store.insert("contacts", {"inbox_id": inbox["id"], "remote_jid": "1@s.whatsapp.net"})
            assert store.get("contacts", contact["id"])["name"] == "x"
        finally:
            store.delete("inboxes", inbox["id"])
        assert store.count("contacts", inbox_id=inbox["id"]) == 0


class TestGetConn:
    def test_requires_database_url(self):
        from chatsync.infra.db import get_conn

        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(RuntimeError, match="DATABASE_URL"):
                get_conn()

    def test_db_password_fallback(self):
        from chatsync.infra.db import get_conn

        env = {"DATABASE_URL": "postgres://u@h/db", "DB_PASSWORD": "from-env"}
        with patch.dict(os.environ, env, clear=True), \
             patch("chatsync.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
            get_conn()
            mock_connect.assert_called_once_with("postgres://u@h/db", password="from-env")

    def test_password_in_dsn_wins(self):
        from chatsync.infra.db import get_conn

        env = {"DATABASE_URL": "dbname=db user=u password=p host=h", "DB_PASSWORD": "x"}
        with patch.dict(os.environ, env, clear=True), \
             patch("chatsync.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
            get_conn()
            mock_connect.assert_called_once_with("dbname=db user=u password=p host=h")

    def test_txn_rolls_back_on_error(self):
        from chatsync.infra.db import txn

        conn = MagicMock()
        with pytest.raises(KeyError):
            with txn(conn):
                raise KeyError("x")
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()
        conn.close.assert_not_called()
