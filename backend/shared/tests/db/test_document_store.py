"""SQLite-specific behaviour of SqliteDocumentStore."""

import sqlite3

import pytest

from shared.dal import TransientStoreError
from shared.db import Database, SqliteDocumentStore


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / "test.db")
    database.connect()
    yield database
    database.close()


class TestSqliteDocumentStore:
    async def test_documents_persist_across_connections(self, tmp_path):
        first = Database(tmp_path / "shared.db")
        first.connect()
        await SqliteDocumentStore(first).set("games/g1", {"status": "active"})
        first.close()

        second = Database(tmp_path / "shared.db")
        second.connect()
        assert await SqliteDocumentStore(second).get("games/g1") == {"status": "active"}
        second.close()

    async def test_rows_are_keyed_by_document(self, db):
        store = SqliteDocumentStore(db)
        await store.update("games/g1", {"gameState/currentRound": 1, "gameState/isActive": True})

        rows = db.connection.execute("SELECT path, collection FROM documents").fetchall()
        assert rows == [("games/g1", "games")]

    async def test_path_above_document_rejected(self, db):
        with pytest.raises(ValueError, match="does not address a document"):
            await SqliteDocumentStore(db).update("", {"games": {}})

    async def test_query_rejects_injection(self, db):
        with pytest.raises(ValueError, match="unsupported query field path"):
            await SqliteDocumentStore(db).query("games", "gameState/isActive') OR 1=1 --", True)

    async def test_sqlite_error_becomes_transient(self, db):
        store = SqliteDocumentStore(db)
        db.connection.execute("DROP TABLE documents")

        with pytest.raises(TransientStoreError) as exc_info:
            await store.get("games/g1")
        assert isinstance(exc_info.value.__cause__, sqlite3.Error)

    async def test_failed_update_rolls_back(self, db):
        store = SqliteDocumentStore(db)
        await store.set("games/g1", {"status": "active", "history": []})

        with pytest.raises(TypeError):
            await store.update("", {"games/g2": {"status": "new"}, "games/g1/history/oops": 1})

        assert await store.get("games/g2") is None
        assert not db.connection.in_transaction
