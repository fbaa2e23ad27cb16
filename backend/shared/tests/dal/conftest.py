"""Run the document store contract against every implementation."""

import pytest

from shared.dal import InMemoryDocumentStore
from shared.db import Database, SqliteDocumentStore


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryDocumentStore()
        return
    db = Database(tmp_path / "store.db")
    db.connect()
    yield SqliteDocumentStore(db)
    db.close()
