"""SQLite database layer: connection management and the document store implementation."""

from shared.db.connection import Database
from shared.db.document_store import SqliteDocumentStore

__all__ = [
    "Database",
    "SqliteDocumentStore",
]
