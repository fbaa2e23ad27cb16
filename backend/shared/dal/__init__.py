"""Data access layer: the document store interface and its in-process implementation."""

from shared.dal.document_store import DocumentStore
from shared.dal.exceptions import ConcurrentUpdateError, TransientStoreError
from shared.dal.memory_store import InMemoryDocumentStore

__all__ = [
    "ConcurrentUpdateError",
    "DocumentStore",
    "InMemoryDocumentStore",
    "TransientStoreError",
]
