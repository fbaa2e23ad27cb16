"""In-process document store.

Backs tests and single-process deployments. All state lives in one dict tree
guarded by an asyncio lock; updates are staged on a copy and swapped in, so a
failing patch leaves the tree untouched.
"""

from __future__ import annotations

import asyncio
import copy
from typing import TYPE_CHECKING, Any

import structlog

from shared.dal.document_store import DocumentStore
from shared.dal.exceptions import ConcurrentUpdateError
from shared.dal.paths import get_at, join_path, set_at, split_path

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = structlog.get_logger()


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed DocumentStore. Reads return deep copies."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._root: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._lock = asyncio.Lock()
        self.write_count = 0

    async def get(self, path: str) -> Any:  # noqa: ANN401
        segments = split_path(path)
        if not segments:
            return copy.deepcopy(self._root)
        return copy.deepcopy(get_at(self._root, segments))

    async def update(
        self,
        root: str,
        patch: Mapping[str, Any],
        *,
        expect: Mapping[str, Any] | None = None,
    ) -> None:
        async with self._lock:
            for rel_path, expected in (expect or {}).items():
                full_path = join_path(root, rel_path)
                actual = get_at(self._root, split_path(full_path))
                if actual != expected:
                    raise ConcurrentUpdateError(path=full_path, expected=expected, actual=actual)

            staged = copy.deepcopy(self._root)
            for rel_path, value in patch.items():
                set_at(staged, split_path(join_path(root, rel_path)), copy.deepcopy(value))
            self._root = staged
            self.write_count += 1

    async def query(self, collection: str, field_path: str, value: Any) -> dict[str, Any]:  # noqa: ANN401
        documents = self._root.get(collection) or {}
        segments = split_path(field_path)
        return {
            key: copy.deepcopy(document)
            for key, document in documents.items()
            if document is not None and get_at(document, segments) == value
        }
