"""Abstract interface for the keyed JSON document store."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping
    from typing import Any


class DocumentStore(ABC):
    """A tree of JSON documents addressed by slash-separated paths.

    Top-level segments name collections (``games``, ``autopilotLogs``); the
    second segment names a document inside it. Every write is an atomic
    multi-path update: either all paths in a patch are applied or none are.
    Implementations back it with SQLite or an in-process dict.
    """

    @abstractmethod
    async def get(self, path: str) -> Any:  # noqa: ANN401
        """Return a deep copy of the value at ``path``, or None if absent."""

    @abstractmethod
    async def update(
        self,
        root: str,
        patch: Mapping[str, Any],
        *,
        expect: Mapping[str, Any] | None = None,
    ) -> None:
        """Apply every ``root``-relative path in ``patch`` atomically.

        ``None`` values delete. When ``expect`` is given, each of its
        ``root``-relative paths must currently hold exactly the given value
        (``None`` meaning absent), otherwise ConcurrentUpdateError is raised
        and nothing is written.
        """

    @abstractmethod
    async def query(self, collection: str, field_path: str, value: Any) -> dict[str, Any]:  # noqa: ANN401
        """Return ``{key: document}`` for documents whose ``field_path`` equals ``value``."""

    async def set(self, path: str, value: Any) -> None:  # noqa: ANN401
        """Replace the value at ``path`` (a single-path update)."""
        await self.update("", {path: value})
