"""SQLite-backed document store."""

from __future__ import annotations

import asyncio
import json
import re
import sqlite3
from typing import TYPE_CHECKING, Any

import structlog

from shared.dal.document_store import DocumentStore
from shared.dal.exceptions import ConcurrentUpdateError, TransientStoreError
from shared.dal.paths import get_at, join_path, set_at, split_path

if TYPE_CHECKING:
    from collections.abc import Mapping

    from shared.db.connection import Database

logger = structlog.get_logger()

# "<collection>/<key>" addresses one row; anything deeper lives inside its JSON.
_DOCUMENT_DEPTH = 2

_FIELD_SEGMENT = re.compile(r"[A-Za-z0-9_]+")


def _document_key(segments: list[str]) -> tuple[str, list[str]]:
    if len(segments) < _DOCUMENT_DEPTH:
        raise ValueError(f"path {'/'.join(segments)!r} does not address a document")
    return "/".join(segments[:_DOCUMENT_DEPTH]), segments[_DOCUMENT_DEPTH:]


def _sql_value(value: Any) -> Any:  # noqa: ANN401
    # json_extract yields 1/0 for JSON booleans.
    if isinstance(value, bool):
        return int(value)
    return value


class SqliteDocumentStore(DocumentStore):
    """SQLite implementation of DocumentStore.

    Stores whole documents as JSON rows. A multi-path update loads every
    touched document, applies the patch in Python and writes the results back
    inside one ``BEGIN IMMEDIATE`` transaction, so preconditions and writes
    see a single consistent snapshot.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self._lock = asyncio.Lock()

    async def get(self, path: str) -> Any:  # noqa: ANN401
        segments = split_path(path)
        try:
            if len(segments) == 1:
                rows = self._db.connection.execute(
                    "SELECT path, data FROM documents WHERE collection = ?",
                    (segments[0],),
                ).fetchall()
                if not rows:
                    return None
                return {row[0].split("/", 1)[1]: json.loads(row[1]) for row in rows}

            doc_path, inner = _document_key(segments)
            row = self._db.connection.execute(
                "SELECT data FROM documents WHERE path = ?",
                (doc_path,),
            ).fetchone()
        except sqlite3.Error as exc:
            raise TransientStoreError(f"read failed at {path!r}") from exc
        if row is None:
            return None
        document = json.loads(row[0])
        return get_at(document, inner) if inner else document

    async def update(
        self,
        root: str,
        patch: Mapping[str, Any],
        *,
        expect: Mapping[str, Any] | None = None,
    ) -> None:
        async with self._lock:
            conn = self._db.connection
            try:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    self._check_preconditions(conn, root, expect or {})
                    self._apply_patch(conn, root, patch)
                except BaseException:
                    conn.execute("ROLLBACK")
                    raise
                conn.execute("COMMIT")
            except sqlite3.Error as exc:
                raise TransientStoreError(f"update failed at {root!r}") from exc

    async def query(self, collection: str, field_path: str, value: Any) -> dict[str, Any]:  # noqa: ANN401
        segments = split_path(field_path)
        if not segments or not all(_FIELD_SEGMENT.fullmatch(segment) for segment in segments):
            raise ValueError(f"unsupported query field path: {field_path!r}")
        # Inlined rather than bound so SQLite can match the expression index.
        json_path = "$." + ".".join(segments)
        try:
            rows = self._db.connection.execute(
                f"SELECT path, data FROM documents WHERE collection = ? AND json_extract(data, '{json_path}') = ?",  # noqa: S608
                (collection, _sql_value(value)),
            ).fetchall()
        except sqlite3.Error as exc:
            raise TransientStoreError(f"query failed on {collection!r}") from exc
        return {row[0].split("/", 1)[1]: json.loads(row[1]) for row in rows}

    @staticmethod
    def _load(conn: sqlite3.Connection, doc_path: str) -> dict[str, Any] | None:
        row = conn.execute("SELECT data FROM documents WHERE path = ?", (doc_path,)).fetchone()
        return None if row is None else json.loads(row[0])

    def _check_preconditions(self, conn: sqlite3.Connection, root: str, expect: Mapping[str, Any]) -> None:
        for rel_path, expected in expect.items():
            full_path = join_path(root, rel_path)
            doc_path, inner = _document_key(split_path(full_path))
            document = self._load(conn, doc_path)
            actual = get_at(document, inner) if inner else document
            if actual != expected:
                raise ConcurrentUpdateError(path=full_path, expected=expected, actual=actual)

    def _apply_patch(self, conn: sqlite3.Connection, root: str, patch: Mapping[str, Any]) -> None:
        staged: dict[str, dict[str, Any] | None] = {}
        for rel_path, value in patch.items():
            doc_path, inner = _document_key(split_path(join_path(root, rel_path)))
            if not inner:
                staged[doc_path] = value
                continue
            if doc_path not in staged:
                staged[doc_path] = self._load(conn, doc_path)
            document = staged[doc_path]
            if document is None:
                if value is None:
                    continue
                document = {}
                staged[doc_path] = document
            set_at(document, inner, value)

        for doc_path, document in staged.items():
            if document is None:
                conn.execute("DELETE FROM documents WHERE path = ?", (doc_path,))
                continue
            conn.execute(
                "INSERT INTO documents (path, collection, data) VALUES (?, ?, ?) "
                "ON CONFLICT(path) DO UPDATE SET data = excluded.data",
                (doc_path, doc_path.split("/", 1)[0], json.dumps(document)),
            )
