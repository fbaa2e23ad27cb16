"""Slash-separated path helpers for nested JSON documents.

Documents are plain ``dict``/``list`` trees as decoded from JSON. Writing
``None`` to a path removes the key. Numeric segments index into lists (lists
grow with ``None`` padding) or act as string keys on dicts, so a sparse
``roundHistory`` may be stored either way.
"""

from __future__ import annotations

from typing import Any

_MISSING = object()


def split_path(path: str) -> list[str]:
    """Split a path into non-empty segments."""
    return [segment for segment in path.split("/") if segment]


def join_path(*parts: str) -> str:
    """Join path fragments, tolerating empty parts and stray slashes."""
    segments: list[str] = []
    for part in parts:
        segments.extend(split_path(part))
    return "/".join(segments)


def _child(node: Any, segment: str) -> Any:  # noqa: ANN401
    if isinstance(node, dict):
        return node.get(segment, _MISSING)
    if isinstance(node, list) and segment.isdigit():
        index = int(segment)
        return node[index] if index < len(node) else _MISSING
    return _MISSING


def get_at(document: Any, segments: list[str]) -> Any:  # noqa: ANN401
    """Return the value at ``segments`` or None when any step is absent."""
    node = document
    for segment in segments:
        node = _child(node, segment)
        if node is _MISSING or node is None:
            return None
    return node


def set_at(document: dict[str, Any], segments: list[str], value: Any) -> None:  # noqa: ANN401
    """Write ``value`` at ``segments`` in place, creating intermediate dicts.

    A ``None`` value deletes the leaf; missing parents are not created for it.
    """
    if not segments:
        raise ValueError("cannot write to the document root")

    node: Any = document
    for segment in segments[:-1]:
        child = _child(node, segment)
        if child is _MISSING or not isinstance(child, (dict, list)):
            if value is None:
                return
            child = {}
            _assign(node, segment, child)
        node = child

    leaf = segments[-1]
    if value is None:
        _remove(node, leaf)
    else:
        _assign(node, leaf, value)


def _assign(node: Any, segment: str, value: Any) -> None:  # noqa: ANN401
    if isinstance(node, list) and segment.isdigit():
        index = int(segment)
        if index >= len(node):
            node.extend([None] * (index + 1 - len(node)))
        node[index] = value
        return
    if not isinstance(node, dict):
        raise TypeError(f"cannot set key {segment!r} on {type(node).__name__}")
    node[segment] = value


def _remove(node: Any, segment: str) -> None:  # noqa: ANN401
    if isinstance(node, dict):
        node.pop(segment, None)
    elif isinstance(node, list) and segment.isdigit() and int(segment) < len(node):
        node[int(segment)] = None
