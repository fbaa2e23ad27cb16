"""Loading game documents from the store into models."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from market.logic.exceptions import GameNotFoundError, InvalidStateError
from market.logic.models import Game, game_path

if TYPE_CHECKING:
    from shared.dal import DocumentStore


def parse_game(game_id: str, raw: Any) -> Game:  # noqa: ANN401
    """Validate a raw document. Malformed documents raise InvalidStateError."""
    if not isinstance(raw, dict):
        raise InvalidStateError(f"game {game_id!r} is not a document")
    try:
        return Game.model_validate(raw)
    except ValidationError as exc:
        raise InvalidStateError(f"game {game_id!r} is malformed: {exc.error_count()} validation errors") from exc


async def load_game(store: DocumentStore, game_id: str) -> Game:
    if not game_id or not game_id.strip():
        raise GameNotFoundError(game_id)
    raw = await store.get(game_path(game_id))
    if raw is None:
        raise GameNotFoundError(game_id)
    return parse_game(game_id, raw)
