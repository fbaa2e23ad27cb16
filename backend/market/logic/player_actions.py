"""Collaborator operations that mutate players between settlements.

Registration, bid submission, timeouts, round extensions and rivalry edits are
owned by the lobby and the game clients. These implementations enforce the
validation the engine relies on: names are non-empty and bids are finite and
in range. Each
is one guarded write, so an operation racing a settlement either lands before
it or fails with ConcurrentUpdateError.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any

import structlog

from market.logic.clock import now_ms
from market.logic.exceptions import InvalidActionError
from market.logic.games import load_game
from market.logic.models import Player, game_path, player_path, state_path
from market.logic.round_start import all_play_all_rivalries

if TYPE_CHECKING:
    from market.logic.models import GameState
    from shared.dal import DocumentStore

logger = structlog.get_logger()

MAX_ROUND_EXTENSION_SECONDS = 3600


def _guarded(state: GameState, patch: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    patch[state_path("update_seq")] = (state.update_seq or 0) + 1
    return patch, {state_path("update_seq"): state.update_seq}


def _rivals_path(player_id: str) -> str:
    return f"{state_path('rivalries')}/{player_id}"


def _require_player(state: GameState, player_id: str) -> Player:
    player = state.players.get(player_id)
    if player is None:
        raise InvalidActionError(f"unknown player {player_id!r}")
    return player


async def register_player(store: DocumentStore, game_id: str, player_id: str, name: str) -> bool:
    """Add a player. Returns False (no write) if the id is already registered."""
    name = name.strip()
    if not player_id.strip() or "/" in player_id:
        raise InvalidActionError("player id must be non-empty and contain no '/'")
    if not name:
        raise InvalidActionError("player name must not be empty")

    state = (await load_game(store, game_id)).game_state
    if player_id in state.players:
        return False
    if state.is_ended:
        raise InvalidActionError("game has ended")
    if len(state.players) >= state.max_players:
        raise InvalidActionError(f"game is full ({state.max_players} players)")

    patch: dict[str, Any] = {player_path(player_id): Player(name=name).to_document()}
    # Once a rivalry graph exists, a newcomer joins it against everyone.
    if state.rivalries:
        for other, rivals in state.rivalries.items():
            patch[_rivals_path(other)] = [*rivals, player_id]
        patch[_rivals_path(player_id)] = list(state.players)
    patch, expect = _guarded(state, patch)
    await store.update(game_path(game_id), patch, expect=expect)
    logger.info("player registered", game_id=game_id, player_id=player_id)
    return True


async def remove_player(store: DocumentStore, game_id: str, player_id: str) -> None:
    state = (await load_game(store, game_id)).game_state
    _require_player(state, player_id)
    patch: dict[str, Any] = {
        player_path(player_id): None,
        f"{state_path('round_bids')}/{player_id}": None,
        _rivals_path(player_id): None,
    }
    for other, rivals in state.rivalries.items():
        if other != player_id and player_id in rivals:
            patch[_rivals_path(other)] = [rival for rival in rivals if rival != player_id]
    patch, expect = _guarded(state, patch)
    await store.update(game_path(game_id), patch, expect=expect)
    logger.info("player removed", game_id=game_id, player_id=player_id)


async def set_rivalries(store: DocumentStore, game_id: str, rivalries: dict[str, list[str]]) -> None:
    """Replace the rivalry graph. Every id must be a registered player and nobody rivals themself."""
    state = (await load_game(store, game_id)).game_state
    for player_id, rivals in rivalries.items():
        _require_player(state, player_id)
        for rival in rivals:
            _require_player(state, rival)
            if rival == player_id:
                raise InvalidActionError(f"player {player_id!r} cannot rival themself")
    graph = {player_id: list(dict.fromkeys(rivals)) for player_id, rivals in rivalries.items()}
    patch, expect = _guarded(state, {state_path("rivalries"): graph})
    await store.update(game_path(game_id), patch, expect=expect)
    logger.info("rivalries updated", game_id=game_id, players=len(graph))


async def auto_assign_rivals(store: DocumentStore, game_id: str) -> dict[str, list[str]]:
    """Reset the rivalry graph to all-play-all over the current roster."""
    state = (await load_game(store, game_id)).game_state
    graph = all_play_all_rivalries(state.players)
    patch, expect = _guarded(state, {state_path("rivalries"): graph})
    await store.update(game_path(game_id), patch, expect=expect)
    logger.info("rivalries reassigned", game_id=game_id, players=len(graph))
    return graph


async def submit_bid(
    store: DocumentStore,
    game_id: str,
    player_id: str,
    bid: float,
    now: int | None = None,
) -> None:
    """Record a player's bid for the running round."""
    if isinstance(bid, bool) or not isinstance(bid, (int, float)) or not math.isfinite(bid):
        raise InvalidActionError("bid must be a finite number")

    state = (await load_game(store, game_id)).game_state
    player = _require_player(state, player_id)
    if state.is_ended or state.round_start_time is None:
        raise InvalidActionError("no round is open for bidding")
    if player.is_timed_out:
        raise InvalidActionError(f"player {player_id!r} is timed out")
    if state.max_bid is None or not state.min_bid <= bid <= state.max_bid:
        raise InvalidActionError(f"bid must be within [{state.min_bid}, {state.max_bid}]")

    now = now_ms() if now is None else now
    patch, expect = _guarded(
        state,
        {
            player_path(player_id, "current_bid"): bid,
            player_path(player_id, "has_submitted_bid"): True,
            player_path(player_id, "last_bid_time"): now,
            f"{state_path('round_bids')}/{player_id}": bid,
        },
    )
    await store.update(game_path(game_id), patch, expect=expect)
    logger.info("bid submitted", game_id=game_id, player_id=player_id, round=state.current_round)


async def set_player_timed_out(store: DocumentStore, game_id: str, player_id: str, *, timed_out: bool) -> None:
    """Time a player out (excluded from quorum) or bring them back."""
    state = (await load_game(store, game_id)).game_state
    player = _require_player(state, player_id)
    if player.is_timed_out == timed_out:
        return
    patch, expect = _guarded(state, {player_path(player_id, "is_timed_out"): timed_out})
    await store.update(game_path(game_id), patch, expect=expect)
    logger.info("player timeout changed", game_id=game_id, player_id=player_id, timed_out=timed_out)


async def extend_round_time(store: DocumentStore, game_id: str, additional_seconds: int) -> float:
    """Lengthen the round time limit; returns the new limit in seconds."""
    if not 0 < additional_seconds <= MAX_ROUND_EXTENSION_SECONDS:
        raise InvalidActionError(f"additional_seconds must be 1-{MAX_ROUND_EXTENSION_SECONDS}")
    state = (await load_game(store, game_id)).game_state
    if state.is_ended:
        raise InvalidActionError("game has ended")
    new_limit = state.round_time_limit + additional_seconds
    patch, expect = _guarded(state, {state_path("round_time_limit"): new_limit})
    await store.update(game_path(game_id), patch, expect=expect)
    logger.info("round time extended", game_id=game_id, round_time_limit=new_limit)
    return new_limit
