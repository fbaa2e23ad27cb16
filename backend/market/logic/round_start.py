"""Round start: reset every seat for a fresh round and stamp its start time."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from market.logic.models import GameStatus, player_path, state_path

if TYPE_CHECKING:
    from collections.abc import Iterable

    from market.logic.models import GameState


def all_play_all_rivalries(player_ids: Iterable[str]) -> dict[str, list[str]]:
    """Map each player to every other player.

    Rivalries are informational; settlement always prices every player
    against every other regardless of this graph.
    """
    ids = list(player_ids)
    return {player_id: [other for other in ids if other != player_id] for player_id in ids}


def build_round_start_patch(state: GameState, now: int) -> dict[str, Any]:
    """Game-document-relative patch opening a new round at ``now``.

    Unlike settlement, this clears the bid of every player, timed-out ones
    included: a new round always starts from a clean slate.
    """
    patch: dict[str, Any] = {
        state_path("round_start_time"): now,
        state_path("is_active"): True,
        state_path("update_seq"): (state.update_seq or 0) + 1,
    }
    for player_id in state.players:
        patch[player_path(player_id, "has_submitted_bid")] = False
        patch[player_path(player_id, "current_bid")] = None

    if not state.has_game_started:
        patch[state_path("has_game_started")] = True
        patch["status"] = GameStatus.ACTIVE.value

    if not state.rivalries:
        patch[state_path("rivalries")] = all_play_all_rivalries(state.players)
    return patch


def round_start_guard(state: GameState) -> dict[str, Any]:
    """Preconditions: same sequence number, and the round is still not started."""
    return {
        state_path("update_seq"): state.update_seq,
        state_path("round_start_time"): None,
    }
