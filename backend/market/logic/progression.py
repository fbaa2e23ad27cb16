"""Per-game round phase evaluation used by the autopilot scheduler.

A game cycles NOT_STARTED -> ROUND_IN_PROGRESS -> ROUND_DUE -> (settled)
-> NOT_STARTED until the final settlement moves it to ENDED. All checks are
pure functions of the GameState and the supplied clock reading.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from market.logic.models import Game, GameState

MIN_ACTIVE_PLAYERS = 2


class RoundPhase(StrEnum):
    NOT_STARTED = "not_started"
    ROUND_IN_PROGRESS = "round_in_progress"
    ROUND_DUE = "round_due"
    ENDED = "ended"


def has_quorum(state: GameState) -> bool:
    """Whether enough non-timed-out players remain to run a round."""
    return len(state.active_player_ids) >= MIN_ACTIVE_PLAYERS


def all_players_submitted_bids(state: GameState) -> bool:
    """True when every active player has bid. Always False below quorum."""
    if not has_quorum(state):
        return False
    return all(state.players[pid].has_submitted_bid for pid in state.active_player_ids)


def round_time_expired(state: GameState, now: int) -> bool:
    if state.round_start_time is None:
        return False
    return now - state.round_start_time >= state.round_time_limit * 1000


def should_process_round(state: GameState, now: int) -> bool:
    """Whether the running round is due for settlement at ``now`` (epoch ms).

    A round is due once its time limit has elapsed or every active player has
    bid. A game below quorum is never due, however long it stalls.
    """
    if state.round_start_time is None:
        return False
    if not has_quorum(state):
        return False
    return round_time_expired(state, now) or all_players_submitted_bids(state)


def evaluate_phase(state: GameState, now: int) -> RoundPhase:
    if state.is_ended:
        return RoundPhase.ENDED
    if state.round_start_time is None:
        return RoundPhase.NOT_STARTED
    if should_process_round(state, now):
        return RoundPhase.ROUND_DUE
    return RoundPhase.ROUND_IN_PROGRESS


def is_autopilot_eligible(game: Game) -> bool:
    """Whether the scheduler should drive this game at all."""
    state = game.game_state
    return state.autopilot.enabled and state.has_game_started and not state.is_ended
