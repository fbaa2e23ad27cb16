"""Manual admin controls over a single game.

These run the same engine operations the scheduler uses, but on demand and
regardless of the autopilot flag or the round timer. Starts and settlements
are recorded in the monitor exactly like autopilot ones.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from market.autopilot.engine import settle_round, start_round
from market.logic.clock import now_ms
from market.logic.exceptions import InvalidActionError
from market.logic.games import load_game
from market.logic.models import GameStatus, game_path, state_path

if TYPE_CHECKING:
    from market.autopilot.monitor import AutopilotMonitor
    from market.logic.models import RoundResult
    from shared.dal import DocumentStore

logger = structlog.get_logger()


async def start_round_now(
    store: DocumentStore,
    monitor: AutopilotMonitor,
    game_id: str,
    now: int | None = None,
) -> bool:
    """Open the current round. Returns False without writing when below quorum."""
    state = (await load_game(store, game_id)).game_state
    if state.is_ended:
        raise InvalidActionError("game has ended")
    if state.round_start_time is not None:
        raise InvalidActionError(f"round {state.current_round} is already running")
    return await start_round(store, game_id, state, monitor, now=now)


async def settle_round_now(
    store: DocumentStore,
    monitor: AutopilotMonitor,
    game_id: str,
    now: int | None = None,
) -> RoundResult:
    """Settle the running round immediately, even if bids are still missing.

    The next round is not started; that is a separate admin action.
    """
    state = (await load_game(store, game_id)).game_state
    if state.is_ended or state.round_start_time is None:
        raise InvalidActionError("no round is running")
    return await settle_round(store, game_id, state, monitor, now=now)


async def end_game(store: DocumentStore, game_id: str, now: int | None = None) -> None:
    """Close the game early. Settled rounds are kept; a running round is discarded."""
    state = (await load_game(store, game_id)).game_state
    if state.is_ended:
        raise InvalidActionError("game has already ended")
    now = now_ms() if now is None else now
    patch = {
        state_path("is_active"): False,
        state_path("is_ended"): True,
        state_path("round_start_time"): None,
        state_path("update_seq"): (state.update_seq or 0) + 1,
        "status": GameStatus.COMPLETED.value,
        "updatedAt": now,
    }
    await store.update(game_path(game_id), patch, expect={state_path("update_seq"): state.update_seq})
    logger.info("game ended by admin", game_id=game_id, round=state.current_round)
