"""Effectful round operations: settle the running round, start the next one.

Both read a GameState the caller already loaded, build a patch with the pure
helpers in ``market.logic`` and commit it as one guarded multi-path write.
The guard pins ``updateSeq`` to the value the decision was based on, so two
overlapping ticks cannot both settle (or both start) the same round: the
loser gets ConcurrentUpdateError and nothing it computed is written.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from market.autopilot.monitor import AutopilotAction, EventStatus
from market.logic.clock import now_ms
from market.logic.models import game_path
from market.logic.progression import has_quorum
from market.logic.round_start import build_round_start_patch, round_start_guard
from market.logic.settlement import build_round_result, build_settlement_patch, resolve_bids, settlement_guard

if TYPE_CHECKING:
    from market.autopilot.monitor import AutopilotMonitor
    from market.logic.models import GameState, RoundResult
    from shared.dal import DocumentStore

logger = structlog.get_logger()


async def settle_round(
    store: DocumentStore,
    game_id: str,
    state: GameState,
    monitor: AutopilotMonitor,
    now: int | None = None,
) -> RoundResult:
    """Resolve and commit the current round, then end the game or advance it.

    Any failure is recorded as a ``process_round`` failure event and re-raised;
    no partial write happens.
    """
    now = now_ms() if now is None else now
    player_count = len(state.players)
    try:
        resolved = resolve_bids(state)
        result = build_round_result(state, resolved, now)
        patch = build_settlement_patch(state, result, now)
        await store.update(game_path(game_id), patch, expect=settlement_guard(state))
    except Exception as exc:
        await monitor.log_event(
            game_id,
            AutopilotAction.PROCESS_ROUND,
            EventStatus.FAILURE,
            {"round": state.current_round, "playerCount": player_count, "error": str(exc)},
            now=now,
        )
        raise

    ended = state.current_round >= state.total_rounds
    logger.info("round settled", game_id=game_id, round=result.round, game_ended=ended)
    await monitor.log_event(
        game_id,
        AutopilotAction.PROCESS_ROUND,
        EventStatus.SUCCESS,
        {
            "round": result.round,
            "playerCount": player_count,
            "processedBids": len(resolved.bids),
            "penaltyBids": len(resolved.penalty_player_ids),
            "timedOutPlayers": len(resolved.timed_out_player_ids),
            "gameEnded": ended,
        },
        now=now,
    )
    return result


async def start_round(
    store: DocumentStore,
    game_id: str,
    state: GameState,
    monitor: AutopilotMonitor,
    now: int | None = None,
) -> bool:
    """Open a new round. Returns False without writing when below quorum."""
    if not has_quorum(state):
        logger.info(
            "not enough active players to start round",
            game_id=game_id,
            active_players=len(state.active_player_ids),
        )
        return False

    now = now_ms() if now is None else now
    try:
        await store.update(game_path(game_id), build_round_start_patch(state, now), expect=round_start_guard(state))
    except Exception as exc:
        await monitor.log_event(
            game_id,
            AutopilotAction.START_ROUND,
            EventStatus.FAILURE,
            {"round": state.current_round, "error": str(exc)},
            now=now,
        )
        raise

    logger.info("round started", game_id=game_id, round=state.current_round)
    await monitor.log_event(
        game_id,
        AutopilotAction.START_ROUND,
        EventStatus.SUCCESS,
        {"round": state.current_round, "playerCount": len(state.players)},
        now=now,
    )
    return True
