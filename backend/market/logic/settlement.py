"""Round settlement: score the resolved bids and build the store patch.

Everything here is pure. ``market.autopilot.engine.settle_round`` reads the
game, calls these helpers and commits the patch in one guarded write.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from market.logic.exceptions import InvalidStateError
from market.logic.market_model import calculate_all_profits, calculate_market_shares
from market.logic.models import GameStatus, RoundResult, history_path, player_path, state_path

if TYPE_CHECKING:
    from collections.abc import Sequence

    from market.logic.models import GameState


@dataclass(frozen=True)
class ResolvedBids:
    """Bids used for settlement, with bookkeeping on where they came from.

    ``penalty_player_ids`` lists active players who did not submit a usable
    bid and were charged ``max_bid``; ``timed_out_player_ids`` lists players
    settled on their last stored bid (or ``max_bid``).
    """

    bids: dict[str, float]
    penalty_player_ids: list[str] = field(default_factory=list)
    timed_out_player_ids: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class FinalStats:
    total_profit: float
    best_round: int
    best_round_profit: float
    average_market_share: float


def _is_number(value: float | None) -> bool:
    return value is not None and not isinstance(value, bool) and math.isfinite(value)


def validate_settleable(state: GameState) -> float:
    """Check the state can be settled and return its max bid."""
    if not state.players:
        raise InvalidStateError("game has no players")
    if state.max_bid is None:
        raise InvalidStateError("game has no maxBid")
    if state.is_ended:
        raise InvalidStateError("game has already ended")
    if state.history_entry(state.current_round) is not None:
        raise InvalidStateError(f"round {state.current_round} has already been settled")
    return state.max_bid


def resolve_bids(state: GameState) -> ResolvedBids:
    """Pick the bid each player is settled on.

    Active players keep their bid only if they submitted a finite number;
    otherwise they are charged ``max_bid``. Timed-out players keep whatever
    numeric bid is stored regardless of the submission flag.
    """
    max_bid = validate_settleable(state)
    bids: dict[str, float] = {}
    penalties: list[str] = []
    timed_out: list[str] = []
    for player_id, player in state.players.items():
        if player.is_timed_out:
            timed_out.append(player_id)
            bids[player_id] = player.current_bid if _is_number(player.current_bid) else max_bid
        elif player.has_submitted_bid and _is_number(player.current_bid):
            bids[player_id] = player.current_bid
        else:
            penalties.append(player_id)
            bids[player_id] = max_bid
    return ResolvedBids(bids=bids, penalty_player_ids=penalties, timed_out_player_ids=timed_out)


def build_round_result(state: GameState, resolved: ResolvedBids, now: int) -> RoundResult:
    shares = calculate_market_shares(resolved.bids, state.alpha)
    profits = calculate_all_profits(resolved.bids, shares, state.cost_per_unit, state.market_size)
    return RoundResult(
        round=state.current_round,
        bids=dict(resolved.bids),
        market_shares=shares,
        profits=profits,
        timestamp=now,
    )


def compute_final_stats(history: Sequence[RoundResult | None], total_rounds: int, player_count: int) -> FinalStats:
    """Fold the full round history into the end-of-game aggregates.

    The best round is the one whose top single-player profit is highest; the
    earliest such round wins ties. The average share divides by
    ``total_rounds * player_count``, not by the number of recorded shares.
    """
    rounds = [r for r in history if r is not None]
    total_profit = math.fsum(profit for r in rounds for profit in r.profits.values())

    best_round = 0
    best_profit = -math.inf
    for r in rounds:
        if not r.profits:
            continue
        top = max(r.profits.values())
        if top > best_profit:
            best_round, best_profit = r.round, top

    share_sum = math.fsum(share for r in rounds for share in r.market_shares.values())
    divisor = total_rounds * player_count
    return FinalStats(
        total_profit=total_profit,
        best_round=best_round,
        best_round_profit=best_profit if best_round else 0.0,
        average_market_share=share_sum / divisor if divisor else 0.0,
    )


def build_settlement_patch(state: GameState, result: RoundResult, now: int) -> dict[str, Any]:
    """Game-document-relative patch committing ``result`` and advancing the game.

    Only active players have their bid fields cleared; timed-out players'
    stored bid and submission flag survive settlement untouched.
    """
    patch: dict[str, Any] = {
        history_path(result.round): result.to_document(),
        state_path("round_bids"): None,
        state_path("round_start_time"): None,
        state_path("update_seq"): (state.update_seq or 0) + 1,
    }
    for player_id in state.active_player_ids:
        patch[player_path(player_id, "has_submitted_bid")] = False
        patch[player_path(player_id, "current_bid")] = None

    if state.current_round >= state.total_rounds:
        history = list(state.round_history)
        history.extend([None] * (result.round - len(history)))
        history[result.round - 1] = result
        stats = compute_final_stats(history, state.total_rounds, len(state.players))
        patch.update(
            {
                state_path("is_active"): False,
                state_path("is_ended"): True,
                state_path("total_profit"): stats.total_profit,
                state_path("best_round"): stats.best_round,
                state_path("best_round_profit"): stats.best_round_profit,
                state_path("average_market_share"): stats.average_market_share,
                "status": GameStatus.COMPLETED.value,
                "updatedAt": now,
            },
        )
    else:
        patch[state_path("current_round")] = state.current_round + 1
    return patch


def settlement_guard(state: GameState) -> dict[str, Any]:
    """Preconditions for the settlement write: nothing changed since ``state`` was read."""
    return {
        state_path("update_seq"): state.update_seq,
        history_path(state.current_round): None,
    }
