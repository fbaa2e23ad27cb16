"""Builders for game documents in their stored (camelCase) shape."""

from typing import Any

from market.logic.models import GameState, game_path
from shared.dal import InMemoryDocumentStore

NOW = 1_700_000_000_000  # fixed epoch ms used across tests


def make_player(
    name: str = "Player",
    *,
    current_bid: float | None = None,
    has_submitted_bid: bool = False,
    is_timed_out: bool = False,
) -> dict[str, Any]:
    return {
        "name": name,
        "currentBid": current_bid,
        "hasSubmittedBid": has_submitted_bid,
        "lastBidTime": None,
        "isTimedOut": is_timed_out,
    }


def bid_player(bid: float, name: str = "Player") -> dict[str, Any]:
    """A player who has submitted ``bid`` this round."""
    return make_player(name, current_bid=bid, has_submitted_bid=True)


def make_game(
    players: dict[str, dict[str, Any]] | None = None,
    *,
    status: str = "active",
    **state: Any,  # noqa: ANN401
) -> dict[str, Any]:
    """A started, autopilot-enabled game document; ``state`` overrides gameState keys."""
    game_state: dict[str, Any] = {
        "hasGameStarted": True,
        "isActive": True,
        "isEnded": False,
        "currentRound": 1,
        "totalRounds": 3,
        "roundTimeLimit": 60,
        "roundStartTime": None,
        "minBid": 0,
        "maxBid": 100,
        "costPerUnit": 10,
        "marketSize": 1000,
        "alpha": 0.5,
        "maxPlayers": 4,
        "roundHistory": [],
        "players": players if players is not None else {"a": make_player("Alice"), "b": make_player("Bob")},
        "autopilot": {"enabled": True, "lastUpdateTime": NOW},
        "updateSeq": 0,
    }
    game_state.update(state)
    return {"status": status, "updatedAt": NOW, "gameState": game_state}


def make_state(players: dict[str, dict[str, Any]] | None = None, **state: Any) -> GameState:  # noqa: ANN401
    return GameState.model_validate(make_game(players, **state)["gameState"])


def store_with(**games: dict[str, Any]) -> InMemoryDocumentStore:
    return InMemoryDocumentStore({"games": games})


async def read_state(store: InMemoryDocumentStore, game_id: str) -> dict[str, Any]:
    return await store.get(f"{game_path(game_id)}/gameState")
