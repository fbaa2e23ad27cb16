"""Game document models.

Documents are stored with the camelCase field names the game clients use
(``gameState/currentRound``); the models expose snake_case attributes and
accept either spelling on input. Store patches address fields through the
path helpers below so paths and aliases cannot drift apart.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

GAMES_COLLECTION = "games"

DEFAULT_ALPHA = 0.5
DEFAULT_MARKET_SIZE = 1000
DEFAULT_MAX_PLAYERS = 4


def game_path(game_id: str) -> str:
    return f"{GAMES_COLLECTION}/{game_id}"


def state_path(field: str) -> str:
    """Document-relative path of a GameState field, given its snake_case name."""
    return f"gameState/{to_camel(field)}"


def player_path(player_id: str, field: str | None = None) -> str:
    base = f"gameState/players/{player_id}"
    return base if field is None else f"{base}/{to_camel(field)}"


def history_path(round_number: int) -> str:
    """Document-relative path of a round's history slot (rounds are 1-based)."""
    return f"gameState/roundHistory/{round_number - 1}"


class DocumentModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class GameStatus(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class Player(DocumentModel):
    """One seat in a game.

    ``current_bid`` is None until the player bids in the current round.
    Timed-out players still receive a settled bid each round but do not count
    toward the active-player quorum.
    """

    name: str = ""
    current_bid: float | None = None
    has_submitted_bid: bool = False
    last_bid_time: int | None = None
    is_timed_out: bool = False


class RoundResult(DocumentModel):
    round: int = Field(ge=1)
    bids: dict[str, float]
    market_shares: dict[str, float]
    profits: dict[str, float]
    timestamp: int


class AutopilotState(DocumentModel):
    enabled: bool = False
    last_update_time: int | None = None


class GameState(DocumentModel):
    """Authoritative mutable record for one session."""

    has_game_started: bool = False
    is_active: bool = False
    is_ended: bool = False
    current_round: int = Field(default=1, ge=1)
    total_rounds: int = Field(default=3, ge=1)
    round_time_limit: float = Field(default=60, gt=0)
    round_start_time: int | None = None
    min_bid: float = 0
    max_bid: float | None = None
    cost_per_unit: float = 0
    market_size: float = DEFAULT_MARKET_SIZE
    alpha: float = DEFAULT_ALPHA
    max_players: int = DEFAULT_MAX_PLAYERS
    players: dict[str, Player] = Field(default_factory=dict)
    round_bids: dict[str, float] | None = None
    round_history: list[RoundResult | None] = Field(default_factory=list)
    rivalries: dict[str, list[str]] = Field(default_factory=dict)
    autopilot: AutopilotState = Field(default_factory=AutopilotState)
    total_profit: float = 0
    average_market_share: float = 0
    best_round: int = 0
    best_round_profit: float = 0
    # Optimistic-concurrency token: every engine write expects the value it
    # read and stores value + 1. Absent on documents never written by the engine.
    update_seq: int | None = None

    @field_validator("players", "rivalries", mode="before")
    @classmethod
    def _absent_map_is_empty(cls, v: Any) -> Any:  # noqa: ANN401
        return {} if v is None else v

    @field_validator("round_history", mode="before")
    @classmethod
    def _sparse_history(cls, v: Any) -> Any:  # noqa: ANN401
        """Accept an index-keyed mapping (how sparse arrays come back from a store)."""
        if v is None:
            return []
        if isinstance(v, dict):
            indexed = {int(k): item for k, item in v.items()}
            if not indexed:
                return []
            return [indexed.get(i) for i in range(max(indexed) + 1)]
        return v

    @property
    def active_player_ids(self) -> list[str]:
        return [pid for pid, player in self.players.items() if not player.is_timed_out]

    def history_entry(self, round_number: int) -> RoundResult | None:
        index = round_number - 1
        if 0 <= index < len(self.round_history):
            return self.round_history[index]
        return None


class Game(DocumentModel):
    status: GameStatus = GameStatus.PENDING
    updated_at: int | None = None
    game_state: GameState = Field(default_factory=GameState)
