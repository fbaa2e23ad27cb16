from market.logic.models import (
    AutopilotState,
    Game,
    GameState,
    GameStatus,
    RoundResult,
    history_path,
    player_path,
    state_path,
)
from market.tests.helpers.factories import make_game, make_player


class TestPaths:
    def test_state_path_is_camel_case(self):
        assert state_path("round_start_time") == "gameState/roundStartTime"

    def test_player_path(self):
        assert player_path("p1") == "gameState/players/p1"
        assert player_path("p1", "has_submitted_bid") == "gameState/players/p1/hasSubmittedBid"

    def test_history_path_is_zero_based(self):
        assert history_path(1) == "gameState/roundHistory/0"
        assert history_path(3) == "gameState/roundHistory/2"


class TestGameState:
    def test_parses_stored_document(self):
        game = Game.model_validate(make_game())

        assert game.status == GameStatus.ACTIVE
        assert game.game_state.max_bid == 100
        assert game.game_state.players["a"].name == "Alice"
        assert game.game_state.autopilot.enabled is True

    def test_absent_maps_become_empty(self):
        state = GameState.model_validate({"players": None, "rivalries": None, "roundHistory": None})

        assert state.players == {}
        assert state.rivalries == {}
        assert state.round_history == []

    def test_index_keyed_history_becomes_sparse_list(self):
        result = RoundResult(round=3, bids={}, market_shares={}, profits={}, timestamp=1).to_document()
        state = GameState.model_validate({"roundHistory": {"2": result}})

        assert len(state.round_history) == 3
        assert state.round_history[0] is None
        assert state.history_entry(3).round == 3
        assert state.history_entry(1) is None
        assert state.history_entry(4) is None

    def test_active_player_ids_excludes_timed_out(self):
        state = GameState.model_validate(
            {"players": {"a": make_player(), "b": make_player(is_timed_out=True), "c": make_player()}},
        )
        assert state.active_player_ids == ["a", "c"]

    def test_defaults(self):
        state = GameState()

        assert state.current_round == 1
        assert state.alpha == 0.5
        assert state.market_size == 1000
        assert state.update_seq is None


class TestDocumentModel:
    def test_to_document_uses_camel_case(self):
        doc = AutopilotState(enabled=True, last_update_time=5).to_document()
        assert doc == {"enabled": True, "lastUpdateTime": 5}

    def test_round_result_document(self):
        doc = RoundResult(round=1, bids={"a": 1.0}, market_shares={"a": 1.0}, profits={"a": 0.0}, timestamp=9).to_document()
        assert set(doc) == {"round", "bids", "marketShares", "profits", "timestamp"}
