import pytest

from market.autopilot.engine import settle_round, start_round
from market.autopilot.monitor import AutopilotAction, AutopilotMonitor, EventStatus
from market.logic.exceptions import InvalidStateError
from market.logic.models import GameState
from market.tests.helpers.factories import NOW, bid_player, make_game, make_player, read_state, store_with
from market.tests.helpers.stores import FailingDocumentStore
from shared.dal import ConcurrentUpdateError, TransientStoreError


def _state(doc):
    return GameState.model_validate(doc["gameState"])


class TestSettleRound:
    async def test_mid_game_settlement(self):
        doc = make_game({"a": bid_player(50), "b": bid_player(60)}, roundStartTime=NOW - 5_000)
        store = store_with(g1=doc)
        monitor = AutopilotMonitor(store)

        result = await settle_round(store, "g1", _state(doc), monitor, now=NOW)

        state = await read_state(store, "g1")
        assert state["currentRound"] == 2
        assert state["isActive"] is True
        assert state.get("roundStartTime") is None
        assert state["roundHistory"][0] == result.to_document()
        assert state["players"]["a"].get("currentBid") is None
        assert state["players"]["a"]["hasSubmittedBid"] is False
        assert state["updateSeq"] == 1

    async def test_final_round_ends_game(self):
        doc = make_game({"a": bid_player(50), "b": bid_player(60)}, currentRound=3, totalRounds=3)
        store = store_with(g1=doc)

        await settle_round(store, "g1", _state(doc), AutopilotMonitor(store), now=NOW)

        game = await store.get("games/g1")
        assert game["status"] == "completed"
        assert game["gameState"]["isEnded"] is True
        assert game["gameState"]["isActive"] is False
        assert game["gameState"]["currentRound"] == 3
        assert game["gameState"]["bestRound"] == 3

    async def test_non_submitter_resolved_to_max_bid(self):
        doc = make_game({"a": bid_player(50), "b": make_player()}, maxBid=100)
        store = store_with(g1=doc)

        result = await settle_round(store, "g1", _state(doc), AutopilotMonitor(store), now=NOW)

        assert result.bids["b"] == 100

    async def test_logs_success_event(self):
        doc = make_game({"a": bid_player(50), "b": make_player(), "c": make_player(is_timed_out=True)})
        store = store_with(g1=doc)
        monitor = AutopilotMonitor(store)

        await settle_round(store, "g1", _state(doc), monitor, now=NOW)

        [event] = await monitor.get_events("g1")
        assert event.action == AutopilotAction.PROCESS_ROUND
        assert event.status == EventStatus.SUCCESS
        assert event.details == {
            "round": 1,
            "playerCount": 3,
            "processedBids": 3,
            "penaltyBids": 1,
            "timedOutPlayers": 1,
            "gameEnded": False,
        }

    async def test_stale_state_writes_nothing(self):
        doc = make_game({"a": bid_player(50), "b": bid_player(60)}, updateSeq=3)
        store = store_with(g1=doc)
        monitor = AutopilotMonitor(store)
        stale = _state(make_game({"a": bid_player(50), "b": bid_player(60)}, updateSeq=2))

        with pytest.raises(ConcurrentUpdateError):
            await settle_round(store, "g1", stale, monitor, now=NOW)

        assert await store.get("games/g1") == doc
        [event] = await monitor.get_events("g1")
        assert event.status == EventStatus.FAILURE

    async def test_second_settlement_of_same_round_is_rejected(self):
        doc = make_game({"a": bid_player(50), "b": bid_player(60)})
        store = store_with(g1=doc)
        monitor = AutopilotMonitor(store)
        state = _state(doc)

        await settle_round(store, "g1", state, monitor, now=NOW)
        with pytest.raises(ConcurrentUpdateError):
            await settle_round(store, "g1", state, monitor, now=NOW + 1)

        assert (await read_state(store, "g1"))["currentRound"] == 2

    async def test_invalid_state_is_logged_and_raised(self):
        doc = make_game(maxBid=None)
        store = store_with(g1=doc)
        monitor = AutopilotMonitor(store)

        with pytest.raises(InvalidStateError):
            await settle_round(store, "g1", _state(doc), monitor, now=NOW)

        [event] = await monitor.get_events("g1")
        assert event.action == AutopilotAction.PROCESS_ROUND
        assert event.status == EventStatus.FAILURE
        assert event.details["round"] == 1
        assert event.details["playerCount"] == 2
        assert "maxBid" in event.details["error"]
        assert await store.get("games/g1") == doc

    async def test_store_failure_propagates(self):
        doc = make_game({"a": bid_player(50), "b": bid_player(60)})
        store = FailingDocumentStore({"games": {"g1": doc}})
        monitor = AutopilotMonitor(store)

        with pytest.raises(TransientStoreError):
            await settle_round(store, "g1", _state(doc), monitor, now=NOW)

        [event] = await monitor.get_events("g1")
        assert event.status == EventStatus.FAILURE


class TestStartRound:
    async def test_opens_round(self):
        doc = make_game({"a": make_player(), "b": make_player()})
        store = store_with(g1=doc)
        monitor = AutopilotMonitor(store)

        started = await start_round(store, "g1", _state(doc), monitor, now=NOW)

        assert started is True
        state = await read_state(store, "g1")
        assert state["roundStartTime"] == NOW
        assert state["rivalries"] == {"a": ["b"], "b": ["a"]}
        [event] = await monitor.get_events("g1")
        assert event.action == AutopilotAction.START_ROUND
        assert event.status == EventStatus.SUCCESS

    async def test_below_quorum_is_noop(self):
        doc = make_game({"a": make_player(), "b": make_player(is_timed_out=True)})
        store = store_with(g1=doc)
        monitor = AutopilotMonitor(store)

        started = await start_round(store, "g1", _state(doc), monitor, now=NOW)

        assert started is False
        assert store.write_count == 0

    async def test_already_started_round_is_rejected(self):
        doc = make_game(roundStartTime=NOW - 1_000)
        store = store_with(g1=doc)
        stale = _state(make_game())

        with pytest.raises(ConcurrentUpdateError):
            await start_round(store, "g1", stale, AutopilotMonitor(store), now=NOW)

        assert (await read_state(store, "g1"))["roundStartTime"] == NOW - 1_000
