import pytest

from market.autopilot import controls
from market.autopilot.monitor import AutopilotAction, AutopilotMonitor, EventStatus
from market.logic.exceptions import GameNotFoundError, InvalidActionError
from market.tests.helpers.factories import NOW, bid_player, make_game, make_player, read_state, store_with
from shared.dal import ConcurrentUpdateError


class TestStartRoundNow:
    async def test_opens_round_with_autopilot_off(self):
        store = store_with(g1=make_game(autopilot={"enabled": False, "lastUpdateTime": None}))

        assert await controls.start_round_now(store, AutopilotMonitor(store), "g1", now=NOW) is True

        assert (await read_state(store, "g1"))["roundStartTime"] == NOW

    async def test_first_round_starts_the_game(self):
        store = store_with(g1=make_game(status="pending", hasGameStarted=False, isActive=False))

        await controls.start_round_now(store, AutopilotMonitor(store), "g1", now=NOW)

        game = await store.get("games/g1")
        assert game["status"] == "active"
        assert game["gameState"]["hasGameStarted"] is True
        assert game["gameState"]["isActive"] is True

    async def test_below_quorum_writes_nothing(self):
        store = store_with(g1=make_game({"a": make_player()}))

        assert await controls.start_round_now(store, AutopilotMonitor(store), "g1", now=NOW) is False
        assert store.write_count == 0

    @pytest.mark.parametrize("state", [{"roundStartTime": NOW - 1}, {"isEnded": True}])
    async def test_rejects_running_or_ended_game(self, state):
        store = store_with(g1=make_game(**state))
        with pytest.raises(InvalidActionError):
            await controls.start_round_now(store, AutopilotMonitor(store), "g1", now=NOW)

    async def test_unknown_game(self):
        store = store_with()
        with pytest.raises(GameNotFoundError):
            await controls.start_round_now(store, AutopilotMonitor(store), "missing")


class TestSettleRoundNow:
    async def test_settles_before_time_limit(self):
        store = store_with(g1=make_game({"a": bid_player(50), "b": make_player()}, roundStartTime=NOW - 1))
        monitor = AutopilotMonitor(store)

        result = await controls.settle_round_now(store, monitor, "g1", now=NOW)

        assert result.bids == {"a": 50, "b": 100}
        state = await read_state(store, "g1")
        assert state["currentRound"] == 2
        assert state.get("roundStartTime") is None
        events = await monitor.get_events("g1")
        assert [(e.action, e.status) for e in events] == [(AutopilotAction.PROCESS_ROUND, EventStatus.SUCCESS)]

    async def test_does_not_start_next_round(self):
        store = store_with(g1=make_game({"a": bid_player(50), "b": bid_player(60)}, roundStartTime=NOW - 1))

        await controls.settle_round_now(store, AutopilotMonitor(store), "g1", now=NOW)

        assert (await read_state(store, "g1")).get("roundStartTime") is None

    async def test_rejects_when_no_round_running(self):
        store = store_with(g1=make_game())
        with pytest.raises(InvalidActionError, match="no round"):
            await controls.settle_round_now(store, AutopilotMonitor(store), "g1", now=NOW)


class TestEndGame:
    async def test_marks_game_completed(self):
        store = store_with(g1=make_game(roundStartTime=NOW - 1, updateSeq=4))

        await controls.end_game(store, "g1", now=NOW)

        game = await store.get("games/g1")
        assert game["status"] == "completed"
        assert game["updatedAt"] == NOW
        assert game["gameState"]["isEnded"] is True
        assert game["gameState"]["isActive"] is False
        assert game["gameState"].get("roundStartTime") is None
        assert game["gameState"]["updateSeq"] == 5

    async def test_rejects_ended_game(self):
        store = store_with(g1=make_game(isEnded=True))
        with pytest.raises(InvalidActionError):
            await controls.end_game(store, "g1", now=NOW)

    async def test_stale_read_is_rejected(self):
        store = store_with(g1=make_game())
        original = store.get

        async def racing_get(path):
            document = await original(path)
            # Another writer lands between the read and the end-game write.
            store._root["games"]["g1"]["gameState"]["updateSeq"] = 7
            return document

        store.get = racing_get
        with pytest.raises(ConcurrentUpdateError):
            await controls.end_game(store, "g1", now=NOW)
        assert store._root["games"]["g1"]["gameState"]["isEnded"] is False
