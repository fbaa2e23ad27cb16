"""Full games driven by the scheduler against the SQLite document store."""

import math

import pytest

from market.autopilot.monitor import AutopilotMonitor
from market.autopilot.scheduler import AutopilotScheduler, GameOutcome
from market.logic import player_actions
from market.tests.helpers.factories import NOW, make_game, make_player
from shared.dal import ConcurrentUpdateError
from shared.db import Database, SqliteDocumentStore

ROUND_MS = 61_000


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / "autopilot.db")
    database.connect()
    yield database
    database.close()


@pytest.fixture
def store(db):
    return SqliteDocumentStore(db)


async def test_three_round_game_with_bids_and_timeouts(store):
    await store.set("games/g1", make_game({"a": make_player("Alice"), "b": make_player("Bob"), "c": make_player("Cy")}))
    monitor = AutopilotMonitor(store)
    scheduler = AutopilotScheduler(store, monitor, clock=lambda: NOW)

    # Tick 1 opens round 1.
    report = await scheduler.run_tick(now=NOW)
    assert report.outcomes == {"g1": GameOutcome.STARTED}

    # Everyone bids: round 1 settles early on the next tick and round 2 opens.
    for player_id, bid in (("a", 40), ("b", 50), ("c", 60)):
        await player_actions.submit_bid(store, "g1", player_id, bid, now=NOW + 1)
    report = await scheduler.run_tick(now=NOW + 2)
    assert report.outcomes == {"g1": GameOutcome.SETTLED}

    # Round 2: Cy times out after bidding, Bob never bids.
    await player_actions.submit_bid(store, "g1", "a", 45, now=NOW + 3)
    await player_actions.submit_bid(store, "g1", "c", 30, now=NOW + 3)
    await player_actions.set_player_timed_out(store, "g1", "c", timed_out=True)
    await scheduler.run_tick(now=NOW + ROUND_MS)

    # Round 3 times out with only Alice bidding.
    await player_actions.submit_bid(store, "g1", "a", 20, now=NOW + ROUND_MS + 1)
    await scheduler.run_tick(now=NOW + 2 * ROUND_MS)

    game = await store.get("games/g1")
    state = game["gameState"]
    history = state["roundHistory"]

    assert game["status"] == "completed"
    assert state["isEnded"] is True
    assert state["isActive"] is False
    assert state["currentRound"] == 3
    assert [r["round"] for r in history] == [1, 2, 3]

    assert history[0]["bids"] == {"a": 40, "b": 50, "c": 60}
    # Bob is charged maxBid; timed-out Cy keeps the bid stored before timing out.
    assert history[1]["bids"] == {"a": 45, "b": 100, "c": 30}
    # Round start cleared Cy's bid, so round 3 charges them maxBid too.
    assert history[2]["bids"] == {"a": 20, "b": 100, "c": 100}

    for entry in history:
        assert math.fsum(entry["marketShares"].values()) == pytest.approx(1.0, abs=1e-9)

    total = math.fsum(p for entry in history for p in entry["profits"].values())
    assert state["totalProfit"] == pytest.approx(total)
    assert state["averageMarketShare"] == pytest.approx(3 / (3 * 3))
    assert state["updateSeq"] > 0

    actions = [(e.action.value, e.status.value) for e in await monitor.get_events("g1")]
    assert actions.count(("process_round", "success")) == 3
    assert actions.count(("start_round", "success")) == 3


async def test_active_index_query(store):
    await store.set("games/on", make_game())
    await store.set("games/off", make_game(isActive=False))

    assert set(await store.query("games", "gameState/isActive", value=True)) == {"on"}


async def test_concurrent_ticks_settle_once(store):
    await store.set("games/g1", make_game(roundStartTime=NOW - ROUND_MS))
    monitor = AutopilotMonitor(store)
    first = AutopilotScheduler(store, monitor, clock=lambda: NOW)
    second = AutopilotScheduler(store, monitor, clock=lambda: NOW)

    raw = (await store.query("games", "gameState/isActive", value=True))["g1"]
    await first.process_game("g1", raw, NOW)
    with pytest.raises(ConcurrentUpdateError, match="updateSeq"):
        await second.process_game("g1", raw, NOW)

    state = await store.get("games/g1/gameState")
    assert state["currentRound"] == 2
    assert len(state["roundHistory"]) == 1
