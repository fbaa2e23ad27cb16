"""Periodic autopilot driver.

Each tick queries every game flagged ``gameState.isActive``, keeps those with
autopilot enabled that have started and not ended, and processes them
concurrently. Per game, a tick does at most one of: start a round, or settle
the due round and immediately start the next. Games never share state, and
one game's failure is logged and reported without touching the others.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog

from market.autopilot.engine import settle_round, start_round
from market.autopilot.monitor import AutopilotAction, EventStatus
from market.logic.clock import now_ms
from market.logic.exceptions import InvalidStateError
from market.logic.games import load_game, parse_game
from market.logic.models import GAMES_COLLECTION
from market.logic.progression import RoundPhase, evaluate_phase, is_autopilot_eligible

if TYPE_CHECKING:
    from collections.abc import Callable
    from typing import Any

    from market.autopilot.monitor import AutopilotMonitor
    from shared.dal import DocumentStore

DEFAULT_TICK_INTERVAL_SECONDS = 60

logger = structlog.get_logger()


class GameOutcome(StrEnum):
    SKIPPED = "skipped"  # autopilot off or game not running
    WAITING = "waiting"  # round running and not yet due
    STARTED = "started"  # a round was opened
    STALLED = "stalled"  # round could not start: below quorum
    SETTLED = "settled"  # round settled and the next one opened (or game ended)


@dataclass
class TickReport:
    """What one tick did, per game id."""

    outcomes: dict[str, GameOutcome] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)
    overlapped: bool = False

    @property
    def processed(self) -> int:
        return len(self.outcomes) + len(self.failures)


class AutopilotScheduler:
    """Drive every autopilot game forward once per tick.

    ``run_tick()`` is the unit of work; ``start()``/``stop()`` run it every
    ``tick_interval_seconds`` in a background task. A tick that finds the
    previous one still running in this process does nothing.
    """

    def __init__(
        self,
        store: DocumentStore,
        monitor: AutopilotMonitor,
        *,
        tick_interval_seconds: float = DEFAULT_TICK_INTERVAL_SECONDS,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._store = store
        self._monitor = monitor
        self._tick_interval_seconds = tick_interval_seconds
        self._clock = clock
        self._tick_lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_tick(self, now: int | None = None) -> TickReport:
        report = TickReport()
        if self._tick_lock.locked():
            logger.warning("previous autopilot tick still running, skipping")
            report.overlapped = True
            return report

        async with self._tick_lock:
            now = self._clock() if now is None else now
            games = await self._store.query(GAMES_COLLECTION, "gameState/isActive", value=True)
            if not games:
                logger.debug("no active games")
                return report

            game_ids = list(games)
            results = await asyncio.gather(
                *(self._process_isolated(game_id, games[game_id], now) for game_id in game_ids),
            )
            for game_id, (outcome, error) in zip(game_ids, results, strict=True):
                if error is None:
                    report.outcomes[game_id] = outcome
                else:
                    report.failures[game_id] = error

        logger.info(
            "autopilot tick complete",
            games=len(game_ids),
            failures=len(report.failures),
            settled=sum(1 for o in report.outcomes.values() if o == GameOutcome.SETTLED),
        )
        return report

    async def _process_isolated(self, game_id: str, raw: Any, now: int) -> tuple[GameOutcome, str | None]:  # noqa: ANN401
        with structlog.contextvars.bound_contextvars(game_id=game_id):
            try:
                return await self.process_game(game_id, raw, now), None
            except Exception as exc:  # noqa: BLE001
                logger.exception("autopilot processing failed")
                return GameOutcome.SKIPPED, f"{type(exc).__name__}: {exc}"

    async def process_game(self, game_id: str, raw: Any, now: int) -> GameOutcome:  # noqa: ANN401
        """Advance one game as far as this tick allows.

        Round start and settlement record their own failures in the monitor;
        a document that cannot be read is recorded here before raising.
        """
        try:
            game = parse_game(game_id, raw)
        except InvalidStateError as exc:
            await self._log_read_failure(game_id, exc, now)
            raise
        if not is_autopilot_eligible(game):
            return GameOutcome.SKIPPED

        state = game.game_state
        phase = evaluate_phase(state, now)
        if phase == RoundPhase.NOT_STARTED:
            started = await start_round(self._store, game_id, state, self._monitor, now=now)
            return GameOutcome.STARTED if started else GameOutcome.STALLED
        if phase != RoundPhase.ROUND_DUE:
            return GameOutcome.WAITING

        await settle_round(self._store, game_id, state, self._monitor, now=now)

        # Chain straight into the next round rather than waiting a tick.
        try:
            updated = (await load_game(self._store, game_id)).game_state
        except Exception as exc:
            await self._log_read_failure(game_id, exc, now, round=state.current_round)
            raise
        if not updated.is_ended:
            await start_round(self._store, game_id, updated, self._monitor, now=self._clock())
        return GameOutcome.SETTLED

    async def _log_read_failure(self, game_id: str, exc: Exception, now: int, **details: Any) -> None:  # noqa: ANN401
        await self._monitor.log_event(
            game_id,
            AutopilotAction.PROCESS_ROUND,
            EventStatus.FAILURE,
            {**details, "error": str(exc)},
            now=now,
        )

    def start(self) -> None:
        """Start the periodic tick loop."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        """Stop the loop. A tick already in flight is allowed to finish."""
        if self._task is None:
            return
        async with self._tick_lock:
            self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._tick_interval_seconds)
            try:
                await self.run_tick()
            except Exception:  # noqa: BLE001
                # The game query itself failed; the next tick starts over.
                logger.exception("autopilot tick failed")
