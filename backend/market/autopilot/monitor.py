"""Append-only autopilot event log with retention cleanup.

Every engine action (round start, settlement, toggle) lands here as
``{gameId, action, status, details, timestamp}`` under ``autopilotLogs/{id}``
and is mirrored to structlog. Writing the log never breaks the action it
describes: store failures while logging are reported and dropped.
"""

from __future__ import annotations

import asyncio
import contextlib
from enum import StrEnum
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog
from pydantic import Field, ValidationError

from market.logic.clock import now_ms
from market.logic.models import DocumentModel
from shared.dal import TransientStoreError

if TYPE_CHECKING:
    from shared.dal import DocumentStore

LOGS_COLLECTION = "autopilotLogs"
DEFAULT_RETENTION_DAYS = 30
DEFAULT_CLEANUP_INTERVAL_SECONDS = 86400  # daily

_MS_PER_DAY = 86_400_000

logger = structlog.get_logger()


class AutopilotAction(StrEnum):
    START_ROUND = "start_round"
    PROCESS_ROUND = "process_round"
    TOGGLE = "toggle"


class EventStatus(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"


class AutopilotEvent(DocumentModel):
    game_id: str
    action: AutopilotAction
    status: EventStatus
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: int


class AutopilotMonitor:
    """Record autopilot events and prune old ones.

    Call start_cleanup() on app startup and stop_cleanup() on shutdown to run
    the retention job periodically.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        cleanup_interval_seconds: float = DEFAULT_CLEANUP_INTERVAL_SECONDS,
    ) -> None:
        if retention_days < 1:
            raise ValueError(f"retention_days must be >= 1, got {retention_days}")
        self._store = store
        self._retention_days = retention_days
        self._cleanup_interval_seconds = cleanup_interval_seconds
        self._cleanup_task: asyncio.Task[None] | None = None

    async def log_event(
        self,
        game_id: str,
        action: AutopilotAction,
        status: EventStatus,
        details: dict[str, Any] | None = None,
        now: int | None = None,
    ) -> AutopilotEvent:
        event = AutopilotEvent(
            game_id=game_id,
            action=action,
            status=status,
            details=details or {},
            timestamp=now_ms() if now is None else now,
        )
        log = logger.info if status == EventStatus.SUCCESS else logger.warning
        log("autopilot event", game_id=game_id, action=action, status=status, details=event.details)
        try:
            await self._store.set(f"{LOGS_COLLECTION}/{uuid4().hex}", event.to_document())
        except TransientStoreError:
            logger.exception("failed to persist autopilot event", game_id=game_id, action=action)
        return event

    async def get_events(self, game_id: str | None = None) -> list[AutopilotEvent]:
        """Return stored events oldest first, optionally for one game."""
        raw = await self._store.get(LOGS_COLLECTION) or {}
        events: list[AutopilotEvent] = []
        for entry_id, document in raw.items():
            try:
                event = AutopilotEvent.model_validate(document)
            except ValidationError:
                logger.warning("skipping malformed autopilot log entry", entry_id=entry_id)
                continue
            if game_id is None or event.game_id == game_id:
                events.append(event)
        events.sort(key=lambda e: e.timestamp)
        return events

    async def cleanup(self, retention_days: int | None = None, now: int | None = None) -> int:
        """Delete entries older than the retention window. Return count removed.

        Failures are logged and reported as zero removals; the next run retries.
        """
        days = self._retention_days if retention_days is None else retention_days
        cutoff = (now_ms() if now is None else now) - days * _MS_PER_DAY
        try:
            raw = await self._store.get(LOGS_COLLECTION) or {}
            expired = [
                entry_id
                for entry_id, document in raw.items()
                if not isinstance(document, dict) or _timestamp_of(document) < cutoff
            ]
            if expired:
                await self._store.update(LOGS_COLLECTION, dict.fromkeys(expired))
        except TransientStoreError:
            logger.exception("autopilot log cleanup failed", retention_days=days)
            return 0
        if expired:
            logger.info("cleaned up autopilot log entries", count=len(expired), retention_days=days)
        return len(expired)

    def start_cleanup(self) -> None:
        """Start the periodic retention job."""
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def stop_cleanup(self) -> None:
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._cleanup_task
            self._cleanup_task = None

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self._cleanup_interval_seconds)
            await self.cleanup()


def _timestamp_of(document: dict[str, Any]) -> float:
    value = document.get("timestamp")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    # Entries without a usable timestamp can never age out otherwise.
    return float("-inf")
