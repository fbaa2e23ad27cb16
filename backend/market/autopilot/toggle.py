"""Admin operation that turns a game's autopilot on or off."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel

from market.autopilot.monitor import AutopilotAction, EventStatus
from market.logic.clock import now_ms
from market.logic.exceptions import AuthorizationError
from market.logic.games import load_game
from market.logic.models import AutopilotState, game_path, state_path

if TYPE_CHECKING:
    from market.autopilot.monitor import AutopilotMonitor
    from shared.auth.models import Principal
    from shared.dal import DocumentStore

logger = structlog.get_logger()


class ToggleResult(BaseModel):
    success: bool
    message: str


async def toggle_autopilot(
    store: DocumentStore,
    monitor: AutopilotMonitor,
    caller: Principal,
    game_id: str,
    *,
    enabled: bool,
    now: int | None = None,
) -> ToggleResult:
    """Set ``gameState/autopilot`` to ``{enabled, lastUpdateTime}``.

    ``lastUpdateTime`` is stamped only when enabling. Every attempt is logged
    to the monitor; unauthorized callers and unknown games raise without
    writing anything.
    """
    now = now_ms() if now is None else now
    try:
        if not caller.is_admin:
            raise AuthorizationError("Only admins can toggle autopilot")
        await load_game(store, game_id)
        autopilot = AutopilotState(enabled=enabled, last_update_time=now if enabled else None)
        await store.update(game_path(game_id), {state_path("autopilot"): autopilot.to_document()})
    except Exception as exc:
        await monitor.log_event(
            game_id,
            AutopilotAction.TOGGLE,
            EventStatus.FAILURE,
            {"enabled": enabled, "userId": caller.user_id, "error": str(exc)},
            now=now,
        )
        raise

    await monitor.log_event(
        game_id,
        AutopilotAction.TOGGLE,
        EventStatus.SUCCESS,
        {"enabled": enabled, "userId": caller.user_id},
        now=now,
    )
    return ToggleResult(
        success=True,
        message=f"Autopilot {'enabled' if enabled else 'disabled'} for game {game_id}",
    )
