"""HTTP endpoints: the autopilot toggle RPC and admin game operations."""

from __future__ import annotations

import contextlib
import json
from typing import TYPE_CHECKING, Any, TypeVar

import structlog
from pydantic import ValidationError
from starlette.responses import JSONResponse

from market.autopilot import controls
from market.autopilot.monitor import AutopilotAction, EventStatus
from market.autopilot.toggle import toggle_autopilot
from market.logic import player_actions
from market.logic.exceptions import AuthorizationError, GameNotFoundError, InvalidActionError, InvalidStateError
from market.server.types import (
    ExtendRoundTimeRequest,
    RegisterPlayerRequest,
    SetAutopilotRequest,
    SetRivalriesRequest,
    SetTimeoutRequest,
    SubmitBidRequest,
    ToggleAutopilotRequest,
)
from shared.dal import ConcurrentUpdateError, TransientStoreError

if TYPE_CHECKING:
    from pydantic import BaseModel
    from starlette.requests import Request

    from market.autopilot.monitor import AutopilotMonitor
    from market.autopilot.scheduler import AutopilotScheduler
    from shared.dal import DocumentStore

logger = structlog.get_logger()

_MAX_REQUEST_BODY_SIZE = 4096

_M = TypeVar("_M", bound="BaseModel")


async def _parse_body(request: Request, model: type[_M]) -> _M | JSONResponse:
    raw_body = await request.body()
    if len(raw_body) > _MAX_REQUEST_BODY_SIZE:
        return JSONResponse({"error": "Request body too large"}, status_code=413)
    try:
        body = json.loads(raw_body or b"{}")
        return model.model_validate(body)
    except (ValueError, TypeError, json.JSONDecodeError, UnicodeDecodeError, ValidationError):  # fmt: skip
        return JSONResponse({"error": "Invalid request body"}, status_code=422)


def _error_response(exc: Exception) -> JSONResponse:
    """Map domain and store errors to JSON error responses."""
    if isinstance(exc, AuthorizationError):
        return JSONResponse({"error": str(exc)}, status_code=403)
    if isinstance(exc, GameNotFoundError):
        return JSONResponse({"error": "Game not found"}, status_code=404)
    if isinstance(exc, InvalidActionError):
        return JSONResponse({"error": str(exc)}, status_code=400)
    if isinstance(exc, ConcurrentUpdateError):
        return JSONResponse({"error": "Game changed concurrently, retry"}, status_code=409)
    if isinstance(exc, InvalidStateError):
        return JSONResponse({"error": str(exc)}, status_code=409)
    logger.warning("store error while handling request", error=str(exc))
    return JSONResponse({"error": "Storage unavailable"}, status_code=503)


_HANDLED_ERRORS = (AuthorizationError, GameNotFoundError, InvalidActionError, InvalidStateError, TransientStoreError)


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


async def _toggle(request: Request, game_id: str, *, enabled: bool) -> JSONResponse:
    store: DocumentStore = request.app.state.store
    monitor: AutopilotMonitor = request.app.state.monitor
    try:
        result = await toggle_autopilot(store, monitor, request.user.principal, game_id, enabled=enabled)
    except _HANDLED_ERRORS as exc:
        if isinstance(exc, TransientStoreError):
            return JSONResponse({"error": "Failed to toggle autopilot"}, status_code=503)
        return _error_response(exc)
    return JSONResponse(result.model_dump())


async def _log_rejected_toggle(request: Request, game_id: Any) -> None:  # noqa: ANN401
    """Record a toggle whose body failed validation, with whatever fields were readable."""
    monitor: AutopilotMonitor = request.app.state.monitor
    raw_body = await request.body()
    body: Any = None
    if len(raw_body) <= _MAX_REQUEST_BODY_SIZE:
        with contextlib.suppress(ValueError, UnicodeDecodeError):
            body = json.loads(raw_body or b"{}")
    if not isinstance(body, dict):
        body = {}
    if game_id is None:
        game_id = body.get("gameId")
    enabled = body.get("enabled")
    await monitor.log_event(
        game_id if isinstance(game_id, str) else "",
        AutopilotAction.TOGGLE,
        EventStatus.FAILURE,
        {
            "enabled": enabled if isinstance(enabled, bool) else None,
            "userId": request.user.principal.user_id,
            "error": "Invalid request body",
        },
    )


async def toggle_autopilot_rpc(request: Request) -> JSONResponse:
    """POST /rpc/toggleAutopilot with ``{"gameId", "enabled"}``."""
    parsed = await _parse_body(request, ToggleAutopilotRequest)
    if isinstance(parsed, JSONResponse):
        await _log_rejected_toggle(request, None)
        return parsed
    return await _toggle(request, parsed.game_id, enabled=parsed.enabled)


async def set_autopilot(request: Request) -> JSONResponse:
    """POST /games/{game_id}/autopilot with ``{"enabled"}``."""
    parsed = await _parse_body(request, SetAutopilotRequest)
    if isinstance(parsed, JSONResponse):
        await _log_rejected_toggle(request, request.path_params["game_id"])
        return parsed
    return await _toggle(request, request.path_params["game_id"], enabled=parsed.enabled)


async def list_autopilot_events(request: Request) -> JSONResponse:
    monitor: AutopilotMonitor = request.app.state.monitor
    try:
        events = await monitor.get_events(request.path_params["game_id"])
    except TransientStoreError as exc:
        return _error_response(exc)
    return JSONResponse({"events": [event.to_document() for event in events]})


async def run_tick(request: Request) -> JSONResponse:
    """POST /autopilot/tick -- run one scheduler tick now (for external triggers)."""
    scheduler: AutopilotScheduler = request.app.state.scheduler
    try:
        report = await scheduler.run_tick()
    except TransientStoreError as exc:
        return _error_response(exc)
    return JSONResponse(
        {
            "outcomes": {game_id: outcome.value for game_id, outcome in report.outcomes.items()},
            "failures": report.failures,
            "overlapped": report.overlapped,
        },
    )


async def register_player(request: Request) -> JSONResponse:
    parsed = await _parse_body(request, RegisterPlayerRequest)
    if isinstance(parsed, JSONResponse):
        return parsed
    try:
        created = await player_actions.register_player(
            request.app.state.store,
            request.path_params["game_id"],
            parsed.player_id,
            parsed.name,
        )
    except _HANDLED_ERRORS as exc:
        return _error_response(exc)
    return JSONResponse({"playerId": parsed.player_id, "created": created}, status_code=201 if created else 200)


async def remove_player(request: Request) -> JSONResponse:
    try:
        await player_actions.remove_player(
            request.app.state.store,
            request.path_params["game_id"],
            request.path_params["player_id"],
        )
    except _HANDLED_ERRORS as exc:
        return _error_response(exc)
    return JSONResponse({"removed": True})


async def submit_bid(request: Request) -> JSONResponse:
    """POST /games/{game_id}/players/{player_id}/bid -- the player themself, or an admin."""
    player_id = request.path_params["player_id"]
    principal = request.user.principal
    if not principal.is_admin and principal.user_id != player_id:
        return JSONResponse({"error": "Cannot bid for another player"}, status_code=403)

    parsed = await _parse_body(request, SubmitBidRequest)
    if isinstance(parsed, JSONResponse):
        return parsed
    try:
        await player_actions.submit_bid(
            request.app.state.store,
            request.path_params["game_id"],
            player_id,
            parsed.bid,
        )
    except _HANDLED_ERRORS as exc:
        return _error_response(exc)
    return JSONResponse({"accepted": True})


async def set_player_timeout(request: Request) -> JSONResponse:
    parsed = await _parse_body(request, SetTimeoutRequest)
    if isinstance(parsed, JSONResponse):
        return parsed
    try:
        await player_actions.set_player_timed_out(
            request.app.state.store,
            request.path_params["game_id"],
            request.path_params["player_id"],
            timed_out=parsed.timed_out,
        )
    except _HANDLED_ERRORS as exc:
        return _error_response(exc)
    return JSONResponse({"timedOut": parsed.timed_out})


async def extend_round_time(request: Request) -> JSONResponse:
    parsed = await _parse_body(request, ExtendRoundTimeRequest)
    if isinstance(parsed, JSONResponse):
        return parsed
    try:
        new_limit = await player_actions.extend_round_time(
            request.app.state.store,
            request.path_params["game_id"],
            parsed.additional_seconds,
        )
    except _HANDLED_ERRORS as exc:
        return _error_response(exc)
    return JSONResponse({"roundTimeLimit": new_limit})


async def start_round_now(request: Request) -> JSONResponse:
    """POST /games/{game_id}/round/start -- open the current round now."""
    game_id = request.path_params["game_id"]
    try:
        started = await controls.start_round_now(request.app.state.store, request.app.state.monitor, game_id)
    except _HANDLED_ERRORS as exc:
        return _error_response(exc)
    if not started:
        return JSONResponse({"error": "Not enough active players to start a round"}, status_code=409)
    return JSONResponse({"started": True})


async def settle_round_now(request: Request) -> JSONResponse:
    """POST /games/{game_id}/round/settle -- settle the running round without waiting for bids."""
    game_id = request.path_params["game_id"]
    try:
        result = await controls.settle_round_now(request.app.state.store, request.app.state.monitor, game_id)
    except _HANDLED_ERRORS as exc:
        return _error_response(exc)
    return JSONResponse({"result": result.to_document()})


async def end_game(request: Request) -> JSONResponse:
    try:
        await controls.end_game(request.app.state.store, request.path_params["game_id"])
    except _HANDLED_ERRORS as exc:
        return _error_response(exc)
    return JSONResponse({"ended": True})


async def set_rivalries(request: Request) -> JSONResponse:
    """PUT /games/{game_id}/rivalries with ``{"rivalries": {playerId: [rivalId, ...]}}``."""
    parsed = await _parse_body(request, SetRivalriesRequest)
    if isinstance(parsed, JSONResponse):
        return parsed
    try:
        await player_actions.set_rivalries(request.app.state.store, request.path_params["game_id"], parsed.rivalries)
    except _HANDLED_ERRORS as exc:
        return _error_response(exc)
    return JSONResponse({"rivalries": parsed.rivalries})


async def auto_assign_rivals(request: Request) -> JSONResponse:
    try:
        graph = await player_actions.auto_assign_rivals(request.app.state.store, request.path_params["game_id"])
    except _HANDLED_ERRORS as exc:
        return _error_response(exc)
    return JSONResponse({"rivalries": graph})
