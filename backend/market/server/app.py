from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

import structlog
from starlette.applications import Starlette
from starlette.middleware.authentication import AuthenticationMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.routing import Route

from market.autopilot.monitor import AutopilotMonitor
from market.autopilot.scheduler import AutopilotScheduler
from market.server.auth import BearerCredentialBackend
from market.server.handlers import (
    auto_assign_rivals,
    end_game,
    extend_round_time,
    health,
    list_autopilot_events,
    register_player,
    remove_player,
    run_tick,
    set_autopilot,
    set_player_timeout,
    set_rivalries,
    settle_round_now,
    start_round_now,
    submit_bid,
    toggle_autopilot_rpc,
)
from market.server.policy import admin_api, authenticated_api, public_route, validate_route_auth_policy
from market.server.settings import AutopilotSettings
from shared.auth.settings import AuthSettings
from shared.db import Database, SqliteDocumentStore
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from shared.dal import DocumentStore


def create_app(
    settings: AutopilotSettings | None = None,
    auth_settings: AuthSettings | None = None,
    store: DocumentStore | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = AutopilotSettings()
    if auth_settings is None:  # pragma: no cover
        auth_settings = AuthSettings()  # type: ignore[call-arg]

    # When the app creates its own store, it owns the DB lifecycle.
    owned_db: Database | None = None
    if store is None:
        owned_db = Database(settings.database_path)
        owned_db.connect()
        store = SqliteDocumentStore(owned_db)

    monitor = AutopilotMonitor(
        store,
        retention_days=settings.log_retention_days,
        cleanup_interval_seconds=settings.cleanup_interval_seconds,
    )
    scheduler = AutopilotScheduler(store, monitor, tick_interval_seconds=settings.tick_interval_seconds)

    routes = [
        # Admin claim is checked inside the toggle so denied attempts are logged.
        Route("/rpc/toggleAutopilot", authenticated_api(toggle_autopilot_rpc), methods=["POST"], name="toggle_rpc"),
        Route("/games/{game_id}/autopilot", authenticated_api(set_autopilot), methods=["POST"], name="set_autopilot"),
        Route(
            "/games/{game_id}/autopilot/events",
            admin_api(list_autopilot_events),
            methods=["GET"],
            name="list_autopilot_events",
        ),
        Route("/autopilot/tick", admin_api(run_tick), methods=["POST"], name="run_tick"),
        Route("/games/{game_id}/players", admin_api(register_player), methods=["POST"], name="register_player"),
        Route(
            "/games/{game_id}/players/{player_id}",
            admin_api(remove_player),
            methods=["DELETE"],
            name="remove_player",
        ),
        Route(
            "/games/{game_id}/players/{player_id}/bid",
            authenticated_api(submit_bid),
            methods=["POST"],
            name="submit_bid",
        ),
        Route(
            "/games/{game_id}/players/{player_id}/timeout",
            admin_api(set_player_timeout),
            methods=["POST"],
            name="set_player_timeout",
        ),
        Route("/games/{game_id}/round-time", admin_api(extend_round_time), methods=["POST"], name="extend_round_time"),
        Route("/games/{game_id}/round/start", admin_api(start_round_now), methods=["POST"], name="start_round"),
        Route("/games/{game_id}/round/settle", admin_api(settle_round_now), methods=["POST"], name="settle_round"),
        Route("/games/{game_id}/end", admin_api(end_game), methods=["POST"], name="end_game"),
        Route("/games/{game_id}/rivalries", admin_api(set_rivalries), methods=["PUT"], name="set_rivalries"),
        Route(
            "/games/{game_id}/rivalries/auto",
            admin_api(auto_assign_rivals),
            methods=["POST"],
            name="auto_assign_rivals",
        ),
        Route("/health", public_route(health), methods=["GET"], name="health"),
    ]
    validate_route_auth_policy(routes)

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncGenerator[None]:
        if settings.scheduler_enabled:
            scheduler.start()
            monitor.start_cleanup()
        yield
        await scheduler.stop()
        await monitor.stop_cleanup()
        if owned_db is not None:
            owned_db.close()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(AuthenticationMiddleware, backend=BearerCredentialBackend(auth_settings.credential_secret))  # type: ignore[arg-type]
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.state.settings = settings
    app.state.store = store
    app.state.monitor = monitor
    app.state.scheduler = scheduler

    logger.info("autopilot server ready", scheduler_enabled=settings.scheduler_enabled)
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (uvicorn --factory market.server.app:get_app)."""
    settings = AutopilotSettings()
    auth_settings = AuthSettings()  # type: ignore[call-arg]
    setup_logging(log_dir=settings.log_dir)
    return create_app(settings=settings, auth_settings=auth_settings)
