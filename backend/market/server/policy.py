"""Route auth policy helpers for fail-closed authorization.

Each helper wraps an endpoint and sets ``AUTH_POLICY_ATTR`` so that
``validate_route_auth_policy`` can refuse to build an app with an
unclassified route.
"""

from __future__ import annotations

import functools
from typing import TYPE_CHECKING

from starlette.authentication import has_required_scope
from starlette.responses import JSONResponse
from starlette.routing import Mount, Route

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from starlette.requests import Request
    from starlette.responses import Response
    from starlette.routing import BaseRoute

    Endpoint = Callable[[Request], Awaitable[Response]]

AUTH_POLICY_ATTR = "__auth_policy__"


def authenticated_api(endpoint: Endpoint) -> Endpoint:
    """Require a valid credential; 401 JSON otherwise.

    Admin checks happen inside the operation, which must log denied attempts.
    """

    @functools.wraps(endpoint)
    async def wrapper(request: Request) -> Response:
        if not has_required_scope(request, ["authenticated"]):
            return JSONResponse({"error": "Authentication required"}, status_code=401)
        return await endpoint(request)

    setattr(wrapper, AUTH_POLICY_ATTR, "authenticated_api")
    return wrapper


def admin_api(endpoint: Endpoint) -> Endpoint:
    """Require a valid credential carrying the admin claim.

    Returns 401 JSON when unauthenticated and 403 JSON when not an admin.
    """

    @functools.wraps(endpoint)
    async def wrapper(request: Request) -> Response:
        if not has_required_scope(request, ["authenticated"]):
            return JSONResponse({"error": "Authentication required"}, status_code=401)
        if not has_required_scope(request, ["admin"]):
            return JSONResponse({"error": "Admin privilege required"}, status_code=403)
        return await endpoint(request)

    setattr(wrapper, AUTH_POLICY_ATTR, "admin_api")
    return wrapper


def public_route(endpoint: Endpoint) -> Endpoint:
    """Mark endpoint as explicitly public (no auth required)."""

    @functools.wraps(endpoint)
    async def wrapper(request: Request) -> Response:
        return await endpoint(request)

    setattr(wrapper, AUTH_POLICY_ATTR, "public")
    return wrapper


def validate_route_auth_policy(routes: list[BaseRoute]) -> None:
    """Verify every Route has an auth policy marker. Mount routes are exempt.

    Raises RuntimeError listing all unclassified routes if any are found.
    """
    unclassified: list[str] = []
    for route in routes:
        if isinstance(route, Mount):
            continue
        if isinstance(route, Route) and not hasattr(route.endpoint, AUTH_POLICY_ATTR):
            name = route.name or getattr(route.endpoint, "__name__", "unknown")
            unclassified.append(f"{route.path} ({name})")

    if unclassified:
        msg = f"Unclassified routes missing auth policy: {', '.join(unclassified)}"
        raise RuntimeError(msg)
