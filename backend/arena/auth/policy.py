"""Route auth policy helpers for fail-closed authorization.

Each helper wraps a route endpoint and sets the ``AUTH_POLICY_ATTR`` marker
so that startup validation can verify every route has an explicit auth policy.
"""

from __future__ import annotations

import functools
import hmac
from typing import TYPE_CHECKING

from starlette.routing import Mount, Route

from arena.errors import ArenaError, ErrorCode, error_response

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from starlette.requests import Request
    from starlette.responses import Response
    from starlette.routing import BaseRoute

    type Endpoint = Callable[..., Awaitable[Response]]

AUTH_POLICY_ATTR = "__auth_policy__"
JOB_TOKEN_HEADER = "X-Job-Token"


def _mark(endpoint: Endpoint, policy: str) -> Endpoint:
    """Wrap ``endpoint`` so the marker lives on the wrapper, not on the original callable."""

    @functools.wraps(endpoint)
    async def wrapper(request: Request, **kwargs: str) -> Response:
        return await endpoint(request, **kwargs)

    setattr(wrapper, AUTH_POLICY_ATTR, policy)
    return wrapper


def public_route(endpoint: Endpoint) -> Endpoint:
    """Mark endpoint as explicitly public (no session required)."""
    return _mark(endpoint, "public")


def verified_session(endpoint: Endpoint) -> Endpoint:
    """Mark endpoint as requiring an active identity session.

    The session itself is checked by the service through ``SessionGuard``
    so that rejections are audited next to the action they blocked.
    """
    return _mark(endpoint, "verified_session")


def job_token_required(endpoint: Endpoint) -> Endpoint:
    """Require the ``X-Job-Token`` header to match the configured job token.

    With no token configured the route is closed.
    """

    @functools.wraps(endpoint)
    async def wrapper(request: Request, **kwargs: str) -> Response:
        expected: str | None = request.app.state.settings.job_token
        provided = request.headers.get(JOB_TOKEN_HEADER, "")
        if not expected or not hmac.compare_digest(provided.encode(), expected.encode()):
            return error_response(
                ArenaError(ErrorCode.UNAUTHORIZED),
                envelope="tournament",
                path=request.url.path,
            )
        return await endpoint(request, **kwargs)

    setattr(wrapper, AUTH_POLICY_ATTR, "job_token")
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
        details = ", ".join(unclassified)
        msg = f"Unclassified routes missing auth policy: {details}"
        raise RuntimeError(msg)
