"""Player stats and personal data export handlers."""

from __future__ import annotations

from typing import TYPE_CHECKING

from starlette.responses import JSONResponse

from arena.errors import HANDLED_ERRORS, error_response
from shared.identity import SESSION_COOKIE

if TYPE_CHECKING:
    from starlette.requests import Request

    from arena.players.service import PlayerService


async def player_stats(request: Request) -> JSONResponse:
    """GET /api/player/stats"""
    players: PlayerService = request.app.state.player_service
    try:
        stats = await players.stats(request.cookies.get(SESSION_COOKIE))
    except HANDLED_ERRORS as e:
        return error_response(e, envelope="tournament", path=request.url.path)
    return JSONResponse(stats.to_response())


async def export_player_data(request: Request) -> JSONResponse:
    """GET /api/player/data - the caller's stored records and profile."""
    players: PlayerService = request.app.state.player_service
    try:
        export = await players.export(request.cookies.get(SESSION_COOKIE))
    except HANDLED_ERRORS as e:
        return error_response(e, envelope="tournament", path=request.url.path)
    return JSONResponse(export)
