"""Game progress handler."""

from __future__ import annotations

from typing import TYPE_CHECKING

from starlette.responses import JSONResponse

from arena.errors import HANDLED_ERRORS, error_response, parse_request, read_json_body
from arena.tournaments.types import GameProgressRequest
from shared.identity import SESSION_COOKIE

if TYPE_CHECKING:
    from starlette.requests import Request

    from arena.game.progress import GameProgressService


async def sync_game_progress(request: Request) -> JSONResponse:
    """POST /api/game/progress - store the caller's score for a game session."""
    progress_service: GameProgressService = request.app.state.progress_service
    try:
        body = parse_request(GameProgressRequest, await read_json_body(request))
        saved = await progress_service.sync(body, request.cookies.get(SESSION_COOKIE))
    except HANDLED_ERRORS as e:
        return error_response(e, envelope="tournament", path=request.url.path)
    return JSONResponse({"success": True, "progress": saved.model_dump(mode="json")})
