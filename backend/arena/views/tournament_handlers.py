"""Tournament listing, detail, admission, creation and leaderboard handlers."""

from __future__ import annotations

from typing import TYPE_CHECKING

from starlette.responses import JSONResponse

from arena.errors import HANDLED_ERRORS, ArenaError, ErrorCode, error_response, parse_request, read_json_body
from arena.tournaments.leaderboard import get_global_leaderboard
from arena.tournaments.types import CreateTournamentRequest, JoinTournamentRequest
from shared.identity import SESSION_COOKIE
from shared.validators import parse_csv_query

if TYPE_CHECKING:
    from starlette.requests import Request

    from arena.tournaments.service import TournamentService

TOURNAMENTS_CACHE_CONTROL = "public, max-age=120, stale-while-revalidate=600"


def _tournament_error(exc: Exception, request: Request) -> JSONResponse:
    return error_response(exc, envelope="tournament", path=request.url.path)


async def list_tournaments(request: Request) -> JSONResponse:
    """GET /api/tournaments?status=upcoming,active"""
    tournaments: TournamentService = request.app.state.tournament_service
    status_filters = parse_csv_query(request.query_params.get("status"))
    try:
        result = await tournaments.list_tournaments(status_filters)
    except HANDLED_ERRORS as e:
        return _tournament_error(e, request)
    return JSONResponse(
        [t.to_response() for t in result],
        headers={"Cache-Control": TOURNAMENTS_CACHE_CONTROL},
    )


async def get_tournament(request: Request) -> JSONResponse:
    """GET /api/tournaments/{tournament_id}"""
    tournaments: TournamentService = request.app.state.tournament_service
    tournament_id = request.path_params["tournament_id"]
    try:
        tournament = await tournaments.get_tournament(tournament_id)
        if tournament is None:
            raise ArenaError(ErrorCode.NOT_FOUND, "Torneo no encontrado")
    except HANDLED_ERRORS as e:
        return _tournament_error(e, request)
    return JSONResponse(tournament.to_response(), headers={"Cache-Control": TOURNAMENTS_CACHE_CONTROL})


async def join_tournament(request: Request) -> JSONResponse:
    """POST /api/tournaments/{tournament_id}/join - admit the caller with a confirmed payment."""
    tournaments: TournamentService = request.app.state.tournament_service
    tournament_id = request.path_params["tournament_id"]
    try:
        body = parse_request(JoinTournamentRequest, await read_json_body(request))
        tournament = await tournaments.join(tournament_id, body, request.cookies.get(SESSION_COOKIE))
    except HANDLED_ERRORS as e:
        return _tournament_error(e, request)
    return JSONResponse({"success": True, "tournament": tournament.to_response()})


async def create_tournament(request: Request) -> JSONResponse:
    """POST /api/tournaments/create - operator-only tournament definition."""
    tournaments: TournamentService = request.app.state.tournament_service
    try:
        body = parse_request(CreateTournamentRequest, await read_json_body(request))
        tournament = await tournaments.create_tournament(body)
    except HANDLED_ERRORS as e:
        return _tournament_error(e, request)
    return JSONResponse({"success": True, "tournament": tournament.to_response()}, status_code=201)


async def tournament_leaderboard(request: Request) -> JSONResponse:
    """GET /api/tournaments/{tournament_id}/leaderboard"""
    tournaments: TournamentService = request.app.state.tournament_service
    tournament_id = request.path_params["tournament_id"]
    try:
        tournament = await tournaments.get_tournament(tournament_id)
        if tournament is None:
            raise ArenaError(ErrorCode.NOT_FOUND, "Torneo no encontrado")
        entries = await tournaments.get_leaderboard_entries(
            tournament_id,
            tournament.prize_pool,
            tournament.prize_distribution,
        )
    except HANDLED_ERRORS as e:
        return _tournament_error(e, request)
    return JSONResponse([entry.to_response() for entry in entries])


async def global_leaderboard(request: Request) -> JSONResponse:
    """GET /api/leaderboard/global"""
    tournaments: TournamentService = request.app.state.tournament_service
    try:
        entries = await get_global_leaderboard(tournaments, request.app.state.tokens)
    except HANDLED_ERRORS as e:
        return _tournament_error(e, request)
    return JSONResponse([entry.to_response() for entry in entries])
