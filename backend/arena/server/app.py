from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route

from arena.auth.policy import job_token_required, public_route, validate_route_auth_policy, verified_session
from arena.errors import unhandled_error_handler
from arena.game.progress import GameProgressService
from arena.payments.processor import PaymentProcessorClient, PaymentProcessorSettings
from arena.payments.service import PaymentService
from arena.players.service import PlayerService
from arena.server.middleware import SecurityHeadersMiddleware, SlashNormalizationMiddleware
from arena.server.settings import ArenaServerSettings
from arena.tournaments.service import TournamentService
from arena.views import (
    attach_wallet,
    confirm_payment,
    create_tournament,
    export_player_data,
    get_tournament,
    global_leaderboard,
    initiate_payment,
    join_tournament,
    list_tournaments,
    player_stats,
    sync_game_progress,
    tournament_leaderboard,
    verify_world_id,
)
from shared.identity import HttpProofVerifier, IdentityService, SessionGuard
from shared.logging import setup_logging
from shared.store import AdvisoryFileLock, JsonRecordStore, utc_now
from shared.tokens import TokenRegistry, TokenSettings

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from starlette.requests import Request

    from arena.payments.notifier import PaymentNotifier
    from shared.identity import ProofVerifier


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


def create_app(
    settings: ArenaServerSettings | None = None,
    processor_settings: PaymentProcessorSettings | None = None,  # required in production (via get_app)
    token_settings: TokenSettings | None = None,
    *,
    verifier: ProofVerifier | None = None,
    processor: PaymentProcessorClient | None = None,
    notifier: PaymentNotifier | None = None,
    clock: Callable[[], datetime] | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = ArenaServerSettings()
    if processor_settings is None:  # pragma: no cover
        processor_settings = PaymentProcessorSettings()  # type: ignore[call-arg]

    routes = [
        # Verified-session routes; the services run the session guard and audit rejections
        Route("/api/initiate-payment", verified_session(initiate_payment), methods=["POST"], name="initiate_payment"),
        Route("/api/confirm-payment", verified_session(confirm_payment), methods=["POST"], name="confirm_payment"),
        Route(
            "/api/tournaments/{tournament_id}/join",
            verified_session(join_tournament),
            methods=["POST"],
            name="join_tournament",
        ),
        Route("/api/game/progress", verified_session(sync_game_progress), methods=["POST"], name="game_progress"),
        Route("/api/identity/wallet", verified_session(attach_wallet), methods=["POST"], name="attach_wallet"),
        Route("/api/player/stats", verified_session(player_stats), methods=["GET"], name="player_stats"),
        Route("/api/player/data", verified_session(export_player_data), methods=["GET"], name="player_data"),
        # Operator routes
        Route(
            "/api/tournaments/create",
            job_token_required(create_tournament),
            methods=["POST"],
            name="create_tournament",
        ),
        # Public routes
        Route("/health", public_route(health), methods=["GET"], name="health"),
        Route("/api/verify-world-id", public_route(verify_world_id), methods=["POST"], name="verify_world_id"),
        Route("/api/tournaments", public_route(list_tournaments), methods=["GET"], name="list_tournaments"),
        Route(
            "/api/tournaments/{tournament_id}",
            public_route(get_tournament),
            methods=["GET"],
            name="get_tournament",
        ),
        Route(
            "/api/tournaments/{tournament_id}/leaderboard",
            public_route(tournament_leaderboard),
            methods=["GET"],
            name="tournament_leaderboard",
        ),
        Route(
            "/api/leaderboard/global",
            public_route(global_leaderboard),
            methods=["GET"],
            name="global_leaderboard",
        ),
    ]

    validate_route_auth_policy(routes)

    lock = AdvisoryFileLock(
        settings.database_path.with_name(f"{settings.database_path.name}.lock"),
        stale_after_seconds=settings.lock_stale_after_seconds,
        max_retries=settings.lock_max_retries,
        retry_delay_seconds=settings.lock_retry_delay_seconds,
    )
    store = JsonRecordStore(
        settings.database_path,
        audit_log_path=settings.audit_log_path,
        lock=lock,
        clock=clock or utc_now,
    )
    tokens = TokenRegistry(token_settings)
    guard = SessionGuard(store)

    if verifier is None:
        verifier = HttpProofVerifier(
            settings.world_id_base_url,
            processor_settings.app_id,
            timeout_seconds=processor_settings.timeout_seconds,
        )
    identity_service = IdentityService(
        store,
        verifier,
        session_ttl_seconds=settings.session_ttl_seconds,
        guard=guard,
    )
    tournament_service = TournamentService(store, tokens, guard, config_path=settings.tournaments_config_path)
    payment_service = PaymentService(
        store,
        tokens,
        guard,
        processor or PaymentProcessorClient(processor_settings),
        tournament_service,
        notifier=notifier,
        recipient_address=settings.payment_recipient_address,
    )

    app = Starlette(routes=routes, exception_handlers={Exception: unhandled_error_handler})
    app.add_middleware(SlashNormalizationMiddleware)  # type: ignore[arg-type]
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "X-Job-Token"],
        allow_credentials=True,
    )
    app.add_middleware(SecurityHeadersMiddleware)  # type: ignore[arg-type]

    app.state.settings = settings
    app.state.store = store
    app.state.tokens = tokens
    app.state.identity_service = identity_service
    app.state.tournament_service = tournament_service
    app.state.payment_service = payment_service
    app.state.progress_service = GameProgressService(store, guard)
    app.state.player_service = PlayerService(store, guard, tournament_service, tokens)

    logger.info("arena server ready", database_path=str(settings.database_path))
    return app


def get_app() -> Starlette:  # pragma: no cover  # deadcode: ignore
    """Factory function for uvicorn --factory arena.server.app:get_app."""
    s = ArenaServerSettings()
    processor_settings = PaymentProcessorSettings()  # ty: ignore[missing-argument]
    setup_logging(log_dir=s.log_dir)
    return create_app(settings=s, processor_settings=processor_settings)
