"""Read-only views over a player's own records: stats and the personal data export."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from arena.players.types import PlayerStats
from arena.tournaments.leaderboard import get_global_leaderboard
from shared.store.models import AuditEvent

if TYPE_CHECKING:
    from arena.tournaments.service import TournamentService
    from shared.identity import SessionGuard
    from shared.store.database import JsonRecordStore
    from shared.store.models import IdentityVerification
    from shared.tokens import TokenRegistry

logger = structlog.get_logger()

DATA_RETENTION_DAYS = 30

# Credentials are never echoed back, not even to their owner.
_EXPORT_EXCLUDE = {"session_token"}


class PlayerService:
    def __init__(
        self,
        store: JsonRecordStore,
        guard: SessionGuard,
        tournaments: TournamentService,
        tokens: TokenRegistry,
    ) -> None:
        self._store = store
        self._guard = guard
        self._tournaments = tournaments
        self._tokens = tokens

    async def stats(self, session_token: str | None) -> PlayerStats:
        identity = await self._guard.require_active_session(session_token, action="player_stats", entity="player")
        return await self._stats_for(identity)

    async def export(self, session_token: str | None) -> dict[str, Any]:
        """Everything stored about the caller, plus their stats profile.

        Payments, their history, tournament rows and game progress are
        filtered to the caller's user id.
        """
        identity = await self._guard.require_active_session(
            session_token,
            action="export_player_data",
            entity="player",
        )
        user_id = identity.user_id
        db = self._store.read()

        payments = [p for p in db.payments if p.user_id == user_id]
        payment_ids = {p.payment_id for p in payments}
        dataset = {
            "identity": identity.model_dump(mode="json", exclude=_EXPORT_EXCLUDE),
            "payments": [p.model_dump(mode="json", exclude=_EXPORT_EXCLUDE) for p in payments],
            "paymentStatusHistory": [
                h.model_dump(mode="json") for h in db.payment_status_history if h.payment_id in payment_ids
            ],
            "tournamentParticipations": [
                p.model_dump(mode="json") for p in db.tournament_participants if p.user_id == user_id
            ],
            "tournamentResults": [r.model_dump(mode="json") for r in db.tournament_results if r.user_id == user_id],
            "gameProgress": [g.model_dump(mode="json") for g in db.game_progress if g.user_id == user_id],
        }
        profile = await self._stats_for(identity)

        self._store.record_audit_event(
            AuditEvent(
                action="export_player_data",
                status="success",
                entity="player",
                entity_id=user_id,
                session_id=identity.session_token,
                user_id=user_id,
                details={"payments": len(payments)},
            ),
        )
        logger.info("player data exported", user_id=user_id, payments=len(payments))
        return {"dataset": dataset, "profile": profile.to_response(), "retentionDays": DATA_RETENTION_DAYS}

    async def _stats_for(self, identity: IdentityVerification) -> PlayerStats:
        user_id = identity.user_id
        board = await get_global_leaderboard(self._tournaments, self._tokens)
        ranked = next((entry for entry in board if entry.user_id == user_id), None)

        db = self._store.read()
        progress = [g for g in db.game_progress if g.user_id == user_id]
        results = [r for r in db.tournament_results if r.user_id == user_id]
        latest_result = max(results, key=lambda r: r.updated_at, default=None)
        scores = [g.score for g in progress]

        return PlayerStats(
            user_id=user_id,
            username=latest_result.username if latest_result else user_id,
            wallet_address=identity.wallet_address,
            total_games_played=len(progress),
            total_correct_answers=sum(g.correct_answers for g in progress),
            total_questions=sum(g.total_questions for g in progress),
            highest_score=max(scores, default=0),
            average_score=round(sum(scores) / len(scores), 2) if scores else 0.0,
            tournaments_joined=sum(1 for p in db.tournament_participants if p.user_id == user_id),
            tournaments_won=ranked.tournaments_won if ranked else 0,
            total_points=ranked.total_points if ranked else 0,
            total_earnings=ranked.total_earnings if ranked else [],
            last_played_at=max((g.updated_at for g in progress), default=None),
        )
