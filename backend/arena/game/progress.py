"""Game progress sync for verified sessions."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from arena.errors import ArenaError, ErrorCode
from shared.store.models import AuditEvent, GameProgressRecord

if TYPE_CHECKING:
    from arena.tournaments.types import GameProgressRequest
    from shared.identity import SessionGuard
    from shared.store.database import JsonRecordStore

logger = structlog.get_logger()


class GameProgressService:
    def __init__(self, store: JsonRecordStore, guard: SessionGuard) -> None:
        self._store = store
        self._guard = guard

    async def sync(self, request: GameProgressRequest, session_token: str | None) -> GameProgressRecord:
        """Upsert the caller's progress for one game session.

        Tournament-mode progress is only accepted from participants of that tournament.
        """
        identity = await self._guard.require_active_session(
            session_token,
            action="sync_game_progress",
            entity="game_progress",
            entity_id=request.session_id,
        )

        mode = "tournament" if request.mode == "tournament" else "quick"
        record = GameProgressRecord(
            session_id=request.session_id or identity.session_token,
            user_id=identity.user_id,
            mode=mode,
            tournament_id=request.tournament_id if mode == "tournament" else None,
            score=request.score,
            correct_answers=request.correct_answers,
            total_questions=request.total_questions,
            updated_at=self._store.now(),
        )

        async with self._store.transaction() as db:
            if record.tournament_id is not None:
                if db.find_tournament(record.tournament_id) is None:
                    raise ArenaError(ErrorCode.NOT_FOUND, "Torneo no encontrado")
                if db.find_participant(record.tournament_id, identity.user_id) is None:
                    raise ArenaError(ErrorCode.TOURNAMENT_MISMATCH, "No estás inscrito en este torneo")
            saved = db.upsert_game_progress(record)

        self._store.record_audit_event(
            AuditEvent(
                action="sync_game_progress",
                status="success",
                entity="game_progress",
                entity_id=saved.session_id,
                session_id=identity.session_token,
                user_id=identity.user_id,
                details={"mode": mode, "score": saved.score},
            ),
        )
        logger.debug("game progress synced", mode=mode, score=saved.score)
        return saved
