import pytest

from arena.errors import ArenaError, ErrorCode
from arena.game.progress import GameProgressService
from arena.tests.helpers import register_identity, seed_payment
from arena.tournaments.types import GameProgressRequest, JoinTournamentRequest
from shared.identity import SessionRequiredError


def _request(**fields):
    return GameProgressRequest.model_validate({"score": 7, "correctAnswers": 7, "totalQuestions": 10, **fields})


@pytest.fixture
def progress_service(store, guard):
    return GameProgressService(store, guard)


@pytest.fixture
async def identity(store):
    return await register_identity(store)


class TestSync:
    async def test_quick_mode_defaults_session_id(self, progress_service, identity, store):
        saved = await progress_service.sync(_request(), identity.session_token)

        assert saved.session_id == identity.session_token
        assert saved.user_id == identity.user_id
        assert saved.mode == "quick"
        assert saved.tournament_id is None
        assert store.read().game_progress == [saved]

    async def test_upsert_replaces_previous_progress(self, progress_service, identity, store):
        await progress_service.sync(_request(sessionId="g1"), identity.session_token)
        await progress_service.sync(_request(sessionId="g1", score=9, correctAnswers=9), identity.session_token)

        rows = store.read().game_progress
        assert len(rows) == 1
        assert (rows[0].score, rows[0].correct_answers) == (9, 9)

    async def test_unknown_mode_treated_as_quick(self, progress_service, identity):
        saved = await progress_service.sync(_request(mode="arcade", tournamentId="t1"), identity.session_token)

        assert saved.mode == "quick"
        assert saved.tournament_id is None

    async def test_tournament_mode_requires_participation(self, progress_service, tournament_service, identity):
        await tournament_service.ensure_seeded()

        with pytest.raises(ArenaError) as exc_info:
            await progress_service.sync(_request(mode="tournament", tournamentId="t1"), identity.session_token)

        assert exc_info.value.code == ErrorCode.TOURNAMENT_MISMATCH

    async def test_tournament_mode_unknown_tournament(self, progress_service, identity):
        with pytest.raises(ArenaError) as exc_info:
            await progress_service.sync(_request(mode="tournament", tournamentId="nope"), identity.session_token)

        assert exc_info.value.code == ErrorCode.NOT_FOUND

    async def test_tournament_mode_for_participant(self, progress_service, tournament_service, identity, store):
        await seed_payment(store, identity)
        join = JoinTournamentRequest.model_validate({"token": "WLD", "amount": "1", "paymentReference": "r1"})
        await tournament_service.join("t1", join, identity.session_token)

        saved = await progress_service.sync(_request(mode="tournament", tournamentId="t1"), identity.session_token)

        assert (saved.mode, saved.tournament_id) == ("tournament", "t1")

    async def test_requires_session(self, progress_service):
        with pytest.raises(SessionRequiredError):
            await progress_service.sync(_request(), None)

    async def test_writes_audit_line(self, progress_service, identity, store, tmp_path):
        await progress_service.sync(_request(sessionId="g1"), identity.session_token)

        lines = (tmp_path / "data" / "audit.log").read_text().splitlines()
        assert '"sync_game_progress"' in lines[-1]
        assert '"success"' in lines[-1]


class TestRequestValidation:
    def test_tournament_mode_needs_tournament_id(self):
        assert _request(mode="tournament").validation_errors() == ["tournamentId es obligatorio en modo torneo"]

    def test_negative_counters(self):
        errors = _request(score=-1, totalQuestions=-2).validation_errors()

        assert "El puntaje enviado no es válido" in errors
        assert "Los contadores de preguntas no pueden ser negativos" in errors
