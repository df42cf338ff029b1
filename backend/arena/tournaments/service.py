"""Tournament definitions, admission and per-tournament leaderboards."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal
from uuid import uuid4

import structlog
import yaml

from arena.errors import ArenaError, ErrorCode, to_arena_error
from arena.tournaments.types import LeaderboardEntry, Tournament
from shared.store.models import (
    AuditEvent,
    PaymentStatus,
    TournamentParticipantRecord,
    TournamentRecord,
    TournamentResultRecord,
    TournamentStatus,
)
from shared.tokens import InvalidAmountError, UnsupportedTokenError, canonical_address

if TYPE_CHECKING:
    from arena.tournaments.types import CreateTournamentRequest, JoinTournamentRequest
    from shared.identity import SessionGuard
    from shared.store.database import JsonRecordStore
    from shared.store.models import IdentityVerification, PaymentRecord
    from shared.tokens import TokenRegistry

logger = structlog.get_logger()

DEFAULT_USERNAME = "Nuevo jugador"


def _get_default_config_path() -> Path:  # pragma: no cover
    """Return the file-relative default path to tournaments.yaml."""
    backend_root = Path(__file__).parent.parent.parent
    return backend_root / "config" / "tournaments.yaml"


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


def calculate_prize(prize_pool: str, percentage: int) -> str:
    """Prize in base units: floor(pool * percentage / 100)."""
    return str(int(prize_pool) * percentage // 100)


class TournamentService:
    """Tournament state backed by the record store.

    Definitions from the YAML config are seeded on first use without
    overwriting stored records. Status and player counts are derived on
    every read, never cached.
    """

    def __init__(
        self,
        store: JsonRecordStore,
        tokens: TokenRegistry,
        guard: SessionGuard,
        *,
        config_path: Path | None = None,
    ) -> None:
        self._store = store
        self._tokens = tokens
        self._guard = guard
        self._config_path = config_path or _get_default_config_path()
        self._seeded = False

    # -- seeding --

    async def ensure_seeded(self) -> None:
        if self._seeded:
            return
        seeds = self._load_config()
        if seeds:
            async with self._store.transaction() as db:
                for record in seeds:
                    if db.find_tournament(record.tournament_id) is None:
                        db.upsert_tournament(record)
                        logger.info("seeded tournament", tournament_id=record.tournament_id)
        self._seeded = True

    def _load_config(self) -> list[TournamentRecord]:
        if not self._config_path.exists():
            return []

        with self._config_path.open() as f:
            config = yaml.safe_load(f) or {}

        return [self._record_from_config(data) for data in config.get("tournaments", [])]

    def _record_from_config(self, data: dict[str, Any]) -> TournamentRecord:
        buy_in_token = self._tokens.normalize(data["buy_in_token"])
        accepted = [self._tokens.normalize(token) for token in data.get("accepted_tokens") or []]
        if buy_in_token not in accepted:
            accepted.insert(0, buy_in_token)
        return TournamentRecord(
            tournament_id=str(data["tournament_id"]),
            name=data["name"],
            buy_in_token=buy_in_token,
            buy_in_amount=self._tokens.to_base_units(data["buy_in_amount"], buy_in_token),
            prize_pool=str(data.get("prize_pool", "0")),
            max_players=int(data["max_players"]),
            start_time=_as_utc(data["start_time"]),
            end_time=_as_utc(data["end_time"]),
            prize_distribution=[int(pct) for pct in data["prize_distribution"]],
            accepted_tokens=accepted,
        )

    # -- reads --

    async def get_tournament(self, tournament_id: str) -> Tournament | None:
        await self.ensure_seeded()
        db = self._store.read()
        record = db.find_tournament(tournament_id)
        if record is None:
            return None
        return self._to_view(record, len(db.participants_for(tournament_id)))

    async def list_tournaments(self, status_filters: list[str] | None = None) -> list[Tournament]:
        await self.ensure_seeded()
        db = self._store.read()
        tournaments = [self._to_view(r, len(db.participants_for(r.tournament_id))) for r in db.tournaments]
        if not status_filters:
            return tournaments
        return [t for t in tournaments if t.status.value in status_filters]

    async def participant_exists(self, tournament_id: str, user_id: str) -> bool:
        return self._store.read().find_participant(tournament_id, user_id) is not None

    async def get_leaderboard_entries(
        self,
        tournament_id: str,
        prize_pool: str,
        distribution: list[int],
    ) -> list[LeaderboardEntry]:
        """Rank results by score descending; ties go to the earlier entry, then the lower user id."""
        await self.ensure_seeded()
        results = sorted(
            self._store.read().results_for(tournament_id),
            key=lambda r: (-r.score, r.recorded_at, r.user_id),
        )
        return [
            LeaderboardEntry(
                rank=index + 1,
                user_id=result.user_id,
                username=result.username,
                wallet_address=result.wallet_address,
                score=result.score,
                prize=calculate_prize(prize_pool, distribution[index]) if index < len(distribution) else None,
            )
            for index, result in enumerate(results)
        ]

    def _to_view(self, record: TournamentRecord, current_players: int) -> Tournament:
        return Tournament(
            tournament_id=record.tournament_id,
            name=record.name,
            buy_in_token=record.buy_in_token,
            accepted_tokens=record.accepted_token_addresses(),
            buy_in_amount=record.buy_in_amount,
            prize_pool=record.prize_pool,
            max_players=record.max_players,
            current_players=current_players,
            start_time=record.start_time,
            end_time=record.end_time,
            status=record.status_at(self._store.now()),
            prize_distribution=record.prize_distribution,
        )

    # -- admission --

    async def add_participant_and_credit_pool(
        self,
        tournament_id: str,
        participant: TournamentParticipantRecord,
        entry: TournamentResultRecord,
    ) -> Tournament:
        """Admit a participant, credit the buy-in to the pool and record the leaderboard row.

        Duplicate join and capacity are re-checked under the lock; every
        effect lands in the same atomic write or none does.
        """
        async with self._store.transaction() as db:
            record = db.find_tournament(tournament_id)
            if record is None:
                raise ArenaError(ErrorCode.NOT_FOUND, "Torneo no encontrado")
            if db.find_participant(tournament_id, participant.user_id) is not None:
                raise ArenaError(ErrorCode.ALREADY_JOINED)
            if len(db.participants_for(tournament_id)) >= record.max_players:
                raise ArenaError(ErrorCode.TOURNAMENT_FULL)
            if db.participant_by_reference(participant.payment_reference) is not None:
                raise ArenaError(ErrorCode.REFERENCE_CONFLICT, "La referencia de pago ya fue utilizada")

            db.add_participant(participant)
            updated = record.model_copy(
                update={"prize_pool": str(int(record.prize_pool) + int(record.buy_in_amount))},
            )
            db.upsert_tournament(updated)
            db.upsert_result(entry)
            current_players = len(db.participants_for(tournament_id))

        logger.info(
            "participant joined",
            tournament_id=tournament_id,
            user_id=participant.user_id,
            current_players=current_players,
            prize_pool=updated.prize_pool,
        )
        return self._to_view(updated, current_players)

    async def join(
        self,
        tournament_id: str,
        request: JoinTournamentRequest,
        session_token: str | None,
    ) -> Tournament:
        identity = await self._guard.require_active_session(
            session_token,
            action="join_tournament",
            entity="tournament",
            entity_id=tournament_id,
        )
        try:
            tournament = await self._join(tournament_id, request, identity)
        except (ArenaError, UnsupportedTokenError, InvalidAmountError) as e:
            self._audit("error", tournament_id, identity, {"code": to_arena_error(e).code.value})
            raise
        self._audit("success", tournament_id, identity, {"current_players": tournament.current_players})
        return tournament

    async def _join(
        self,
        tournament_id: str,
        request: JoinTournamentRequest,
        identity: IdentityVerification,
    ) -> Tournament:
        tournament = await self.get_tournament(tournament_id)
        if tournament is None:
            raise ArenaError(ErrorCode.NOT_FOUND, "Torneo no encontrado")

        token = self._tokens.resolve(request.token)
        if token.address not in tournament.accepted_tokens:
            raise ArenaError(ErrorCode.TOKEN_MISMATCH, "El token seleccionado no es aceptado para este torneo")
        expected_amount = self._tokens.to_base_units(request.amount, token.address)
        if expected_amount != tournament.buy_in_amount:
            raise ArenaError(ErrorCode.AMOUNT_MISMATCH, "El buy-in no coincide con el monto requerido")

        reference = (request.payment_reference or "").strip()
        payment = self._store.find_payment_by_reference(reference)
        if payment is None:
            raise ArenaError(ErrorCode.REFERENCE_NOT_FOUND)
        wallet_address = self._check_payment(payment, tournament_id, token.address, expected_amount, request, identity)

        if tournament.status != TournamentStatus.UPCOMING:
            raise ArenaError(ErrorCode.TOURNAMENT_CLOSED)
        if tournament.current_players >= tournament.max_players:
            raise ArenaError(ErrorCode.TOURNAMENT_FULL)
        if await self.participant_exists(tournament_id, identity.user_id):
            raise ArenaError(ErrorCode.ALREADY_JOINED)

        now = self._store.now()
        participant = TournamentParticipantRecord(
            tournament_id=tournament_id,
            user_id=identity.user_id,
            payment_reference=reference,
            joined_at=now,
        )
        entry = TournamentResultRecord(
            tournament_id=tournament_id,
            user_id=identity.user_id,
            username=request.username or DEFAULT_USERNAME,
            wallet_address=wallet_address,
            score=request.score,
            recorded_at=now,
            updated_at=now,
        )
        return await self.add_participant_and_credit_pool(tournament_id, participant, entry)

    def _check_payment(
        self,
        payment: PaymentRecord,
        tournament_id: str,
        token_address: str,
        expected_amount: str,
        request: JoinTournamentRequest,
        identity: IdentityVerification,
    ) -> str | None:
        """Cross-check the payment against the request and identity. Returns the wallet to record."""
        if payment.token_address != token_address:
            raise ArenaError(ErrorCode.TOKEN_MISMATCH)
        if payment.token_amount != expected_amount:
            raise ArenaError(ErrorCode.AMOUNT_MISMATCH)
        if payment.status != PaymentStatus.CONFIRMED:
            raise ArenaError(ErrorCode.PAYMENT_STATUS_ERROR, "El pago no está confirmado")
        if payment.tournament_id != tournament_id:
            raise ArenaError(ErrorCode.TOURNAMENT_MISMATCH)
        if payment.session_token and payment.session_token != identity.session_token:
            raise ArenaError(ErrorCode.SESSION_INVALID)
        if payment.user_id != identity.user_id or (request.user_id and request.user_id != identity.user_id):
            raise ArenaError(ErrorCode.IDENTITY_MISMATCH)
        if payment.nullifier_hash and payment.nullifier_hash != identity.nullifier_hash:
            raise ArenaError(ErrorCode.IDENTITY_MISMATCH)

        wallet = canonical_address(request.wallet_address) if request.wallet_address else None
        if wallet and identity.wallet_address and wallet != identity.wallet_address:
            raise ArenaError(ErrorCode.WALLET_MISMATCH)
        wallet = wallet or identity.wallet_address or payment.wallet_address
        if payment.wallet_address and wallet != payment.wallet_address:
            raise ArenaError(ErrorCode.WALLET_MISMATCH)
        return wallet

    # -- creation --

    async def create_tournament(self, request: CreateTournamentRequest) -> Tournament:
        """Persist a new tournament definition. Amounts arrive in human units."""
        await self.ensure_seeded()
        buy_in_token = self._tokens.normalize(request.buy_in_token)
        accepted = [self._tokens.normalize(token) for token in request.accepted_tokens or [buy_in_token]]
        if buy_in_token not in accepted:
            accepted.insert(0, buy_in_token)

        if request.start_time is None or request.end_time is None:
            raise ArenaError(ErrorCode.INVALID_PAYLOAD)
        record = TournamentRecord(
            tournament_id=request.tournament_id or uuid4().hex,
            name=request.name or "",
            buy_in_token=buy_in_token,
            buy_in_amount=self._tokens.to_base_units(request.buy_in_amount, buy_in_token),
            max_players=request.max_players or 0,
            start_time=_as_utc(request.start_time),
            end_time=_as_utc(request.end_time),
            prize_distribution=list(request.prize_distribution or []),
            accepted_tokens=accepted,
        )

        async with self._store.transaction() as db:
            if db.find_tournament(record.tournament_id) is not None:
                raise ArenaError(ErrorCode.CONFLICT, "El torneo ya existe")
            db.upsert_tournament(record)

        logger.info("tournament created", tournament_id=record.tournament_id, max_players=record.max_players)
        return self._to_view(record, 0)

    def _audit(
        self,
        status: Literal["success", "error"],
        tournament_id: str,
        identity: IdentityVerification,
        details: dict[str, Any],
    ) -> None:
        self._store.record_audit_event(
            AuditEvent(
                action="join_tournament",
                status=status,
                entity="tournament",
                entity_id=tournament_id,
                session_id=identity.session_token,
                user_id=identity.user_id,
                details=details,
            ),
        )
