"""In-memory view of the persisted document and the mutations applied to it.

A snapshot is either a plain read (possibly stale) or the working copy of a
locked transaction. Mutations only become durable when the enclosing
transaction commits.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from shared.store.errors import DuplicateRecordError
from shared.store.models import (
    GameProgressRecord,
    IdentityVerification,
    PaymentRecord,
    PaymentStatus,
    PaymentStatusHistoryRecord,
    TournamentParticipantRecord,
    TournamentRecord,
    TournamentResultRecord,
)

if TYPE_CHECKING:
    from datetime import datetime

_TERMINAL_STATUSES = {PaymentStatus.CONFIRMED, PaymentStatus.FAILED}


class InvalidTransitionError(ValueError):
    """A payment in a terminal state was asked to change status."""


class DatabaseSnapshot(BaseModel):
    world_id_verifications: list[IdentityVerification] = Field(default_factory=list)
    payments: list[PaymentRecord] = Field(default_factory=list)
    payment_status_history: list[PaymentStatusHistoryRecord] = Field(default_factory=list)
    tournaments: list[TournamentRecord] = Field(default_factory=list)
    tournament_participants: list[TournamentParticipantRecord] = Field(default_factory=list)
    tournament_results: list[TournamentResultRecord] = Field(default_factory=list)
    game_progress: list[GameProgressRecord] = Field(default_factory=list)

    # -- identity verifications --

    def has_expired_verifications(self, now: datetime) -> bool:
        return any(v.is_expired(now) for v in self.world_id_verifications)

    def purge_expired_verifications(self, now: datetime) -> int:
        before = len(self.world_id_verifications)
        self.world_id_verifications = [v for v in self.world_id_verifications if not v.is_expired(now)]
        return before - len(self.world_id_verifications)

    def find_verification(
        self,
        now: datetime,
        *,
        session_token: str | None = None,
        nullifier_hash: str | None = None,
        user_id: str | None = None,
    ) -> IdentityVerification | None:
        """Return the first non-expired verification matching every given criterion."""
        for record in self.world_id_verifications:
            if record.is_expired(now):
                continue
            if session_token is not None and record.session_token != session_token:
                continue
            if nullifier_hash is not None and record.nullifier_hash != nullifier_hash:
                continue
            if user_id is not None and record.user_id != user_id:
                continue
            return record
        return None

    def add_verification(self, record: IdentityVerification, now: datetime) -> None:
        if self.find_verification(now, nullifier_hash=record.nullifier_hash) is not None:
            raise DuplicateRecordError("Duplicate nullifier_hash")
        if self.find_verification(now, session_token=record.session_token) is not None:
            raise DuplicateRecordError("Duplicate session_token")
        self.world_id_verifications.append(record)

    def replace_verification(self, record: IdentityVerification) -> None:
        """Swap in an updated copy of the verification holding the same session token."""
        for index, existing in enumerate(self.world_id_verifications):
            if existing.session_token == record.session_token:
                self.world_id_verifications[index] = record
                return
        raise KeyError(record.session_token)

    # -- payments --

    def find_payment(self, reference: str) -> PaymentRecord | None:
        return next((p for p in self.payments if p.reference == reference), None)

    def add_payment(self, payment: PaymentRecord, reason: str = "Payment initiated") -> PaymentRecord:
        """Insert a pending payment together with its initial history row."""
        if self.find_payment(payment.reference) is not None:
            raise DuplicateRecordError(f"Duplicate payment reference '{payment.reference}'")
        self.payments.append(payment)
        self.payment_status_history.append(
            PaymentStatusHistoryRecord(
                payment_id=payment.payment_id,
                old_status=None,
                new_status=payment.status,
                changed_at=payment.created_at,
                reason=reason,
            ),
        )
        return payment

    def transition_payment(
        self,
        reference: str,
        new_status: PaymentStatus,
        now: datetime,
        *,
        reason: str | None = None,
        transaction_id: str | None = None,
        confirmed_at: datetime | None = None,
    ) -> PaymentRecord:
        """Move a pending payment to a terminal status and append the history row."""
        index = next((i for i, p in enumerate(self.payments) if p.reference == reference), None)
        if index is None:
            raise KeyError(reference)

        current = self.payments[index]
        if current.status in _TERMINAL_STATUSES:
            raise InvalidTransitionError(
                f"Payment '{reference}' is already {current.status.value}; cannot move to {new_status.value}",
            )

        updated = current.model_copy(
            update={
                "status": new_status,
                "transaction_id": transaction_id or current.transaction_id,
                "confirmed_at": confirmed_at or current.confirmed_at,
                "updated_at": now,
            },
        )
        self.payments[index] = updated
        self.payment_status_history.append(
            PaymentStatusHistoryRecord(
                payment_id=current.payment_id,
                old_status=current.status,
                new_status=new_status,
                changed_at=now,
                reason=reason,
            ),
        )
        return updated

    def history_for(self, payment_id: str) -> list[PaymentStatusHistoryRecord]:
        return [h for h in self.payment_status_history if h.payment_id == payment_id]

    # -- tournaments --

    def find_tournament(self, tournament_id: str) -> TournamentRecord | None:
        return next((t for t in self.tournaments if t.tournament_id == tournament_id), None)

    def upsert_tournament(self, record: TournamentRecord) -> None:
        for i, existing in enumerate(self.tournaments):
            if existing.tournament_id == record.tournament_id:
                self.tournaments[i] = record
                return
        self.tournaments.append(record)

    def participants_for(self, tournament_id: str) -> list[TournamentParticipantRecord]:
        return [p for p in self.tournament_participants if p.tournament_id == tournament_id]

    def find_participant(self, tournament_id: str, user_id: str) -> TournamentParticipantRecord | None:
        return next(
            (p for p in self.tournament_participants if p.tournament_id == tournament_id and p.user_id == user_id),
            None,
        )

    def participant_by_reference(self, payment_reference: str) -> TournamentParticipantRecord | None:
        return next((p for p in self.tournament_participants if p.payment_reference == payment_reference), None)

    def add_participant(self, participant: TournamentParticipantRecord) -> None:
        if self.find_participant(participant.tournament_id, participant.user_id) is not None:
            raise DuplicateRecordError(
                f"User '{participant.user_id}' already joined tournament '{participant.tournament_id}'",
            )
        self.tournament_participants.append(participant)

    def results_for(self, tournament_id: str) -> list[TournamentResultRecord]:
        return [r for r in self.tournament_results if r.tournament_id == tournament_id]

    def upsert_result(self, record: TournamentResultRecord) -> TournamentResultRecord:
        """Insert or update a leaderboard row, preserving the original recorded_at."""
        for i, existing in enumerate(self.tournament_results):
            if existing.tournament_id == record.tournament_id and existing.user_id == record.user_id:
                merged = record.model_copy(update={"recorded_at": existing.recorded_at})
                self.tournament_results[i] = merged
                return merged
        self.tournament_results.append(record)
        return record

    # -- game progress --

    def upsert_game_progress(self, record: GameProgressRecord) -> GameProgressRecord:
        for i, existing in enumerate(self.game_progress):
            if existing.session_id == record.session_id and existing.user_id == record.user_id:
                self.game_progress[i] = record
                return record
        self.game_progress.append(record)
        return record
