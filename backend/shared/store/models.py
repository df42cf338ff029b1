"""Persistence models for the JSON record store."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


class PaymentStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class PaymentType(StrEnum):
    QUICK_MATCH = "quick_match"
    TOURNAMENT = "tournament"


class TournamentStatus(StrEnum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    FINISHED = "finished"


class ParticipantStatus(StrEnum):
    JOINED = "joined"
    ELIMINATED = "eliminated"
    PENDING = "pending"


class IdentityVerification(BaseModel, frozen=True):
    """A successful proof-of-personhood verification bound to a session token."""

    nullifier_hash: str
    user_id: str
    session_token: str
    wallet_address: str | None = None  # canonical lowercase address
    action: str = "trivia_game_access"
    verification_level: str = "orb"
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class PaymentRecord(BaseModel, frozen=True):
    payment_id: str
    user_id: str
    reference: str  # client-supplied idempotency key, unique
    type: PaymentType
    token_address: str  # canonical lowercase address
    token_amount: str  # integer string in base units
    status: PaymentStatus = PaymentStatus.PENDING
    tournament_id: str | None = None
    transaction_id: str | None = None
    recipient_address: str | None = None
    wallet_address: str | None = None
    nullifier_hash: str | None = None
    session_token: str | None = None
    created_at: datetime
    updated_at: datetime
    confirmed_at: datetime | None = None


class PaymentStatusHistoryRecord(BaseModel, frozen=True):
    payment_id: str
    old_status: PaymentStatus | None = None
    new_status: PaymentStatus
    changed_at: datetime
    reason: str | None = None


class TournamentRecord(BaseModel, frozen=True):
    """Tournament definition. Status is never stored; see status_at()."""

    tournament_id: str
    name: str
    buy_in_token: str  # canonical lowercase address
    buy_in_amount: str  # integer string in base units
    prize_pool: str = "0"  # integer string in base units
    max_players: int
    start_time: datetime
    end_time: datetime
    prize_distribution: list[int]  # percentages summing to 100, index 0 is rank 1
    accepted_tokens: list[str] = Field(default_factory=list)

    def status_at(self, now: datetime) -> TournamentStatus:
        if now < self.start_time:
            return TournamentStatus.UPCOMING
        if now <= self.end_time:
            return TournamentStatus.ACTIVE
        return TournamentStatus.FINISHED

    def accepted_token_addresses(self) -> list[str]:
        return self.accepted_tokens or [self.buy_in_token]


class TournamentParticipantRecord(BaseModel, frozen=True):
    tournament_id: str
    user_id: str
    payment_reference: str
    joined_at: datetime
    status: ParticipantStatus = ParticipantStatus.JOINED


class TournamentResultRecord(BaseModel, frozen=True):
    """Leaderboard row for one user in one tournament."""

    tournament_id: str
    user_id: str
    username: str
    wallet_address: str | None = None
    score: int = 0
    recorded_at: datetime  # first time the row was written, used as tie-break
    updated_at: datetime


class GameProgressRecord(BaseModel, frozen=True):
    session_id: str
    user_id: str
    mode: Literal["quick", "tournament"] = "quick"
    tournament_id: str | None = None
    score: int = 0
    correct_answers: int = 0
    total_questions: int = 0
    updated_at: datetime


class AuditEvent(BaseModel, frozen=True):
    """One line of the append-only audit log. Values are sanitized before writing."""

    action: str
    status: Literal["success", "error"]
    entity: str | None = None
    entity_id: str | None = None
    session_id: str | None = None
    user_id: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    recorded_at: datetime = Field(default_factory=utc_now)
