"""Durable JSON record store shared by the arena services."""

from shared.store.database import JsonRecordStore
from shared.store.errors import (
    DuplicateRecordError,
    LockAcquisitionError,
    StoreCorruptedError,
    StoreError,
    StoreUnavailableError,
)
from shared.store.lock import AdvisoryFileLock
from shared.store.models import (
    AuditEvent,
    GameProgressRecord,
    IdentityVerification,
    ParticipantStatus,
    PaymentRecord,
    PaymentStatus,
    PaymentStatusHistoryRecord,
    PaymentType,
    TournamentParticipantRecord,
    TournamentRecord,
    TournamentResultRecord,
    TournamentStatus,
    utc_now,
)
from shared.store.snapshot import DatabaseSnapshot, InvalidTransitionError

__all__ = [
    "AdvisoryFileLock",
    "AuditEvent",
    "DatabaseSnapshot",
    "DuplicateRecordError",
    "GameProgressRecord",
    "IdentityVerification",
    "InvalidTransitionError",
    "JsonRecordStore",
    "LockAcquisitionError",
    "ParticipantStatus",
    "PaymentRecord",
    "PaymentStatus",
    "PaymentStatusHistoryRecord",
    "PaymentType",
    "StoreCorruptedError",
    "StoreError",
    "StoreUnavailableError",
    "TournamentParticipantRecord",
    "TournamentRecord",
    "TournamentResultRecord",
    "TournamentStatus",
    "utc_now",
]
