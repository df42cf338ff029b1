"""Identity registration (one verification per nullifier, bound to a session) and wallet binding."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog

from shared.identity.guard import SessionGuard, SessionInvalidError
from shared.store.errors import DuplicateRecordError
from shared.store.models import AuditEvent, IdentityVerification
from shared.tokens import canonical_address
from shared.validators import is_hex_address

if TYPE_CHECKING:
    from shared.identity.verifier import ProofRequest, ProofVerifier
    from shared.store.database import JsonRecordStore

logger = structlog.get_logger()

DEFAULT_SESSION_TTL_SECONDS = 7 * 24 * 60 * 60  # 7 days


class IdentityError(Exception):
    """Registration failure."""


class InvalidWalletAddressError(IdentityError):
    pass


class IdentityConflictError(IdentityError):
    """The nullifier is already registered, or the user id belongs to another nullifier."""


class ProofRejectedError(IdentityError):
    pass


class WalletAlreadyLinkedError(IdentityError):
    """The session already carries a different wallet."""


class IdentityService:
    """Register verified identities and issue their session tokens."""

    def __init__(
        self,
        store: JsonRecordStore,
        verifier: ProofVerifier,
        *,
        session_ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
        guard: SessionGuard | None = None,
    ) -> None:
        self._store = store
        self._verifier = verifier
        self._guard = guard or SessionGuard(store)
        self._session_ttl = timedelta(seconds=session_ttl_seconds)

    @property
    def session_ttl_seconds(self) -> int:
        return int(self._session_ttl.total_seconds())

    async def register(self, request: ProofRequest) -> IdentityVerification:
        """Verify the proof and persist a new verification with a fresh session token."""
        wallet_address = None
        if request.wallet_address:
            if not is_hex_address(request.wallet_address):
                raise InvalidWalletAddressError("wallet_address no tiene un formato válido")
            wallet_address = canonical_address(request.wallet_address)

        if await self._store.find_verification_by_nullifier(request.nullifier_hash) is not None:
            raise IdentityConflictError("Esta identidad ya fue utilizada anteriormente")

        if request.user_id:
            existing = await self._store.find_verification_by_user(request.user_id)
            if existing is not None and existing.nullifier_hash != request.nullifier_hash:
                raise IdentityConflictError("Este usuario ya está vinculado a otra identidad")

        if not await self._verifier.verify(request):
            raise ProofRejectedError("No se pudo verificar la prueba de World ID")

        now = self._store.now()
        record = IdentityVerification(
            nullifier_hash=request.nullifier_hash,
            user_id=request.user_id or request.nullifier_hash,
            session_token=str(uuid4()),
            wallet_address=wallet_address,
            action=request.action,
            verification_level=request.verification_level,
            created_at=now,
            expires_at=now + self._session_ttl,
        )
        try:
            await self._store.insert_verification(record)
        except DuplicateRecordError as e:
            # A concurrent registration with the same nullifier won the race.
            raise IdentityConflictError("Esta identidad ya fue utilizada anteriormente") from e

        self._store.record_audit_event(
            AuditEvent(
                action="verify_world_id",
                status="success",
                entity="world_id_verification",
                entity_id=record.nullifier_hash,
                session_id=record.session_token,
                user_id=record.user_id,
            ),
        )
        logger.info("identity verified", user_id=record.user_id, verification_level=record.verification_level)
        return record

    async def attach_wallet(self, session_token: str | None, wallet_address: str | None) -> IdentityVerification:
        """Bind a wallet to the caller's verification.

        Attaching the wallet already on record is a no-op. A session whose
        verification carries a different wallet is rejected; the bound
        wallet is never replaced.
        """
        identity = await self._guard.require_active_session(
            session_token,
            action="attach_wallet",
            entity="world_id_verification",
        )
        try:
            if not wallet_address or not is_hex_address(wallet_address):
                raise InvalidWalletAddressError("wallet_address no tiene un formato válido")
            wallet = canonical_address(wallet_address)

            async with self._store.transaction() as db:
                current = db.find_verification(self._store.now(), session_token=identity.session_token)
                if current is None:
                    raise SessionInvalidError("Session is invalid or expired")
                if current.wallet_address == wallet:
                    return current
                if current.wallet_address:
                    raise WalletAlreadyLinkedError("La sesión ya tiene otra wallet vinculada")
                updated = current.model_copy(update={"wallet_address": wallet})
                db.replace_verification(updated)
        except (IdentityError, SessionInvalidError) as e:
            self._store.record_audit_event(
                AuditEvent(
                    action="attach_wallet",
                    status="error",
                    entity="world_id_verification",
                    entity_id=identity.nullifier_hash,
                    session_id=identity.session_token,
                    user_id=identity.user_id,
                    details={"reason": type(e).__name__},
                ),
            )
            raise

        self._store.record_audit_event(
            AuditEvent(
                action="attach_wallet",
                status="success",
                entity="world_id_verification",
                entity_id=updated.nullifier_hash,
                session_id=updated.session_token,
                user_id=updated.user_id,
                details={"wallet_address": wallet},
            ),
        )
        logger.info("wallet attached", user_id=updated.user_id)
        return updated
