"""Payment lifecycle: pending on initiate, confirmed or failed exactly once on confirm."""

from __future__ import annotations

from datetime import UTC
from typing import TYPE_CHECKING, Any, Literal
from uuid import uuid4

import structlog

from arena.errors import ArenaError, ErrorCode, to_arena_error
from arena.payments.notifier import LoggingPaymentNotifier
from arena.payments.processor import UpstreamError
from shared.store.models import AuditEvent, PaymentRecord, PaymentStatus, PaymentType
from shared.tokens import InvalidAmountError, UnsupportedTokenError, canonical_address

if TYPE_CHECKING:
    from datetime import datetime

    from arena.payments.notifier import PaymentNotifier
    from arena.payments.processor import PaymentProcessorClient, ProcessorTransaction
    from arena.payments.types import ConfirmPaymentRequest, InitiatePaymentRequest
    from arena.tournaments.service import TournamentService
    from shared.identity import SessionGuard
    from shared.store.database import JsonRecordStore
    from shared.store.models import IdentityVerification
    from shared.tokens import TokenRegistry

logger = structlog.get_logger()

QUICK_MATCH_TOKEN = "WLD"
QUICK_MATCH_AMOUNT = "1"

MESSAGE_CONFIRMED = "Pago confirmado"
MESSAGE_ALREADY_CONFIRMED = "Pago ya confirmado previamente"


class PaymentService:
    """Create pending payments and reconcile them with the processor.

    The processor is queried outside the store lock; the outcome is applied
    under the lock after re-reading the payment, so two racing confirmations
    produce exactly one ``pending -> confirmed`` transition and the loser
    observes the already-confirmed path.
    """

    def __init__(
        self,
        store: JsonRecordStore,
        tokens: TokenRegistry,
        guard: SessionGuard,
        processor: PaymentProcessorClient,
        tournaments: TournamentService,
        *,
        notifier: PaymentNotifier | None = None,
        recipient_address: str | None = None,
    ) -> None:
        self._store = store
        self._tokens = tokens
        self._guard = guard
        self._processor = processor
        self._tournaments = tournaments
        self._notifier = notifier or LoggingPaymentNotifier()
        self._recipient_address = canonical_address(recipient_address) if recipient_address else None

    # -- initiate --

    async def initiate(self, request: InitiatePaymentRequest, session_token: str | None) -> dict[str, Any]:
        reference = (request.reference or "").strip()
        identity = await self._guard.require_active_session(
            session_token,
            action="initiate_payment",
            entity="payment",
            entity_id=reference,
        )
        try:
            result = await self._initiate(request, reference, identity)
        except (ArenaError, UnsupportedTokenError, InvalidAmountError) as e:
            self._audit("initiate_payment", "error", reference, identity, {"code": to_arena_error(e).code.value})
            raise
        self._audit("initiate_payment", "success", reference, identity, {"type": request.type})
        return result

    async def _initiate(
        self,
        request: InitiatePaymentRequest,
        reference: str,
        identity: IdentityVerification,
    ) -> dict[str, Any]:
        if request.user_id and request.user_id != identity.user_id:
            raise ArenaError(ErrorCode.IDENTITY_MISMATCH)
        wallet_address = self._resolve_wallet(request.wallet_address, identity)

        existing = self._store.find_payment_by_reference(reference)
        if existing is not None:
            return self._reuse_reference(existing, identity)

        payment_type = request.payment_type
        token_address, token_amount = await self._resolve_amount(request, payment_type)

        now = self._store.now()
        payment = PaymentRecord(
            payment_id=str(uuid4()),
            user_id=identity.user_id,
            reference=reference,
            type=payment_type,
            token_address=token_address,
            token_amount=token_amount,
            tournament_id=request.tournament_id if payment_type == PaymentType.TOURNAMENT else None,
            recipient_address=self._recipient_address,
            wallet_address=wallet_address,
            nullifier_hash=identity.nullifier_hash,
            session_token=identity.session_token,
            created_at=now,
            updated_at=now,
        )

        async with self._store.transaction() as db:
            # Another request may have claimed the reference since the unlocked read.
            current = db.find_payment(reference)
            if current is None:
                db.add_payment(payment)

        if current is not None:
            return self._reuse_reference(current, identity)

        logger.info("payment initiated", reference=reference, payment_type=payment_type, token_address=token_address)
        return {"success": True, "reference": reference, "tournamentId": payment.tournament_id}

    def _reuse_reference(self, existing: PaymentRecord, identity: IdentityVerification) -> dict[str, Any]:
        if existing.user_id != identity.user_id:
            raise ArenaError(ErrorCode.REFERENCE_CONFLICT)
        if existing.status == PaymentStatus.FAILED:
            raise ArenaError(ErrorCode.CONFLICT, "La referencia corresponde a un pago fallido. Genera una nueva.")
        return {"success": True, "reference": existing.reference, "tournamentId": existing.tournament_id}

    async def _resolve_amount(self, request: InitiatePaymentRequest, payment_type: PaymentType) -> tuple[str, str]:
        """Return (canonical token address, base-unit amount) for a new payment."""
        if payment_type == PaymentType.QUICK_MATCH:
            token = request.token or QUICK_MATCH_TOKEN
            amount = request.amount or QUICK_MATCH_AMOUNT
            return self._tokens.normalize(token), self._tokens.to_base_units(amount, token)

        tournament = await self._tournaments.get_tournament(request.tournament_id or "")
        if tournament is None:
            raise ArenaError(ErrorCode.NOT_FOUND, "Torneo no encontrado")

        token_address = self._tokens.normalize(request.token) if request.token else tournament.buy_in_token
        if token_address not in tournament.accepted_tokens:
            raise ArenaError(ErrorCode.UNSUPPORTED_TOKEN, "El token seleccionado no es aceptado para este torneo")

        if request.amount is None:
            return token_address, tournament.buy_in_amount
        token_amount = self._tokens.to_base_units(request.amount, token_address)
        if token_amount != tournament.buy_in_amount:
            raise ArenaError(ErrorCode.AMOUNT_MISMATCH, "El buy-in no coincide con el monto requerido")
        return token_address, token_amount

    # -- confirm --

    async def confirm(self, request: ConfirmPaymentRequest, session_token: str | None) -> dict[str, Any]:
        reference = (request.reference or "").strip()
        identity = await self._guard.require_active_session(
            session_token,
            action="confirm_payment",
            entity="payment",
            entity_id=reference,
        )
        try:
            result = await self._confirm(request, reference, identity)
        except (ArenaError, UnsupportedTokenError, InvalidAmountError) as e:
            self._audit("confirm_payment", "error", reference, identity, {"code": to_arena_error(e).code.value})
            raise
        self._audit("confirm_payment", "success", reference, identity, {"message": result["message"]})
        return result

    async def _confirm(
        self,
        request: ConfirmPaymentRequest,
        reference: str,
        identity: IdentityVerification,
    ) -> dict[str, Any]:
        payload = request.payload
        payment = self._store.find_payment_by_reference(reference)
        if payment is None:
            raise ArenaError(ErrorCode.REFERENCE_NOT_FOUND)

        self._check_ownership(payment, identity, payload.wallet_address)

        if payment.status == PaymentStatus.CONFIRMED:
            return _already_confirmed(reference)
        if payment.status == PaymentStatus.FAILED:
            raise ArenaError(ErrorCode.PAYMENT_STATUS_ERROR, "El pago ya fue marcado como fallido")

        if payload.status == "error":
            reason = f"Client reported payment error: {payload.error_code or 'unknown'}"
            if await self._mark_failed(reference, reason) == PaymentStatus.CONFIRMED:
                return _already_confirmed(reference)
            raise ArenaError(ErrorCode.PAYMENT_REJECTED)

        if not self._tokens.tokens_match(payload.token, payment.token_address):
            raise ArenaError(ErrorCode.TOKEN_MISMATCH)
        if not _amounts_equal(payload.token_amount, payment.token_amount):
            raise ArenaError(ErrorCode.AMOUNT_MISMATCH)

        try:
            transaction = await self._processor.get_transaction(payload.transaction_id or "")
        except UpstreamError as e:
            # The payment stays pending; the client may retry.
            raise ArenaError(ErrorCode.UPSTREAM_ERROR) from e

        return await self._apply_processor_result(reference, payload.transaction_id or "", transaction)

    def _check_ownership(
        self,
        payment: PaymentRecord,
        identity: IdentityVerification,
        payload_wallet: str | None,
    ) -> None:
        if payment.session_token and payment.session_token != identity.session_token:
            raise ArenaError(ErrorCode.SESSION_INVALID)
        if payment.user_id != identity.user_id:
            raise ArenaError(ErrorCode.IDENTITY_MISMATCH)
        if payment.nullifier_hash and payment.nullifier_hash != identity.nullifier_hash:
            raise ArenaError(ErrorCode.IDENTITY_MISMATCH)

        if not payload_wallet:
            return
        wallet = _wallet_or_error(payload_wallet)
        if payment.wallet_address and wallet != payment.wallet_address:
            raise ArenaError(ErrorCode.WALLET_MISMATCH)
        if identity.wallet_address and wallet != identity.wallet_address:
            raise ArenaError(ErrorCode.WALLET_MISMATCH)

    async def _apply_processor_result(
        self,
        reference: str,
        transaction_id: str,
        transaction: ProcessorTransaction,
    ) -> dict[str, Any]:
        confirmed: PaymentRecord | None = None
        failure_reason: str | None = None

        async with self._store.transaction() as db:
            now = self._store.now()
            current = db.find_payment(reference)
            if current is None:
                raise ArenaError(ErrorCode.REFERENCE_NOT_FOUND)

            if current.status == PaymentStatus.CONFIRMED:
                pass
            elif current.status == PaymentStatus.FAILED:
                raise ArenaError(ErrorCode.PAYMENT_STATUS_ERROR, "El pago ya fue marcado como fallido")
            elif _predates(transaction.created_at, current.created_at):
                failure_reason = "Transaction created before payment was initiated"
            elif transaction.reference == reference and not transaction.is_failed:
                confirmed = db.transition_payment(
                    reference,
                    PaymentStatus.CONFIRMED,
                    now,
                    reason="Processor confirmed transaction",
                    transaction_id=transaction_id,
                    confirmed_at=now,
                )
            else:
                failure_reason = f"Processor status {transaction.transaction_status!r} or reference mismatch"

            if failure_reason is not None:
                db.transition_payment(
                    reference,
                    PaymentStatus.FAILED,
                    now,
                    reason=failure_reason,
                    transaction_id=transaction_id,
                )

        if failure_reason is not None:
            logger.warning("payment failed", reference=reference, reason=failure_reason)
            raise ArenaError(ErrorCode.TRANSACTION_INVALID)
        if confirmed is None:
            return _already_confirmed(reference)

        logger.info("payment confirmed", reference=reference, transaction_id=transaction_id)
        await self._notifier.payment_confirmed(confirmed)
        return {"success": True, "message": MESSAGE_CONFIRMED, "reference": reference}

    async def _mark_failed(self, reference: str, reason: str) -> PaymentStatus:
        """Fail a still-pending payment. Returns the status the payment ends in."""
        async with self._store.transaction() as db:
            current = db.find_payment(reference)
            if current is None:
                raise ArenaError(ErrorCode.REFERENCE_NOT_FOUND)
            if current.status != PaymentStatus.PENDING:
                return current.status
            db.transition_payment(reference, PaymentStatus.FAILED, self._store.now(), reason=reason)
        return PaymentStatus.FAILED

    # -- helpers --

    def _resolve_wallet(self, requested: str | None, identity: IdentityVerification) -> str | None:
        if not requested:
            return identity.wallet_address
        wallet = _wallet_or_error(requested)
        if identity.wallet_address and wallet != identity.wallet_address:
            raise ArenaError(ErrorCode.WALLET_MISMATCH)
        return wallet

    def _audit(
        self,
        action: str,
        status: Literal["success", "error"],
        reference: str,
        identity: IdentityVerification,
        details: dict[str, Any],
    ) -> None:
        self._store.record_audit_event(
            AuditEvent(
                action=action,
                status=status,
                entity="payment",
                entity_id=reference,
                session_id=identity.session_token,
                user_id=identity.user_id,
                details=details,
            ),
        )


def _already_confirmed(reference: str) -> dict[str, Any]:
    return {"success": True, "message": MESSAGE_ALREADY_CONFIRMED, "reference": reference}


def _amounts_equal(incoming: str | None, recorded: str) -> bool:
    try:
        return int(str(incoming).strip()) == int(recorded)
    except (TypeError, ValueError):
        return False


def _predates(transaction_created_at: datetime | None, payment_created_at: datetime) -> bool:
    if transaction_created_at is None:
        return False
    if transaction_created_at.tzinfo is None:
        transaction_created_at = transaction_created_at.replace(tzinfo=UTC)
    return transaction_created_at < payment_created_at



def _wallet_or_error(value: str) -> str:
    try:
        return canonical_address(value)
    except ValueError as e:
        raise ArenaError(ErrorCode.INVALID_WALLET) from e
