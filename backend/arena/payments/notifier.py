"""Hook invoked once per confirmed payment."""

from typing import Protocol

import structlog

from shared.store.models import PaymentRecord

logger = structlog.get_logger()


class PaymentNotifier(Protocol):
    async def payment_confirmed(self, payment: PaymentRecord) -> None: ...


class LoggingPaymentNotifier:
    """Default notifier: delivery is external, so only record that it would fire."""

    async def payment_confirmed(self, payment: PaymentRecord) -> None:
        logger.info(
            "payment confirmed",
            payment_id=payment.payment_id,
            payment_type=payment.type,
            tournament_id=payment.tournament_id,
        )
