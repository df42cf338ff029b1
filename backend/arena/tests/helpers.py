from datetime import timedelta

from shared.store import (
    IdentityVerification,
    JsonRecordStore,
    PaymentRecord,
    PaymentStatus,
    PaymentType,
)
from shared.tests.store.helpers import FrozenClock as FrozenClock

WLD_ADDRESS = "0x1ffe36e4c7f1cdd192d08f7569bb31ac5d2b6c2f"
USDC_ADDRESS = "0xdecaf9cd2367cdbb726e904cd6397edfcae6068d"
ONE_WLD = "1000000000000000000"
WALLET = "0x" + "ab" * 20
OTHER_WALLET = "0x" + "cd" * 20
JOB_TOKEN = "integration-job-token"

# t1 opens 2026-02-01; the default test clock is 2026-01-10, so it is upcoming.
TOURNAMENTS_YAML = """
tournaments:
  - tournament_id: t1
    name: Torneo de prueba
    buy_in_token: WLD
    buy_in_amount: "1"
    accepted_tokens: [WLD]
    max_players: 2
    start_time: 2026-02-01T18:00:00Z
    end_time: 2026-02-01T20:00:00Z
    prize_distribution: [70, 30]
  - tournament_id: t2
    name: Torneo USDC
    buy_in_token: USDC
    buy_in_amount: "2.5"
    accepted_tokens: [USDC, WLD]
    max_players: 10
    start_time: 2026-01-01T00:00:00Z
    end_time: 2026-12-31T00:00:00Z
    prize_distribution: [100]
"""


async def register_identity(
    store: JsonRecordStore,
    *,
    user_id: str = "user-1",
    nullifier_hash: str | None = None,
    session_token: str | None = None,
    wallet_address: str | None = WALLET,
) -> IdentityVerification:
    now = store.now()
    identity = IdentityVerification(
        nullifier_hash=nullifier_hash or f"nullifier-{user_id}",
        user_id=user_id,
        session_token=session_token or f"session-{user_id}",
        wallet_address=wallet_address,
        created_at=now,
        expires_at=now + timedelta(days=7),
    )
    await store.insert_verification(identity)
    return identity


async def seed_payment(
    store: JsonRecordStore,
    identity: IdentityVerification,
    *,
    reference: str = "r1",
    tournament_id: str | None = "t1",
    token_address: str = WLD_ADDRESS,
    token_amount: str = ONE_WLD,
    status: PaymentStatus = PaymentStatus.CONFIRMED,
    nullifier_hash: str | None = None,
) -> PaymentRecord:
    now = store.now()
    payment = PaymentRecord(
        payment_id=f"pay-{reference}",
        user_id=identity.user_id,
        reference=reference,
        type=PaymentType.TOURNAMENT if tournament_id else PaymentType.QUICK_MATCH,
        token_address=token_address,
        token_amount=token_amount,
        tournament_id=tournament_id,
        wallet_address=identity.wallet_address,
        nullifier_hash=nullifier_hash or identity.nullifier_hash,
        session_token=identity.session_token,
        created_at=now,
        updated_at=now,
    )
    async with store.transaction() as db:
        db.add_payment(payment)
        if status != PaymentStatus.PENDING:
            payment = db.transition_payment(reference, status, now, transaction_id=f"tx-{reference}")
    return payment
