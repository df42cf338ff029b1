from datetime import datetime, timedelta

from shared.store import IdentityVerification


class FrozenClock:
    """Callable clock for stores and services; advance() moves time forward."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


def make_verification(now: datetime, **overrides: object) -> IdentityVerification:
    data = {
        "nullifier_hash": "nullifier-1",
        "user_id": "user-1",
        "session_token": "session-1",
        "created_at": now,
        "expires_at": now + timedelta(days=7),
    }
    data.update(overrides)
    return IdentityVerification.model_validate(data)
