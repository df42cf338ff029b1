"""Proof-of-personhood identities and the session guard built on them."""

from shared.identity.guard import (
    SESSION_COOKIE,
    SessionError,
    SessionGuard,
    SessionInvalidError,
    SessionRequiredError,
)
from shared.identity.service import (
    DEFAULT_SESSION_TTL_SECONDS,
    IdentityConflictError,
    IdentityError,
    IdentityService,
    InvalidWalletAddressError,
    ProofRejectedError,
    WalletAlreadyLinkedError,
)
from shared.identity.verifier import (
    HttpProofVerifier,
    ProofRequest,
    ProofVerificationError,
    ProofVerifier,
)

__all__ = [
    "DEFAULT_SESSION_TTL_SECONDS",
    "SESSION_COOKIE",
    "HttpProofVerifier",
    "IdentityConflictError",
    "IdentityError",
    "IdentityService",
    "InvalidWalletAddressError",
    "ProofRejectedError",
    "ProofRequest",
    "ProofVerificationError",
    "ProofVerifier",
    "SessionError",
    "SessionGuard",
    "SessionInvalidError",
    "SessionRequiredError",
    "WalletAlreadyLinkedError",
]
