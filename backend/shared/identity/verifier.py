"""Proof-of-personhood verification against the developer portal.

The cryptographic check is performed remotely; this module only forwards
the proof and interprets the answer.
"""

from http import HTTPStatus
from typing import Protocol

import httpx
import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger()

DEFAULT_ACTION = "trivia_game_access"
DEFAULT_VERIFICATION_LEVEL = "orb"


class ProofRequest(BaseModel, frozen=True):
    proof: str = Field(min_length=1)
    nullifier_hash: str = Field(min_length=1)
    merkle_root: str = Field(min_length=1)
    wallet_address: str | None = None
    user_id: str | None = None
    action: str = DEFAULT_ACTION
    verification_level: str = DEFAULT_VERIFICATION_LEVEL
    signal_hash: str | None = None


class ProofVerificationError(Exception):
    """The verifier could not be reached or answered unexpectedly."""


class ProofVerifier(Protocol):
    """Decides whether a proof is valid for the given action."""

    async def verify(self, request: ProofRequest) -> bool: ...


class HttpProofVerifier:
    """Posts proofs to ``{base_url}/api/v2/verify/{app_id}``."""

    def __init__(self, base_url: str, app_id: str, *, timeout_seconds: float = 10.0) -> None:
        self._url = f"{base_url.rstrip('/')}/api/v2/verify/{app_id}"
        self._timeout = timeout_seconds

    async def verify(self, request: ProofRequest) -> bool:
        body = {
            "proof": request.proof,
            "nullifier_hash": request.nullifier_hash,
            "merkle_root": request.merkle_root,
            "verification_level": request.verification_level,
            "action": request.action,
        }
        if request.signal_hash:
            body["signal_hash"] = request.signal_hash

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            try:
                response = await client.post(self._url, json=body)
            except httpx.RequestError as e:
                raise ProofVerificationError(f"Failed to reach proof verifier: {e}") from e

        if response.status_code == HTTPStatus.OK:
            return True
        if response.status_code == HTTPStatus.BAD_REQUEST:
            logger.warning("proof rejected by verifier", detail=response.text[:200])
            return False
        raise ProofVerificationError(f"Proof verifier returned {response.status_code}")
