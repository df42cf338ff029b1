"""Proof-of-personhood verification handler."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import AliasChoices, BaseModel, Field
from starlette.responses import JSONResponse

from arena.errors import HANDLED_ERRORS, ArenaError, ErrorCode, error_response, parse_request, read_json_body
from shared.identity import SESSION_COOKIE, ProofRequest

if TYPE_CHECKING:
    from starlette.requests import Request

    from arena.server.settings import ArenaServerSettings
    from shared.identity import IdentityService

_REQUIRED_PROOF_FIELDS = ("proof", "nullifier_hash", "merkle_root")


class AttachWalletRequest(BaseModel):
    wallet_address: str | None = Field(default=None, validation_alias=AliasChoices("walletAddress", "wallet_address"))

    def validation_errors(self) -> list[str]:
        if not (self.wallet_address or "").strip():
            return ["walletAddress es obligatorio"]
        return []


async def verify_world_id(request: Request) -> JSONResponse:
    """POST /api/verify-world-id - verify a proof and issue the session cookie."""
    identity_service: IdentityService = request.app.state.identity_service
    settings: ArenaServerSettings = request.app.state.settings

    try:
        body = await read_json_body(request)
        if not isinstance(body, dict) or not all(body.get(field) for field in _REQUIRED_PROOF_FIELDS):
            raise ArenaError(
                ErrorCode.INVALID_PAYLOAD,
                "Faltan parámetros obligatorios (proof, nullifier_hash, merkle_root)",
            )
        proof = parse_request(ProofRequest, body)
        identity = await identity_service.register(proof)
    except HANDLED_ERRORS as e:
        return error_response(e, path=request.url.path)

    response = JSONResponse(
        {
            "success": True,
            "userId": identity.user_id,
            "nullifier_hash": identity.nullifier_hash,
            "createdAt": identity.created_at.isoformat(),
        },
    )
    response.set_cookie(
        SESSION_COOKIE,
        identity.session_token,
        max_age=identity_service.session_ttl_seconds,
        path="/",
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
    )
    return response


async def attach_wallet(request: Request) -> JSONResponse:
    """POST /api/identity/wallet - bind a wallet to the caller's verified identity."""
    identity_service: IdentityService = request.app.state.identity_service
    try:
        body = parse_request(AttachWalletRequest, await read_json_body(request))
        identity = await identity_service.attach_wallet(request.cookies.get(SESSION_COOKIE), body.wallet_address)
    except HANDLED_ERRORS as e:
        return error_response(e, path=request.url.path)
    return JSONResponse({"success": True, "userId": identity.user_id, "walletAddress": identity.wallet_address})
