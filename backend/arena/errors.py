"""Error codes and response envelopes for the arena API."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Literal

import structlog
from pydantic import BaseModel, ValidationError
from starlette.responses import JSONResponse

from shared.identity import (
    IdentityConflictError,
    InvalidWalletAddressError,
    ProofRejectedError,
    ProofVerificationError,
    SessionInvalidError,
    SessionRequiredError,
    WalletAlreadyLinkedError,
)
from shared.store.errors import LockAcquisitionError, StoreCorruptedError, StoreUnavailableError
from shared.tokens import InvalidAmountError, UnsupportedTokenError

if TYPE_CHECKING:
    from starlette.requests import Request

logger = structlog.get_logger()

Envelope = Literal["payment", "tournament"]


@dataclass(frozen=True)
class _Definition:
    status: int
    message: str
    level: int


class ErrorCode(StrEnum):
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    INVALID_WALLET = "INVALID_WALLET"
    CONFIG_MISSING = "CONFIG_MISSING"
    CONFLICT = "CONFLICT"
    VERIFICATION_FAILED = "VERIFICATION_FAILED"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    UNSUPPORTED_TOKEN = "UNSUPPORTED_TOKEN"
    SESSION_REQUIRED = "SESSION_REQUIRED"
    SESSION_INVALID = "SESSION_INVALID"
    REFERENCE_CONFLICT = "REFERENCE_CONFLICT"
    REFERENCE_NOT_FOUND = "REFERENCE_NOT_FOUND"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    PAYMENT_STATUS_ERROR = "PAYMENT_STATUS_ERROR"
    PAYMENT_REJECTED = "PAYMENT_REJECTED"
    TRANSACTION_INVALID = "TRANSACTION_INVALID"
    WALLET_MISMATCH = "WALLET_MISMATCH"
    TOKEN_MISMATCH = "TOKEN_MISMATCH"
    AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
    TOURNAMENT_MISMATCH = "TOURNAMENT_MISMATCH"
    IDENTITY_MISMATCH = "IDENTITY_MISMATCH"
    TOURNAMENT_CLOSED = "TOURNAMENT_CLOSED"
    TOURNAMENT_FULL = "TOURNAMENT_FULL"
    ALREADY_JOINED = "ALREADY_JOINED"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    @property
    def status(self) -> int:
        return _DEFINITIONS[self].status

    @property
    def default_message(self) -> str:
        return _DEFINITIONS[self].message

    @property
    def level(self) -> int:
        return _DEFINITIONS[self].level


_WARN = logging.WARNING
_ERROR = logging.ERROR

_DEFINITIONS: dict[ErrorCode, _Definition] = {
    ErrorCode.INVALID_PAYLOAD: _Definition(400, "Solicitud inválida", _WARN),
    ErrorCode.INVALID_WALLET: _Definition(400, "wallet_address no es válida", _WARN),
    ErrorCode.CONFIG_MISSING: _Definition(500, "Configuración faltante", _ERROR),
    ErrorCode.CONFLICT: _Definition(409, "Conflicto con el estado actual", _WARN),
    ErrorCode.VERIFICATION_FAILED: _Definition(400, "No se pudo verificar la solicitud", _ERROR),
    ErrorCode.UNAUTHORIZED: _Definition(401, "No autorizado", _WARN),
    ErrorCode.NOT_FOUND: _Definition(404, "Recurso no encontrado", _WARN),
    ErrorCode.UNSUPPORTED_TOKEN: _Definition(400, "Token no soportado", _WARN),
    ErrorCode.SESSION_REQUIRED: _Definition(
        401,
        "Sesión no verificada. Realiza la verificación de World ID.",
        _WARN,
    ),
    ErrorCode.SESSION_INVALID: _Definition(
        401,
        "Sesión inválida o expirada. Vuelve a verificar tu identidad.",
        _WARN,
    ),
    ErrorCode.REFERENCE_CONFLICT: _Definition(403, "Referencia usada por otro usuario", _WARN),
    ErrorCode.REFERENCE_NOT_FOUND: _Definition(400, "Referencia no encontrada", _WARN),
    ErrorCode.UPSTREAM_ERROR: _Definition(502, "Error al consultar el servicio externo", _ERROR),
    ErrorCode.PAYMENT_STATUS_ERROR: _Definition(400, "No se pudo validar el estado del pago", _WARN),
    ErrorCode.PAYMENT_REJECTED: _Definition(400, "Pago rechazado", _WARN),
    ErrorCode.TRANSACTION_INVALID: _Definition(400, "Transacción inválida", _WARN),
    ErrorCode.WALLET_MISMATCH: _Definition(400, "La wallet no coincide", _WARN),
    ErrorCode.TOKEN_MISMATCH: _Definition(400, "El token no coincide con lo esperado", _WARN),
    ErrorCode.AMOUNT_MISMATCH: _Definition(400, "El monto no coincide con lo esperado", _WARN),
    ErrorCode.TOURNAMENT_MISMATCH: _Definition(400, "El torneo no coincide con lo esperado", _WARN),
    ErrorCode.IDENTITY_MISMATCH: _Definition(403, "La identidad verificada no coincide", _WARN),
    ErrorCode.TOURNAMENT_CLOSED: _Definition(400, "El torneo ya inició o finalizó", _WARN),
    ErrorCode.TOURNAMENT_FULL: _Definition(400, "No hay cupos disponibles", _WARN),
    ErrorCode.ALREADY_JOINED: _Definition(409, "Ya estás inscrito en este torneo", _WARN),
    ErrorCode.STORE_UNAVAILABLE: _Definition(
        503,
        "Persistencia local deshabilitada. Configure almacenamiento compartido o servicio remoto.",
        _ERROR,
    ),
    ErrorCode.INTERNAL_ERROR: _Definition(500, "Error interno del servidor", _ERROR),
}


class ArenaError(Exception):
    """A rejection with a stable code, a client-facing message and optional details."""

    def __init__(self, code: ErrorCode, message: str | None = None, *, details: dict[str, Any] | None = None) -> None:
        self.code = code
        self.message = message or code.default_message
        self.details = details
        super().__init__(self.message)

    @property
    def status(self) -> int:
        return self.code.status


# Lower-layer exceptions and the code each one surfaces as.
# Internal failures keep the default message so no detail reaches the client.
_TRANSLATIONS: tuple[tuple[type[Exception], ErrorCode, bool], ...] = (
    (SessionRequiredError, ErrorCode.SESSION_REQUIRED, False),
    (SessionInvalidError, ErrorCode.SESSION_INVALID, False),
    (UnsupportedTokenError, ErrorCode.UNSUPPORTED_TOKEN, False),
    (InvalidAmountError, ErrorCode.INVALID_PAYLOAD, False),
    (InvalidWalletAddressError, ErrorCode.INVALID_WALLET, True),
    (IdentityConflictError, ErrorCode.CONFLICT, True),
    (WalletAlreadyLinkedError, ErrorCode.CONFLICT, True),
    (ProofRejectedError, ErrorCode.VERIFICATION_FAILED, True),
    (ProofVerificationError, ErrorCode.UPSTREAM_ERROR, False),
    (StoreUnavailableError, ErrorCode.STORE_UNAVAILABLE, False),
    (LockAcquisitionError, ErrorCode.INTERNAL_ERROR, False),
    (StoreCorruptedError, ErrorCode.INTERNAL_ERROR, False),
)

HANDLED_ERRORS: tuple[type[Exception], ...] = (ArenaError, *(exc_type for exc_type, _, _ in _TRANSLATIONS))


def to_arena_error(exc: Exception) -> ArenaError:
    """Map a handled exception to an ArenaError. Unknown exceptions become INTERNAL_ERROR."""
    if isinstance(exc, ArenaError):
        return exc
    for exc_type, code, keep_message in _TRANSLATIONS:
        if isinstance(exc, exc_type):
            return ArenaError(code, str(exc) if keep_message else None)
    return ArenaError(ErrorCode.INTERNAL_ERROR)


def error_response(exc: Exception, *, envelope: Envelope = "payment", path: str | None = None) -> JSONResponse:
    """Log the rejection once at its code's level and render the envelope for the route family.

    Payment routes answer ``{success: false, code, message[, details]}``;
    tournament routes answer ``{error, code}``.
    """
    error = to_arena_error(exc)
    logger.log(
        error.code.level,
        "api error",
        code=error.code.value,
        status=error.status,
        path=path,
        reason=str(exc),
        details=error.details,
    )

    if envelope == "tournament":
        message = error.message
        if error.details and error.details.get("errors") and message == error.code.default_message:
            message = "; ".join(error.details["errors"])
        body: dict[str, Any] = {"error": message, "code": error.code.value}
    else:
        body = {"success": False, "code": error.code.value, "message": error.message}
        if error.details:
            body["details"] = error.details
    return JSONResponse(body, status_code=error.status)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler: 500 with no internal detail, full traceback to the log."""
    logger.error("unhandled exception", path=request.url.path, exc_info=exc)
    return JSONResponse(
        {"success": False, "code": ErrorCode.INTERNAL_ERROR.value, "message": ErrorCode.INTERNAL_ERROR.default_message},
        status_code=ErrorCode.INTERNAL_ERROR.status,
    )


def parse_request[T: BaseModel](model: type[T], body: Any) -> T:  # noqa: ANN401
    """Validate a JSON body into ``model``, raising INVALID_PAYLOAD with itemized errors.

    Models may define ``validation_errors()`` returning the list of
    field-level problems that plain schema validation cannot express.
    """
    if not isinstance(body, dict):
        raise ArenaError(ErrorCode.INVALID_PAYLOAD, details={"errors": ["El cuerpo debe ser un objeto JSON"]})
    try:
        request = model.model_validate(body)
    except ValidationError as e:
        errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise ArenaError(ErrorCode.INVALID_PAYLOAD, details={"errors": errors}) from e

    validate = getattr(request, "validation_errors", None)
    if validate is not None:
        errors = validate()
        if errors:
            raise ArenaError(ErrorCode.INVALID_PAYLOAD, details={"errors": errors})
    return request


async def read_json_body(request: Request) -> Any:  # noqa: ANN401
    """Parse the request body as JSON. An empty body is an empty object."""
    raw_body = await request.body()
    if not raw_body or raw_body.strip() == b"":
        return {}
    try:
        return json.loads(raw_body)
    except ValueError as e:
        raise ArenaError(ErrorCode.INVALID_PAYLOAD, details={"errors": ["JSON inválido"]}) from e
