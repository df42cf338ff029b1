"""Payment initiation and confirmation handlers."""

from __future__ import annotations

from typing import TYPE_CHECKING

from starlette.responses import JSONResponse

from arena.errors import HANDLED_ERRORS, error_response, parse_request, read_json_body
from arena.payments.types import ConfirmPaymentRequest, InitiatePaymentRequest
from shared.identity import SESSION_COOKIE

if TYPE_CHECKING:
    from starlette.requests import Request

    from arena.payments.service import PaymentService


async def initiate_payment(request: Request) -> JSONResponse:
    """POST /api/initiate-payment - register a pending payment under a client reference."""
    payments: PaymentService = request.app.state.payment_service
    try:
        body = parse_request(InitiatePaymentRequest, await read_json_body(request))
        result = await payments.initiate(body, request.cookies.get(SESSION_COOKIE))
    except HANDLED_ERRORS as e:
        return error_response(e, path=request.url.path)
    return JSONResponse(result)


async def confirm_payment(request: Request) -> JSONResponse:
    """POST /api/confirm-payment - reconcile a pending payment with the processor."""
    payments: PaymentService = request.app.state.payment_service
    try:
        body = parse_request(ConfirmPaymentRequest, await read_json_body(request))
        result = await payments.confirm(body, request.cookies.get(SESSION_COOKIE))
    except HANDLED_ERRORS as e:
        return error_response(e, path=request.url.path)
    return JSONResponse(result)
