"""Request schemas for the payment endpoints.

Fields are optional at the schema level so that missing values can be
reported together as itemized messages instead of failing on the first one.
"""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from shared.store.models import PaymentType
from shared.validators import is_hex_address

_CAMEL = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True, extra="ignore")


class InitiatePaymentRequest(BaseModel):
    model_config = _CAMEL

    reference: str | None = None
    type: str | None = None
    token: str | None = None
    amount: str | None = None  # human amount, e.g. "1" or "0.5"
    tournament_id: str | None = Field(default=None, validation_alias=AliasChoices("tournamentId", "tournament_id"))
    wallet_address: str | None = Field(
        default=None,
        validation_alias=AliasChoices("walletAddress", "wallet_address"),
    )
    user_id: str | None = Field(default=None, validation_alias=AliasChoices("userId", "user_id"))

    @property
    def payment_type(self) -> PaymentType:
        return PaymentType(self.type)

    def validation_errors(self) -> list[str]:
        errors: list[str] = []
        if not (self.reference or "").strip():
            errors.append("Referencia es obligatoria")
        if self.type not in {t.value for t in PaymentType}:
            errors.append("type debe ser quick_match o tournament")
        elif self.type == PaymentType.TOURNAMENT and not self.tournament_id:
            errors.append("tournamentId es obligatorio para torneos")
        if self.wallet_address and not is_hex_address(self.wallet_address):
            errors.append("walletAddress no tiene un formato válido")
        return errors


class PaymentPayload(BaseModel):
    """Client-side result of the pay command, forwarded for confirmation."""

    model_config = _CAMEL

    status: str | None = None
    transaction_id: str | None = None
    token: str | None = None
    token_amount: str | None = Field(default=None, validation_alias=AliasChoices("token_amount", "amount"))
    wallet_address: str | None = None
    error_code: str | None = None


class ConfirmPaymentRequest(BaseModel):
    model_config = _CAMEL

    reference: str | None = None
    payload: PaymentPayload = Field(default_factory=PaymentPayload)

    def validation_errors(self) -> list[str]:
        errors: list[str] = []
        if not (self.reference or "").strip():
            errors.append("Referencia es obligatoria")
        if self.payload.wallet_address and not is_hex_address(self.payload.wallet_address):
            errors.append("wallet_address no tiene un formato válido")
        if self.payload.status == "error":
            # A rejected pay command carries no transaction data.
            return errors
        if not self.payload.transaction_id:
            errors.append("transaction_id es obligatorio")
        if not self.payload.wallet_address:
            errors.append("wallet_address es obligatorio")
        if not self.payload.token:
            errors.append("token es obligatorio")
        if not self.payload.token_amount:
            errors.append("amount es obligatorio")
        return errors

