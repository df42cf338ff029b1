"""Client for the external payment processor's transaction lookup."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from pathlib import Path
from uuid import uuid4

import httpx
import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings

from shared.logging import sanitize_value
from shared.store.models import utc_now

logger = structlog.get_logger()

TRANSACTION_PATH = "/api/v2/minikit/transaction"
RETRYABLE_STATUSES = frozenset({408, 425, 429, 500, 502, 503, 504})


class PaymentProcessorSettings(BaseSettings):
    model_config = {"env_prefix": "DEV_PORTAL_"}

    base_url: str = "https://developer.worldcoin.org"
    # Required, no default. The application fails to start without them.
    app_id: str = Field(min_length=1)
    api_key: str = Field(min_length=1)
    max_retries: int = Field(default=3, ge=1)
    retry_delay_seconds: float = Field(default=0.5, ge=0)
    backoff_factor: float = Field(default=2.0, ge=1)
    timeout_seconds: float = Field(default=10.0, gt=0)
    dead_letter_path: str = "backend/data/developer-dead-letter.log"


class UpstreamError(Exception):
    """The processor was unreachable, answered non-2xx, or returned an unreadable body."""


class ProcessorTransaction(BaseModel):
    """Authoritative transaction status as reported by the processor."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    transaction_status: str
    reference: str | None = None
    transaction_id: str | None = None
    token: str | None = None
    token_amount: str | None = Field(default=None, validation_alias=AliasChoices("token_amount", "amount"))
    wallet_address: str | None = Field(default=None, validation_alias=AliasChoices("wallet_address", "from"))
    tournament_id: str | None = None
    created_at: datetime | None = Field(default=None, validation_alias=AliasChoices("created_at", "timestamp"))

    @property
    def is_failed(self) -> bool:
        return self.transaction_status.lower() == "failed"


class PaymentProcessorClient:
    """Fetch transactions with bounded retries.

    Transport errors (timeouts included) and statuses in RETRYABLE_STATUSES
    are retried with exponential backoff: the n-th wait is
    ``retry_delay_seconds * backoff_factor ** (n - 1)``. Any other non-2xx
    answer fails at once. When a request finally fails it is appended to the
    dead-letter file and UpstreamError is raised.
    """

    def __init__(self, settings: PaymentProcessorSettings) -> None:
        self._settings = settings
        self._dead_letter_path = Path(settings.dead_letter_path)

    async def get_transaction(self, transaction_id: str) -> ProcessorTransaction:
        url = f"{self._settings.base_url.rstrip('/')}{TRANSACTION_PATH}/{transaction_id}"
        params = {"app_id": self._settings.app_id, "type": "payment"}
        headers = {"Authorization": f"Bearer {self._settings.api_key}"}

        response = await self._request_with_retries(url, params=params, headers=headers, transaction_id=transaction_id)

        try:
            return ProcessorTransaction.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise UpstreamError(f"Unreadable processor response for transaction {transaction_id}") from e

    async def _request_with_retries(
        self,
        url: str,
        *,
        params: dict[str, str],
        headers: dict[str, str],
        transaction_id: str,
    ) -> httpx.Response:
        max_retries = self._settings.max_retries
        async with httpx.AsyncClient(timeout=self._settings.timeout_seconds) as client:
            for attempt in range(1, max_retries + 1):
                try:
                    response = await client.get(url, params=params, headers=headers)
                except httpx.RequestError as e:
                    logger.warning("processor request failed", attempt=attempt, error=str(e))
                    if attempt == max_retries:
                        self._dead_letter(transaction_id=transaction_id, error=str(e))
                        raise UpstreamError(f"Failed to reach payment processor: {e}") from e
                else:
                    if response.is_success:
                        return response
                    retryable = response.status_code in RETRYABLE_STATUSES
                    logger.warning(
                        "processor returned error status",
                        attempt=attempt,
                        status=response.status_code,
                        retryable=retryable,
                    )
                    if not retryable or attempt == max_retries:
                        self._dead_letter(
                            transaction_id=transaction_id,
                            status=response.status_code,
                            response_body=response.text[:1000],
                            error=f"Received status {response.status_code}",
                        )
                        raise UpstreamError(f"Payment processor returned {response.status_code}")
                await asyncio.sleep(self._backoff(attempt))

        # range() always yields at least once since max_retries >= 1
        raise UpstreamError("Payment processor request was not attempted")

    def _backoff(self, attempt: int) -> float:
        return self._settings.retry_delay_seconds * self._settings.backoff_factor ** (attempt - 1)

    def _dead_letter(
        self,
        *,
        transaction_id: str,
        error: str,
        status: int | None = None,
        response_body: str | None = None,
    ) -> None:
        entry = {
            "id": str(uuid4()),
            "timestamp": utc_now().isoformat(),
            "endpoint": TRANSACTION_PATH,
            "method": "GET",
            "payload": sanitize_value({"transaction_id": transaction_id}),
            "status": status,
            "response_body": response_body,
            "error": error,
        }
        try:
            self._dead_letter_path.parent.mkdir(parents=True, exist_ok=True)
            with self._dead_letter_path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(entry) + "\n")
        except OSError:
            logger.exception("failed to write processor dead letter", path=str(self._dead_letter_path))
