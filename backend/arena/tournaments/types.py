"""Tournament views and request schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from shared.store.models import TournamentStatus
from shared.validators import is_hex_address

_CAMEL_VIEW = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)
_CAMEL_REQUEST = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True, extra="ignore")


class Tournament(BaseModel):
    """Tournament as served to clients, with status and player count derived on read."""

    model_config = _CAMEL_VIEW

    tournament_id: str
    name: str
    buy_in_token: str
    accepted_tokens: list[str]
    buy_in_amount: str
    prize_pool: str
    max_players: int
    current_players: int
    start_time: datetime
    end_time: datetime
    status: TournamentStatus
    prize_distribution: list[int]

    def to_response(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class LeaderboardEntry(BaseModel):
    model_config = _CAMEL_VIEW

    rank: int
    user_id: str
    username: str
    wallet_address: str | None = None
    score: int
    prize: str | None = None  # base units of the buy-in token

    def to_response(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class TokenEarnings(BaseModel):
    model_config = _CAMEL_VIEW

    token: str  # symbol
    amount: str  # human amount


class GlobalLeaderboardEntry(BaseModel):
    model_config = _CAMEL_VIEW

    rank: int
    user_id: str
    username: str
    total_points: int
    tournaments_won: int
    total_earnings: list[TokenEarnings]

    def to_response(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class JoinTournamentRequest(BaseModel):
    model_config = _CAMEL_REQUEST

    token: str | None = None
    amount: str | None = None  # human amount, converted with the token's decimals
    user_id: str | None = Field(default=None, validation_alias=AliasChoices("userId", "user_id"))
    username: str | None = None
    wallet_address: str | None = Field(
        default=None,
        validation_alias=AliasChoices("walletAddress", "wallet_address"),
    )
    score: int = 0
    payment_reference: str | None = Field(
        default=None,
        validation_alias=AliasChoices("paymentReference", "payment_reference", "reference"),
    )

    def validation_errors(self) -> list[str]:
        errors: list[str] = []
        if not self.token or self.amount is None:
            errors.append("Token y monto son obligatorios")
        if not (self.payment_reference or "").strip():
            errors.append("paymentReference es obligatorio")
        if self.wallet_address and not is_hex_address(self.wallet_address):
            errors.append("walletAddress no tiene un formato válido")
        if self.score < 0:
            errors.append("El puntaje enviado no es válido")
        return errors


class CreateTournamentRequest(BaseModel):
    model_config = _CAMEL_REQUEST

    tournament_id: str | None = Field(default=None, validation_alias=AliasChoices("tournamentId", "tournament_id"))
    name: str | None = None
    buy_in_token: str | None = Field(default=None, validation_alias=AliasChoices("buyInToken", "buy_in_token"))
    buy_in_amount: str | None = Field(default=None, validation_alias=AliasChoices("buyInAmount", "buy_in_amount"))
    accepted_tokens: list[str] | None = Field(
        default=None,
        validation_alias=AliasChoices("acceptedTokens", "accepted_tokens"),
    )
    max_players: int | None = Field(default=None, validation_alias=AliasChoices("maxPlayers", "max_players"))
    start_time: datetime | None = Field(default=None, validation_alias=AliasChoices("startTime", "start_time"))
    end_time: datetime | None = Field(default=None, validation_alias=AliasChoices("endTime", "end_time"))
    prize_distribution: list[int] | None = Field(
        default=None,
        validation_alias=AliasChoices("prizeDistribution", "prize_distribution"),
    )

    def validation_errors(self) -> list[str]:
        required = {
            "name": self.name,
            "buyInToken": self.buy_in_token,
            "buyInAmount": self.buy_in_amount,
            "maxPlayers": self.max_players,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "prizeDistribution": self.prize_distribution,
        }
        missing = [field for field, value in required.items() if value in (None, "", [])]
        if missing:
            return [f"{field} es obligatorio" for field in missing]

        errors: list[str] = []
        if self.max_players is not None and self.max_players < 1:
            errors.append("maxPlayers debe ser mayor que cero")
        distribution = self.prize_distribution or []
        if any(pct < 0 for pct in distribution):
            errors.append("prizeDistribution no puede tener valores negativos")
        if sum(distribution) != 100:  # noqa: PLR2004
            errors.append("prizeDistribution debe sumar 100")
        if self.max_players is not None and len(distribution) > self.max_players:
            errors.append("prizeDistribution excede el número de ganadores posibles")
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            errors.append("endTime debe ser posterior a startTime")
        return errors


class GameProgressRequest(BaseModel):
    model_config = _CAMEL_REQUEST

    session_id: str | None = Field(default=None, validation_alias=AliasChoices("sessionId", "session_id"))
    score: int = 0
    correct_answers: int = Field(default=0, validation_alias=AliasChoices("correctAnswers", "correct_answers"))
    total_questions: int = Field(default=0, validation_alias=AliasChoices("totalQuestions", "total_questions"))
    mode: str = "quick"
    tournament_id: str | None = Field(default=None, validation_alias=AliasChoices("tournamentId", "tournament_id"))

    def validation_errors(self) -> list[str]:
        errors: list[str] = []
        if self.mode == "tournament" and not self.tournament_id:
            errors.append("tournamentId es obligatorio en modo torneo")
        if self.score < 0:
            errors.append("El puntaje enviado no es válido")
        if self.correct_answers < 0 or self.total_questions < 0:
            errors.append("Los contadores de preguntas no pueden ser negativos")
        return errors
