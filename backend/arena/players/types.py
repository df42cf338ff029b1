"""Player profile views."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from arena.tournaments.types import TokenEarnings


class PlayerStats(BaseModel):
    """Aggregates over one player's game progress and tournament results."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    user_id: str
    username: str
    wallet_address: str | None = None
    total_games_played: int = 0
    total_correct_answers: int = 0
    total_questions: int = 0
    highest_score: int = 0
    average_score: float = 0.0
    tournaments_joined: int = 0
    tournaments_won: int = 0
    total_points: int = 0
    total_earnings: list[TokenEarnings] = []
    last_played_at: datetime | None = None

    def to_response(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
