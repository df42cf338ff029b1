"""Global leaderboard aggregated across all tournaments."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING

from arena.tournaments.types import GlobalLeaderboardEntry, TokenEarnings

if TYPE_CHECKING:
    from arena.tournaments.service import TournamentService
    from shared.tokens import TokenRegistry

_CENTS = Decimal("0.01")


@dataclass
class _Totals:
    username: str
    points: int = 0
    wins: int = 0
    earnings: dict[str, int] = field(default_factory=dict)  # token address -> base units


async def get_global_leaderboard(
    tournaments: TournamentService,
    tokens: TokenRegistry,
) -> list[GlobalLeaderboardEntry]:
    """Sum points, first places and prize earnings per user, ranked by total points."""
    totals: dict[str, _Totals] = {}

    for tournament in await tournaments.list_tournaments():
        entries = await tournaments.get_leaderboard_entries(
            tournament.tournament_id,
            tournament.prize_pool,
            tournament.prize_distribution,
        )
        for entry in entries:
            current = totals.setdefault(entry.user_id, _Totals(username=entry.username))
            current.points += entry.score
            if entry.rank == 1:
                current.wins += 1
            if entry.prize:
                token = tournament.buy_in_token
                current.earnings[token] = current.earnings.get(token, 0) + int(entry.prize)

    ranked = sorted(totals.items(), key=lambda item: (-item[1].points, item[0]))
    return [
        GlobalLeaderboardEntry(
            rank=index + 1,
            user_id=user_id,
            username=entry.username or user_id,
            total_points=entry.points,
            tournaments_won=entry.wins,
            total_earnings=[_format_earnings(tokens, address, amount) for address, amount in entry.earnings.items()],
        )
        for index, (user_id, entry) in enumerate(ranked)
    ]


def _format_earnings(tokens: TokenRegistry, address: str, base_units: int) -> TokenEarnings:
    config = tokens.resolve(address)
    human = tokens.from_base_units(base_units, address)
    return TokenEarnings(token=config.symbol, amount=_display_amount(human))


def _display_amount(value: Decimal) -> str:
    """Render with at least two decimals, never dropping a significant digit."""
    cents = value.quantize(_CENTS)
    if cents == value:
        return f"{cents:f}"
    return f"{value.normalize():f}"
