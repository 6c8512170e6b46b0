"""
Player statistics over finished bets
"""

from dataclasses import dataclass, field
from decimal import Decimal

from models import Round, UserBet

from .ledger import SettlementLedger


@dataclass
class UserStats:
    """Aggregates for one user (wins, win rate, volume, net profit)"""

    user_id: str
    total_bets: int = 0
    wins: int = 0
    pushes: int = 0
    volume: Decimal = field(default_factory=lambda: Decimal("0"))
    profit: Decimal = field(default_factory=lambda: Decimal("0"))

    @property
    def losses(self) -> int:
        return self.total_bets - self.wins - self.pushes

    @property
    def win_rate(self) -> int:
        """Wins as a rounded percentage of finished bets"""
        if self.total_bets == 0:
            return 0
        return round(self.wins * 100 / self.total_bets)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "total_bets": self.total_bets,
            "wins": self.wins,
            "losses": self.losses,
            "pushes": self.pushes,
            "win_rate": self.win_rate,
            "volume": float(self.volume),
            "profit": float(self.profit),
        }


def compute_user_stats(
    user_id: str,
    bets: list[UserBet],
    rounds_by_id: dict[int, Round],
    ledger: SettlementLedger,
) -> UserStats:
    """
    Fold a user's bets on settled rounds into UserStats

    Bets whose round is not in `rounds_by_id` or has not ended are skipped.
    Profit is what the payout would be at claim time, whether or not the bet
    has actually been claimed yet.
    """
    stats = UserStats(user_id=user_id)
    for bet in bets:
        round_ = rounds_by_id.get(bet.round_id)
        if round_ is None or not round_.is_ended:
            continue

        stats.total_bets += 1
        stats.volume += bet.amount
        payout = ledger.compute_payout(round_, bet)

        if round_.is_push:
            stats.pushes += 1
        elif bet.position == round_.winner:
            stats.wins += 1
        stats.profit += payout - bet.amount

    return stats
