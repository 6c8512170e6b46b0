"""
Engine state snapshot handed to render surfaces
"""

from dataclasses import dataclass, field
from decimal import Decimal

from .enums import FeedMode, Position
from .price_point import PricePoint
from .round import Round
from .user_bet import UserBet


@dataclass(frozen=True)
class EngineSnapshot:
    """
    Immutable view of the whole engine at a point in time

    `current_round` is None between an asset switch and the first price
    sample for the new asset.
    """

    timestamp: float
    user_id: str
    current_round: Round | None
    past_rounds: tuple[Round, ...]
    current_price: Decimal
    price_history: tuple[PricePoint, ...]
    balance: Decimal
    bets: tuple[UserBet, ...]
    selected_asset: str
    selected_duration: int
    feed_mode: FeedMode
    accepting_stakes: bool
    treasury_balance: Decimal = field(default_factory=lambda: Decimal("0"))

    @property
    def seconds_remaining(self) -> float:
        if self.current_round is None:
            return 0.0
        return self.current_round.seconds_remaining(self.timestamp)

    @property
    def payout_multipliers(self) -> dict[str, Decimal]:
        if self.current_round is None:
            return {}
        return {
            Position.UP.value: self.current_round.payout_multiplier(Position.UP),
            Position.DOWN.value: self.current_round.payout_multiplier(Position.DOWN),
        }

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "user_id": self.user_id,
            "current_round": self.current_round.to_dict() if self.current_round else None,
            "past_rounds": [r.to_dict() for r in self.past_rounds],
            "current_price": float(self.current_price),
            "price_history": [p.to_dict() for p in self.price_history],
            "balance": float(self.balance),
            "bets": [b.to_dict() for b in self.bets],
            "selected_asset": self.selected_asset,
            "selected_duration": self.selected_duration,
            "feed_mode": self.feed_mode.value,
            "accepting_stakes": self.accepting_stakes,
            "seconds_remaining": self.seconds_remaining,
            "payout_multipliers": {k: float(v) for k, v in self.payout_multipliers.items()},
            "treasury_balance": float(self.treasury_balance),
        }
