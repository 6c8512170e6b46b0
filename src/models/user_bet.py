"""
User bet data model
"""

from dataclasses import dataclass
from decimal import Decimal

from .enums import Position


@dataclass(frozen=True)
class UserBet:
    """
    A user's stake on one side of one round

    At most one UserBet exists per (user, round, position); repeat stakes on
    the same side are merged into it by the PositionBook.

    Attributes:
        user_id: Owner of the bet
        round_id: Round the stake went into
        position: UP or DOWN
        amount: Total amount staked
        placed_at: Unix timestamp of the first stake
        claimed: Flips to True exactly once, when the payout is credited
    """

    user_id: str
    round_id: int
    position: Position
    amount: Decimal
    placed_at: float
    claimed: bool = False

    def __post_init__(self):
        if not Position.is_stakeable(self.position):
            raise ValueError(f"position must be UP or DOWN, got {self.position}")
        if not self.amount.is_finite() or self.amount <= 0:
            raise ValueError(f"amount must be positive, got {self.amount}")

    def to_dict(self, preserve_precision: bool = False) -> dict:
        return {
            "user_id": self.user_id,
            "round_id": self.round_id,
            "position": self.position.value,
            "amount": str(self.amount) if preserve_precision else float(self.amount),
            "placed_at": self.placed_at,
            "claimed": self.claimed,
        }
