"""
Round data model
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal

from .enums import Position, RoundStatus


@dataclass(frozen=True)
class Round:
    """
    One timed betting cycle

    Rounds are immutable values: staking and settlement return a new Round,
    so any reference handed to a reader is already a read-only snapshot.

    Attributes:
        id: Monotonic round number (first round is 1)
        asset: Asset symbol the round was opened on
        start_time: Unix timestamp of creation
        lock_time: Stakes are refused from this instant on
        close_time: Settlement instant
        start_price: Price sample at creation
        close_price: Price sample at settlement (None while open)
        up_pool: Total staked on UP
        down_pool: Total staked on DOWN
        status: Lifecycle status
        winner: UP / DOWN once settled, NONE while open or on a push
        voided: Ended early without a result (asset switched mid-round)
    """

    id: int
    asset: str
    start_time: float
    lock_time: float
    close_time: float
    start_price: Decimal
    close_price: Decimal | None = None
    up_pool: Decimal = field(default_factory=lambda: Decimal("0"))
    down_pool: Decimal = field(default_factory=lambda: Decimal("0"))
    status: RoundStatus = RoundStatus.LIVE
    winner: Position = Position.NONE
    voided: bool = False

    def __post_init__(self):
        if self.id < 1:
            raise ValueError(f"round id must start at 1, got {self.id}")
        if not (self.start_time <= self.lock_time <= self.close_time):
            raise ValueError(
                f"round {self.id}: expected start <= lock <= close, got "
                f"{self.start_time} / {self.lock_time} / {self.close_time}"
            )
        if self.start_price <= 0:
            raise ValueError(f"start_price must be positive, got {self.start_price}")
        if self.up_pool < 0 or self.down_pool < 0:
            raise ValueError(f"pools cannot be negative: up={self.up_pool} down={self.down_pool}")

    @property
    def total_pool(self) -> Decimal:
        return self.up_pool + self.down_pool

    @property
    def duration_sec(self) -> float:
        return self.close_time - self.start_time

    @property
    def is_ended(self) -> bool:
        return self.status == RoundStatus.ENDED

    @property
    def is_push(self) -> bool:
        return self.is_ended and self.winner == Position.NONE

    def pool_for(self, position: Position) -> Decimal:
        if position == Position.UP:
            return self.up_pool
        if position == Position.DOWN:
            return self.down_pool
        raise ValueError(f"No pool for position {position}")

    def with_stake(self, position: Position, amount: Decimal) -> "Round":
        """Return a copy with `amount` added to the pool for `position`"""
        if position == Position.UP:
            return replace(self, up_pool=self.up_pool + amount)
        if position == Position.DOWN:
            return replace(self, down_pool=self.down_pool + amount)
        raise ValueError(f"Cannot stake on position {position}")

    def payout_multiplier(self, position: Position) -> Decimal:
        """
        Gross return per unit staked if `position` wins, at current pools

        An empty round shows 2x; an empty side is treated as a pool of 1.
        """
        total = self.total_pool
        if total == 0:
            return Decimal("2")
        pool = self.pool_for(position)
        return total / (pool if pool != 0 else Decimal("1"))

    def seconds_remaining(self, now: float) -> float:
        return max(0.0, self.close_time - now)

    def to_dict(self, preserve_precision: bool = False) -> dict:
        """Convert to dictionary

        Args:
            preserve_precision: If True, keep Decimals as strings
        """

        def convert(value):
            if isinstance(value, Decimal):
                return str(value) if preserve_precision else float(value)
            return value

        return {
            "id": self.id,
            "asset": self.asset,
            "start_time": self.start_time,
            "lock_time": self.lock_time,
            "close_time": self.close_time,
            "start_price": convert(self.start_price),
            "close_price": convert(self.close_price) if self.close_price is not None else None,
            "up_pool": convert(self.up_pool),
            "down_pool": convert(self.down_pool),
            "total_pool": convert(self.total_pool),
            "status": self.status.value,
            "winner": self.winner.value,
            "voided": self.voided,
        }
