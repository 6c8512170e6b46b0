"""
Price sample data model
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

logger = logging.getLogger(__name__)


def to_price(value) -> Decimal | None:
    """
    Coerce a raw price to a positive finite Decimal

    Floats go through their shortest repr so sub-cent meme-coin prices keep
    their significant digits. Returns None for anything that is not a usable
    price.
    """
    if isinstance(value, bool):
        return None
    try:
        if isinstance(value, Decimal):
            price = value
        elif isinstance(value, str):
            price = Decimal(value.strip())
        else:
            price = Decimal(str(float(value)))
    except (InvalidOperation, ValueError, TypeError, OverflowError):
        return None
    if not price.is_finite() or price <= 0:
        return None
    return price


@dataclass(frozen=True)
class PricePoint:
    """
    A single observed (or synthesized) price

    Attributes:
        time: Unix timestamp (seconds)
        value: Positive price in quote currency
        synthetic: True when produced by the random-walk generator
    """

    time: float
    value: Decimal
    synthetic: bool = False

    def __post_init__(self):
        price = to_price(self.value)
        if price is None:
            raise ValueError(f"value must be a positive finite price, got {self.value!r}")
        # Frozen dataclass: normalise through object.__setattr__
        object.__setattr__(self, "value", price)

    def to_dict(self) -> dict:
        return {"time": self.time, "value": float(self.value), "synthetic": self.synthetic}
