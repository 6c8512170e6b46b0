"""
Tradeable asset catalogue entry
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Asset:
    """
    Attributes:
        symbol: Ticker shown to players (e.g. CELO)
        name: Display name
        coingecko_id: Identifier used by the live price source
        category: Major or Volatile
    """

    symbol: str
    name: str
    coingecko_id: str
    category: str = "Major"

    @classmethod
    def from_dict(cls, data: dict) -> "Asset":
        return cls(
            symbol=data["symbol"],
            name=data["name"],
            coingecko_id=data["coingecko_id"],
            category=data.get("category", "Major"),
        )

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "coingecko_id": self.coingecko_id,
            "category": self.category,
        }
