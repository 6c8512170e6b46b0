"""
Sources module - external inputs to the engine (prices, sentiment)
"""

from sources.price_feed import (
    CoinGeckoPriceSource,
    PriceFeedAdapter,
    PriceSource,
    SyntheticPriceGenerator,
)
from sources.sentiment import SentimentAnalyzer

__all__ = [
    "CoinGeckoPriceSource",
    "PriceFeedAdapter",
    "PriceSource",
    "SentimentAnalyzer",
    "SyntheticPriceGenerator",
]
