"""
Data models for the Pulse round engine
"""

from .analysis import MarketAnalysis
from .asset import Asset
from .enums import FeedMode, Position, PushPolicy, RoundStatus, Sentiment
from .price_point import PricePoint, to_price
from .round import Round
from .snapshot import EngineSnapshot
from .user_bet import UserBet

__all__ = [
    "Asset",
    "EngineSnapshot",
    "FeedMode",
    "MarketAnalysis",
    "Position",
    "PricePoint",
    "PushPolicy",
    "Round",
    "RoundStatus",
    "Sentiment",
    "UserBet",
    "to_price",
]
