"""Core module - round lifecycle, settlement and the game controller"""

from . import validators
from .errors import ClaimRejected, EngineError, StakeRejected
from .game_controller import GameController
from .leaderboard import UserStats, compute_user_stats
from .ledger import ClaimResult, SettlementLedger
from .position_book import PositionBook
from .price_history import PriceHistoryBuffer
from .round_engine import RoundLifecycleEngine

__all__ = [
    "ClaimRejected",
    "ClaimResult",
    "EngineError",
    "GameController",
    "PositionBook",
    "PriceHistoryBuffer",
    "RoundLifecycleEngine",
    "SettlementLedger",
    "StakeRejected",
    "UserStats",
    "compute_user_stats",
    "validators",
]
