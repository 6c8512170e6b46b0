"""
Enumerations for rounds, positions and feeds
"""

from enum import Enum


class Position(str, Enum):
    """Side of a prediction (NONE marks an undecided or pushed round)"""

    UP = "UP"
    DOWN = "DOWN"
    NONE = "NONE"

    @classmethod
    def is_stakeable(cls, position: str) -> bool:
        """Only UP and DOWN can carry a stake."""
        return position in (cls.UP, cls.DOWN)


class RoundStatus(str, Enum):
    """Round lifecycle status

    LIVE -> (LOCKED) -> ENDED. LOCKED is only entered when a lock window is
    configured; CALCULATING is reserved for a server-authoritative settler.
    """

    LIVE = "LIVE"
    LOCKED = "LOCKED"
    CALCULATING = "CALCULATING"
    ENDED = "ENDED"


class PushPolicy(str, Enum):
    """What happens to stakes when close price equals start price"""

    REFUND = "refund"
    FORFEIT = "forfeit"


class FeedMode(str, Enum):
    """Where the latest price came from"""

    LIVE = "LIVE"
    SYNTHETIC = "SYNTHETIC"


class Sentiment(str, Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"
