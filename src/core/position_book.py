"""
Position book - per-user record of bets and their claim status
"""

import logging
import threading
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import replace
from decimal import Decimal

from models import Position, UserBet

from .errors import ClaimRejected

logger = logging.getLogger(__name__)


class PositionBook:
    """
    Append-only list of UserBet per user

    Bets are keyed by (round_id, position): a second stake on the same side of
    the same round increases the existing entry instead of adding a new one.
    Entries are never removed; `claimed` flips once. UserBet is frozen, so
    every change swaps in a new value and bets already handed out stay as
    they were.
    """

    def __init__(self):
        # user -> (round_id, position) keys in placement order
        self._order: dict[str, list[tuple[int, Position]]] = defaultdict(list)
        self._index: dict[tuple[str, int, Position], UserBet] = {}
        self._lock = threading.RLock()

    def record_bet(
        self,
        user_id: str,
        round_id: int,
        position: Position,
        amount: Decimal,
        placed_at: float,
    ) -> UserBet:
        """
        Record an accepted stake

        Returns:
            The (new or merged) bet entry
        """
        position = Position(position)
        with self._lock:
            key = (user_id, round_id, position)
            existing = self._index.get(key)
            if existing is not None:
                if existing.claimed:
                    # Only possible if a round were reopened after settlement
                    raise ValueError(f"Bet {key} already claimed, cannot add stake")
                merged = replace(existing, amount=existing.amount + amount)
                self._index[key] = merged
                logger.debug(f"Merged stake into {key}: total {merged.amount}")
                return merged

            bet = UserBet(
                user_id=user_id,
                round_id=round_id,
                position=position,
                amount=amount,
                placed_at=placed_at,
            )
            self._order[user_id].append((round_id, position))
            self._index[key] = bet
            return bet

    def mark_claimed(self, user_id: str, round_id: int, position: Position) -> UserBet:
        """
        Flip a bet's claimed flag

        Raises:
            ClaimRejected: unknown bet or already claimed
        """
        with self._lock:
            position = Position(position)
            key = (user_id, round_id, position)
            bet = self._index.get(key)
            if bet is None:
                raise ClaimRejected(f"No {position.value} bet for {user_id} on round {round_id}")
            if bet.claimed:
                raise ClaimRejected(f"Bet on round {round_id} {bet.position.value} already claimed")
            claimed = replace(bet, claimed=True)
            self._index[key] = claimed
            return claimed

    # ========== Queries ==========

    def bets_for(self, user_id: str) -> list[UserBet]:
        """All bets of a user in placement order"""
        with self._lock:
            return [self._index[(user_id, *key)] for key in self._order.get(user_id, [])]

    def bets_for_round(self, user_id: str, round_id: int) -> list[UserBet]:
        with self._lock:
            return [b for b in self.bets_for(user_id) if b.round_id == round_id]

    def finished_bets(self, user_id: str, finished_round_ids: Iterable[int]) -> list[UserBet]:
        """
        Bets on rounds present in the archive, newest round first
        """
        finished = set(finished_round_ids)
        with self._lock:
            bets = [b for b in self.bets_for(user_id) if b.round_id in finished]
        return sorted(bets, key=lambda b: b.round_id, reverse=True)

    def users(self) -> list[str]:
        with self._lock:
            return list(self._order.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._index)
