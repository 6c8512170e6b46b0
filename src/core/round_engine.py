"""
Round lifecycle engine

Owns the current round and the archive of settled rounds. Settlement is
driven by `check_expiry`, which is safe to call as often as the caller likes:
it only acts once the held round's close time has passed and the round has
not already ended.
"""

import logging
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import replace
from decimal import Decimal

from models import Position, Round, RoundStatus

from .ledger import SettlementLedger

logger = logging.getLogger(__name__)


class RoundLifecycleEngine:
    """
    State machine for rounds: LIVE -> (LOCKED) -> ENDED

    Responsibilities:
    - Create the first round and every successor
    - Apply stakes to the live round through the ledger
    - Detect expiry and settle against the last observed price
    - Void the held round when its asset is switched away
    - Keep settled rounds, most recent first
    """

    def __init__(
        self,
        ledger: SettlementLedger,
        clock: Callable[[], float],
        duration_sec: int = 30,
        lock_window_sec: float = 0,
        max_archived_rounds: int = 1000,
        opening_pools: tuple[Decimal, Decimal] = (Decimal("0"), Decimal("0")),
    ):
        if duration_sec <= 0:
            raise ValueError(f"duration_sec must be positive, got {duration_sec}")
        if lock_window_sec < 0:
            raise ValueError(f"lock_window_sec cannot be negative, got {lock_window_sec}")

        self.ledger = ledger
        self._clock = clock
        self._duration_sec = duration_sec
        self.lock_window_sec = lock_window_sec
        self._opening_pools = opening_pools
        self._current: Round | None = None
        self._archive: deque[Round] = deque(maxlen=max_archived_rounds)
        self._lock = threading.RLock()

    # ========== Accessors ==========

    @property
    def current_round(self) -> Round:
        with self._lock:
            if self._current is None:
                raise RuntimeError("No round opened yet")
            return self._current

    @property
    def has_round(self) -> bool:
        """False between a voided round and its successor"""
        with self._lock:
            return self._current is not None

    @property
    def duration_sec(self) -> int:
        """Duration the next round will be created with"""
        return self._duration_sec

    def past_rounds(self, limit: int | None = None) -> list[Round]:
        """Settled rounds, most recent first"""
        with self._lock:
            rounds = list(self._archive)
            return rounds[:limit] if limit else rounds

    def find_round(self, round_id: int) -> Round | None:
        with self._lock:
            if self._current is not None and self._current.id == round_id:
                return self._current
            for round_ in self._archive:
                if round_.id == round_id:
                    return round_
            return None

    def archived_ids(self) -> set[int]:
        with self._lock:
            return {r.id for r in self._archive}

    # ========== Lifecycle ==========

    def set_duration(self, duration_sec: int):
        """Change the duration of the next round; the live round is untouched"""
        if duration_sec <= 0:
            raise ValueError(f"duration_sec must be positive, got {duration_sec}")
        with self._lock:
            self._duration_sec = duration_sec
        logger.info(f"Next round duration set to {duration_sec}s")

    def open_first_round(self, start_price: Decimal, asset: str) -> Round:
        """Create round 1 (seeded with the configured opening liquidity)"""
        with self._lock:
            if self._current is not None:
                raise RuntimeError("First round already opened")
            up_pool, down_pool = self._opening_pools
            self._current = self._new_round(1, start_price, asset, up_pool, down_pool)
            logger.info(f"Round 1 opened on {asset} at {start_price}")
            return self._current

    def accepts_stakes(self, now: float | None = None) -> bool:
        with self._lock:
            if self._current is None:
                return False
            now = self._clock() if now is None else now
            return self._current.status == RoundStatus.LIVE and now < self._current.lock_time

    def apply_stake(self, position: Position, amount: Decimal) -> Round:
        """
        Stake into the live round

        Raises:
            StakeRejected: propagated from the ledger
        """
        with self._lock:
            self._current = self.ledger.stake(self.current_round, position, amount)
            return self._current

    def refresh_status(self) -> Round:
        """Move LIVE to LOCKED once the lock time has passed (before close)"""
        with self._lock:
            round_ = self.current_round
            now = self._clock()
            if round_.status == RoundStatus.LIVE and round_.lock_time <= now < round_.close_time:
                self._current = replace(round_, status=RoundStatus.LOCKED)
                logger.info(f"Round {round_.id} locked")
            return self._current

    def check_expiry(self, close_price: Decimal, next_asset: str | None = None) -> Round | None:
        """
        Settle the held round if its close time has been reached

        On settlement the successor round opens immediately, seeded with the
        close price, on `next_asset` (defaults to the settled round's asset).

        Returns:
            The settled round, or None if nothing happened
        """
        with self._lock:
            round_ = self._current
            if round_ is None:
                return None
            now = self._clock()
            if now < round_.close_time or round_.status == RoundStatus.ENDED:
                return None

            settled = self.ledger.settle(round_, close_price)
            self._archive.appendleft(settled)
            self._current = self._new_round(settled.id + 1, close_price, next_asset or settled.asset)

            logger.info(
                f"Round {settled.id} settled: {settled.start_price} -> {close_price}, "
                f"winner {settled.winner.value}, pool {settled.total_pool}"
            )
            return settled

    def void_current(self, close_price: Decimal) -> Round | None:
        """
        End the held round early with every stake refundable

        No successor is opened; call `open_next_round` once a price for the
        next round's asset is known.

        Returns:
            The voided round, or None if no round was open
        """
        with self._lock:
            round_ = self._current
            if round_ is None:
                return None

            voided = self.ledger.void(round_, close_price)
            self._archive.appendleft(voided)
            self._current = None

            logger.info(f"Round {voided.id} on {voided.asset} voided, pool {voided.total_pool} refundable")
            return voided

    def open_next_round(self, start_price: Decimal, asset: str) -> Round:
        """Open the successor of the last archived round"""
        with self._lock:
            if self._current is not None:
                raise RuntimeError(f"Round {self._current.id} is still open")
            next_id = self._archive[0].id + 1 if self._archive else 1
            self._current = self._new_round(next_id, start_price, asset)
            logger.info(f"Round {next_id} opened on {asset} at {start_price}")
            return self._current

    def _new_round(
        self,
        round_id: int,
        start_price: Decimal,
        asset: str,
        up_pool: Decimal = Decimal("0"),
        down_pool: Decimal = Decimal("0"),
    ) -> Round:
        now = self._clock()
        close_time = now + self._duration_sec
        lock_time = max(now, close_time - self.lock_window_sec)
        return Round(
            id=round_id,
            asset=asset,
            start_time=now,
            lock_time=lock_time,
            close_time=close_time,
            start_price=start_price,
            up_pool=up_pool,
            down_pool=down_pool,
        )
