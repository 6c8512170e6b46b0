"""
PriceHistoryBuffer - Bounded price series for charts and settlement

Keeps the most recent price samples in chronological order and evicts the
oldest once the cap is exceeded. When empty (startup or asset switch) it can
backfill itself with a synthetic walk ending at a known price, so readers
always have a series to draw and the engine a last price to settle on.
"""

import logging
import threading
from collections import deque
from decimal import Decimal

import numpy as np

from models import PricePoint

logger = logging.getLogger(__name__)


class PriceHistoryBuffer:
    """
    Thread-safe bounded buffer of PricePoint samples

    Features:
    - Fixed capacity (default 60 samples), oldest evicted first
    - Insertion order is chronological order
    - Synthetic backfill from a seed price
    - Injectable numpy Generator for reproducible walks
    """

    def __init__(self, max_size: int = 60, rng: np.random.Generator | None = None):
        if max_size <= 0:
            raise ValueError(f"Buffer size must be positive, got {max_size}")

        self.max_size = max_size
        self._buffer: deque[PricePoint] = deque(maxlen=max_size)
        self._rng = rng if rng is not None else np.random.default_rng()
        self._lock = threading.RLock()

        logger.debug(f"PriceHistoryBuffer initialized: max_size={max_size}")

    def append(self, point: PricePoint) -> bool:
        """
        Append a sample to the tail (evicts the head if full)

        Samples older than the newest one are refused to keep the series
        chronological.
        """
        with self._lock:
            if self._buffer and point.time < self._buffer[-1].time:
                logger.warning(
                    f"Dropping out-of-order price sample at {point.time} "
                    f"(newest is {self._buffer[-1].time})"
                )
                return False
            self._buffer.append(point)
            return True

    def backfill_synthetic(
        self,
        seed: Decimal,
        now: float,
        count: int = 40,
        interval_sec: float = 2.0,
        volatility: float = 0.003,
    ) -> list[PricePoint]:
        """
        Replace the contents with a retroactive random walk ending at `seed`

        Walking backwards from the seed, each earlier value is the later one
        minus a uniform delta bounded by `volatility` of the current value.
        The newest point is the seed itself, stamped `now`; earlier points
        are spaced `interval_sec` apart.

        Returns:
            The generated points, oldest first
        """
        if count <= 0:
            raise ValueError(f"count must be positive, got {count}")

        values: list[float] = []
        val = float(seed)
        for _ in range(count):
            values.append(val)
            bound = val * volatility
            change = self._rng.uniform(-bound, bound)
            val = val - change

        points: list[PricePoint] = []
        for i in range(count - 1, -1, -1):
            value = Decimal(seed) if i == 0 else Decimal(str(values[i]))
            points.append(PricePoint(time=now - i * interval_sec, value=value, synthetic=i != 0))

        with self._lock:
            self._buffer.clear()
            self._buffer.extend(points)

        logger.info(f"Backfilled {count} synthetic samples ending at {seed}")
        return points

    def latest(self) -> PricePoint | None:
        with self._lock:
            if not self._buffer:
                return None
            return self._buffer[-1]

    def oldest(self) -> PricePoint | None:
        with self._lock:
            if not self._buffer:
                return None
            return self._buffer[0]

    def get_latest(self, n: int | None = None) -> list[PricePoint]:
        """
        Get latest N samples (or all if n=None), newest last
        """
        with self._lock:
            if n is None:
                return list(self._buffer)
            if n <= 0:
                return []
            return list(self._buffer)[-n:]

    def get_all(self) -> list[PricePoint]:
        with self._lock:
            return list(self._buffer)

    def values(self, n: int | None = None) -> list[Decimal]:
        return [p.value for p in self.get_latest(n)]

    def clear(self):
        with self._lock:
            self._buffer.clear()
            logger.debug("PriceHistoryBuffer cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)

    def __bool__(self) -> bool:
        return len(self) > 0

    def __repr__(self) -> str:
        with self._lock:
            return (
                f"PriceHistoryBuffer(size={len(self._buffer)}/{self.max_size}, "
                f"latest={self._buffer[-1].value if self._buffer else None})"
            )
