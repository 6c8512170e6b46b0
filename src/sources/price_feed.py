"""
Price Feed Adapter

Produces the next price sample for the selected asset. The live source is
CoinGecko's `simple/price` endpoint; when it is unavailable the adapter
degrades to a synthetic random walk and periodically retries the live
source until it answers again.

No method here raises on network trouble: failures are logged and turned
into a synthetic sample.
"""

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from decimal import Decimal

import numpy as np
import requests

from models import Asset, FeedMode, to_price

logger = logging.getLogger(__name__)

COINGECKO_BASE_URL = "https://api.coingecko.com/api/v3"
DEFAULT_TIMEOUT = 5.0


class PriceSource(ABC):
    """A source of spot prices"""

    @abstractmethod
    def get_price(self, asset: Asset) -> Decimal | None:
        """Latest USD price, or None if unavailable"""


class CoinGeckoPriceSource(PriceSource):
    """Spot prices from the public CoinGecko REST API (no key needed)"""

    def __init__(
        self,
        base_url: str = COINGECKO_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.setdefault("Accept", "application/json")

    def get_price(self, asset: Asset) -> Decimal | None:
        try:
            resp = self._session.get(
                f"{self.base_url}/simple/price",
                params={"ids": asset.coingecko_id, "vs_currencies": "usd"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except requests.RequestException as e:
            # 429s are common on the free tier
            logger.warning(f"CoinGecko request for {asset.symbol} failed: {e}")
            return None
        except ValueError as e:
            logger.warning(f"CoinGecko returned invalid JSON for {asset.symbol}: {e}")
            return None

        try:
            raw = data[asset.coingecko_id]["usd"]
        except (KeyError, TypeError):
            logger.warning(f"CoinGecko response has no USD price for {asset.coingecko_id}")
            return None

        price = to_price(raw)
        if price is None:
            logger.warning(f"CoinGecko returned unusable price for {asset.symbol}: {raw!r}")
        return price

    def close(self):
        self._session.close()


class SyntheticPriceGenerator:
    """
    Random walk used when no live price is available

    next = max(floor, price + uniform(-price * volatility, price * volatility))

    The floor is `min_price`, or half the current price for assets already
    quoted below it, so sub-cent prices keep their own scale.
    """

    def __init__(
        self,
        volatility: float = 0.0005,
        min_price: Decimal = Decimal("0.01"),
        rng: np.random.Generator | None = None,
    ):
        if volatility <= 0:
            raise ValueError(f"volatility must be positive, got {volatility}")
        self.volatility = volatility
        self.min_price = min_price
        self._rng = rng if rng is not None else np.random.default_rng()

    def next_price(self, price: Decimal) -> Decimal:
        current = float(price)
        bound = current * self.volatility
        candidate = Decimal(str(current + self._rng.uniform(-bound, bound)))
        floor = min(self.min_price, price / 2)
        return max(floor, candidate)


class PriceFeedAdapter:
    """
    Chooses between the live source and the synthetic generator

    Mode transitions:
    - LIVE -> SYNTHETIC as soon as a live fetch fails
    - SYNTHETIC -> LIVE when a retry (every `live_retry_sec`) succeeds
    """

    def __init__(
        self,
        live_source: PriceSource | None,
        generator: SyntheticPriceGenerator,
        clock: Callable[[], float] = time.time,
        live_interval_sec: float = 10.0,
        synthetic_interval_sec: float = 1.0,
        live_retry_sec: float = 60.0,
    ):
        self.live_source = live_source
        self.generator = generator
        self._clock = clock
        self.live_interval_sec = live_interval_sec
        self.synthetic_interval_sec = synthetic_interval_sec
        self.live_retry_sec = live_retry_sec

        self.mode = FeedMode.LIVE if live_source is not None else FeedMode.SYNTHETIC
        self._last_live_attempt: float | None = None
        self.stats = {"live_samples": 0, "synthetic_samples": 0, "live_failures": 0}

    def next_price(self, asset: Asset, current_price: Decimal) -> tuple[Decimal, FeedMode]:
        """
        Produce the next sample

        Args:
            asset: Asset to price
            current_price: Last known price, seed for the synthetic walk

        Returns:
            (price, mode the price came from)
        """
        if self._should_try_live():
            self._last_live_attempt = self._clock()
            price = self.live_source.get_price(asset)
            if price is not None:
                if self.mode != FeedMode.LIVE:
                    logger.info(f"Live feed recovered for {asset.symbol}")
                self.mode = FeedMode.LIVE
                self.stats["live_samples"] += 1
                return price, FeedMode.LIVE

            self.stats["live_failures"] += 1
            if self.mode == FeedMode.LIVE:
                logger.warning(
                    f"Live feed unavailable for {asset.symbol}, falling back to synthetic "
                    f"(retry in {self.live_retry_sec:.0f}s)"
                )
            self.mode = FeedMode.SYNTHETIC

        self.stats["synthetic_samples"] += 1
        return self.generator.next_price(current_price), FeedMode.SYNTHETIC

    def poll_interval(self) -> float:
        """Seconds to wait before the next sample in the current mode"""
        if self.mode == FeedMode.LIVE:
            return self.live_interval_sec
        return self.synthetic_interval_sec

    def reset(self):
        """Try the live source on the next call (used after an asset switch)"""
        self._last_live_attempt = None

    def _should_try_live(self) -> bool:
        if self.live_source is None:
            return False
        if self.mode == FeedMode.LIVE or self._last_live_attempt is None:
            return True
        return self._clock() - self._last_live_attempt >= self.live_retry_sec
