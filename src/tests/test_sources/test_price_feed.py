"""
Tests for the price feed adapter, the CoinGecko source and the synthetic walk
"""

from decimal import Decimal
from unittest.mock import MagicMock

import numpy as np
import pytest
import requests

from models import Asset, FeedMode
from sources.price_feed import (
    CoinGeckoPriceSource,
    PriceFeedAdapter,
    PriceSource,
    SyntheticPriceGenerator,
)

CELO = Asset(symbol="CELO", name="Celo Native", coingecko_id="celo")


def mock_session(json_data=None, exc=None, status_exc=None):
    session = MagicMock()
    session.headers = {}
    if exc is not None:
        session.get.side_effect = exc
    else:
        response = MagicMock()
        response.json.return_value = json_data
        if status_exc is not None:
            response.raise_for_status.side_effect = status_exc
        session.get.return_value = response
    return session


class StubSource(PriceSource):
    """Returns queued prices; None simulates an outage"""

    def __init__(self, prices):
        self.prices = list(prices)
        self.calls = 0

    def get_price(self, asset):
        self.calls += 1
        return self.prices.pop(0) if self.prices else None


class TestCoinGeckoPriceSource:
    def test_parses_usd_price(self):
        session = mock_session({"celo": {"usd": 0.6512}})
        source = CoinGeckoPriceSource(session=session, timeout=3)

        assert source.get_price(CELO) == Decimal("0.6512")
        session.get.assert_called_once_with(
            "https://api.coingecko.com/api/v3/simple/price",
            params={"ids": "celo", "vs_currencies": "usd"},
            timeout=3,
        )

    def test_network_error_returns_none(self):
        source = CoinGeckoPriceSource(session=mock_session(exc=requests.ConnectionError("down")))

        assert source.get_price(CELO) is None

    def test_http_error_returns_none(self):
        session = mock_session({}, status_exc=requests.HTTPError("429 Too Many Requests"))

        assert CoinGeckoPriceSource(session=session).get_price(CELO) is None

    @pytest.mark.parametrize("payload", [{}, {"celo": {}}, {"celo": {"usd": 0}}, {"celo": {"usd": None}}, []])
    def test_unusable_payload_returns_none(self, payload):
        assert CoinGeckoPriceSource(session=mock_session(payload)).get_price(CELO) is None

    def test_invalid_json_returns_none(self):
        session = mock_session()
        session.get.return_value.json.side_effect = ValueError("no json")

        assert CoinGeckoPriceSource(session=session).get_price(CELO) is None


class TestSyntheticPriceGenerator:
    def test_step_bounded_by_volatility(self):
        generator = SyntheticPriceGenerator(volatility=0.0005, rng=np.random.default_rng(0))
        price = Decimal("100")

        for _ in range(200):
            nxt = generator.next_price(price)
            assert abs(nxt - price) <= price * Decimal("0.0005") + Decimal("1e-9")
            price = nxt

    def test_floor_at_min_price(self):
        generator = SyntheticPriceGenerator(volatility=0.9, min_price=Decimal("0.01"), rng=np.random.default_rng(0))

        prices = [generator.next_price(Decimal("0.02")) for _ in range(100)]

        assert min(prices) == Decimal("0.01")

    def test_sub_cent_price_stays_on_its_scale(self):
        generator = SyntheticPriceGenerator(volatility=0.0005, min_price=Decimal("0.01"), rng=np.random.default_rng(0))
        price = Decimal("0.00001")

        for _ in range(200):
            nxt = generator.next_price(price)
            assert abs(nxt - price) <= price * Decimal("0.0005") + Decimal("1e-15")
            price = nxt

        assert Decimal("0.000005") < price < Decimal("0.00002")

    def test_sub_cent_floor_is_half_the_price(self):
        generator = SyntheticPriceGenerator(volatility=0.9, min_price=Decimal("0.01"), rng=np.random.default_rng(0))
        price = Decimal("0.00002")

        prices = [generator.next_price(price) for _ in range(100)]

        assert min(prices) == Decimal("0.00001")
        assert max(prices) < Decimal("0.00004")

    def test_invalid_volatility(self):
        with pytest.raises(ValueError):
            SyntheticPriceGenerator(volatility=0)


class TestPriceFeedAdapter:
    def make(self, source, clock):
        return PriceFeedAdapter(
            source,
            SyntheticPriceGenerator(rng=np.random.default_rng(0)),
            clock=clock,
            live_interval_sec=10,
            synthetic_interval_sec=1,
            live_retry_sec=60,
        )

    def test_live_price_used(self, clock):
        adapter = self.make(StubSource([Decimal("0.70")]), clock)

        price, mode = adapter.next_price(CELO, Decimal("0.65"))

        assert price == Decimal("0.70")
        assert mode == FeedMode.LIVE
        assert adapter.poll_interval() == 10

    def test_falls_back_to_synthetic_on_failure(self, clock):
        adapter = self.make(StubSource([]), clock)

        price, mode = adapter.next_price(CELO, Decimal("0.65"))

        assert mode == FeedMode.SYNTHETIC
        assert adapter.mode == FeedMode.SYNTHETIC
        assert abs(price - Decimal("0.65")) <= Decimal("0.65") * Decimal("0.0005") + Decimal("1e-9")
        assert adapter.poll_interval() == 1

    def test_retries_live_only_after_retry_window(self, clock):
        source = StubSource([None])
        adapter = self.make(source, clock)
        adapter.next_price(CELO, Decimal("1"))
        assert source.calls == 1

        clock.advance(30)
        adapter.next_price(CELO, Decimal("1"))
        assert source.calls == 1

        source.prices = [Decimal("1.2")]
        clock.advance(30)
        price, mode = adapter.next_price(CELO, Decimal("1"))

        assert source.calls == 2
        assert mode == FeedMode.LIVE
        assert price == Decimal("1.2")

    def test_reset_forces_live_attempt(self, clock):
        source = StubSource([None, Decimal("2")])
        adapter = self.make(source, clock)
        adapter.next_price(CELO, Decimal("1"))

        adapter.reset()
        _, mode = adapter.next_price(CELO, Decimal("1"))

        assert mode == FeedMode.LIVE
        assert source.calls == 2

    def test_without_live_source_always_synthetic(self, clock):
        adapter = self.make(None, clock)

        _, mode = adapter.next_price(CELO, Decimal("1"))

        assert mode == FeedMode.SYNTHETIC
        assert adapter.stats["synthetic_samples"] == 1
        assert adapter.stats["live_failures"] == 0
