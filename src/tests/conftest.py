"""
Shared test fixtures for pytest
"""

import time
from decimal import Decimal

import numpy as np
import pytest

from config import Config
from core import GameController, PositionBook, RoundLifecycleEngine, SettlementLedger
from models import Position, Round
from services import event_bus, setup_logging


class FakeClock:
    """Manually advanced clock (Unix seconds)"""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


def wait_for(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
    """Poll until predicate() is truthy (for assertions on background threads)"""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture(autouse=True, scope="session")
def setup_test_logging(tmp_path_factory):
    """Setup logging for all tests (log files go to a temp dir)"""
    setup_logging({"log_dir": str(tmp_path_factory.mktemp("logs")), "console_level": "WARNING"})


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def wait():
    return wait_for


@pytest.fixture
def test_config():
    """Fresh Config with defaults; tests override keys with cfg.set()"""
    cfg = Config(validate=False)
    cfg.set("sentiment", "simulated_delay_sec", 0)
    return cfg


@pytest.fixture
def make_controller(test_config, clock):
    """Factory: GameController with optional config overrides per section"""

    def _make(bus=None, seed: int = 42, **sections):
        for section, values in sections.items():
            for key, value in values.items():
                test_config.set(section, key, value)
        return GameController(
            cfg=test_config,
            clock=clock,
            rng=np.random.default_rng(seed),
            bus=bus,
        )

    return _make


@pytest.fixture
def controller(make_controller):
    """GameController with default rules, a fake clock and no event bus"""
    return make_controller()


@pytest.fixture
def ledger():
    return SettlementLedger()


@pytest.fixture
def book():
    return PositionBook()


@pytest.fixture
def engine(ledger, clock):
    return RoundLifecycleEngine(ledger=ledger, clock=clock, duration_sec=30)


@pytest.fixture
def live_round(clock):
    """Round 1 on CELO starting at 1.00, closing in 30s, empty pools"""
    now = clock()
    return Round(
        id=1,
        asset="CELO",
        start_time=now,
        lock_time=now + 30,
        close_time=now + 30,
        start_price=Decimal("1.00"),
    )


@pytest.fixture
def staked_round(live_round):
    """live_round with 80 on UP and 70 on DOWN"""
    return live_round.with_stake(Position.UP, Decimal("80")).with_stake(Position.DOWN, Decimal("70"))


@pytest.fixture(autouse=True)
def cleanup_event_bus():
    """Run the global event bus during each test, drop subscribers after"""
    if not event_bus.is_running:
        event_bus.start()

    yield

    event_bus.clear_all()
