"""
Engine Runner - the two periodic triggers that drive the game

Price loop: fetch the next sample (live or synthetic) outside the controller
lock, then hand it to the controller tagged with the asset generation read
before the fetch. Samples for an asset that was switched away mid-fetch are
dropped by the controller.

Expiry loop: ask the controller to settle the current round once per
interval. Settlement is idempotent, so the cadence only bounds latency.

Usage:
    runner = EngineRunner(controller, feed)
    runner.start()
    ...
    runner.stop()
"""

import logging
import threading

from core.game_controller import GameController
from models import FeedMode
from sources.price_feed import PriceFeedAdapter

from .event_bus import EventBus, Events

logger = logging.getLogger(__name__)


class EngineRunner:
    """Owns the price and expiry daemon threads"""

    def __init__(
        self,
        controller: GameController,
        feed: PriceFeedAdapter,
        expiry_interval_sec: float = 1.0,
        bus: EventBus | None = None,
    ):
        if expiry_interval_sec <= 0:
            raise ValueError(f"expiry_interval_sec must be positive, got {expiry_interval_sec}")

        self.controller = controller
        self.feed = feed
        self.expiry_interval_sec = expiry_interval_sec
        self._bus = bus

        self._stop_event = threading.Event()
        # Cuts the price loop's wait short (asset switch, shutdown)
        self._wake_event = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def is_running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self):
        if self.is_running:
            logger.warning("EngineRunner already started")
            return

        self._stop_event.clear()
        self._wake_event.clear()
        if self._bus is not None:
            self._bus.subscribe(Events.ASSET_CHANGED, self._on_asset_changed)

        self._threads = [
            threading.Thread(target=self._price_loop, name="price-loop", daemon=True),
            threading.Thread(target=self._expiry_loop, name="expiry-loop", daemon=True),
        ]
        for thread in self._threads:
            thread.start()
        logger.info(f"EngineRunner started (feed mode {self.feed.mode.value})")

    def stop(self, timeout: float = 5.0):
        self._stop_event.set()
        self._wake_event.set()
        if self._bus is not None:
            self._bus.unsubscribe(Events.ASSET_CHANGED, self._on_asset_changed)

        for thread in self._threads:
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.error(f"{thread.name} did not stop within {timeout}s")
        self._threads = []
        logger.info("EngineRunner stopped")

    # ========== Single steps (also used directly by tests) ==========

    def tick_price(self) -> bool:
        """Fetch one sample and feed it to the controller"""
        asset, generation = self.controller.current_asset_and_generation()
        price, mode = self.feed.next_price(asset, self.controller.current_price)
        self.controller.set_feed_mode(mode)
        return self.controller.update_price(
            price,
            asset=asset.symbol,
            generation=generation,
            synthetic=mode == FeedMode.SYNTHETIC,
        )

    def tick_expiry(self):
        return self.controller.check_round_expiry()

    # ========== Loops ==========

    def _price_loop(self):
        while not self._stop_event.is_set():
            try:
                self.tick_price()
            except Exception as e:
                logger.error(f"Price tick failed: {e}", exc_info=True)

            self._wake_event.wait(self.feed.poll_interval())
            self._wake_event.clear()

    def _expiry_loop(self):
        while not self._stop_event.wait(self.expiry_interval_sec):
            try:
                self.tick_expiry()
            except Exception as e:
                logger.error(f"Expiry check failed: {e}", exc_info=True)

    def _on_asset_changed(self, event: dict):
        self.feed.reset()
        self._wake_event.set()
