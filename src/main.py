"""
Main Entry Point for the Pulse round engine

Wires logging, configuration, the game controller, the background runner
and the HTTP API, then serves until interrupted.
"""

__version__ = "0.1.0"

import argparse
import logging
import signal
import sys

import numpy as np

from api.app import create_app
from config import ConfigError, config
from core.game_controller import GameController
from services.engine_runner import EngineRunner
from services.event_bus import Events, event_bus
from services.logger import cleanup_logging, setup_logging
from sources.price_feed import CoinGeckoPriceSource, PriceFeedAdapter, SyntheticPriceGenerator
from sources.sentiment import SentimentAnalyzer


def load_configuration(config_file: str | None = None, cfg=config) -> logging.Logger:
    """
    Load the settings file, then configure logging from the result

    The file is read before any handler exists so its LOGGING section
    applies from the first record on.
    """
    if config_file:
        cfg.load_from_file(config_file)
    logger = setup_logging(cfg=cfg)
    if config_file:
        logger.info(f"Loaded configuration from {config_file}")
    return logger


class Application:
    """
    Main application controller
    Builds every component once and owns their lifecycle
    """

    def __init__(self, offline: bool = False, seed: int | None = None, config_file: str | None = None):
        self.logger = load_configuration(config_file)
        self.logger.info("=" * 60)
        self.logger.info(f"Pulse round engine {__version__} - starting")
        self.logger.info(f"MODE: {'SYNTHETIC ONLY' if offline else 'LIVE WITH SYNTHETIC FALLBACK'}")
        self.logger.info("=" * 60)

        config.validate()
        self.logger.info("Configuration validated successfully")

        self.event_bus = event_bus
        self.event_bus.start()

        # One generator per thread of use
        history_rng, walk_rng, sentiment_rng = (
            np.random.default_rng(s) for s in np.random.SeedSequence(seed).spawn(3)
        )
        feed_cfg = config.section("price_feed")
        sentiment_cfg = config.section("sentiment")
        timeout = config.get("network", "timeout")

        self.controller = GameController(cfg=config, rng=history_rng, bus=self.event_bus)

        live_source = None
        if not offline:
            live_source = CoinGeckoPriceSource(feed_cfg["coingecko_base_url"], timeout=timeout)
        self.feed = PriceFeedAdapter(
            live_source,
            SyntheticPriceGenerator(feed_cfg["synthetic_volatility"], feed_cfg["min_price"], rng=walk_rng),
            live_interval_sec=feed_cfg["live_interval_sec"],
            synthetic_interval_sec=feed_cfg["synthetic_interval_sec"],
            live_retry_sec=feed_cfg["live_retry_sec"],
        )
        self.runner = EngineRunner(
            self.controller,
            self.feed,
            expiry_interval_sec=config.get("game_rules", "expiry_check_interval_sec"),
            bus=self.event_bus,
        )
        self.analyzer = SentimentAnalyzer(
            api_key=sentiment_cfg["api_key"],
            model=sentiment_cfg["model"],
            base_url=sentiment_cfg["base_url"],
            history_points=sentiment_cfg["history_points"],
            timeout=timeout,
            simulated_delay_sec=sentiment_cfg["simulated_delay_sec"],
            rng=sentiment_rng,
        )
        if self.analyzer.simulated:
            self.logger.warning("No Gemini API key configured, sentiment analysis is simulated")

        self.app = create_app(self.controller, self.analyzer, cfg=config)
        self._setup_event_handlers()

    def _setup_event_handlers(self):
        self.event_bus.subscribe(Events.ROUND_SETTLED, self._handle_round_settled)
        self.event_bus.subscribe(Events.ROUND_VOIDED, self._handle_round_voided)
        self.event_bus.subscribe(Events.FEED_MODE_CHANGED, self._handle_feed_mode_changed)

    def _handle_round_settled(self, event):
        data = event.get("data", {})
        self.logger.info(
            f"Round {data.get('id')} closed at {data.get('close_price')} "
            f"(winner {data.get('winner')}, pool {data.get('total_pool')})"
        )

    def _handle_round_voided(self, event):
        data = event.get("data", {})
        self.logger.warning(
            f"Round {data.get('id')} on {data.get('asset')} voided, "
            f"{data.get('total_pool')} refundable"
        )

    def _handle_feed_mode_changed(self, event):
        data = event.get("data", {})
        self.logger.warning(f"Price feed switched to {data.get('to')}")

    def run(self, host: str, port: int):
        self.runner.start()
        self.logger.info(f"Serving API on http://{host}:{port}")
        self.app.run(host=host, port=port, threaded=True, use_reloader=False)

    def shutdown(self):
        self.logger.info("Shutting down application...")
        try:
            self.runner.stop()
            stats = self.controller.get_user_stats()
            self.logger.info(f"Final session stats: {stats.to_dict()}")
            self.event_bus.stop()
        finally:
            self.logger.info("Application shutdown complete")
            cleanup_logging()


def main():
    parser = argparse.ArgumentParser(
        description="Pulse - up/down price prediction rounds",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                      # Live CoinGecko prices, synthetic fallback
  %(prog)s --offline --seed 7   # Reproducible synthetic prices only
  %(prog)s --port 8080 --config settings.json
        """,
    )
    parser.add_argument("--offline", action="store_true", help="Never call the live price API")
    parser.add_argument("--seed", type=int, default=None, help="Seed for the synthetic random walks")
    parser.add_argument("--config", dest="config_file", help="JSON settings file to load")
    parser.add_argument("--host", default=config.get("api", "host"))
    parser.add_argument("--port", type=int, default=config.get("api", "port"))
    args = parser.parse_args()

    # Flask's server exits on SIGINT; translate SIGTERM the same way
    signal.signal(signal.SIGTERM, lambda signum, frame: sys.exit(0))

    app = None
    try:
        app = Application(offline=args.offline, seed=args.seed, config_file=args.config_file)
        app.run(args.host, args.port)
    except ConfigError as e:
        logging.critical(f"Configuration validation failed: {e}")
        sys.exit(2)
    except KeyboardInterrupt:
        print("\nInterrupted by user")
    finally:
        if app is not None:
            app.shutdown()


if __name__ == "__main__":
    main()
