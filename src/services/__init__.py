"""Services package - event bus, logging and the background engine runner.

Keep this module lightweight: the runner imports the core and the price
sources, so it is not re-exported here.
"""

from .event_bus import EventBus, Events, event_bus
from .logger import cleanup_logging, get_logger, setup_logging

__all__ = ["EventBus", "Events", "cleanup_logging", "event_bus", "get_logger", "setup_logging"]
