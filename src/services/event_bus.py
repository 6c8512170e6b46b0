"""
Event Bus Service - asynchronous fan-out of engine events

Key behaviors:
- Publishing never blocks the engine: events are queued and dispatched from
  a background thread
- Weak references for automatic subscriber cleanup
- No locks held during callback execution
- Failing callbacks are logged and counted, never re-raised
"""

import logging
import queue
import threading
import time
import weakref
from collections.abc import Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class Events(Enum):
    """Events published by the GameController and the runner"""

    # Round lifecycle
    ROUND_STARTED = "round.started"
    ROUND_LOCKED = "round.locked"
    ROUND_SETTLED = "round.settled"
    ROUND_VOIDED = "round.voided"

    # User actions
    BET_PLACED = "bet.placed"
    BET_REJECTED = "bet.rejected"
    REWARD_CLAIMED = "reward.claimed"

    # Market
    PRICE_UPDATED = "price.updated"
    FEED_MODE_CHANGED = "price.feed_mode_changed"

    # Selections
    ASSET_CHANGED = "settings.asset_changed"
    DURATION_CHANGED = "settings.duration_changed"


class EventBus:
    """
    Thread-safe event bus

    Callbacks receive a single dict: {"name": event.value, "data": data}.
    """

    def __init__(self, max_queue_size: int = 5000):
        # event -> [(callback_id, weakref or callback)]
        self._subscribers: dict[Events, list[tuple[Any, Any]]] = {}
        self._queue: queue.Queue = queue.Queue(maxsize=max_queue_size)
        self._processing = False
        self._thread: threading.Thread | None = None

        # Guards subscription lists only, never held while dispatching
        self._sub_lock = threading.RLock()

        self._stats = {
            "events_published": 0,
            "events_processed": 0,
            "events_dropped": 0,
            "errors": 0,
        }

        logger.info(f"EventBus initialized with queue size {max_queue_size}")

    @property
    def is_running(self) -> bool:
        return self._processing

    def start(self):
        """Start the dispatch thread"""
        if self._processing:
            return
        self._processing = True
        self._thread = threading.Thread(target=self._process_events, name="event-bus", daemon=True)
        self._thread.start()
        logger.info("EventBus started")

    def stop(self, timeout: float = 3.0):
        """Stop dispatching; events still queued are discarded"""
        if not self._processing:
            return
        self._processing = False

        # Wake the thread; make room for the sentinel if the queue is full
        for _ in range(10):
            try:
                self._queue.put(None, timeout=0.2)
                break
            except queue.Full:
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    time.sleep(0.05)
        else:
            logger.warning("Failed to send shutdown sentinel")

        if self._thread:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.error("EventBus thread did not stop within timeout")
            self._thread = None

        logger.info("EventBus stopped")

    def subscribe(self, event: Events, callback: Callable, weak: bool = True):
        """
        Subscribe to an event

        Args:
            event: Event to subscribe to
            callback: Called with {"name", "data"}
            weak: Hold a weak reference (bound methods and functions only;
                lambdas and partials are held strongly)
        """
        with self._sub_lock:
            entries = self._subscribers.setdefault(event, [])
            cb_id = self._callback_id(callback)
            for existing_id, ref in entries:
                if existing_id == cb_id and self._resolve_callback(ref) is not None:
                    logger.debug(f"Already subscribed to {event.value}, skipping duplicate")
                    return

            entries[:] = [(cid, ref) for cid, ref in entries if cid != cb_id]
            entries.append((cb_id, self._make_ref(callback) if weak else callback))
            logger.debug(f"Subscribed to {event.value}")

    def unsubscribe(self, event: Events, callback: Callable):
        with self._sub_lock:
            entries = self._subscribers.get(event)
            if not entries:
                return
            cb_id = self._callback_id(callback)
            remaining = [(cid, ref) for cid, ref in entries if cid != cb_id]
            if remaining:
                self._subscribers[event] = remaining
            else:
                self._subscribers.pop(event, None)
            logger.debug(f"Unsubscribed from {event.value}")

    def publish(self, event: Events, data: Any = None):
        """Queue an event for dispatch (drops it if the queue is full)"""
        try:
            self._queue.put_nowait((event, data))
            self._stats["events_published"] += 1

            qsize = self._queue.qsize()
            max_size = self._queue.maxsize
            if max_size > 0 and qsize > max_size * 0.8:
                logger.warning(f"EventBus queue at {qsize}/{max_size}")
        except queue.Full:
            self._stats["events_dropped"] += 1
            logger.warning(f"Event queue full, dropping event: {event.value}")

    def _process_events(self):
        while self._processing:
            try:
                item = self._queue.get(timeout=0.1)
            except queue.Empty:
                continue
            if item is None:
                break
            event, data = item
            self._dispatch(event, data)

    def _dispatch(self, event: Events, data: Any):
        callbacks = []
        with self._sub_lock:
            alive = []
            for cb_id, ref in self._subscribers.get(event, []):
                callback = self._resolve_callback(ref)
                if callback is not None:
                    callbacks.append(callback)
                    alive.append((cb_id, ref))
            if event in self._subscribers:
                self._subscribers[event] = alive

        for callback in callbacks:
            try:
                callback({"name": event.value, "data": data})
                self._stats["events_processed"] += 1
            except Exception as e:
                self._stats["errors"] += 1
                logger.error(f"Error in callback for {event.value}: {e}", exc_info=True)

    @staticmethod
    def _callback_id(callback: Callable):
        # Bound methods are recreated on every attribute access
        if hasattr(callback, "__self__") and hasattr(callback, "__func__"):
            return (id(callback.__self__), id(callback.__func__))
        return id(callback)

    @staticmethod
    def _make_ref(callback: Callable):
        if hasattr(callback, "__self__") and hasattr(callback, "__func__"):
            return weakref.WeakMethod(callback)
        try:
            return weakref.ref(callback)
        except TypeError:
            return callback

    @staticmethod
    def _resolve_callback(ref):
        if isinstance(ref, weakref.ReferenceType):
            return ref()
        return ref if callable(ref) else None

    def has_subscribers(self, event: Events) -> bool:
        with self._sub_lock:
            return any(
                self._resolve_callback(ref) is not None
                for _, ref in self._subscribers.get(event, [])
            )

    def get_stats(self) -> dict[str, Any]:
        with self._sub_lock:
            stats = {
                "subscriber_count": sum(len(entries) for entries in self._subscribers.values()),
                "event_types": len(self._subscribers),
                "queue_size": self._queue.qsize(),
                "processing": self._processing,
            }
            stats.update(self._stats)
            return stats

    def clear_all(self):
        """Drop every subscriber (tests and shutdown)"""
        with self._sub_lock:
            self._subscribers.clear()
            logger.debug("All subscribers cleared")


# Global instance
event_bus = EventBus()
