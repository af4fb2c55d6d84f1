import itertools
import logging
import threading
from typing import Any, Callable, Dict, Optional


Subscriber = Callable[[Dict[str, Any]], None]


class Subscription:
    """Handle returned by ``LiveEventBus.subscribe``."""

    def __init__(self, bus: 'LiveEventBus', token: int):
        self._bus = bus
        self._token = token

    @property
    def active(self) -> bool:
        return self._bus._has(self._token)

    def unsubscribe(self) -> None:
        self._bus._remove(self._token)


class LiveEventBus:
    """In-process fan-out of tap events to live listeners.

    Delivery is synchronous, at-most-once and single-process: nothing is
    stored, so a listener only sees events published while it is
    subscribed. Callbacks must not block; an exception from one callback is
    logged and does not stop delivery to the others.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._subscribers: Dict[int, Subscriber] = {}
        self._tokens = itertools.count(1)

    def subscribe(self, callback: Subscriber) -> Subscription:
        with self._lock:
            token = next(self._tokens)
            self._subscribers[token] = callback
        return Subscription(self, token)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: Dict[str, Any]) -> int:
        with self._lock:
            callbacks = list(self._subscribers.values())
        delivered = 0
        for callback in callbacks:
            try:
                callback(event)
                delivered += 1
            except Exception as exc:
                self.logger.warning(f"[bus-error] subscriber {callback!r} failed: {exc}")
        return delivered

    def _has(self, token: int) -> bool:
        with self._lock:
            return token in self._subscribers

    def _remove(self, token: int) -> None:
        with self._lock:
            self._subscribers.pop(token, None)
