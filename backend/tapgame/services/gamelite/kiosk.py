import json
import logging
import queue
import time
from typing import Any, Dict, Iterator, Optional

from .bus import LiveEventBus
from .config import normalize_label


KEEPALIVE_FRAME = ':keepalive\n\n'


def sse_frame(event: str, data: Dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


class KioskStream:
    """One display's live feed of taps for a single cluster, as SSE frames.

    Subscribes on construction so taps published before the first read are
    buffered. The bus callback never blocks: when the buffer is full the tap
    is dropped.
    """

    def __init__(
        self,
        bus: LiveEventBus,
        cluster: str,
        heartbeat_sec: float = 20,
        max_queue: int = 100,
        logger: Optional[logging.Logger] = None,
    ):
        self.cluster = normalize_label(cluster)
        self.heartbeat_sec = heartbeat_sec
        self.logger = logger or logging.getLogger(__name__)
        self._queue: queue.Queue = queue.Queue(maxsize=max_queue)
        self._subscription = bus.subscribe(self._on_event)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _on_event(self, event: Dict[str, Any]) -> None:
        if not event or normalize_label(event.get('label')) != self.cluster:
            return
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            self.logger.warning(f"[kiosk-drop] cluster={self.cluster} display buffer full")

    def events(self) -> Iterator[str]:
        # Keep-alives go out on a fixed schedule, busy or not
        next_beat = time.monotonic() + self.heartbeat_sec
        try:
            yield sse_frame('hello', {'ok': True, 'cluster': self.cluster})
            while not self._closed:
                remaining = next_beat - time.monotonic()
                if remaining <= 0:
                    next_beat = time.monotonic() + self.heartbeat_sec
                    yield KEEPALIVE_FRAME
                    continue
                try:
                    event = self._queue.get(timeout=remaining)
                except queue.Empty:
                    continue
                yield sse_frame('tap', event)
        finally:
            self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._subscription.unsubscribe()
        self.logger.debug(f"[kiosk-close] cluster={self.cluster}")
