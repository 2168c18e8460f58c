from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable


class EventDeduplicator:
    """Remembers event ids for a rolling window.

    Each id expires on its own; expired ids are swept from the oldest end on
    every call, so the window never empties all at once.
    """

    def __init__(
        self, ttl_seconds: float = 3600.0, clock: Callable[[], float] = time.monotonic
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._seen: OrderedDict[str, float] = OrderedDict()
        self._lock = threading.Lock()

    def should_process(self, event_id: str) -> bool:
        with self._lock:
            now = self._clock()
            self._sweep(now)
            if event_id in self._seen:
                return False
            self._seen[event_id] = now
            return True

    def __len__(self) -> int:
        with self._lock:
            self._sweep(self._clock())
            return len(self._seen)

    def _sweep(self, now: float) -> None:
        cutoff = now - self._ttl_seconds
        while self._seen:
            _, seen_at = next(iter(self._seen.items()))
            if seen_at > cutoff:
                break
            self._seen.popitem(last=False)
