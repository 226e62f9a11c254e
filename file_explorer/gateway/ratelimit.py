import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict


@dataclass
class _Window:
    started: float
    count: int


class RateLimiter:
    """
    Fixed-window request counter keyed by source address.

    hit() increments and checks under a single lock, so concurrent requests
    from one address are each counted exactly once.
    """

    def __init__(self, max_requests: int, window_sec: float,
                 clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_sec = window_sec
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()

    def hit(self, source: str) -> bool:
        """Counts one request. Returns False once the ceiling is exceeded."""
        now = self._clock()
        with self._lock:
            self._purge(now)
            window = self._windows.get(source)
            if window is None:
                window = _Window(started=now, count=0)
                self._windows[source] = window
            window.count += 1
            return window.count <= self.max_requests

    def count(self, source: str) -> int:
        now = self._clock()
        with self._lock:
            self._purge(now)
            window = self._windows.get(source)
            return window.count if window else 0

    def reset(self):
        with self._lock:
            self._windows.clear()

    def _purge(self, now: float):
        # Caller holds the lock
        cutoff = now - self.window_sec
        stale = [src for src, w in self._windows.items() if w.started <= cutoff]
        for src in stale:
            del self._windows[src]
