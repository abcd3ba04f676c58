"""Non-blocking token bucket, one per external source."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable


class TokenBucket:
    """Allows bursts up to ``capacity`` and refills at ``refill_rate`` tokens per second.

    ``try_acquire`` never waits: a caller that finds the bucket empty treats the
    source as unavailable for this request instead of queueing behind it.
    """

    __slots__ = ("capacity", "refill_rate", "_tokens", "_last", "_lock", "_clock")

    def __init__(
        self,
        capacity: int,
        refill_rate: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.capacity = max(1, int(capacity))
        self.refill_rate = max(0.01, float(refill_rate))
        self._clock = clock
        self._tokens = float(self.capacity)
        self._last = clock()
        self._lock = threading.Lock()

    def _refill(self, now: float) -> None:
        elapsed = max(0.0, now - self._last)
        self._last = now
        self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_rate)

    def try_acquire(self, n: float = 1.0) -> bool:
        with self._lock:
            self._refill(self._clock())
            if self._tokens >= n:
                self._tokens -= n
                return True
            return False

    @property
    def tokens(self) -> float:
        """Current token estimate, refilled up to now."""
        with self._lock:
            self._refill(self._clock())
            return self._tokens
