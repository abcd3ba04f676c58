from __future__ import annotations

import threading
import time
from collections.abc import Callable

from app.config import Settings
from app.services.circuit_breaker import CircuitBreaker
from app.services.rate_limiter import TokenBucket


class SourceStateRegistry:
    """Process-wide breaker and limiter state, keyed by source name.

    Each source gets its own breaker and bucket on first use; the registry
    lock only guards that creation, never a call.
    """

    def __init__(
        self,
        *,
        failure_threshold: int = 5,
        open_duration: float = 30.0,
        failure_window: float = 60.0,
        rate_capacity: int = 10,
        rate_refill: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.open_duration = open_duration
        self.failure_window = failure_window
        self.rate_capacity = rate_capacity
        self.rate_refill = rate_refill
        self._clock = clock
        self._lock = threading.Lock()
        self._breakers: dict[str, CircuitBreaker] = {}
        self._limiters: dict[str, TokenBucket] = {}

    @classmethod
    def from_settings(cls, settings: Settings, *, clock: Callable[[], float] = time.monotonic) -> "SourceStateRegistry":
        return cls(
            failure_threshold=settings.breaker_failure_threshold,
            open_duration=settings.breaker_open_seconds,
            failure_window=settings.breaker_failure_window_seconds,
            rate_capacity=settings.rate_limit_capacity,
            rate_refill=settings.rate_limit_refill_per_second,
            clock=clock,
        )

    def breaker(self, source: str) -> CircuitBreaker:
        breaker = self._breakers.get(source)
        if breaker is not None:
            return breaker
        with self._lock:
            return self._breakers.setdefault(
                source,
                CircuitBreaker(
                    source,
                    failure_threshold=self.failure_threshold,
                    open_duration=self.open_duration,
                    failure_window=self.failure_window,
                    clock=self._clock,
                ),
            )

    def limiter(self, source: str) -> TokenBucket:
        limiter = self._limiters.get(source)
        if limiter is not None:
            return limiter
        with self._lock:
            return self._limiters.setdefault(
                source, TokenBucket(self.rate_capacity, self.rate_refill, clock=self._clock)
            )

    def find_breaker(self, source: str) -> CircuitBreaker | None:
        return self._breakers.get(source)

    def find_limiter(self, source: str) -> TokenBucket | None:
        return self._limiters.get(source)

    def sources(self) -> list[str]:
        with self._lock:
            return sorted(set(self._breakers) | set(self._limiters))
