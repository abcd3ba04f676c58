from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from app.enums import CircuitState
from app.services.utils import now_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BreakerSnapshot:
    source: str
    state: CircuitState
    consecutive_failures: int
    last_transition_at: datetime
    opened_at: float | None
    trial_in_flight: bool


class CircuitBreaker:
    """Per-source breaker.

    CLOSED keeps the timestamps of failures since the last success and opens
    once ``failure_threshold`` of them fall inside ``failure_window``. OPEN
    rejects until ``open_duration`` has passed; the first caller after that
    moves it to HALF_OPEN and holds the only trial slot. The trial outcome
    closes it again or re-opens it with a fresh ``opened_at``. Every
    transition happens under the breaker's own lock, so sources never
    contend with each other.
    """

    def __init__(
        self,
        source: str,
        *,
        failure_threshold: int = 5,
        open_duration: float = 30.0,
        failure_window: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self.failure_threshold = max(1, failure_threshold)
        self.open_duration = open_duration
        self.failure_window = failure_window
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.closed
        self._failures: deque[float] = deque()
        self._opened_at: float | None = None
        self._trial_in_flight = False
        self._last_transition_at = now_utc()

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    @property
    def consecutive_failures(self) -> int:
        with self._lock:
            return len(self._failures)

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._last_transition_at = now_utc()
        if new_state == CircuitState.open:
            logger.warning(
                "Circuit for %s %s -> %s after %s consecutive failures",
                self.source,
                old_state.value,
                new_state.value,
                len(self._failures),
            )
        else:
            logger.info("Circuit for %s %s -> %s", self.source, old_state.value, new_state.value)

    def _open(self, now: float) -> None:
        self._opened_at = now
        self._trial_in_flight = False
        self._transition(CircuitState.open)

    def allow_request(self) -> bool:
        with self._lock:
            if self._state == CircuitState.closed:
                return True
            if self._state == CircuitState.open:
                opened_at = self._opened_at if self._opened_at is not None else self._clock()
                if self._clock() < opened_at + self.open_duration:
                    return False
                self._transition(CircuitState.half_open)
                self._trial_in_flight = True
                return True
            if self._trial_in_flight:
                return False
            self._trial_in_flight = True
            return True

    def release(self) -> None:
        """Hand back a trial slot that was claimed but never used for a call."""
        with self._lock:
            if self._state == CircuitState.half_open:
                self._trial_in_flight = False

    def record_success(self) -> None:
        with self._lock:
            self._failures.clear()
            self._trial_in_flight = False
            if self._state != CircuitState.closed:
                self._opened_at = None
                self._transition(CircuitState.closed)

    def record_failure(self) -> None:
        with self._lock:
            now = self._clock()
            if self._state == CircuitState.half_open:
                self._failures.append(now)
                self._open(now)
                return
            if self._state == CircuitState.open:
                # A straggler from before the breaker opened; the open window stays as it is.
                return
            cutoff = now - self.failure_window
            while self._failures and self._failures[0] < cutoff:
                self._failures.popleft()
            self._failures.append(now)
            if len(self._failures) >= self.failure_threshold:
                self._open(now)

    def snapshot(self) -> BreakerSnapshot:
        with self._lock:
            return BreakerSnapshot(
                source=self.source,
                state=self._state,
                consecutive_failures=len(self._failures),
                last_transition_at=self._last_transition_at,
                opened_at=self._opened_at,
                trial_in_flight=self._trial_in_flight,
            )
