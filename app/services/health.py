from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from app.enums import CircuitState
from app.services.source_state import SourceStateRegistry
from app.services.utils import now_utc


@dataclass(frozen=True)
class SourceHealth:
    source: str
    state: CircuitState
    consecutive_failures: int
    last_transition_at: datetime
    available_tokens: float

    @property
    def healthy(self) -> bool:
        return self.state == CircuitState.closed


class HealthMonitor:
    """Read-only view over breaker and limiter state.

    Sources that have not been called yet report a closed breaker and a full
    bucket without being registered.
    """

    def __init__(self, registry: SourceStateRegistry, sources: Iterable[str] = ()) -> None:
        self.registry = registry
        self.configured = list(sources)

    def source_health(self, source: str) -> SourceHealth:
        breaker = self.registry.find_breaker(source)
        limiter = self.registry.find_limiter(source)
        tokens = limiter.tokens if limiter is not None else float(self.registry.rate_capacity)
        if breaker is None:
            return SourceHealth(
                source=source,
                state=CircuitState.closed,
                consecutive_failures=0,
                last_transition_at=now_utc(),
                available_tokens=round(tokens, 3),
            )
        snapshot = breaker.snapshot()
        return SourceHealth(
            source=source,
            state=snapshot.state,
            consecutive_failures=snapshot.consecutive_failures,
            last_transition_at=snapshot.last_transition_at,
            available_tokens=round(tokens, 3),
        )

    def snapshot(self) -> list[SourceHealth]:
        names = list(dict.fromkeys([*self.configured, *self.registry.sources()]))
        return [self.source_health(name) for name in names]

    def any_available(self) -> bool:
        return any(item.state != CircuitState.open for item in self.snapshot())
