from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from app.services.connectors.base import ExternalCandidate

logger = logging.getLogger(__name__)

CacheKey = tuple[str, str]


@dataclass(frozen=True)
class CacheEntry:
    candidates: tuple[ExternalCandidate, ...]
    expires_at: float


def cache_key(query_text: str, source: str) -> CacheKey:
    return (query_text.strip().lower(), source)


class ResponseCache:
    """TTL cache of external answers keyed by (normalized query, source).

    Reads take no lock: entries are immutable and the dict is only ever
    rebound per key, so a concurrent writer on the same key simply wins.
    Expired entries are dropped on read or by ``sweep``.
    """

    def __init__(
        self,
        *,
        default_ttl: float = 300.0,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self.max_entries = max(1, max_entries)
        self._clock = clock
        self._entries: dict[CacheKey, CacheEntry] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: CacheKey) -> list[ExternalCandidate] | None:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if self._clock() >= entry.expires_at:
            self._entries.pop(key, None)
            self.misses += 1
            return None
        self.hits += 1
        return list(entry.candidates)

    def put(self, key: CacheKey, candidates: list[ExternalCandidate], ttl: float | None = None) -> None:
        lifetime = self.default_ttl if ttl is None else ttl
        if lifetime <= 0:
            return
        self._entries[key] = CacheEntry(candidates=tuple(candidates), expires_at=self._clock() + lifetime)
        if len(self._entries) > self.max_entries:
            self._evict_overflow()

    def _evict_overflow(self) -> None:
        self.sweep()
        overflow = len(self._entries) - self.max_entries
        if overflow <= 0:
            return
        oldest = sorted(self._entries.items(), key=lambda item: item[1].expires_at)[:overflow]
        for key, _ in oldest:
            self._entries.pop(key, None)
        logger.debug("Evicted %s cache entries over the %s entry cap", len(oldest), self.max_entries)

    def sweep(self) -> int:
        now = self._clock()
        expired = [key for key, entry in list(self._entries.items()) if now >= entry.expires_at]
        for key in expired:
            self._entries.pop(key, None)
        if expired:
            logger.debug("Swept %s expired cache entries", len(expired))
        return len(expired)
