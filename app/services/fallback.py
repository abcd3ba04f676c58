from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from app.enums import OriginSummary, SearchField, SortBy, SortOrder, SourceStatus
from app.services.cache import cache_key
from app.services.connectors.base import (
    ExternalCandidate,
    ExternalSourceClient,
    ExternalSourceError,
    SourceTimeout,
    SourceUnavailable,
)
from app.services.context import SearchContext
from app.services.merge import MergedResult, dedupe_candidates, from_local, merge_results, sort_results
from app.services.query import SearchQuery
from app.services.search import LocalRelevanceSearch
from app.services.utils import looks_like_isbn, normalize_isbn
from app.services.validation import require, validate_pagination

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = frozenset({SourceStatus.ok, SourceStatus.cached})

SourceCall = Callable[[ExternalSourceClient, float], Awaitable[list[ExternalCandidate]]]


@dataclass(frozen=True)
class SourceOutcome:
    source: str
    status: SourceStatus
    candidates: tuple[ExternalCandidate, ...] = ()
    error: str | None = None
    elapsed_ms: int | None = None


@dataclass(frozen=True)
class SearchOutcome:
    results: list[MergedResult]
    total_results: int
    query: str
    has_more: bool
    origin_summary: OriginSummary
    sources: dict[str, SourceOutcome] = field(default_factory=dict)


@dataclass(frozen=True)
class IsbnLookupOutcome:
    isbn: str
    candidates: list[ExternalCandidate]
    source: str | None
    sources: dict[str, SourceOutcome] = field(default_factory=dict)


@dataclass(frozen=True)
class FieldSearchOutcome:
    scope: SearchField
    value: str
    candidates: list[ExternalCandidate]
    sources: dict[str, SourceOutcome] = field(default_factory=dict)


def summarize(total: int, *, consulted: bool, outcomes: dict[str, SourceOutcome]) -> OriginSummary:
    if total == 0:
        return OriginSummary.empty
    if not consulted:
        return OriginSummary.local_only
    if any(outcome.status not in SUCCESS_STATUSES for outcome in outcomes.values()):
        return OriginSummary.merged_partial
    return OriginSummary.merged


class FallbackOrchestrator:
    """Runs the local search and, when it is thin, fans out to external sources.

    Holds no state of its own between requests; breakers, limiters and the
    response cache live on the shared ``SearchContext``.
    """

    def __init__(self, context: SearchContext, local_search: LocalRelevanceSearch) -> None:
        self.context = context
        self.local_search = local_search
        self.config = context.config

    def needs_external(self, local_total: int, *, include_external: bool) -> bool:
        if not self.context.clients:
            return False
        return include_external or local_total < self.config.sufficiency_threshold

    async def search(
        self,
        query: SearchQuery,
        *,
        include_external: bool = False,
        page: int = 1,
        size: int = 20,
        sort_by: SortBy = SortBy.relevance,
        sort_order: SortOrder = SortOrder.desc,
    ) -> SearchOutcome:
        validate_pagination(page, size, max_size=self.config.max_page_size)
        offset = (page - 1) * size

        # Catalog queries block; they run on a worker thread, never on the loop.
        if query.is_empty:
            local = await asyncio.to_thread(
                self.local_search.search, query, sort_by=sort_by, sort_order=sort_order, limit=size, offset=offset
            )
            window = [from_local(result) for result in local.results]
            return SearchOutcome(
                results=window,
                total_results=local.total,
                query=query.raw,
                has_more=offset + len(window) < local.total,
                origin_summary=summarize(local.total, consulted=False, outcomes={}),
            )

        local = await asyncio.to_thread(self.local_search.search, query)
        outcomes: dict[str, SourceOutcome] = {}
        consulted = self.needs_external(local.total, include_external=include_external)
        if consulted:
            outcomes = await self.gather_external(query)
            merged = merge_results(
                query,
                local.results,
                [
                    (priority, outcomes[client.source_name()].candidates)
                    for priority, client in enumerate(self.context.clients)
                ],
                strategy=self.context.strategy,
                baseline=self.config.baseline_score,
                priority_step=self.config.priority_step,
            )
        else:
            logger.debug("Local results sufficient for %r (%s), skipping external sources", query.raw, local.total)
            merged = [from_local(result) for result in local.results]

        ordered = sort_results(merged, sort_by, sort_order)
        total = len(ordered)
        window = ordered[offset : offset + size]
        summary = summarize(total, consulted=consulted, outcomes=outcomes)
        logger.info(
            "Search %r -> %s results (%s local) summary=%s sources=%s",
            query.raw,
            total,
            local.total,
            summary.value,
            {name: outcome.status.value for name, outcome in outcomes.items()},
        )
        return SearchOutcome(
            results=window,
            total_results=total,
            query=query.raw,
            has_more=offset + len(window) < total,
            origin_summary=summary,
            sources=outcomes,
        )

    def _admit(self, client: ExternalSourceClient, key_text: str) -> SourceOutcome | None:
        """Cache, breaker and limiter gate; returns an outcome when no call should be made."""
        name = client.source_name()
        cached = self.context.cache.get(cache_key(key_text, name))
        if cached is not None:
            logger.debug("Cache hit for %r from %s", key_text, name)
            return SourceOutcome(source=name, status=SourceStatus.cached, candidates=tuple(cached))

        breaker = self.context.registry.breaker(name)
        if not breaker.allow_request():
            logger.debug("Circuit for %s is %s, skipping", name, breaker.state.value)
            return SourceOutcome(
                source=name,
                status=SourceStatus.unavailable,
                error=str(SourceUnavailable(name, f"circuit {breaker.state.value}")),
            )

        if not self.context.registry.limiter(name).try_acquire():
            breaker.release()
            logger.debug("Rate limit exhausted for %s, skipping", name)
            return SourceOutcome(
                source=name,
                status=SourceStatus.rate_limited,
                error=str(SourceUnavailable(name, "rate limit exhausted")),
            )
        return None

    async def gather_external(self, query: SearchQuery) -> dict[str, SourceOutcome]:
        return await self._gather(query.text, query.raw, lambda client, timeout: client.fetch(query, timeout))

    async def _gather(self, key_text: str, label: str, call: SourceCall) -> dict[str, SourceOutcome]:
        outcomes: dict[str, SourceOutcome] = {}
        dispatch: list[ExternalSourceClient] = []
        for client in self.context.clients:
            gated = self._admit(client, key_text)
            if gated is None:
                dispatch.append(client)
            else:
                outcomes[client.source_name()] = gated

        if dispatch:
            await self._fan_out(key_text, label, dispatch, call, outcomes)
        return {name: outcomes[name] for name in self.context.source_names}

    async def _fan_out(
        self,
        key_text: str,
        label: str,
        clients: list[ExternalSourceClient],
        call: SourceCall,
        outcomes: dict[str, SourceOutcome],
    ) -> None:
        try:
            async with asyncio.timeout(self.config.overall_deadline):
                async with asyncio.TaskGroup() as group:
                    for client in clients:
                        group.create_task(self._call_source(client, key_text, label, call, outcomes))
        except TimeoutError:
            pending = [client.source_name() for client in clients if client.source_name() not in outcomes]
            logger.warning(
                "External search for %r hit the %.1fs deadline; abandoned %s",
                label,
                self.config.overall_deadline,
                pending,
            )
        finally:
            # Tasks cancelled before they started never used their trial slot.
            for client in clients:
                if client.source_name() not in outcomes:
                    self.context.registry.breaker(client.source_name()).release()
        for client in clients:
            outcomes.setdefault(
                client.source_name(),
                SourceOutcome(source=client.source_name(), status=SourceStatus.abandoned, error="deadline"),
            )

    async def _call_source(
        self,
        client: ExternalSourceClient,
        key_text: str,
        label: str,
        call: SourceCall,
        outcomes: dict[str, SourceOutcome],
    ) -> None:
        name = client.source_name()
        breaker = self.context.registry.breaker(name)
        started = time.monotonic()

        def elapsed() -> int:
            return int((time.monotonic() - started) * 1000)

        try:
            async with asyncio.timeout(self.config.call_timeout):
                candidates = await call(client, self.config.call_timeout)
        except asyncio.CancelledError:
            # Abandoned at the overall deadline; counts as a timeout for the breaker.
            breaker.record_failure()
            outcomes[name] = SourceOutcome(
                source=name, status=SourceStatus.abandoned, error="deadline", elapsed_ms=elapsed()
            )
            raise
        except (TimeoutError, SourceTimeout) as exc:
            breaker.record_failure()
            logger.warning("External source %s timed out for %r after %sms", name, label, elapsed())
            outcomes[name] = SourceOutcome(
                source=name, status=SourceStatus.timeout, error=str(exc) or "timeout", elapsed_ms=elapsed()
            )
        except ExternalSourceError as exc:
            breaker.record_failure()
            logger.warning("External source %s failed for %r: %s", name, label, exc)
            outcomes[name] = SourceOutcome(source=name, status=SourceStatus.fault, error=str(exc), elapsed_ms=elapsed())
        except Exception as exc:
            breaker.record_failure()
            logger.exception("Unexpected error from external source %s for %r", name, label)
            outcomes[name] = SourceOutcome(source=name, status=SourceStatus.fault, error=repr(exc), elapsed_ms=elapsed())
        else:
            breaker.record_success()
            self.context.cache.put(cache_key(key_text, name), candidates)
            logger.debug("External source %s returned %s candidates in %sms", name, len(candidates), elapsed())
            outcomes[name] = SourceOutcome(
                source=name, status=SourceStatus.ok, candidates=tuple(candidates), elapsed_ms=elapsed()
            )

    async def search_by_field(self, field: SearchField, value: str, *, limit: int | None = None) -> FieldSearchOutcome:
        """Title- or author-scoped search across every external source at once."""
        text = " ".join((value or "").split())
        require(bool(text), f"{field.value.capitalize()} must not be empty")
        require(
            len(text) <= self.config.max_query_length,
            f"{field.value.capitalize()} exceeds {self.config.max_query_length} characters",
        )
        limit = limit or self.config.max_page_size
        if not self.context.clients:
            return FieldSearchOutcome(scope=field, value=text, candidates=[])

        outcomes = await self._gather(
            f"{field.value}:{text}",
            text,
            lambda client, timeout: client.fetch_by_field(field, text, timeout),
        )
        candidates = dedupe_candidates(outcomes[name].candidates for name in self.context.source_names)
        logger.info("External %s search %r -> %s candidates", field.value, text, len(candidates))
        return FieldSearchOutcome(scope=field, value=text, candidates=candidates[:limit], sources=outcomes)

    async def lookup_isbn(self, isbn: str) -> IsbnLookupOutcome:
        """Ask sources one at a time, in priority order, until one knows the ISBN."""
        require(looks_like_isbn(isbn), f"Invalid ISBN: {isbn}")
        normalized = normalize_isbn(isbn)
        key_text = f"isbn:{normalized}"
        outcomes: dict[str, SourceOutcome] = {}
        deadline = time.monotonic() + self.config.overall_deadline

        for client in self.context.clients:
            name = client.source_name()
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                outcomes[name] = SourceOutcome(source=name, status=SourceStatus.skipped, error="deadline")
                continue

            gated = self._admit(client, key_text)
            if gated is not None:
                outcomes[name] = gated
                if gated.candidates:
                    return IsbnLookupOutcome(isbn=normalized, candidates=list(gated.candidates), source=name, sources=outcomes)
                continue

            breaker = self.context.registry.breaker(name)
            timeout = min(self.config.call_timeout, remaining)
            try:
                async with asyncio.timeout(timeout):
                    candidates = await client.fetch_by_isbn(normalized, timeout)
            except asyncio.CancelledError:
                breaker.record_failure()
                raise
            except (TimeoutError, SourceTimeout) as exc:
                breaker.record_failure()
                outcomes[name] = SourceOutcome(source=name, status=SourceStatus.timeout, error=str(exc) or "timeout")
                continue
            except ExternalSourceError as exc:
                breaker.record_failure()
                logger.warning("ISBN lookup via %s failed for %s: %s", name, normalized, exc)
                outcomes[name] = SourceOutcome(source=name, status=SourceStatus.fault, error=str(exc))
                continue
            except Exception as exc:
                breaker.record_failure()
                logger.exception("Unexpected error from %s during ISBN lookup for %s", name, normalized)
                outcomes[name] = SourceOutcome(source=name, status=SourceStatus.fault, error=repr(exc))
                continue

            breaker.record_success()
            self.context.cache.put(cache_key(key_text, name), candidates)
            outcomes[name] = SourceOutcome(source=name, status=SourceStatus.ok, candidates=tuple(candidates))
            if candidates:
                logger.debug("Found ISBN %s via %s", normalized, name)
                return IsbnLookupOutcome(isbn=normalized, candidates=candidates, source=name, sources=outcomes)

        logger.debug("No external source knows ISBN %s", normalized)
        return IsbnLookupOutcome(isbn=normalized, candidates=[], source=None, sources=outcomes)
