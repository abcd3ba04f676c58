from datetime import UTC, datetime

from fastapi import APIRouter
from sqlalchemy.orm import Session

from app.api.deps import DBSession, SearchContextDep
from app.schemas import HealthDetailsResponse, HealthResponse, SourceHealthOut, SourceHealthResponse
from app.services.catalog import CatalogStore, CatalogUnavailableError
from app.services.context import SearchContext
from app.services.health import SourceHealth
from app.services.query import normalize_query

router = APIRouter(tags=["health"])


def _source_out(item: SourceHealth) -> SourceHealthOut:
    return SourceHealthOut(
        source=item.source,
        state=item.state,
        healthy=item.healthy,
        consecutive_failures=item.consecutive_failures,
        last_transition_at=item.last_transition_at,
        available_tokens=item.available_tokens,
    )


@router.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="ok", timestamp=datetime.now(UTC))


@router.get("/health/sources", response_model=SourceHealthResponse)
def health_sources(context: SearchContext = SearchContextDep) -> SourceHealthResponse:
    monitor = context.health_monitor()
    snapshot = monitor.snapshot()
    degraded = any(not item.healthy for item in snapshot)
    return SourceHealthResponse(
        status="degraded" if degraded else "ok",
        timestamp=datetime.now(UTC),
        external_available=monitor.any_available(),
        sources=[_source_out(item) for item in snapshot],
    )


@router.get("/health/details", response_model=HealthDetailsResponse)
def health_details(db: Session = DBSession, context: SearchContext = SearchContextDep) -> HealthDetailsResponse:
    store = CatalogStore(db)
    try:
        database_ok = store.ping()
        book_count = store.count(normalize_query(""))
    except CatalogUnavailableError:
        book_count = None
        database_ok = False

    snapshot = context.health_monitor().snapshot()
    degraded = not database_ok or any(not item.healthy for item in snapshot)
    return HealthDetailsResponse(
        status="degraded" if degraded else "ok",
        timestamp=datetime.now(UTC),
        database_ok=database_ok,
        book_count=book_count,
        search_strategy=context.strategy.name.value,
        sufficiency_threshold=context.config.sufficiency_threshold,
        cache_entries=len(context.cache),
        cache_hits=context.cache.hits,
        cache_misses=context.cache.misses,
        sources=[_source_out(item) for item in snapshot],
    )
