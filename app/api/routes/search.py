from fastapi import APIRouter, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.deps import DBSession, SearchContextDep
from app.config import get_settings
from app.enums import SearchField, SortBy, SortOrder
from app.schemas import (
    ExternalBookOut,
    ExternalSearchResponse,
    IsbnLookupResponse,
    SearchResponse,
    SearchResultOut,
    SourceOutcomeOut,
)
from app.services.catalog import CatalogStore, CatalogUnavailableError
from app.services.connectors.base import ExternalCandidate
from app.services.context import SearchContext
from app.services.fallback import FallbackOrchestrator, SourceOutcome
from app.services.merge import MergedResult
from app.services.query import build_filters, normalize_query
from app.services.search import LocalRelevanceSearch
from app.services.validation import ValidationError

router = APIRouter(prefix="/api/v1/search", tags=["search"])


def _result_out(result: MergedResult) -> SearchResultOut:
    return SearchResultOut(
        book_id=result.book_id,
        title=result.title,
        author=result.author,
        isbn=result.isbn,
        genre=result.genre,
        publisher=result.publisher,
        publication_year=result.publication_year,
        description=result.description,
        page_count=result.page_count,
        cover_image_url=result.cover_image_url,
        physical_location=result.physical_location,
        personal_rating=result.personal_rating,
        date_added=result.date_added,
        relevance_score=result.score,
        origin=result.origin,
        external_source=result.external_source,
        matched_fields=sorted(result.matched_fields),
        matched_terms=sorted(result.matched_terms),
    )


def _book_out(candidate: ExternalCandidate) -> ExternalBookOut:
    return ExternalBookOut(
        source=candidate.source,
        title=candidate.title,
        author=candidate.author,
        isbn=candidate.isbn,
        publisher=candidate.publisher,
        genre=candidate.genre,
        publication_year=candidate.publication_year,
        description=candidate.description,
        page_count=candidate.page_count,
        cover_image_url=candidate.cover_image_url,
    )


def _outcomes_out(outcomes: dict[str, SourceOutcome]) -> list[SourceOutcomeOut]:
    return [
        SourceOutcomeOut(
            source=outcome.source,
            status=outcome.status,
            result_count=len(outcome.candidates),
            error=outcome.error,
            elapsed_ms=outcome.elapsed_ms,
        )
        for outcome in outcomes.values()
    ]


def _orchestrator(db: Session, context: SearchContext) -> FallbackOrchestrator:
    local_search = LocalRelevanceSearch(CatalogStore(db), context.strategy)
    return FallbackOrchestrator(context, local_search)


@router.get("", response_model=SearchResponse)
async def search(
    q: str = Query(default=""),
    include_external: bool = Query(default=False),
    page: int = Query(default=1, ge=1),
    size: int | None = Query(default=None, ge=1),
    sort_by: SortBy = Query(default=SortBy.relevance),
    sort_order: SortOrder = Query(default=SortOrder.desc),
    category: str | None = Query(default=None),
    physical_location: str | None = Query(default=None),
    min_rating: int | None = Query(default=None),
    year_from: int | None = Query(default=None),
    year_to: int | None = Query(default=None),
    db: Session = DBSession,
    context: SearchContext = SearchContextDep,
) -> SearchResponse:
    page_size = size if size is not None else get_settings().search_default_page_size
    try:
        filters = build_filters(
            category=category,
            physical_location=physical_location,
            min_rating=min_rating,
            year_from=year_from,
            year_to=year_to,
        )
        query = normalize_query(q, filters=filters, max_length=context.config.max_query_length)
        outcome = await _orchestrator(db, context).search(
            query,
            include_external=include_external,
            page=page,
            size=page_size,
            sort_by=sort_by,
            sort_order=sort_order,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except CatalogUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    return SearchResponse(
        results=[_result_out(result) for result in outcome.results],
        total_results=outcome.total_results,
        query=outcome.query,
        page=page,
        size=page_size,
        has_more=outcome.has_more,
        origin_summary=outcome.origin_summary,
        sources=_outcomes_out(outcome.sources),
    )


@router.get("/isbn/{isbn}", response_model=IsbnLookupResponse)
async def lookup_isbn(
    isbn: str,
    db: Session = DBSession,
    context: SearchContext = SearchContextDep,
) -> IsbnLookupResponse:
    try:
        outcome = await _orchestrator(db, context).lookup_isbn(isbn)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return IsbnLookupResponse(
        isbn=outcome.isbn,
        found=bool(outcome.candidates),
        source=outcome.source,
        books=[_book_out(candidate) for candidate in outcome.candidates],
        sources=_outcomes_out(outcome.sources),
    )


@router.get("/external/{field}", response_model=ExternalSearchResponse)
async def search_external_by_field(
    field: SearchField,
    q: str = Query(default=""),
    limit: int | None = Query(default=None, ge=1),
    db: Session = DBSession,
    context: SearchContext = SearchContextDep,
) -> ExternalSearchResponse:
    try:
        outcome = await _orchestrator(db, context).search_by_field(field, q, limit=limit)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return ExternalSearchResponse(
        field=outcome.scope,
        query=outcome.value,
        books=[_book_out(candidate) for candidate in outcome.candidates],
        sources=_outcomes_out(outcome.sources),
    )
