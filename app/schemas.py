from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from app.enums import CircuitState, Origin, OriginSummary, SearchField, SourceStatus


class SearchResultOut(BaseModel):
    book_id: int | None = None
    title: str
    author: str
    isbn: str | None = None
    genre: str | None = None
    publisher: str | None = None
    publication_year: int | None = None
    description: str | None = None
    page_count: int | None = None
    cover_image_url: str | None = None
    physical_location: str | None = None
    personal_rating: int | None = None
    date_added: datetime | None = None
    relevance_score: float
    origin: Origin
    external_source: str | None = None
    matched_fields: list[str] = Field(default_factory=list)
    matched_terms: list[str] = Field(default_factory=list)


class SourceOutcomeOut(BaseModel):
    source: str
    status: SourceStatus
    result_count: int = 0
    error: str | None = None
    elapsed_ms: int | None = None


class SearchResponse(BaseModel):
    results: list[SearchResultOut]
    total_results: int
    query: str
    page: int
    size: int
    has_more: bool
    origin_summary: OriginSummary
    sources: list[SourceOutcomeOut] = Field(default_factory=list)


class ExternalBookOut(BaseModel):
    source: str
    title: str
    author: str | None = None
    isbn: str | None = None
    publisher: str | None = None
    genre: str | None = None
    publication_year: int | None = None
    description: str | None = None
    page_count: int | None = None
    cover_image_url: str | None = None


class IsbnLookupResponse(BaseModel):
    isbn: str
    found: bool
    source: str | None = None
    books: list[ExternalBookOut]
    sources: list[SourceOutcomeOut] = Field(default_factory=list)


class ExternalSearchResponse(BaseModel):
    field: SearchField
    query: str
    books: list[ExternalBookOut]
    sources: list[SourceOutcomeOut] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: Literal["ok"]
    timestamp: datetime


class SourceHealthOut(BaseModel):
    source: str
    state: CircuitState
    healthy: bool
    consecutive_failures: int
    last_transition_at: datetime
    available_tokens: float


class SourceHealthResponse(BaseModel):
    status: Literal["ok", "degraded"]
    timestamp: datetime
    external_available: bool
    sources: list[SourceHealthOut]


class HealthDetailsResponse(BaseModel):
    status: Literal["ok", "degraded"]
    timestamp: datetime
    database_ok: bool
    book_count: int | None = None
    search_strategy: str
    sufficiency_threshold: int
    cache_entries: int
    cache_hits: int
    cache_misses: int
    sources: list[SourceHealthOut]
