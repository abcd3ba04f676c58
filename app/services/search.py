from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from app.enums import SearchStrategy, SortBy, SortOrder
from app.services.catalog import CatalogStore
from app.services.query import SearchQuery
from app.services.utils import looks_like_isbn, normalize_isbn

logger = logging.getLogger(__name__)

ISBN_EXACT_BONUS = 10.0
TERM_COVERAGE_BONUS = 0.5

# (field, substring bonus) in the order fields are reported.
FIELD_WEIGHTS: tuple[tuple[str, float], ...] = (
    ("isbn", 4.0),
    ("title", 3.0),
    ("author", 2.0),
    ("genre", 1.5),
    ("publisher", 1.0),
    ("description", 1.0),
)

NATURAL_LANGUAGE_GROUPS: tuple[tuple[tuple[str, ...], float], ...] = (
    (("title", "author", "description"), 2.0),
    (("genre", "publisher"), 1.0),
)


class CatalogRow(Protocol):
    title: str
    author: str
    genre: str | None
    isbn: str | None
    publisher: str | None
    description: str | None


@dataclass(frozen=True)
class RelevanceBreakdown:
    score: float
    matched_fields: frozenset[str]
    matched_terms: frozenset[str]


@dataclass(frozen=True)
class ScoredResult:
    book_id: int | None
    title: str
    author: str
    isbn: str | None
    genre: str | None
    publisher: str | None
    score: float
    matched_fields: frozenset[str] = field(default_factory=frozenset)
    matched_terms: frozenset[str] = field(default_factory=frozenset)
    publication_year: int | None = None
    description: str | None = None
    page_count: int | None = None
    cover_image_url: str | None = None
    physical_location: str | None = None
    personal_rating: int | None = None
    date_added: datetime | None = None


@dataclass(frozen=True)
class LocalSearchResult:
    results: list[ScoredResult]
    total: int


def _field_text(row: Any, name: str) -> str:
    value = getattr(row, name, None)
    if not value:
        return ""
    if name == "isbn":
        return normalize_isbn(value).lower()
    return str(value).lower()


def _is_exact_isbn(query: SearchQuery, row: Any) -> bool:
    row_isbn = normalize_isbn(getattr(row, "isbn", None))
    return bool(row_isbn) and looks_like_isbn(query.raw) and normalize_isbn(query.raw) == row_isbn


def relevance_sort_key(result: Any) -> tuple[float, str]:
    return (-result.score, (result.title or "").lower())


class RelevanceStrategy(ABC):
    name: SearchStrategy

    def evaluate(self, query: SearchQuery, row: Any) -> RelevanceBreakdown:
        score = 0.0
        matched_fields: set[str] = set()
        matched_terms: set[str] = set()

        for name, weight in FIELD_WEIGHTS:
            text = _field_text(row, name)
            if not text:
                continue
            hits = {term for term in query.terms if term in text}
            if hits:
                score += weight
                matched_fields.add(name)
                matched_terms.update(hits)

        if _is_exact_isbn(query, row):
            # Stacks on top of the ISBN substring bonus.
            score += ISBN_EXACT_BONUS
            matched_fields.add("isbn")

        if len(matched_terms) > 1:
            score += TERM_COVERAGE_BONUS * (len(matched_terms) - 1)

        score += self.extra_score(query, row)
        return RelevanceBreakdown(
            score=round(score, 4),
            matched_fields=frozenset(matched_fields),
            matched_terms=frozenset(matched_terms),
        )

    @abstractmethod
    def extra_score(self, query: SearchQuery, row: Any) -> float:
        ...


class PortableRelevance(RelevanceStrategy):
    """Substring-only scoring; works against any SQL back-end."""

    name = SearchStrategy.portable

    def extra_score(self, query: SearchQuery, row: Any) -> float:
        return 0.0


class NativeRelevance(RelevanceStrategy):
    """Substring scoring plus a natural-language bonus per field group.

    The bonus only counts whole-word term hits, and a whole-word hit is always
    also a substring hit, so this strategy never matches a row the portable
    one would miss.
    """

    name = SearchStrategy.native

    def extra_score(self, query: SearchQuery, row: Any) -> float:
        if not query.terms:
            return 0.0
        bonus = 0.0
        for fields, weight in NATURAL_LANGUAGE_GROUPS:
            text = " ".join(_field_text(row, name) for name in fields)
            if not text.strip():
                continue
            hits = sum(1 for term in query.terms if re.search(rf"\b{re.escape(term)}\b", text))
            bonus += weight * hits / len(query.terms)
        return bonus


def get_relevance_strategy(strategy: SearchStrategy | str) -> RelevanceStrategy:
    selected = SearchStrategy(strategy)
    if selected == SearchStrategy.native:
        return NativeRelevance()
    return PortableRelevance()


def to_scored_result(row: Any, breakdown: RelevanceBreakdown | None = None) -> ScoredResult:
    location = getattr(row, "physical_location", None)
    return ScoredResult(
        book_id=getattr(row, "id", None),
        title=row.title,
        author=row.author,
        isbn=row.isbn,
        genre=row.genre,
        publisher=row.publisher,
        score=breakdown.score if breakdown else 0.0,
        matched_fields=breakdown.matched_fields if breakdown else frozenset(),
        matched_terms=breakdown.matched_terms if breakdown else frozenset(),
        publication_year=getattr(row, "publication_year", None),
        description=getattr(row, "description", None),
        page_count=getattr(row, "page_count", None),
        cover_image_url=getattr(row, "cover_image_url", None),
        physical_location=location.value if hasattr(location, "value") else location,
        personal_rating=getattr(row, "personal_rating", None),
        date_added=getattr(row, "date_added", None),
    )


class LocalRelevanceSearch:
    def __init__(self, store: CatalogStore, strategy: RelevanceStrategy) -> None:
        self.store = store
        self.strategy = strategy

    def score(self, query: SearchQuery, row: Any) -> float:
        return self.strategy.evaluate(query, row).score

    def search(
        self,
        query: SearchQuery,
        *,
        sort_by: SortBy = SortBy.relevance,
        sort_order: SortOrder = SortOrder.desc,
        limit: int | None = None,
        offset: int = 0,
    ) -> LocalSearchResult:
        if query.is_empty:
            # Match-all: no scoring, catalog order (title ascending unless another sort was asked for).
            rows = self.store.search(query, sort_by=sort_by, sort_order=sort_order, limit=limit, offset=offset)
            total = self.store.count(query)
            logger.debug("Empty query - returning %s books out of %s total", len(rows), total)
            return LocalSearchResult(results=[to_scored_result(row) for row in rows], total=total)

        scored: list[ScoredResult] = []
        for row in self.store.search(query):
            breakdown = self.strategy.evaluate(query, row)
            if breakdown.score <= 0:
                continue
            scored.append(to_scored_result(row, breakdown))

        scored.sort(key=relevance_sort_key)
        total = len(scored)
        window = scored[offset:] if limit is None else scored[offset : offset + limit]
        logger.debug(
            "Local search for %r (%s) returned %s of %s matches",
            query.raw,
            self.strategy.name.value,
            len(window),
            total,
        )
        if not scored:
            logger.info("No local results found for query: %r", query.raw)
        return LocalSearchResult(results=window, total=total)
