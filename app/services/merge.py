from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime

from app.enums import Origin, SortBy, SortOrder
from app.services.connectors.base import ExternalCandidate
from app.services.query import SearchQuery
from app.services.search import RelevanceStrategy, ScoredResult, relevance_sort_key
from app.services.utils import normalize_isbn, normalize_title

# Fields an external answer may fill in on a local row that lacks them.
INHERITABLE_FIELDS = ("genre", "publisher", "publication_year", "description", "page_count", "cover_image_url")


@dataclass(frozen=True)
class MergedResult:
    book_id: int | None
    title: str
    author: str
    isbn: str | None
    genre: str | None
    publisher: str | None
    score: float
    origin: Origin
    external_source: str | None = None
    matched_fields: frozenset[str] = field(default_factory=frozenset)
    matched_terms: frozenset[str] = field(default_factory=frozenset)
    publication_year: int | None = None
    description: str | None = None
    page_count: int | None = None
    cover_image_url: str | None = None
    physical_location: str | None = None
    personal_rating: int | None = None
    date_added: datetime | None = None


def isbn_key(isbn: str | None) -> str | None:
    normalized = normalize_isbn(isbn)
    return normalized or None


def title_author_key(title: str | None, author: str | None) -> tuple[str, str]:
    return (normalize_title(title), normalize_title(author))


def from_local(result: ScoredResult) -> MergedResult:
    return MergedResult(
        book_id=result.book_id,
        title=result.title,
        author=result.author,
        isbn=result.isbn,
        genre=result.genre,
        publisher=result.publisher,
        score=result.score,
        origin=Origin.local,
        matched_fields=result.matched_fields,
        matched_terms=result.matched_terms,
        publication_year=result.publication_year,
        description=result.description,
        page_count=result.page_count,
        cover_image_url=result.cover_image_url,
        physical_location=result.physical_location,
        personal_rating=result.personal_rating,
        date_added=result.date_added,
    )


def from_external(
    candidate: ExternalCandidate,
    *,
    score: float,
    matched_fields: frozenset[str] = frozenset(),
    matched_terms: frozenset[str] = frozenset(),
) -> MergedResult:
    return MergedResult(
        book_id=None,
        title=candidate.title,
        author=candidate.author or "",
        isbn=candidate.isbn,
        genre=candidate.genre,
        publisher=candidate.publisher,
        score=score,
        origin=Origin.external,
        external_source=candidate.source,
        matched_fields=matched_fields,
        matched_terms=matched_terms,
        publication_year=candidate.publication_year,
        description=candidate.description,
        page_count=candidate.page_count,
        cover_image_url=candidate.cover_image_url,
    )


def absorb(existing: MergedResult, candidate: ExternalCandidate) -> MergedResult:
    """Fold an external duplicate into an existing result; existing fields win."""
    inherited = {
        name: getattr(candidate, name)
        for name in INHERITABLE_FIELDS
        if getattr(existing, name) is None and getattr(candidate, name) is not None
    }
    if existing.origin == Origin.external:
        return replace(existing, **inherited) if inherited else existing
    return replace(
        existing,
        origin=Origin.both,
        external_source=existing.external_source or candidate.source,
        matched_fields=existing.matched_fields | {f"external:{candidate.source}"},
        **inherited,
    )


def dedupe_candidates(groups: Iterable[Sequence[ExternalCandidate]]) -> list[ExternalCandidate]:
    """Flatten provider answers in priority order, keeping the first copy of each book."""
    unique: list[ExternalCandidate] = []
    seen_isbns: set[str] = set()
    seen_titles: dict[tuple[str, str], set[str | None]] = {}
    for candidates in groups:
        for candidate in candidates:
            key = isbn_key(candidate.isbn)
            if key and key in seen_isbns:
                continue
            title_key = title_author_key(candidate.title, candidate.author)
            earlier = seen_titles.get(title_key)
            if earlier is not None and (not key or None in earlier):
                continue
            unique.append(candidate)
            if key:
                seen_isbns.add(key)
            seen_titles.setdefault(title_key, set()).add(key)
    return unique


def baseline_score(priority: int, *, base: float, step: float) -> float:
    return round(max(0.1, base - step * priority), 4)


class ResultIndex:
    """Dedup index: case-insensitive ISBN when both sides have one, else normalized (title, author)."""

    def __init__(self) -> None:
        self.results: list[MergedResult] = []
        self._by_isbn: dict[str, int] = {}
        self._by_title_author: dict[tuple[str, str], list[int]] = {}

    def add(self, result: MergedResult) -> None:
        position = len(self.results)
        self.results.append(result)
        key = isbn_key(result.isbn)
        if key:
            self._by_isbn.setdefault(key, position)
        self._by_title_author.setdefault(title_author_key(result.title, result.author), []).append(position)

    def find(self, candidate: ExternalCandidate) -> int | None:
        key = isbn_key(candidate.isbn)
        if key and key in self._by_isbn:
            return self._by_isbn[key]
        positions = self._by_title_author.get(title_author_key(candidate.title, candidate.author), [])
        for position in positions:
            # Two different ISBNs under one title are different editions.
            if not key or not isbn_key(self.results[position].isbn):
                return position
        return None

    def replace_at(self, position: int, result: MergedResult) -> None:
        self.results[position] = result


def merge_results(
    query: SearchQuery,
    local: Sequence[ScoredResult],
    external: Iterable[tuple[int, Sequence[ExternalCandidate]]],
    *,
    strategy: RelevanceStrategy,
    baseline: float = 0.9,
    priority_step: float = 0.1,
) -> list[MergedResult]:
    """Merge local results with external candidates given as (priority, candidates) pairs.

    Local rows keep their score and display fields. External-only candidates
    get a priority-derived baseline score below any field-matched local row;
    their matched fields are still reported.
    """
    index = ResultIndex()
    for result in local:
        index.add(from_local(result))

    for priority, candidates in sorted(external, key=lambda item: item[0]):
        score = baseline_score(priority, base=baseline, step=priority_step)
        for candidate in candidates:
            position = index.find(candidate)
            if position is not None:
                index.replace_at(position, absorb(index.results[position], candidate))
                continue
            breakdown = strategy.evaluate(query, candidate)
            index.add(
                from_external(
                    candidate,
                    score=score,
                    matched_fields=breakdown.matched_fields,
                    matched_terms=breakdown.matched_terms,
                )
            )
    return index.results


def _nullable_sort(results: list[MergedResult], attribute: str, *, descending: bool) -> list[MergedResult]:
    present = [item for item in results if getattr(item, attribute) is not None]
    missing = [item for item in results if getattr(item, attribute) is None]
    present.sort(key=lambda item: (item.title or "").lower())
    present.sort(key=lambda item: getattr(item, attribute), reverse=descending)
    missing.sort(key=lambda item: (item.title or "").lower())
    return present + missing


def sort_results(results: Iterable[MergedResult], sort_by: SortBy, sort_order: SortOrder) -> list[MergedResult]:
    items = list(results)
    descending = sort_order == SortOrder.desc
    if sort_by == SortBy.relevance:
        return sorted(items, key=relevance_sort_key)
    if sort_by == SortBy.title:
        return sorted(items, key=lambda item: (item.title or "").lower(), reverse=descending)
    if sort_by == SortBy.author:
        items.sort(key=lambda item: (item.title or "").lower())
        items.sort(key=lambda item: (item.author or "").lower(), reverse=descending)
        return items
    if sort_by == SortBy.date_added:
        return _nullable_sort(items, "date_added", descending=descending)
    return _nullable_sort(items, "publication_year", descending=descending)
