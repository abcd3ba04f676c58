from __future__ import annotations

import logging

from sqlalchemy import Select, false, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.enums import SortBy, SortOrder
from app.models.core import Book
from app.services.query import SearchFilters, SearchQuery
from app.services.utils import looks_like_isbn, normalize_isbn

logger = logging.getLogger(__name__)


class CatalogUnavailableError(RuntimeError):
    pass


def _normalized_isbn_column():
    return func.upper(func.replace(func.replace(Book.isbn, "-", ""), " ", ""))


def _text_columns():
    return (
        func.lower(Book.title),
        func.lower(Book.author),
        func.lower(Book.genre),
        func.lower(_normalized_isbn_column()),
        func.lower(Book.publisher),
        func.lower(Book.description),
    )


def _apply_filters(stmt: Select, filters: SearchFilters) -> Select:
    if filters.category:
        stmt = stmt.where(func.lower(Book.genre).contains(filters.category.lower(), autoescape=True))
    if filters.physical_location is not None:
        stmt = stmt.where(Book.physical_location == filters.physical_location)
    if filters.min_rating is not None:
        stmt = stmt.where(Book.personal_rating >= filters.min_rating)
    if filters.year_from is not None:
        stmt = stmt.where(Book.publication_year >= filters.year_from)
    if filters.year_to is not None:
        stmt = stmt.where(Book.publication_year <= filters.year_to)
    return stmt


def _apply_match(stmt: Select, query: SearchQuery) -> Select:
    if query.is_empty:
        return stmt
    clauses = [column.contains(term, autoescape=True) for term in query.terms for column in _text_columns()]
    if looks_like_isbn(query.raw):
        clauses.append(_normalized_isbn_column() == normalize_isbn(query.raw))
    if not clauses:
        # Every term was too short and the raw text is not an ISBN: nothing can match.
        return stmt.where(false())
    return stmt.where(or_(*clauses))


def _order_columns(sort_by: SortBy, sort_order: SortOrder) -> list:
    title_key = func.lower(Book.title)
    if sort_by in (SortBy.relevance, SortBy.title):
        primary = title_key.desc() if sort_by == SortBy.title and sort_order == SortOrder.desc else title_key.asc()
        return [primary, Book.id.asc()]
    column = {
        SortBy.author: func.lower(Book.author),
        SortBy.date_added: Book.date_added,
        SortBy.publication_year: Book.publication_year,
    }[sort_by]
    primary = column.desc() if sort_order == SortOrder.desc else column.asc()
    return [primary.nulls_last(), title_key.asc(), Book.id.asc()]


class CatalogStore:
    """Read-only access to the local catalog.

    Candidate selection is a portable substring (LIKE) query; relevance is
    computed in Python by the search strategies so both storage back-ends
    share one scoring formula.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def search(
        self,
        query: SearchQuery,
        *,
        sort_by: SortBy = SortBy.title,
        sort_order: SortOrder = SortOrder.asc,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Book]:
        stmt = _apply_match(_apply_filters(select(Book), query.filters), query)
        stmt = stmt.order_by(*_order_columns(sort_by, sort_order))
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            return list(self.db.scalars(stmt).all())
        except SQLAlchemyError as exc:
            logger.error("Catalog search failed for %r: %s", query.raw, exc)
            raise CatalogUnavailableError("Local catalog is unavailable") from exc

    def count(self, query: SearchQuery) -> int:
        stmt = _apply_match(_apply_filters(select(func.count()).select_from(Book), query.filters), query)
        try:
            return int(self.db.scalar(stmt) or 0)
        except SQLAlchemyError as exc:
            logger.error("Catalog count failed for %r: %s", query.raw, exc)
            raise CatalogUnavailableError("Local catalog is unavailable") from exc

    def ping(self) -> bool:
        try:
            self.db.execute(select(1))
        except SQLAlchemyError as exc:
            raise CatalogUnavailableError("Local catalog is unavailable") from exc
        return True
