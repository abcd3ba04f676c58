import asyncio

from app.enums import PhysicalLocation
from app.models.core import Book
from app.services.cache import ResponseCache
from app.services.connectors.base import ExternalCandidate, ExternalSourceClient
from app.services.context import FallbackConfig, SearchContext
from app.services.query import SearchFilters, normalize_query
from app.services.search import get_relevance_strategy
from app.services.source_state import SourceStateRegistry


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSource(ExternalSourceClient):
    """Scripted external source: fixed results, an optional error and an optional delay."""

    def __init__(
        self,
        name: str = "fake",
        *,
        results: list[ExternalCandidate] | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.name = name
        self.results = list(results or [])
        self.error = error
        self.delay = delay
        self.calls = 0
        self.isbn_calls = 0
        self.closed = False

    async def _answer(self) -> list[ExternalCandidate]:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.results)

    async def fetch(self, query, timeout):
        self.calls += 1
        return await self._answer()

    async def fetch_by_isbn(self, isbn, timeout):
        self.isbn_calls += 1
        return await self._answer()

    async def aclose(self) -> None:
        self.closed = True


def make_book(db, *, title: str, author: str = "Unknown Author", **fields) -> Book:
    book = Book(title=title, author=author, **fields)
    db.add(book)
    db.flush()
    return book


def make_candidate(source: str = "fake", *, title: str, author: str | None = "External Author", **fields) -> ExternalCandidate:
    return ExternalCandidate(source=source, title=title, author=author, **fields)


def make_query(raw: str, filters: SearchFilters | None = None):
    return normalize_query(raw, filters=filters)


def build_context(
    clients: list[ExternalSourceClient],
    *,
    clock: FakeClock | None = None,
    strategy: str = "portable",
    failure_threshold: int = 5,
    open_duration: float = 30.0,
    rate_capacity: int = 10,
    rate_refill: float = 2.0,
    **config,
) -> SearchContext:
    clock = clock or FakeClock()
    return SearchContext(
        registry=SourceStateRegistry(
            failure_threshold=failure_threshold,
            open_duration=open_duration,
            rate_capacity=rate_capacity,
            rate_refill=rate_refill,
            clock=clock,
        ),
        cache=ResponseCache(clock=clock),
        clients=clients,
        strategy=get_relevance_strategy(strategy),
        config=FallbackConfig(**config),
    )


def seed_library(db) -> list[Book]:
    books = [
        make_book(
            db,
            title="The Great Gatsby",
            author="F. Scott Fitzgerald",
            isbn="978-0-7432-7356-5",
            genre="Classic",
            publisher="Scribner",
            publication_year=1925,
            physical_location=PhysicalLocation.living_room,
            personal_rating=5,
        ),
        make_book(
            db,
            title="Tender Is the Night",
            author="F. Scott Fitzgerald",
            isbn="9780684801544",
            genre="Classic",
            publication_year=1934,
            description="A novel that readers often compare with Gatsby.",
            physical_location=PhysicalLocation.home_office,
            personal_rating=3,
        ),
        make_book(
            db,
            title="Dune",
            author="Frank Herbert",
            isbn="9780441172719",
            genre="Science Fiction",
            publisher="Ace",
            publication_year=1965,
            physical_location=PhysicalLocation.basement,
            personal_rating=4,
        ),
    ]
    db.commit()
    return books
