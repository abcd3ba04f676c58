from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from app.enums import SearchField
from app.services.query import SearchQuery, normalize_query


class ExternalSourceError(Exception):
    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source


class SourceTimeout(ExternalSourceError):
    pass


class SourceFault(ExternalSourceError):
    pass


class SourceMalformed(SourceFault):
    pass


class SourceUnavailable(ExternalSourceError):
    """Breaker open or rate limit exhausted; never counted as a fault."""


@dataclass(frozen=True)
class ExternalCandidate:
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
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


class ExternalSourceClient(ABC):
    name: str

    def source_name(self) -> str:
        return self.name

    @abstractmethod
    async def fetch(self, query: SearchQuery, timeout: float) -> list[ExternalCandidate]:
        """Return candidates for a free-text or ISBN query.

        Raises SourceTimeout, SourceFault or SourceMalformed. An empty list is a
        successful answer.
        """

    @abstractmethod
    async def fetch_by_isbn(self, isbn: str, timeout: float) -> list[ExternalCandidate]:
        """Return candidates for one ISBN; same error contract as ``fetch``."""

    async def fetch_by_field(self, field: SearchField, value: str, timeout: float) -> list[ExternalCandidate]:
        """Title- or author-scoped search; providers without field syntax fall back to free text."""
        return await self.fetch(normalize_query(value), timeout)

    async def aclose(self) -> None:
        return None
