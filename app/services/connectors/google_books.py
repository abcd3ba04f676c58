from __future__ import annotations

import logging
from typing import Any

import httpx

from app.enums import SearchField
from app.services.connectors.base import ExternalCandidate, ExternalSourceClient, SourceMalformed
from app.services.connectors.http import build_async_client, get_json
from app.services.query import SearchQuery
from app.services.utils import looks_like_isbn, normalize_isbn

logger = logging.getLogger(__name__)


def _isbn_from_identifiers(identifiers: Any) -> str | None:
    if not isinstance(identifiers, list):
        return None
    by_type = {
        item.get("type"): item.get("identifier")
        for item in identifiers
        if isinstance(item, dict) and item.get("identifier")
    }
    return by_type.get("ISBN_13") or by_type.get("ISBN_10")


def _year(published_date: Any) -> int | None:
    if isinstance(published_date, str) and len(published_date) >= 4 and published_date[:4].isdigit():
        return int(published_date[:4])
    return None


class GoogleBooksClient(ExternalSourceClient):
    name = "google_books"

    def __init__(
        self,
        *,
        base_url: str = "https://www.googleapis.com/books/v1",
        api_key: str = "",
        max_results: int = 20,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        # The volumes endpoint caps maxResults at 40.
        self.max_results = max(1, min(max_results, 40))
        self._owns_client = http_client is None
        self._client = http_client or build_async_client(base_url)

    def _params(self, q: str, max_results: int) -> dict[str, Any]:
        params: dict[str, Any] = {"q": q, "maxResults": max_results}
        if self.api_key:
            params["key"] = self.api_key
        return params

    async def fetch(self, query: SearchQuery, timeout: float) -> list[ExternalCandidate]:
        if looks_like_isbn(query.raw):
            return await self.fetch_by_isbn(query.raw, timeout)
        if query.is_empty:
            return []
        payload = await get_json(
            self._client, self.name, "/volumes", params=self._params(query.text, self.max_results), timeout=timeout
        )
        return self._map_items(payload)

    async def fetch_by_isbn(self, isbn: str, timeout: float) -> list[ExternalCandidate]:
        payload = await get_json(
            self._client, self.name, "/volumes", params=self._params(f"isbn:{normalize_isbn(isbn)}", 10), timeout=timeout
        )
        return self._map_items(payload)

    async def fetch_by_field(self, field: SearchField, value: str, timeout: float) -> list[ExternalCandidate]:
        q = f"in{field.value}:{value.strip()}"
        payload = await get_json(
            self._client, self.name, "/volumes", params=self._params(q, self.max_results), timeout=timeout
        )
        return self._map_items(payload)

    def _map_items(self, payload: dict[str, Any]) -> list[ExternalCandidate]:
        items = payload.get("items", [])
        if items is None:
            return []
        if not isinstance(items, list):
            raise SourceMalformed(self.name, "'items' is not a list")
        candidates: list[ExternalCandidate] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            candidate = self._map_item(item)
            if candidate is not None:
                candidates.append(candidate)
        logger.debug("Mapped %s of %s Google Books items", len(candidates), len(items))
        return candidates

    def _map_item(self, item: dict[str, Any]) -> ExternalCandidate | None:
        info = item.get("volumeInfo")
        if not isinstance(info, dict):
            return None
        title = str(info.get("title") or "").strip()
        if not title:
            return None
        authors = info.get("authors")
        categories = info.get("categories")
        images = info.get("imageLinks") if isinstance(info.get("imageLinks"), dict) else {}
        pages = info.get("pageCount")
        author = ", ".join(str(name) for name in authors if name) if isinstance(authors, list) else None
        return ExternalCandidate(
            source=self.name,
            title=title,
            author=author or None,
            isbn=_isbn_from_identifiers(info.get("industryIdentifiers")),
            publisher=info.get("publisher") or None,
            genre=categories[0] if isinstance(categories, list) and categories else None,
            publication_year=_year(info.get("publishedDate")),
            description=info.get("description") or None,
            page_count=pages if isinstance(pages, int) else None,
            cover_image_url=images.get("thumbnail") or images.get("smallThumbnail"),
            raw=item,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
