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

SEARCH_FIELDS = "key,title,author_name,isbn,first_publish_year,publisher,number_of_pages_median,cover_i,subject"


def _first_string(value: Any) -> str | None:
    if isinstance(value, list):
        for item in value:
            if isinstance(item, str) and item.strip():
                return item.strip()
        return None
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _preferred_isbn(value: Any) -> str | None:
    if not isinstance(value, list) or not value:
        return None
    isbns = [str(item) for item in value if item]
    for isbn in isbns:
        if len(isbn) == 13:
            return isbn
    return isbns[0] if isbns else None


class OpenLibraryClient(ExternalSourceClient):
    name = "open_library"

    def __init__(
        self,
        *,
        base_url: str = "https://openlibrary.org",
        covers_url: str = "https://covers.openlibrary.org/b",
        max_results: int = 20,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.covers_url = covers_url.rstrip("/")
        self.max_results = max(1, min(max_results, 100))
        self._owns_client = http_client is None
        self._client = http_client or build_async_client(base_url)

    async def fetch(self, query: SearchQuery, timeout: float) -> list[ExternalCandidate]:
        if looks_like_isbn(query.raw):
            return await self.fetch_by_isbn(query.raw, timeout)
        if query.is_empty:
            return []
        params = {"q": query.text, "fields": SEARCH_FIELDS, "limit": self.max_results, "offset": 0}
        payload = await get_json(self._client, self.name, "/search.json", params=params, timeout=timeout)
        return self._map_docs(payload)

    async def fetch_by_isbn(self, isbn: str, timeout: float) -> list[ExternalCandidate]:
        params = {"isbn": normalize_isbn(isbn), "fields": SEARCH_FIELDS, "limit": 10}
        payload = await get_json(self._client, self.name, "/search.json", params=params, timeout=timeout)
        return self._map_docs(payload)

    async def fetch_by_field(self, field: SearchField, value: str, timeout: float) -> list[ExternalCandidate]:
        params = {field.value: value.strip(), "fields": SEARCH_FIELDS, "limit": self.max_results, "offset": 0}
        payload = await get_json(self._client, self.name, "/search.json", params=params, timeout=timeout)
        return self._map_docs(payload)

    def _map_docs(self, payload: dict[str, Any]) -> list[ExternalCandidate]:
        docs = payload.get("docs", [])
        if not isinstance(docs, list):
            raise SourceMalformed(self.name, "'docs' is not a list")
        candidates: list[ExternalCandidate] = []
        for doc in docs:
            if not isinstance(doc, dict):
                continue
            candidate = self._map_doc(doc)
            if candidate is not None:
                candidates.append(candidate)
        logger.debug("Mapped %s of %s OpenLibrary docs", len(candidates), len(docs))
        return candidates

    def _map_doc(self, doc: dict[str, Any]) -> ExternalCandidate | None:
        title = _first_string(doc.get("title"))
        if not title:
            return None
        authors = doc.get("author_name")
        author = ", ".join(str(name) for name in authors if name) if isinstance(authors, list) else None
        cover_id = doc.get("cover_i")
        cover_url = f"{self.covers_url}/id/{cover_id}-M.jpg" if isinstance(cover_id, int) else None
        year = doc.get("first_publish_year")
        pages = doc.get("number_of_pages_median")
        return ExternalCandidate(
            source=self.name,
            title=title,
            author=author or None,
            isbn=_preferred_isbn(doc.get("isbn")),
            publisher=_first_string(doc.get("publisher")),
            genre=_first_string(doc.get("subject")),
            publication_year=year if isinstance(year, int) else None,
            page_count=pages if isinstance(pages, int) else None,
            cover_image_url=cover_url,
            raw=doc,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
