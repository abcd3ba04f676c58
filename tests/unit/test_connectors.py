import asyncio

import httpx
import pytest

from app.enums import SearchField
from app.services.connectors.base import SourceFault, SourceMalformed, SourceTimeout
from app.services.connectors.google_books import GoogleBooksClient
from app.services.connectors.open_library import OpenLibraryClient
from tests.helpers import make_query

OPEN_LIBRARY_DOC = {
    "key": "/works/OL893415W",
    "title": "Dune",
    "author_name": ["Frank Herbert"],
    "isbn": ["0441172717", "9780441172719"],
    "first_publish_year": 1965,
    "publisher": ["Ace Books", "Chilton"],
    "number_of_pages_median": 612,
    "cover_i": 11481354,
    "subject": ["Science fiction", "Deserts"],
}

GOOGLE_ITEM = {
    "id": "B1hSG45JCX4C",
    "volumeInfo": {
        "title": "Dune",
        "authors": ["Frank Herbert"],
        "publisher": "Penguin",
        "publishedDate": "2003-08-26",
        "description": "Set on the desert planet Arrakis.",
        "industryIdentifiers": [
            {"type": "ISBN_10", "identifier": "0441172717"},
            {"type": "ISBN_13", "identifier": "9780441172719"},
        ],
        "pageCount": 528,
        "categories": ["Fiction"],
        "imageLinks": {"smallThumbnail": "http://books.test/small", "thumbnail": "http://books.test/thumb"},
    },
}


def _run(client_factory, handler, call):
    async def scenario():
        transport = httpx.MockTransport(handler)
        async with httpx.AsyncClient(base_url="https://provider.test", transport=transport) as http:
            return await call(client_factory(http))

    return asyncio.run(scenario())


def _open_library(http):
    return OpenLibraryClient(covers_url="https://covers.test/b", max_results=5, http_client=http)


def _google(http, api_key=""):
    return GoogleBooksClient(api_key=api_key, max_results=5, http_client=http)


def test_open_library_maps_search_docs():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"numFound": 1, "docs": [OPEN_LIBRARY_DOC, {"key": "no-title"}]})

    results = _run(_open_library, handler, lambda client: client.fetch(make_query("Dune Herbert"), 5.0))

    assert seen["path"] == "/search.json"
    assert seen["params"]["q"] == "dune herbert"
    assert seen["params"]["limit"] == "5"
    assert len(results) == 1
    book = results[0]
    assert book.source == "open_library"
    assert book.author == "Frank Herbert"
    assert book.isbn == "9780441172719"
    assert book.publisher == "Ace Books"
    assert book.genre == "Science fiction"
    assert book.publication_year == 1965
    assert book.page_count == 612
    assert book.cover_image_url == "https://covers.test/b/id/11481354-M.jpg"


def test_open_library_isbn_query_uses_isbn_parameter():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"docs": [OPEN_LIBRARY_DOC]})

    results = _run(_open_library, handler, lambda client: client.fetch(make_query("978-0-441-17271-9"), 5.0))

    assert seen["params"]["isbn"] == "9780441172719"
    assert "q" not in seen["params"]
    assert [book.title for book in results] == ["Dune"]


def test_open_library_rejects_odd_payload():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"docs": "nope"})

    with pytest.raises(SourceMalformed):
        _run(_open_library, handler, lambda client: client.fetch(make_query("dune"), 5.0))


def test_non_success_status_is_a_fault():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="Service Unavailable")

    with pytest.raises(SourceFault) as excinfo:
        _run(_open_library, handler, lambda client: client.fetch(make_query("dune"), 5.0))
    assert not isinstance(excinfo.value, SourceMalformed)
    assert "HTTP 503" in str(excinfo.value)


def test_non_json_body_is_malformed():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>")

    with pytest.raises(SourceMalformed):
        _run(_google, handler, lambda client: client.fetch(make_query("dune"), 5.0))


def test_transport_timeout_becomes_source_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow provider", request=request)

    with pytest.raises(SourceTimeout):
        _run(_google, handler, lambda client: client.fetch(make_query("dune"), 0.5))


def test_connection_error_becomes_source_fault():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(SourceFault):
        _run(_open_library, handler, lambda client: client.fetch(make_query("dune"), 5.0))


def test_google_books_maps_volume_info():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"totalItems": 1, "items": [GOOGLE_ITEM, {"id": "broken"}]})

    results = _run(lambda http: _google(http, api_key="secret"), handler, lambda client: client.fetch(make_query("dune"), 5.0))

    assert seen["path"] == "/volumes"
    assert seen["params"] == {"q": "dune", "maxResults": "5", "key": "secret"}
    assert len(results) == 1
    book = results[0]
    assert book.source == "google_books"
    assert book.isbn == "9780441172719"
    assert book.genre == "Fiction"
    assert book.publication_year == 2003
    assert book.description == "Set on the desert planet Arrakis."
    assert book.page_count == 528
    assert book.cover_image_url == "http://books.test/thumb"


def test_google_books_isbn_lookup_and_empty_answer():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"kind": "books#volumes", "totalItems": 0})

    results = _run(_google, handler, lambda client: client.fetch_by_isbn("0-441-17271-7", 5.0))

    assert seen["params"]["q"] == "isbn:0441172717"
    assert "key" not in seen["params"]
    assert results == []


def test_google_books_rejects_odd_items():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"items": {"not": "a list"}})

    with pytest.raises(SourceMalformed):
        _run(_google, handler, lambda client: client.fetch(make_query("dune"), 5.0))


def test_google_books_caps_page_size():
    assert GoogleBooksClient(max_results=100, http_client=httpx.AsyncClient()).max_results == 40


def test_title_and_author_searches_use_provider_field_syntax():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(dict(request.url.params))
        if request.url.path == "/search.json":
            return httpx.Response(200, json={"docs": [OPEN_LIBRARY_DOC]})
        return httpx.Response(200, json={"items": [GOOGLE_ITEM]})

    by_title = _run(_open_library, handler, lambda client: client.fetch_by_field(SearchField.title, " Dune ", 5.0))
    by_author = _run(_google, handler, lambda client: client.fetch_by_field(SearchField.author, "Frank Herbert", 5.0))

    assert seen[0]["title"] == "Dune"
    assert "q" not in seen[0]
    assert seen[1]["q"] == "inauthor:Frank Herbert"
    assert [book.title for book in by_title] == ["Dune"]
    assert [book.source for book in by_author] == ["google_books"]
