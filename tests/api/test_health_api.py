from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from app.database import get_db
from app.main import create_app
from tests.helpers import FakeSource, build_context, seed_library


def test_health_is_always_ok(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_health_sources_reflects_breaker_state(make_client):
    context = build_context([FakeSource("open_library"), FakeSource("google_books")], failure_threshold=2)
    client = make_client(context)

    body = client.get("/health/sources").json()
    assert body["status"] == "ok"
    assert body["external_available"] is True
    assert [item["source"] for item in body["sources"]] == ["open_library", "google_books"]
    assert all(item["state"] == "CLOSED" for item in body["sources"])
    assert body["sources"][0]["available_tokens"] == 10.0

    context.registry.breaker("google_books").record_failure()
    context.registry.breaker("google_books").record_failure()

    body = client.get("/health/sources").json()
    assert body["status"] == "degraded"
    states = {item["source"]: item for item in body["sources"]}
    assert states["google_books"]["state"] == "OPEN"
    assert states["google_books"]["consecutive_failures"] == 2
    assert states["google_books"]["healthy"] is False
    assert body["external_available"] is True


def test_health_details_reports_catalog_and_cache(client, db_session):
    seed_library(db_session)
    client.get("/api/v1/search", params={"q": "gatsby"})

    body = client.get("/health/details").json()
    assert body["database_ok"] is True
    assert body["book_count"] == 3
    assert body["search_strategy"] == "portable"
    assert body["sufficiency_threshold"] == 10
    assert body["sources"] == []
    assert body["status"] == "ok"


def test_context_clients_are_closed_on_shutdown():
    source = FakeSource("open_library")
    with TestClient(create_app(build_context([source]))) as client:
        assert client.get("/health").status_code == 200
        assert source.closed is False
    assert source.closed is True


def test_unreachable_catalog_degrades_details_and_fails_search(tmp_path):
    broken = create_engine(f"sqlite+pysqlite:///{tmp_path}/missing/catalog.db")

    def broken_db():
        with Session(broken) as db:
            yield db

    app = create_app(build_context([]))
    app.dependency_overrides[get_db] = broken_db
    with TestClient(app) as client:
        details = client.get("/health/details").json()
        search = client.get("/api/v1/search", params={"q": "gatsby"})

    assert details["database_ok"] is False
    assert details["book_count"] is None
    assert details["status"] == "degraded"
    assert search.status_code == 503
