"""
HTTP surface of the articles API: read, authenticated push, liveness.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.config import settings
from app.main import app
from services.article_store import MemoryArticleStore, get_article_store

client = TestClient(app)

AUTH = {"Authorization": "Bearer s3cret"}


@pytest.fixture(autouse=True)
def memory_store(monkeypatch):
    store = MemoryArticleStore()
    app.dependency_overrides[get_article_store] = lambda: store
    monkeypatch.setattr(settings, "WEBHOOK_TOKEN", "s3cret")
    yield store
    app.dependency_overrides.clear()


def _item(n: int, day: int) -> dict:
    return {
        "title": f"Story {n}",
        "url": f"https://news.example/{n}",
        "source": "news.example",
        "publishedAt": f"2024-03-{day:02d}T09:00:00.000Z",
    }


def test_health_is_plain_ok():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.text == "ok"


def test_request_id_is_echoed():
    response = client.get("/health", headers={"X-Request-Id": "req-123"})
    assert response.headers["x-request-id"] == "req-123"


def test_get_requires_subject():
    for url in ("/api/articles", "/api/articles?subject=", "/api/articles?subject=,,"):
        response = client.get(url)
        assert response.status_code == 400
        assert response.json() == {"detail": "subject query param required, comma-separated"}


def test_get_unknown_subjects_return_empty_lists():
    response = client.get("/api/articles?subject=ai,php")
    assert response.status_code == 200
    assert response.json() == {"ai": [], "php": []}


def test_push_requires_bearer_token():
    body = {"subject": "ai", "items": [_item(1, 1)]}

    assert client.post("/api/articles", json=body).status_code == 401
    assert client.post("/api/articles", json=body, headers={"Authorization": "Bearer wrong"}).status_code == 401
    assert client.post("/api/articles", json=body, headers={"Authorization": "s3cret"}).status_code == 401


def test_push_rejected_when_secret_not_configured(monkeypatch):
    monkeypatch.setattr(settings, "WEBHOOK_TOKEN", None)
    response = client.post("/api/articles", json={"subject": "ai", "items": []}, headers=AUTH)
    assert response.status_code == 401


def test_auth_checked_before_body_validation():
    response = client.post("/api/articles", json={"subject": "ai"})
    assert response.status_code == 401


def test_push_validates_body():
    assert client.post("/api/articles", json={"subject": "ai"}, headers=AUTH).status_code == 422
    assert client.post("/api/articles", json={"subject": "ai", "items": "nope"}, headers=AUTH).status_code == 422

    response = client.post("/api/articles", json={"subject": "   ", "items": []}, headers=AUTH)
    assert response.status_code == 400
    assert response.json() == {"detail": "Body must include { subject, items: [...] }"}


def test_push_then_read_back():
    items = [_item(1, 1), _item(2, 3), {"title": "no url"}, _item(1, 2)]
    response = client.post("/api/articles", json={"subject": "ai", "items": items}, headers=AUTH)

    assert response.status_code == 200
    assert response.json() == {"ok": True, "count": 2}

    data = client.get("/api/articles?subject=ai,php").json()
    assert [a["url"] for a in data["ai"]] == ["https://news.example/2", "https://news.example/1"]
    assert data["ai"][0]["publishedAt"] == "2024-03-03T09:00:00.000Z"
    assert data["ai"][0]["subject"] == ""
    assert data["php"] == []


def test_push_caps_ranked_set_at_ten():
    items = [_item(n, n) for n in range(1, 16)]
    response = client.post("/api/articles", json={"subject": "ai", "items": items}, headers=AUTH)

    assert response.json()["count"] == 10
    titles = [a["title"] for a in client.get("/api/articles?subject=ai").json()["ai"]]
    assert titles == [f"Story {n}" for n in range(15, 5, -1)]


def test_push_subject_is_sanitized(memory_store):
    response = client.post(
        "/api/articles",
        json={"subject": "AI News", "items": [_item(1, 1)]},
        headers=AUTH,
    )
    assert response.status_code == 200

    assert memory_store.raw("ai-news") is not None
    data = client.get("/api/articles?subject=AI News").json()
    assert [a["url"] for a in data["AI News"]] == ["https://news.example/1"]


def test_push_drops_non_object_items_and_keeps_the_rest():
    body = {
        "subject": "ai",
        "items": [{"title": "ok", "url": "https://news.example/ok"}, "junk", None, 7, ["x"]],
    }
    response = client.post("/api/articles", json=body, headers=AUTH)

    assert response.status_code == 200
    assert response.json() == {"ok": True, "count": 1}
    assert [a["title"] for a in client.get("/api/articles?subject=ai").json()["ai"]] == ["ok"]
