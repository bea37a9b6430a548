"""
Tests for the HTTP API, with services swapped in through dependency overrides.
"""

import pytest
from fastapi.testclient import TestClient

from recallbox.api import dependencies
from recallbox.api.config import APISettings, get_settings
from recallbox.api.main import app
from recallbox.db.item_store import InMemoryItemStore
from recallbox.ml.feedback import SearchFeedbackHandler

U1 = {"X-User-ID": "U1"}


class LeakyItemStore(InMemoryItemStore):
    def list_items(self, owner_id, filters=None, limit=None):
        with self._lock:
            return list(self._items.values())


@pytest.fixture
def settings():
    return APISettings(_env_file=None)


@pytest.fixture
def client(search_service, db_session_factory, settings):
    def get_db():
        db = db_session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[dependencies.get_search_service] = lambda: search_service
    app.dependency_overrides[dependencies.get_feedback_handler] = lambda: SearchFeedbackHandler(
        db_session_factory
    )
    app.dependency_overrides[dependencies.get_db] = get_db
    app.dependency_overrides[get_settings] = lambda: settings

    yield TestClient(app)

    app.dependency_overrides.clear()


def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["endpoints"]["search"] == "/api/v1/search"


def test_search(client):
    response = client.post("/api/v1/search", json={"query": "electrisity bill"}, headers=U1)

    assert response.status_code == 200
    data = response.json()
    assert data["results"][0]["item"]["id"] == "u1-bill"
    assert data["results"][0]["rank"] == 0
    assert "fuzzy" in data["results"][0]["strategies"]
    assert data["session_key"] == "U1:default"
    assert data["strategy_status"]["semantic"] == "skipped"
    assert data["degraded"] is False


def test_search_requires_owner(client):
    response = client.post("/api/v1/search", json={"query": "bill"})

    assert response.status_code == 401


def test_search_validation_error(client):
    response = client.post("/api/v1/search", json={"query": "bill", "limit": 0}, headers=U1)

    assert response.status_code == 422
    assert response.json()["error"]["type"] == "ValidationError"


def test_filter_only_search(client):
    response = client.post(
        "/api/v1/search", json={"query": "", "filters": {"categories": ["bills"]}}, headers=U1
    )

    data = response.json()
    assert [r["item"]["id"] for r in data["results"]] == ["u1-bill", "u1-water"]
    assert {r["match_type"] for r in data["results"]} == {"category"}


def test_search_with_timezone_aware_date_filter(client):
    response = client.post(
        "/api/v1/search",
        json={"query": "bill", "filters": {"date_from": "2024-10-25T00:00:00Z"}},
        headers=U1,
    )

    assert response.status_code == 200
    ids = [r["item"]["id"] for r in response.json()["results"]]
    assert "u1-bill" in ids
    assert "u1-water" not in ids


def test_search_then_more(client):
    headers = {**U1, "X-Conversation-ID": "chat-7"}
    first = client.post("/api/v1/search", json={"query": "bill", "limit": 1}, headers=headers)
    assert first.json()["has_more"] is True

    more = client.post("/api/v1/search/more", json={}, headers=headers)

    assert more.status_code == 200
    data = more.json()
    assert data["start"] == 1
    assert data["session_key"] == "U1:chat-7"
    assert len(data["results"]) == data["total"] - 1
    assert data["results"][0]["rank"] == 1
    assert data["has_more"] is False


def test_more_without_session_is_gone(client):
    response = client.post("/api/v1/search/more", json={"conversation_id": "never"}, headers=U1)

    assert response.status_code == 410
    assert response.json()["error"]["type"] == "SessionExpired"


def test_sessions_are_per_owner(client):
    client.post("/api/v1/search", json={"query": "bill", "limit": 1}, headers=U1)

    response = client.post("/api/v1/search/more", json={}, headers={"X-User-ID": "U2"})

    assert response.status_code == 410


def test_quick_search(client):
    response = client.get("/api/v1/search/quick", params={"q": "rent"}, headers=U1)

    assert response.status_code == 200
    assert [r["item"]["id"] for r in response.json()["results"]] == ["u1-rent"]


def test_suggestions(client):
    response = client.get("/api/v1/search/suggestions", params={"q": "bi"}, headers=U1)

    assert response.json() == {"query": "bi", "suggestions": ["bills", "bill"]}


def test_format_current_page(client):
    headers = {**U1, "X-Conversation-ID": "wa-1"}
    client.post("/api/v1/search", json={"query": "pay rent"}, headers=headers)

    response = client.get("/api/v1/search/format", params={"channel": "whatsapp"}, headers=headers)

    assert response.status_code == 200
    data = response.json()
    assert "*Search Results* (1 found)" in data["text"]
    assert (data["start"], data["end"], data["total"]) == (0, 1, 1)


def test_format_rejects_unknown_channel(client):
    response = client.get("/api/v1/search/format", params={"channel": "sms"}, headers=U1)

    assert response.status_code == 422


def test_owner_isolation_violation_is_500(client, build_service, sample_items):
    leaky = build_service(item_store=LeakyItemStore(sample_items))
    app.dependency_overrides[dependencies.get_search_service] = lambda: leaky

    response = client.post("/api/v1/search", json={"query": "pay rent"}, headers=U1)

    assert response.status_code == 500
    assert response.json()["error"]["type"] == "InternalServerError"


def test_feedback(client):
    response = client.post(
        "/api/v1/feedback",
        json={"query": "pay rent", "item_id": "u1-rent", "rating": 5, "match_type": "exact"},
        headers=U1,
    )

    assert response.status_code == 200
    assert response.json()["success"] is True

    stats = client.get("/api/v1/feedback/stats", headers=U1).json()
    assert stats["total_feedback"] == 1
    assert stats["by_match_type"] == {"exact": 1}


def test_feedback_requires_a_signal(client):
    response = client.post("/api/v1/feedback", json={"query": "pay rent"}, headers=U1)

    assert response.status_code == 422


def test_feedback_disabled(client, settings):
    settings.enable_feedback = False

    response = client.post("/api/v1/feedback", json={"query": "pay rent", "rating": 4}, headers=U1)

    assert response.status_code == 503
    assert response.json()["error"]["type"] == "FeatureDisabledError"


def test_admin_reindex(client):
    first = client.post("/api/v1/admin/reindex", json={})
    second = client.post("/api/v1/admin/reindex", json={})

    assert first.json()["status"] == "success"
    assert first.json()["processed"] == 6
    assert second.json()["processed"] == 0
    assert second.json()["skipped"] == 6

    stats = client.get("/api/v1/admin/index/stats").json()
    assert stats["num_vectors"] == 6


def test_admin_requires_api_key_when_enabled(client, settings):
    settings.require_api_key = True
    settings.api_keys = ["secret"]

    assert client.get("/api/v1/admin/index/stats").status_code == 401
    assert client.get("/api/v1/admin/index/stats", headers={"X-API-Key": "bad"}).status_code == 403
    assert client.get("/api/v1/admin/index/stats", headers={"X-API-Key": "secret"}).status_code == 200


def test_health(client):
    data = client.get("/health").json()

    assert data["status"] == "healthy"
    assert data["embedding_provider_reachable"] is True
    assert "timestamp" in data


def test_status(client):
    data = client.get("/status").json()

    assert data["components"]["database"]["status"] == "healthy"
    assert data["components"]["sessions"]["backend"] == "memory"
    assert data["performance"]["target_p95_ms"] == 500


def test_response_headers(client):
    response = client.get("/live", headers={"X-Request-ID": "req-42"})

    assert response.headers["X-Request-ID"] == "req-42"
    assert response.headers["X-Response-Time"].endswith("ms")
