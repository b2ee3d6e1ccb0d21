from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from engine.main import app, get_store
from engine.models import Theme

from conftest import make_content


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"


def test_feed(client, store):
    store.add_content(make_content("c1", "s1", embedding=[1.0]))
    store.add_content(make_content("c2", "s4"))

    res = client.post("/feed", json={"user_id": "u1", "limit": 1})
    assert res.status_code == 200
    body = res.json()
    assert body["total"] == 2
    assert body["hasMore"] is True
    item = body["items"][0]
    assert item["id"] == "c1"
    assert "embedding" not in item
    assert set(item["score_breakdown"]) == {"base_score", "topic_match", "recency_boost"}


def test_search_requires_query(client):
    res = client.post("/search", json={})
    assert res.status_code == 400


def test_search_keyword_only_without_embedding_key(client, store):
    store.add_content(make_content("c1", "s1", title="Quantum computing milestone"))
    res = client.post("/search", json={"query": "quantum"})
    assert res.status_code == 200
    body = res.json()
    assert [r["id"] for r in body["results"]] == ["c1"]
    assert body["semanticResults"] == []


def test_interaction_updates_weights(client, store):
    store.add_content(make_content("c1", "s1"))
    res = client.post(
        "/interactions", json={"user_id": "u1", "content_id": "c1", "status": "saved"}
    )
    assert res.status_code == 200
    assert res.json() == {"status": "success", "interaction": "saved"}
    assert store.get_user_topics("u1")[0].weight == pytest.approx(1.2)


def test_interaction_unknown_content(client):
    res = client.post(
        "/interactions", json={"user_id": "u1", "content_id": "nope", "status": "read"}
    )
    assert res.status_code == 404


def test_interaction_invalid_status(client, store):
    store.add_content(make_content("c1", "s1"))
    res = client.post(
        "/interactions", json={"user_id": "u1", "content_id": "c1", "status": "liked"}
    )
    assert res.status_code == 422


def test_themes_lists_only_active(client, store):
    now = datetime.now(timezone.utc)
    store.insert_theme(Theme("live", "ai", "Trending in AI", ["a"], now, now + timedelta(days=7)))
    store.insert_theme(
        Theme("gone", "ai", "Old", ["b"], now - timedelta(days=9), now - timedelta(days=2))
    )
    res = client.get("/themes", params={"topic_id": "ai"})
    assert res.status_code == 200
    assert [t["id"] for t in res.json()["themes"]] == ["live"]
