from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from mandi_resolver.exceptions import StoreUnavailableError
from mandi_resolver.main import app, get_engine
from mandi_resolver.services.name_index import NameIndex
from mandi_resolver.services.resolution_engine import ResolutionEngine
from mandi_resolver.tests.utils import TODAY


@pytest.fixture
def engine(seeded_store):
    return ResolutionEngine(store=seeded_store, index=NameIndex(seeded_store), today=lambda: TODAY)


@pytest.fixture
def client(engine):
    app.dependency_overrides[get_engine] = lambda: engine
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_resolve_exact(client):
    response = client.post("/api/resolve", json={"intent": {
        "commodity": "Cotton", "market": "Adoni", "district": "Kurnool",
        "state": "Andhra Pradesh", "date": "2025-10-18",
    }})

    assert response.status_code == 200
    body = response.json()
    assert body["kind"] == "resolved"
    assert body["matched_exactly"] is True
    assert body["records"][0]["modal_price"] == "7250.00"
    assert body["records"][0]["date"] == "2025-10-18"


def test_resolve_disambiguation(client):
    response = client.post("/api/resolve", json={"intent": {"market": "Ravulapalem"}})

    assert response.status_code == 200
    body = response.json()
    assert body["kind"] == "needs_disambiguation"
    assert body["reason"] == "no_exact_match"
    assert body["candidates"][0]["name_entry"]["canonical_name"] == "Ravulapelem"
    assert body["candidates"][0]["source"] == "spelling"


def test_resolve_empty_intent_is_not_found(client):
    response = client.post("/api/resolve", json={"intent": {}})

    assert response.status_code == 200
    assert response.json()["kind"] == "not_found"


def test_resolve_rejects_wrongly_typed_fields(client):
    response = client.post("/api/resolve", json={"intent": {"market": ["Adoni"]}})

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "InvalidIntentError"
    assert body["details"]["field"] == "market"


def test_resolve_store_outage_is_503(client, engine, monkeypatch):
    def broken(*args, **kwargs):
        raise StoreUnavailableError("database is locked")

    monkeypatch.setattr(engine.store, "count_records", broken)
    response = client.post("/api/resolve", json={"intent": {"market": "Adoni"}})

    assert response.status_code == 503
    assert response.json()["error"] == "StoreUnavailableError"


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["services"] == {"recordStore": True, "agmarknet": False}
    assert body["names"]["market"] == 8
    assert body["names"]["district"] == 5


def test_health_reports_degraded_store(client, engine, monkeypatch):
    def broken(*args, **kwargs):
        raise StoreUnavailableError("database is locked")

    monkeypatch.setattr(engine.store, "count_records", broken)
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["status"] == "degraded"
    assert response.json()["services"]["recordStore"] is False


def test_engine_construction_failure_is_503():
    def unavailable():
        raise StoreUnavailableError("unable to open database file")

    app.dependency_overrides[get_engine] = unavailable
    try:
        with TestClient(app) as test_client:
            resolve = test_client.post("/api/resolve", json={"intent": {"market": "Adoni"}})
            health = test_client.get("/api/health")
    finally:
        app.dependency_overrides.clear()

    assert resolve.status_code == 503
    assert resolve.json()["error"] == "StoreUnavailableError"
    assert health.status_code == 503
