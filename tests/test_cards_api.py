from dataclasses import asdict

from fastapi.testclient import TestClient

import pytest

from api.app import app
from api.services.daily_card import reset_service
from src.cards.labels import Aspect, NumericFeatures


@pytest.fixture(autouse=True)
def _env(monkeypatch):
    monkeypatch.setenv("AUTH_ENABLED", "false")
    monkeypatch.setenv("RATE_LIMIT_ENABLED", "false")
    monkeypatch.delenv("REDIS_URL", raising=False)
    monkeypatch.delenv("CARD_CATALOG_PATH", raising=False)
    reset_service()
    yield
    reset_service()


PAYLOAD = {
    "profile_id": "profile-123",
    "date": "2025-03-14",
    "personality_key": "fire",
    "labels": [
        {"name": "bold", "category": "expression", "weight": 3.0, "planet_source": "Mars"},
        {"name": "structured", "category": "structure", "weight": 2.0, "sign_source": "Capricorn"},
        {"name": "flowing", "category": "texture", "weight": 1.5, "origin": "transit"},
    ],
}


def test_daily_card_shape():
    with TestClient(app, raise_server_exceptions=False) as client:
        r = client.post("/v1/cards/daily", json=PAYLOAD)
    assert r.status_code == 200
    body = r.json()
    assert body["date"] == "2025-03-14"
    assert sum(body["energy"].values()) == 21
    assert body["dominant_energy"] in body["energy"]
    assert all(1.0 <= value <= 10.0 for value in body["axes"].values())
    assert 0.05 <= body["axis_share"] <= 0.25
    assert body["card"]["id"] == body["scores"][0]["id"]
    assert 1 <= len(body["scores"]) <= 5


def test_daily_card_is_deterministic_across_fresh_services():
    with TestClient(app, raise_server_exceptions=False) as client:
        first = client.post("/v1/cards/daily", json=PAYLOAD).json()
    reset_service()
    with TestClient(app, raise_server_exceptions=False) as client:
        second = client.post("/v1/cards/daily", json=PAYLOAD).json()
    assert first["card"]["id"] == second["card"]["id"]
    assert first["seed"] == second["seed"]
    assert first["energy"] == second["energy"]


def test_repeat_request_same_day_moves_on():
    with TestClient(app, raise_server_exceptions=False) as client:
        first = client.post("/v1/cards/daily", json=PAYLOAD).json()
        second = client.post("/v1/cards/daily", json=PAYLOAD).json()
    assert first["card"]["id"] != second["card"]["id"]


def test_identity_is_required():
    payload = {key: value for key, value in PAYLOAD.items() if key != "profile_id"}
    with TestClient(app, raise_server_exceptions=False) as client:
        r = client.post("/v1/cards/daily", json=payload)
    assert r.status_code == 422


def test_birth_data_seeds_anonymous_requests():
    payload = {key: value for key, value in PAYLOAD.items() if key != "profile_id"}
    payload["birth"] = {"moment": "1990-08-18T14:32:00+05:30", "lat": 17.3, "lon": 78.4}
    with TestClient(app, raise_server_exceptions=False) as client:
        first = client.post("/v1/cards/daily", json=payload)
        second = client.post("/v1/cards/daily", json=payload)
    assert first.status_code == 200
    assert first.json()["profile_id"] is None
    # no recency for anonymous callers
    assert first.json()["card"]["id"] == second.json()["card"]["id"]


def test_features_drive_axes():
    payload = dict(PAYLOAD, labels=[])
    payload["features"] = {
        "angular_momentum": 1.5,
        "transit_aspect_count": 8,
        "structural_tension": 0.9,
        "visibility_index": 0.8,
    }
    with TestClient(app, raise_server_exceptions=False) as client:
        r = client.post("/v1/cards/daily", json=payload)
    assert r.status_code == 200
    assert sum(r.json()["energy"].values()) == 21


def test_catalog_lists_full_deck():
    with TestClient(app, raise_server_exceptions=False) as client:
        r = client.get("/v1/cards/catalog")
    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 78
    assert {card["id"] for card in body["cards"]} >= {"the-fool", "ace-of-cups", "king-of-swords"}


def test_missing_catalog_returns_503(monkeypatch, tmp_path):
    monkeypatch.setenv("CARD_CATALOG_PATH", str(tmp_path / "missing.json"))
    reset_service()
    with TestClient(app, raise_server_exceptions=False) as client:
        assert client.get("/v1/cards/catalog").status_code == 503
        assert client.post("/v1/cards/daily", json=PAYLOAD).status_code == 503


def test_health():
    with TestClient(app, raise_server_exceptions=False) as client:
        r = client.get("/__health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


@pytest.mark.parametrize(
    "label",
    [
        {"name": "bold", "weight": -50},
        {"name": "bold", "origin": "trasit"},
    ],
)
def test_malformed_labels_are_rejected(label):
    payload = dict(PAYLOAD, labels=[label])
    with TestClient(app, raise_server_exceptions=False) as client:
        r = client.post("/v1/cards/daily", json=payload)
    assert r.status_code == 422


def test_aspects_feed_the_feature_path():
    aspects = {
        "natal": [{"body1": "Sun", "body2": "Moon", "kind": "trine", "orb": 2.0}],
        "transit": [{"body1": "Mars", "body2": "MC", "kind": "square", "orb": 0.0}],
        "progressed": [{"body1": "Venus", "body2": "Ascendant", "kind": "opposition", "orb": 5.0}],
        "lunar_phase": 0.8,
    }
    features = NumericFeatures.from_aspects(
        [Aspect(**a) for a in aspects["natal"]],
        [Aspect(**a) for a in aspects["transit"]],
        [Aspect(**a) for a in aspects["progressed"]],
        lunar_phase=0.8,
    )
    with TestClient(app, raise_server_exceptions=False) as client:
        from_aspects = client.post("/v1/cards/daily", json=dict(PAYLOAD, labels=[], aspects=aspects))
        from_features = client.post("/v1/cards/daily", json=dict(PAYLOAD, labels=[], features=asdict(features)))
    assert from_aspects.status_code == 200
    assert from_aspects.json()["axes"] == from_features.json()["axes"]
