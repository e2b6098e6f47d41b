import json

import pytest
from fastapi.testclient import TestClient

import database
import main
from conftest import make_source
from routers import admin

TOKEN = "test-token"


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(database, "DB_PATH", str(tmp_path / "mixer.db"))
    monkeypatch.setattr(admin, "ADMIN_TOKEN", TOKEN)
    with TestClient(main.app) as test_client:
        yield test_client


def body(a=10, b=10, options=None, **ratio_overrides):
    ratio_config = {
        "A": {"weight": 1, "min": 1, "max": 1},
        "B": {"weight": 1, "min": 1, "max": 1},
    }
    ratio_config.update(ratio_overrides)
    payload = {
        "sources": {
            "A": [t.to_dict() for t in make_source("a", a)],
            "B": [t.to_dict() for t in make_source("b", b)],
        },
        "ratio_config": ratio_config,
    }
    if options is not None:
        payload["options"] = options
    return payload


def set_config(client, **values):
    response = client.post("/admin/config", json=values, headers={"X-Admin-Token": TOKEN})
    assert response.status_code == 200


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_create_mix(client):
    response = client.post("/mix", json=body(options={"total_songs": 6}))
    assert response.status_code == 200

    data = response.json()
    assert [t["id"] for t in data["tracks"]] == ["a1", "b1", "a2", "b2", "a3", "b3"]
    assert {t["source_playlist"] for t in data["tracks"]} == {"A", "B"}
    assert data["exhausted_playlists"] == []
    assert data["stopped_early"] is False
    assert data["statistics"]["distribution"]["A"]["count"] == 3
    assert data["is_preview"] is False


def test_create_mix_reports_exhaustion(client):
    response = client.post("/mix", json=body(a=10, b=1, options={"total_songs": 10}))
    data = response.json()
    assert [t["id"] for t in data["tracks"]] == ["a1", "b1", "a2"]
    assert data["exhausted_playlists"] == ["B"]
    assert data["stopped_early"] is True


def test_malformed_tracks_are_filtered_not_rejected(client):
    payload = body(a=3, b=3, options={"total_songs": 4})
    payload["sources"]["A"].append({"id": "no-uri"})
    payload["sources"]["A"].append("garbage")

    response = client.post("/mix", json=payload)
    assert response.status_code == 200
    assert "no-uri" not in [t["id"] for t in response.json()["tracks"]]


def test_invalid_mix_returns_400(client):
    payload = {"sources": {"A": [{"id": "x"}]}, "ratio_config": {"A": {"weight": 1}}}
    response = client.post("/mix", json=payload)
    assert response.status_code == 400
    assert "No valid sources found after cleaning" in response.json()["detail"]


def test_request_shape_errors_are_422(client):
    assert client.post("/mix", json=body(A={"weight": 1, "min": 0})).status_code == 422
    assert client.post("/mix", json=body(options={"popularity_strategy": "loud"})).status_code == 422


def test_unset_options_use_stored_defaults(client):
    set_config(client, default_total_songs=7, default_popularity_strategy="crescendo")

    data = client.post("/mix", json=body(a=20, b=20)).json()
    assert len(data["tracks"]) == 7
    assert data["statistics"]["estimated_total"] == 7


def test_preview_uses_configured_limit(client):
    set_config(client, preview_track_limit=5)

    response = client.post("/mix/preview", json=body(options={"total_songs": 50}))
    data = response.json()
    assert response.status_code == 200
    assert data["is_preview"] is True
    assert len(data["tracks"]) == 5


def test_warnings(client):
    data = client.post("/mix/warnings", json=body(a=10, b=2, options={"total_songs": 30})).json()
    assert data["exceeds_limit"]["available"] == 12
    assert data["ratio_imbalance"]["limiting_source"] == "B"

    data = client.post("/mix/warnings", json=body(options={"total_songs": 10})).json()
    assert data == {"exceeds_limit": None, "ratio_imbalance": None}


def test_admin_requires_token(client):
    assert client.get("/admin/config").status_code == 403
    assert client.get("/admin/config", headers={"X-Admin-Token": "wrong"}).status_code == 403


def test_admin_without_configured_token(client, monkeypatch):
    monkeypatch.setattr(admin, "ADMIN_TOKEN", "")
    assert client.get("/admin/config", headers={"X-Admin-Token": TOKEN}).status_code == 500


def test_admin_config_defaults_and_update(client):
    headers = {"X-Admin-Token": TOKEN}
    assert client.get("/admin/config", headers=headers).json() == {
        "default_popularity_strategy": "mixed",
        "default_total_songs": 50,
        "default_target_duration": 60.0,
        "preview_track_limit": 20,
    }

    set_config(client, default_target_duration=90)
    assert client.get("/admin/config", headers=headers).json()["default_target_duration"] == 90.0


@pytest.mark.parametrize(
    "update",
    [
        {"default_popularity_strategy": "loud"},
        {"default_total_songs": 0},
        {"default_target_duration": 2000},
        {"preview_track_limit": 101},
    ],
)
def test_admin_config_rejects_out_of_range_values(client, update):
    response = client.post("/admin/config", json=update, headers={"X-Admin-Token": TOKEN})
    assert response.status_code == 400


def test_vanishing_weight_still_mixes(client):
    payload = body(options={"use_all_songs": True}, A={"weight": 1e-320, "min": 1, "max": 1})
    response = client.post("/mix", json=payload)
    assert response.status_code == 200
    assert 0 < len(response.json()["tracks"]) <= 10


def test_infinite_weight_is_rejected(client):
    payload = body(options={"total_songs": 4})
    payload["ratio_config"]["A"]["weight"] = float("inf")
    response = client.post("/mix", content=json.dumps(payload), headers={"Content-Type": "application/json"})
    assert response.status_code == 422


def test_strategies_lists_every_curve(client):
    data = {item["name"]: item["bands"] for item in client.get("/strategies").json()}

    assert set(data) == {"mixed", "front-loaded", "mid-peak", "crescendo"}
    assert data["mixed"] == [{"until": 1.0, "quadrants": ["top_hits", "popular", "moderate", "deep_cuts"]}]
    assert data["crescendo"][0] == {"until": 0.3, "quadrants": ["deep_cuts", "moderate"]}
    assert data["front-loaded"][-1]["until"] == 1.0
