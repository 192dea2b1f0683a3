# tests/test_endpoints.py
from __future__ import annotations

import base64

import pytest
from prometheus_client import REGISTRY

from jyotish_engine.api import routes
from jyotish_engine.main import UNMATCHED_ROUTE

INSTANT = "2024-03-20T06:00:00Z"
DELHI = {"latitude": 28.6139, "longitude": 77.2090}


# ---------- health & catalogs ----------

@pytest.mark.parametrize("path", ["/", "/health", "/healthz", "/api/health", "/api/health-check"])
def test_health_routes(client, path):
    rv = client.get(path)
    assert rv.status_code == 200
    assert rv.get_json()["ok"] is True


def test_catalogs(client):
    ay = client.get("/api/ayanamshas").get_json()
    keys = [v["key"] for v in ay["variants"]]
    assert "lahiri" in keys and ay["default"] == "lahiri"

    hs = client.get("/api/house-systems").get_json()
    assert "placidus" in hs["systems"] and "placidus" in hs["iterative"]
    assert "equal" not in hs["iterative"]

    cfg = client.get("/api/config").get_json()
    assert cfg["provider"] == "approximation"
    assert cfg["version"] and "build" in cfg
    assert cfg["config"]["bulk_workers"] == 4


# ---------- positions & houses ----------

def test_positions_tropical_and_sidereal(client):
    rv = client.post("/api/positions", json={"instant": INSTANT, "bodies": ["Sun", "moon"]})
    assert rv.status_code == 200
    data = rv.get_json()
    assert data["zodiac"] == "tropical"
    assert [p["body"] for p in data["positions"]] == ["Sun", "Moon"]

    sid = client.post("/api/positions", json={"instant": INSTANT, "ayanamsha": "lahiri"}).get_json()
    assert sid["zodiac"] == "sidereal"
    assert len(sid["positions"]) == 9


def test_positions_bad_body(client):
    rv = client.post("/api/positions", json={"instant": INSTANT, "bodies": ["Pluto"]})
    assert rv.status_code == 400
    data = rv.get_json()
    assert data["error"] == "validation_error"
    assert data["details"][0]["loc"] == ["body"]


def test_positions_missing_instant(client):
    rv = client.post("/api/positions", json={"bodies": ["Sun"]})
    assert rv.status_code == 400
    assert rv.get_json()["details"][0]["loc"] == ["instant"]


def test_non_object_body(client):
    rv = client.post("/api/positions", json=[1, 2, 3])
    assert rv.status_code == 400
    assert rv.get_json()["error"] == "http_error"


def test_houses(client):
    rv = client.post("/api/houses", json={"instant": INSTANT, **DELHI, "house_system": "equal"})
    assert rv.status_code == 200
    houses = rv.get_json()["houses"]
    assert houses["system"] == "equal" and len(houses["cusps"]) == 12


def test_polar_placidus_is_a_computation_error(client):
    rv = client.post("/api/houses", json={"instant": INSTANT, "latitude": 80.0, "longitude": 0.0,
                                          "house_system": "placidus"})
    assert rv.status_code == 422
    data = rv.get_json()
    assert data["error"] == "computation_error"
    assert data["details"]["stage"] == "houses"


# ---------- chart / divisions / dasha / matching / panchang ----------

def test_chart(client):
    rv = client.post("/api/chart", json={"instant": INSTANT, **DELHI, "house_system": "whole_sign"})
    assert rv.status_code == 200
    chart = rv.get_json()["chart"]
    assert len(chart["positions"]) == 9
    assert set(chart["body_houses"]) >= {"Sun", "Moon", "Ketu"}
    assert chart["sidereal_houses"]["system"] == "whole_sign"


def test_divisions(client):
    data = client.post("/api/divisions", json={"instant": INSTANT}).get_json()
    moon = data["divisions"]["divisions"]["Moon"]
    assert 1 <= moon["sign"] <= 12 and 1 <= moon["mansion"] <= 27 and 1 <= moon["quarter"] <= 4


def test_dasha_with_current_period(client):
    rv = client.post("/api/dasha", json={
        "birth_instant": "1990-05-01T00:00:00Z", "birth_mansion": 10, "moon_longitude": 125.0,
        "at": "2024-03-20T00:00:00Z",
    })
    assert rv.status_code == 200
    data = rv.get_json()
    assert data["dasha"]["periods"][0]["lord"] == "Ketu"
    assert "mahadasha" in data["current"] and 0.0 <= data["current"]["progress"] <= 1.0

    bad = client.post("/api/dasha", json={"birth_instant": "1990-05-01T00:00:00Z", "birth_mansion": 28})
    assert bad.status_code == 400


def test_compatibility(client):
    rv = client.post("/api/compatibility", json={"a": [1, 1, 1], "b": {"sign": 1, "mansion": 1, "quarter": 2}})
    assert rv.status_code == 200
    score = rv.get_json()["compatibility"]
    assert score["total"] == 36 and score["max_total"] == 36
    assert client.post("/api/compatibility", json={"a": [1, 1, 1]}).status_code == 400


def test_panchang_window_and_point(client):
    day = client.post("/api/panchang", json={"day_start": "2024-01-11T00:00:00Z", "hours": 2}).get_json()
    assert day["panchang"]["end"] == "2024-01-11T02:00:00+00:00"
    assert day["panchang"]["tithi"][0]["type"] == "tithi"

    point = client.post("/api/panchang", json={"instant": INSTANT}).get_json()
    assert 1 <= point["panchang"]["tithi"]["index"] <= 30

    assert client.post("/api/panchang", json={"day_start": INSTANT, "hours": 100}).status_code == 400


# ---------- bulk ----------

def test_bulk_positions(client):
    rv = client.post("/api/bulk/positions", json={
        "instants": ["2024-01-01T00:00:00Z", "bad", "2024-01-02T00:00:00Z"], "body": "Moon",
    })
    assert rv.status_code == 200
    data = rv.get_json()
    assert data["count"] == 3 and data["failed"] == 1
    assert data["results"][1]["error"]["kind"] == "validation"


def test_bulk_divisions_compatibility_and_charts(client):
    div = client.post("/api/bulk/divisions", json={"instants": [INSTANT]}).get_json()
    assert div["count"] == 1 and div["failed"] == 0

    pairs = client.post("/api/bulk/compatibility", json={"pairs": [[[1, 1, 1], [1, 1, 2]], "junk"]}).get_json()
    assert pairs["failed"] == 1 and pairs["results"][0]["value"]["total"] == 36

    charts = client.post("/api/bulk/charts", json={"requests": [{"instant": INSTANT, **DELHI}]}).get_json()
    assert charts["failed"] == 0


def test_bulk_limits(client, monkeypatch):
    monkeypatch.setattr(routes, "BULK_MAX_ITEMS", 2)
    rv = client.post("/api/bulk/positions", json={"instants": [INSTANT] * 3})
    assert rv.status_code == 400
    assert rv.get_json()["details"][0]["loc"] == ["instants"]
    assert client.post("/api/bulk/positions", json={"instants": "nope"}).status_code == 400


# ---------- cache ----------

def test_cache_stats_and_clear(client):
    client.post("/api/positions", json={"instant": INSTANT, "bodies": ["Sun"]})
    stats = client.get("/api/cache/stats").get_json()["cache"]
    assert stats["stats"]["computes"] >= 1

    client.post("/api/compatibility", json={"a": [1, 1, 1], "b": [1, 1, 2]})
    partner = client.post("/api/cache/clear", json={"scope": "partner"}).get_json()
    assert partner["removed"] == 1

    cleared = client.post("/api/cache/clear", json={}).get_json()
    assert cleared["ok"] and cleared["scope"] == "all" and cleared["removed"] >= 1

    assert client.post("/api/cache/clear", json={"scope": "everything"}).status_code == 400


# ---------- metrics & errors ----------

def test_metrics_requires_basic_auth(client, monkeypatch):
    monkeypatch.setenv("METRICS_USER", "ops")
    monkeypatch.setenv("METRICS_PASS", "secret")
    assert client.get("/metrics").status_code == 401

    token = base64.b64encode(b"ops:secret").decode()
    rv = client.get("/metrics", headers={"Authorization": f"Basic {token}"})
    assert rv.status_code == 200
    assert b"jyotish" in rv.data


def test_unknown_route(client):
    rv = client.get("/api/nope")
    assert rv.status_code == 404
    assert rv.get_json()["error"] == "http_error"


def _requests_for(route):
    return REGISTRY.get_sample_value("jyotish_api_requests_total", {"route": route}) or 0.0


def test_request_metrics_are_labelled_by_url_rule(client):
    before_unmatched = _requests_for(UNMATCHED_ROUTE)
    before_positions = _requests_for("/api/positions")
    for i in range(5):
        assert client.get(f"/api/no-such-route-{i}").status_code == 404
    client.post("/api/positions", json={"instant": INSTANT, "bodies": ["Sun"]})

    assert _requests_for(UNMATCHED_ROUTE) == before_unmatched + 5
    assert _requests_for("/api/positions") == before_positions + 1
    assert REGISTRY.get_sample_value("jyotish_api_requests_total", {"route": "/api/no-such-route-0"}) is None
    assert REGISTRY.get_sample_value("jyotish_request_seconds_count", {"route": UNMATCHED_ROUTE}) >= 5
