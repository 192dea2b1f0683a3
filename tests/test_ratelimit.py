# tests/test_ratelimit.py
from __future__ import annotations

import pytest
from flask import Flask, jsonify, request

from jyotish_engine.utils.ratelimit import RateLimiter, client_key, rate_limit


class Tick:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def tick():
    return Tick()


@pytest.fixture
def app_client(tick, monkeypatch):
    monkeypatch.delenv("JYOTISH_RL_DISABLE", raising=False)
    monkeypatch.delenv("JYOTISH_RL_ALLOWLIST", raising=False)
    limiter = RateLimiter(clock=tick)
    app = Flask(__name__)

    @app.get("/ping")
    @rate_limit(2, limiter=limiter)
    def ping():
        return jsonify(ok=True)

    @app.post("/batch")
    @rate_limit(10, limiter=limiter, cost_fn=lambda req: len(req.get_json(silent=True) or []))
    def batch():
        return jsonify(ok=True)

    app.testing = True
    return app.test_client()


# ---------- token bucket ----------

def test_third_call_is_limited_then_refills(app_client, tick):
    first = app_client.get("/ping")
    assert first.status_code == 200
    assert first.headers["X-RateLimit-Limit"] == "2"
    assert first.headers["X-RateLimit-Remaining"] == "1"
    assert app_client.get("/ping").status_code == 200

    limited = app_client.get("/ping")
    assert limited.status_code == 429
    assert limited.get_json()["error"] == "rate_limited"
    assert limited.headers["Retry-After"] == "30"
    assert limited.headers["X-RateLimit-Remaining"] == "0"
    assert limited.headers["X-RateLimit-Policy"] == "2;w=60;burst=2"

    tick.now += 30.0
    assert app_client.get("/ping").status_code == 200


def test_cost_function_charges_per_item(app_client):
    assert app_client.post("/batch", json=list(range(8))).status_code == 200
    assert app_client.post("/batch", json=list(range(3))).status_code == 429
    assert app_client.post("/batch", json=[1, 2]).status_code == 200


def test_api_key_gets_its_own_bucket(app_client):
    for _ in range(2):
        app_client.get("/ping")
    assert app_client.get("/ping").status_code == 429
    assert app_client.get("/ping", headers={"X-API-Key": "k1"}).status_code == 200


# ---------- switches ----------

def test_disable_switch(app_client, monkeypatch):
    monkeypatch.setenv("JYOTISH_RL_DISABLE", "true")
    for _ in range(5):
        rv = app_client.get("/ping")
        assert rv.status_code == 200
        assert "X-RateLimit-Limit" not in rv.headers


def test_allowlist(app_client, monkeypatch):
    monkeypatch.setenv("JYOTISH_RL_ALLOWLIST", "trusted")
    for _ in range(5):
        assert app_client.get("/ping", headers={"X-API-Key": "trusted"}).status_code == 200


def test_client_key_sources():
    app = Flask(__name__)
    with app.test_request_context("/x", headers={"Authorization": "Bearer tok"}):
        assert client_key(request).startswith("tok:")
    with app.test_request_context("/x", headers={"X-Forwarded-For": "1.2.3.4, 10.0.0.1"}):
        assert client_key(request).startswith("1.2.3.4:")


def test_invalid_limit():
    with pytest.raises(ValueError):
        rate_limit(0)
