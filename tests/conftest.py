# tests/conftest.py
from __future__ import annotations

"""
Pytest configuration for the jyotish-engine suite.

- Registers Hypothesis profiles for local dev and CI.
- Adds a 'slow' marker (panchang windows, skyfield).
- Shared fixtures: UTC instant factory, approximation engine, a service backed
  by a MemoryStore with a controllable clock, and a Flask test client.
"""

import os
from datetime import datetime, timezone

import pytest
from hypothesis import HealthCheck, settings

from jyotish_engine.core.astronomy import ApproximatePositionEngine
from jyotish_engine.core.service import AstrologyService
from jyotish_engine.utils.cache import MemoryStore
from jyotish_engine.utils.config import EngineConfig
from jyotish_engine.utils.memoizer import Memoizer


# ──────────────────────────────────────────────────────────────────────────────
# Hypothesis profiles
# ──────────────────────────────────────────────────────────────────────────────
settings.register_profile(
    "dev",
    settings(
        deadline=None,           # avoid flaky timeouts on slower runners
        max_examples=60,         # fast local runs
        suppress_health_check=[HealthCheck.too_slow],
    ),
)
settings.register_profile(
    "ci",
    settings(
        deadline=None,
        max_examples=120,        # a bit more coverage in CI
        suppress_health_check=[HealthCheck.too_slow],
    ),
)

_profile = (
    "ci"
    if (os.getenv("CI") or os.getenv("GITHUB_ACTIONS"))
    else os.getenv("HYPOTHESIS_PROFILE", "dev")
)
settings.load_profile(_profile)


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "slow: mark test as slow")


def pytest_report_header(config: pytest.Config) -> str:
    return f"Hypothesis profile: '{_profile}'"


# ──────────────────────────────────────────────────────────────────────────────
# Global fixtures
# ──────────────────────────────────────────────────────────────────────────────
class FakeClock:
    """Manually advanced wall clock for TTL bookkeeping."""
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def utc_instant(year: int, month: int = 1, day: int = 1, hour: int = 0, minute: int = 0, second: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, second, tzinfo=timezone.utc)


@pytest.fixture
def utc():
    return utc_instant


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(scope="session")
def engine() -> ApproximatePositionEngine:
    return ApproximatePositionEngine()


@pytest.fixture
def store(clock) -> MemoryStore:
    return MemoryStore(clock)


@pytest.fixture
def service(store, clock) -> AstrologyService:
    cfg = EngineConfig(bulk_workers=4)
    return AstrologyService(ApproximatePositionEngine(), Memoizer.from_config(cfg, store, clock=clock), cfg)


@pytest.fixture
def client(service, monkeypatch):
    monkeypatch.setenv("JYOTISH_RL_DISABLE", "1")
    from jyotish_engine.main import create_app
    app = create_app(service=service)
    app.testing = True
    return app.test_client()
