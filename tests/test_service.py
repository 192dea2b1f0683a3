# tests/test_service.py
from __future__ import annotations

import pytest

from jyotish_engine.core.astronomy import ApproximatePositionEngine, BodyPosition
from jyotish_engine.core.ayanamsa import ayanamsha
from jyotish_engine.core.chart import BirthChart
from jyotish_engine.core.constants import Body, wrap_deg
from jyotish_engine.core.dasha import generate
from jyotish_engine.core.ephemeris_adapter import EphemerisError, SkyfieldPositionProvider
from jyotish_engine.core.service import AstrologyService, Result, build_provider, cache_key
from jyotish_engine.utils.config import EngineConfig
from jyotish_engine.utils.memoizer import Memoizer

INSTANT = "2024-03-20T06:00:00Z"
DELHI = (28.6139, 77.2090)


class FailingProvider:
    name = "failing"

    def position(self, body, instant):
        raise EphemerisError("kernel", "kernel unavailable", path="/nowhere")


# ---------- results & boundary ----------

def test_position_result_and_memoization(service):
    first = service.position("Sun", INSTANT)
    assert first.ok and isinstance(first.value, BodyPosition)
    again = service.position(Body.SUN, INSTANT)
    assert again.value == first.value
    stats = service.memoizer.stats()
    assert stats["computes"] == 1 and stats["hits"] == 1


def test_validation_failures_are_results(service):
    res = service.position("Pluto", INSTANT)
    assert not res.ok
    assert res.error.kind == "validation"
    assert res.error.details[0]["loc"] == ["body"]
    naive = service.position("Sun", "2024-03-20T06:00:00")
    assert naive.error.kind == "validation"
    with pytest.raises(RuntimeError):
        naive.unwrap()


def test_provider_failures_are_results(clock):
    svc = AstrologyService(FailingProvider(), Memoizer(clock=clock))
    res = svc.position("Mars", INSTANT)
    assert res.error.kind == "provider"
    assert res.error.details["stage"] == "kernel"
    assert res.to_dict()["ok"] is False


def test_computation_failures_are_results(service):
    res = service.chart(INSTANT, 75.0, 20.0, house_system="placidus")
    assert res.error.kind == "computation"
    assert res.error.details["stage"] == "houses"
    # failures are not cached
    assert service.memoizer.stats()["fast_size"] == 0
    assert service.chart(INSTANT, 75.0, 20.0, house_system="equal").ok


def test_cache_key_is_canonical(utc):
    t = utc(2024, 1, 1)
    assert cache_key("op", lon=77.2, instant=t, body=Body.MOON) == (
        "op|body=Moon|instant=2024-01-01T00:00:00+00:00|lon=77.200000"
    )
    assert cache_key("op", triple=(1, 2, 3)) == "op|triple=1,2,3"


# ---------- engines through the service ----------

def test_sidereal_position_is_shifted_tropical(service, utc):
    trop = service.position("Moon", INSTANT).unwrap()
    sid = service.sidereal_position("Moon", INSTANT, ayanamsha="raman").unwrap()
    assert sid.longitude == pytest.approx(wrap_deg(trop.longitude - ayanamsha(utc(2024, 3, 20, 6), "raman")))


def test_houses_tropical_and_sidereal(service, utc):
    trop = service.houses(INSTANT, *DELHI).unwrap()
    sid = service.houses(INSTANT, *DELHI, ayanamsha="lahiri").unwrap()
    offset = ayanamsha(utc(2024, 3, 20, 6), "lahiri")
    assert trop.system.value == "placidus"
    assert sid.ascendant == pytest.approx(wrap_deg(trop.ascendant - offset))
    assert service.memoizer.stats()["computes"] == 1


def test_divisions_cover_every_body(service):
    res = service.divisions(INSTANT).unwrap()
    assert [b for b, _ in res.divisions] == list(Body)
    moon = service.sidereal_position("Moon", INSTANT).unwrap()
    assert res.of("Moon").longitude == pytest.approx(moon.longitude)


def test_chart_rebuilds_from_the_durable_tier(service, store, clock):
    chart = service.chart(INSTANT, *DELHI, house_system="whole_sign").unwrap()
    assert isinstance(chart, BirthChart)

    fresh = AstrologyService(ApproximatePositionEngine(), Memoizer(store, clock=clock))
    again = fresh.chart(INSTANT, *DELHI, house_system="whole_sign").unwrap()
    assert again == chart
    s = fresh.memoizer.stats()
    assert s["durable_hits"] == 1 and s["computes"] == 0


def test_dasha_with_explicit_mansion(service, utc):
    tl = service.dasha(INSTANT, birth_mansion=4, moon_longitude=45.0).unwrap()
    assert tl.birth_mansion == 4
    assert tl.periods == generate(4, utc(2024, 3, 20, 6), moon_longitude=45.0)


def test_dasha_derives_mansion_from_the_moon(service):
    tl = service.dasha(INSTANT).unwrap()
    moon = service.sidereal_position("Moon", INSTANT).unwrap()
    assert tl.moon_longitude == pytest.approx(moon.longitude)
    assert 1 <= tl.birth_mansion <= 27


def test_current_dasha(service, utc):
    cur = service.current_dasha("2000-01-01T00:00:00Z", "2030-06-01T00:00:00Z", birth_mansion=1, moon_longitude=0.0).unwrap()
    assert cur.mahadasha.contains(utc(2030, 6, 1))
    assert cur.antardasha.contains(utc(2030, 6, 1))
    assert 0.0 <= cur.progress <= 1.0
    assert service.dasha("2000-01-01T00:00:00Z", birth_mansion=0, moon_longitude=0.0).error.kind == "validation"


def test_compatibility_is_partner_data(service):
    res = service.compatibility([1, 1, 1], {"sign": 1, "mansion": 1, "quarter": 2})
    assert res.unwrap().total == 36
    assert service.memoizer.stats()["short_entries"] == 1
    assert service.clear_partner_cache().unwrap() == 1
    assert service.compatibility([13, 1, 1], [1, 1, 1]).error.kind == "validation"


def test_panchang_window_and_point(service):
    day = service.panchang("2024-01-11T00:00:00Z", hours=2).unwrap()
    assert day.tithi[0].start.isoformat() == "2024-01-11T00:00:00+00:00"
    point = service.panchang_point(INSTANT).unwrap()
    assert 0 <= point.tithi <= 29
    for bad in (0, 73, "24"):
        assert service.panchang("2024-01-11T00:00:00Z", hours=bad).error.kind == "validation"


# ---------- bulk ----------

def test_bulk_positions_preserve_order_and_isolate_failures(service):
    instants = ["2024-01-0%dT00:00:00Z" % d for d in range(1, 8)]
    instants.insert(3, "not-a-date")
    results = service.bulk_positions(instants, "Moon")
    assert len(results) == 8
    assert not results[3].ok and results[3].error.kind == "validation"
    for inst, res in zip(instants, results):
        if inst != "not-a-date":
            assert res.value == service.position("Moon", inst).value


def test_bulk_compatibility_and_charts(service):
    pairs = [[[1, 1, 1], [1, 1, 2]], [[1, 1, 1]], "junk"]
    res = service.bulk_compatibility(pairs)
    assert res[0].ok and not res[1].ok and not res[2].ok
    charts = service.bulk_charts([
        {"instant": INSTANT, "latitude": DELHI[0], "longitude": DELHI[1]},
        "not-an-object",
        {"instant": INSTANT, "latitude": 95.0, "longitude": 0.0},
    ])
    assert [r.ok for r in charts] == [True, False, False]
    assert service.bulk_divisions([]) == []


# ---------- cache operations ----------

def test_cache_report_and_clear(service):
    service.position("Sun", INSTANT)
    service.position("Moon", INSTANT)
    report = service.cache_stats().unwrap().to_dict()
    assert report["stats"]["computes"] == 2
    assert report["health"]["status"] in ("Excellent", "Good", "Fair", "Poor")
    assert service.clear_cache(r"body=Sun").unwrap() == 1
    assert service.clear_cache("[").error.kind == "validation"
    assert service.clear_cache().unwrap() == 1
    assert isinstance(service.cache_health(), Result)


# ---------- wiring ----------

def test_build_provider():
    assert isinstance(build_provider(EngineConfig()), ApproximatePositionEngine)
    sky = build_provider(EngineConfig(provider="skyfield", ephemeris="/missing.bsp"))
    assert isinstance(sky, SkyfieldPositionProvider) and not sky.loaded
    with pytest.raises(ValueError):
        build_provider(EngineConfig(provider="swiss"))


def test_from_config_without_durable_tier():
    svc = AstrologyService.from_config(EngineConfig(store="none", sweep_seconds=3600.0))
    try:
        assert svc.memoizer.store is None
        assert svc.position("Sun", INSTANT).ok
    finally:
        svc.close()
