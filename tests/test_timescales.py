# tests/test_timescales.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from jyotish_engine.core.constants import J2000_JD
from jyotish_engine.core.timescales import instant_timescales, julian_centuries, julian_day
from jyotish_engine.core.validators import ValidationError


def test_j2000_epoch_is_exact(utc):
    assert julian_day(utc(2000, 1, 1, 12)) == pytest.approx(J2000_JD, abs=1e-9)
    assert julian_centuries(J2000_JD) == 0.0


def test_julian_day_advances_by_whole_days(utc):
    a = julian_day(utc(2024, 3, 1))
    b = julian_day(utc(2024, 3, 2))
    assert b - a == pytest.approx(1.0, abs=1e-9)


def test_tt_minus_utc_after_2017_leap_second(utc):
    # 37 s TAI-UTC + 32.184 s TT-TAI
    ts = instant_timescales(utc(2024, 6, 1, 6, 30))
    assert ts.tt_minus_utc == pytest.approx(69.184, abs=1e-3)
    assert ts.jd_tt > ts.jd_utc


def test_timescales_to_dict(utc):
    d = instant_timescales(utc(2022, 1, 1)).to_dict()
    assert set(d) == {"jd_utc", "jd_tt", "tt_minus_utc"}


def test_naive_datetime_rejected():
    with pytest.raises(ValidationError) as ei:
        julian_day(datetime(2024, 1, 1, 0, 0))
    assert ei.value.errors()[0]["type"] == "value_error.utc"


def test_non_utc_offset_rejected_not_converted():
    ist = timezone(timedelta(hours=5, minutes=30))
    with pytest.raises(ValidationError):
        instant_timescales(datetime(2024, 1, 1, 5, 30, tzinfo=ist))


def test_fractional_seconds_reach_the_jd(utc):
    base = utc(2024, 1, 1)
    later = base + timedelta(seconds=0.5)
    assert (julian_day(later) - julian_day(base)) * 86400.0 == pytest.approx(0.5, abs=1e-4)
