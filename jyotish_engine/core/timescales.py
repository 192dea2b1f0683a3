# jyotish_engine/core/timescales.py
# -----------------------------------------------------------------------------
# UTC instant -> Julian Day time axis (ERFA aligned)
#
# Public API:
#   instant_timescales(instant) -> TimeScales
#   julian_day(instant)         -> float (JD UTC)
#   julian_centuries(jd)        -> float (centuries from J2000.0)
#
# Guarantees:
#   • Only timezone-aware UTC datetimes are accepted (ValidationError otherwise).
#   • ERFA chain: UTC calendar → JD (erfa.dtf2d) → TAI (utctai) → TT (taitt).
#   • Two-part JD arithmetic preserved for TT−UTC; floats returned in API.
#   • No POSIX timestamp math feeds any JD.
# -----------------------------------------------------------------------------

from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, Tuple

import erfa  # pyERFA

from jyotish_engine.core.constants import DAYS_PER_CENTURY, J2000_JD
from jyotish_engine.core.validators import require_utc

__all__ = ["TimeScales", "instant_timescales", "julian_day", "julian_centuries"]


@dataclass(frozen=True)
class TimeScales:
    jd_utc: float
    jd_tt: float
    tt_minus_utc: float    # seconds

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _utc_two_part(instant: datetime) -> Tuple[float, float]:
    sec = instant.second + instant.microsecond / 1_000_000.0
    d1, d2 = erfa.dtf2d("UTC", instant.year, instant.month, instant.day,
                        instant.hour, instant.minute, sec)
    return float(d1), float(d2)


def instant_timescales(instant: datetime) -> TimeScales:
    require_utc(instant)
    u1, u2 = _utc_two_part(instant)
    a1, a2 = erfa.utctai(u1, u2)
    t1, t2 = erfa.taitt(a1, a2)
    tt_minus_utc = ((float(t1) - u1) + (float(t2) - u2)) * 86400.0
    return TimeScales(jd_utc=u1 + u2, jd_tt=float(t1) + float(t2), tt_minus_utc=tt_minus_utc)


def julian_day(instant: datetime) -> float:
    """JD on the UTC scale; the axis used for sidereal time and ayanamsha."""
    require_utc(instant)
    d1, d2 = _utc_two_part(instant)
    return d1 + d2


def julian_centuries(jd: float) -> float:
    return (jd - J2000_JD) / DAYS_PER_CENTURY
