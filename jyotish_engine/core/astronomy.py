# jyotish_engine/core/astronomy.py
# -*- coding: utf-8 -*-
"""
Position engine (truncated-series approximation)

Public API
----------
ApproximatePositionEngine().position(body, instant) -> BodyPosition
ApproximatePositionEngine().positions(instant, bodies=None) -> {Body: BodyPosition}
PositionProvider   : Protocol every provider (this engine, skyfield adapter) satisfies
parse_body(name)   : boundary resolution of body names (ValidationError on unknown)
mean_obliquity_deg(t), ecliptic_to_equatorial(lon, lat, eps)
gmst_deg(jd_ut), local_sidereal_time_deg(jd_ut, east_lon)

Model
-----
t = Julian centuries of TT from J2000.0.

Sun      mean longitude + five-harmonic equation of center; speed is the
         analytic derivative of that series.
Moon     mean longitude + the major periodic terms (equation of center,
         evection, variation, annual equation, reduction to the ecliptic,
         parallactic inequality, ...); speed is the analytic derivative.
Planets  mean longitude + three-term equation of center on a Keplerian orbit,
         projected from heliocentric to geocentric through a fixed Earth orbit.
         Speed is the constant mean motion (an approximation, not a derivative)
         signed by the apparent direction. Retrograde status comes from the sign
         of the geocentric longitude's rate over ±0.5 day.
Nodes    mean lunar node; Ketu = Rahu + 180°. Always retrograde.

Equatorial coordinates rotate (λ, β) by the mean obliquity of the date.

Errors
------
Unknown body  -> ValidationError (immediately, no fallback)
Non-finite    -> ComputationError (never replaced by a default)
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import asdict, dataclass, replace
from datetime import datetime
from typing import Any, Dict, Iterable, NamedTuple, Optional, Protocol, Tuple

from jyotish_engine.core.constants import (
    BODY_ALIASES,
    DAYS_PER_CENTURY,
    J2000_JD,
    PLANETS,
    Body,
    delta_deg,
    wrap_deg,
)
from jyotish_engine.core.timescales import instant_timescales, julian_centuries
from jyotish_engine.core.validators import parse_choice

log = logging.getLogger(__name__)

DEG_R = math.pi / 180.0
AU_KM = 149_597_870.7

# Half-width (days) of the central difference used for retrograde detection
RETRO_HALF_STEP_D = float(os.getenv("JYOTISH_RETRO_STEP_DAYS", "0.5"))

# General precession in longitude (deg / Julian century), J2000 elements -> of date
PRECESSION_DEG_PER_CENTURY = 1.396971

# ─────────────────────────────────────────────────────────────────────────────
# Exceptions
# ─────────────────────────────────────────────────────────────────────────────
class ComputationError(ArithmeticError):
    """Arithmetic/lookup failure inside an engine; always propagated."""
    def __init__(self, stage: str, message: str, **context: Any):
        super().__init__(f"{stage}: {message}")
        self.stage = stage
        self.message = message
        self.context = context

# ─────────────────────────────────────────────────────────────────────────────
# Records & provider contract
# ─────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class BodyPosition:
    body: Body
    longitude: float          # [0, 360)
    latitude: float
    distance: float           # AU (0 for the nodes)
    speed: float              # deg/day
    is_retrograde: bool
    declination: float
    right_ascension: float    # [0, 360)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["body"] = self.body.value
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "BodyPosition":
        return cls(
            body=parse_body(d["body"]),
            longitude=float(d["longitude"]),
            latitude=float(d["latitude"]),
            distance=float(d["distance"]),
            speed=float(d["speed"]),
            is_retrograde=bool(d["is_retrograde"]),
            declination=float(d["declination"]),
            right_ascension=float(d["right_ascension"]),
        )

    def shifted(self, offset_deg: float) -> "BodyPosition":
        """Same record with longitude moved by -offset (tropical -> sidereal)."""
        return replace(self, longitude=wrap_deg(self.longitude - offset_deg))


class PositionProvider(Protocol):
    name: str

    def position(self, body: Body | str, instant: datetime) -> BodyPosition:
        ...


def parse_body(body: Any) -> Body:
    if isinstance(body, Body):
        return body
    return parse_choice(body, BODY_ALIASES, "body")

# ─────────────────────────────────────────────────────────────────────────────
# Angle helpers
# ─────────────────────────────────────────────────────────────────────────────
def _sind(a: float) -> float: return math.sin(a * DEG_R)
def _cosd(a: float) -> float: return math.cos(a * DEG_R)
def _tand(a: float) -> float: return math.tan(a * DEG_R)

def _atan2d(y: float, x: float) -> float:
    if x == 0.0 and y == 0.0:
        raise ComputationError("angle", "atan2(0,0) undefined in coordinate transformation")
    return wrap_deg(math.degrees(math.atan2(y, x)))

def _asind(x: float) -> float:
    return math.degrees(math.asin(max(-1.0, min(1.0, x))))

def _poly(c: Tuple[float, ...], t: float) -> float:
    return sum(k * t ** n for n, k in enumerate(c))

def _poly_rate(c: Tuple[float, ...], t: float) -> float:
    """d/dt of _poly, per century."""
    return sum(n * k * t ** (n - 1) for n, k in enumerate(c) if n)

# ─────────────────────────────────────────────────────────────────────────────
# Frame primitives (shared with the house engine)
# ─────────────────────────────────────────────────────────────────────────────
def mean_obliquity_deg(t: float) -> float:
    return 23.4392911 - 0.0130042 * t - 0.00000016 * t * t

def ecliptic_to_equatorial(lon: float, lat: float, eps: float) -> Tuple[float, float]:
    """(λ, β, ε) -> (right ascension in [0,360), declination)."""
    dec = _asind(_sind(lat) * _cosd(eps) + _cosd(lat) * _sind(eps) * _sind(lon))
    ra = _atan2d(_sind(lon) * _cosd(eps) - _tand(lat) * _sind(eps), _cosd(lon))
    return ra, dec

def gmst_deg(jd_ut: float) -> float:
    d = jd_ut - J2000_JD
    T = d / DAYS_PER_CENTURY
    return wrap_deg(
        280.46061837
        + 360.98564736629 * d
        + 0.000387933 * T * T
        - (T ** 3) / 38710000.0
    )

def local_sidereal_time_deg(jd_ut: float, east_lon_deg: float) -> float:
    return wrap_deg(gmst_deg(jd_ut) + east_lon_deg)

# ─────────────────────────────────────────────────────────────────────────────
# Series
# ─────────────────────────────────────────────────────────────────────────────
class _Raw(NamedTuple):
    lon: float
    lat: float
    dist: float
    speed: float
    retro: bool


# Sun
_SUN_L0 = (280.46646, 36000.76983, 0.0003032)
_SUN_M = (357.52911, 35999.05029, -0.0001537)

def _sun(t: float) -> _Raw:
    L0 = _poly(_SUN_L0, t)
    M = _poly(_SUN_M, t)
    dM = _poly_rate(_SUN_M, t)
    # (amplitude, d amplitude / dt, harmonic)
    terms = (
        (1.914602 - 0.004817 * t - 0.000014 * t * t, -0.004817 - 0.000028 * t, 1),
        (0.019993 - 0.000101 * t, -0.000101, 2),
        (0.000289, 0.0, 3),
        (0.000005, 0.0, 4),
        (0.000001, 0.0, 5),
    )
    C = sum(k * _sind(n * M) for k, _dk, n in terms)
    dC = sum(dk * _sind(n * M) + k * n * dM * DEG_R * _cosd(n * M) for k, dk, n in terms)
    e = 0.016708634 - 0.000042037 * t - 0.0000001267 * t * t
    R = 1.000001018 * (1.0 - e * e) / (1.0 + e * _cosd(M + C))
    speed = (_poly_rate(_SUN_L0, t) + dC) / DAYS_PER_CENTURY
    return _Raw(L0 + C, 0.0, R, speed, False)


# Moon fundamental arguments
_MOON_LP = (218.3164477, 481267.88123421, -0.0015786)
_MOON_D = (297.8501921, 445267.1114034, -0.0018819)
_MOON_M = (357.5291092, 35999.0502909, -0.0001536)
_MOON_MP = (134.9633964, 477198.8675055, 0.0087414)
_MOON_F = (93.2720950, 483202.0175233, -0.0036539)

# (coefficient, D, M, M', F)
_MOON_LON_TERMS = (
    (6.288774, 0, 0, 1, 0),     # equation of center
    (1.274027, 2, 0, -1, 0),    # evection
    (0.658314, 2, 0, 0, 0),     # variation
    (0.213618, 0, 0, 2, 0),
    (-0.185116, 0, 1, 0, 0),    # annual equation
    (-0.114332, 0, 0, 0, 2),    # reduction to the ecliptic
    (0.058793, 2, 0, -2, 0),
    (0.057066, 2, -1, -1, 0),
    (0.053322, 2, 0, 1, 0),
    (0.045758, 2, -1, 0, 0),
    (-0.040923, 0, 1, -1, 0),
    (-0.034720, 1, 0, 0, 0),    # parallactic inequality
    (-0.030383, 0, 1, 1, 0),
    (0.015327, 2, 0, 0, -2),
    (-0.012528, 0, 0, 1, 2),
    (0.010980, 0, 0, 1, -2),
)
_MOON_LAT_TERMS = (
    (5.128122, 0, 0, 0, 1),
    (0.280602, 0, 0, 1, 1),
    (0.277693, 0, 0, 1, -1),
    (0.173237, 2, 0, 0, -1),
    (0.055413, 2, 0, -1, 1),
    (0.046271, 2, 0, -1, -1),
)
_MOON_DIST_TERMS_KM = (
    (-20905.355, 0, 0, 1, 0),
    (-3699.111, 2, 0, -1, 0),
    (-2955.968, 2, 0, 0, 0),
    (-569.925, 0, 0, 2, 0),
)

def _moon(t: float) -> _Raw:
    args = [_poly(c, t) for c in (_MOON_D, _MOON_M, _MOON_MP, _MOON_F)]
    rates = [_poly_rate(c, t) for c in (_MOON_D, _MOON_M, _MOON_MP, _MOON_F)]
    E = 1.0 - 0.002516 * t - 0.0000074 * t * t

    def arg(mult: Tuple[int, int, int, int]) -> Tuple[float, float]:
        return (sum(m * a for m, a in zip(mult, args)),
                sum(m * r for m, r in zip(mult, rates)))

    lon = _poly(_MOON_LP, t)
    dlon = _poly_rate(_MOON_LP, t)
    for coef, *mult in _MOON_LON_TERMS:
        a, da = arg(tuple(mult))
        k = coef * (E ** abs(mult[1]))
        lon += k * _sind(a)
        dlon += k * da * DEG_R * _cosd(a)

    lat = 0.0
    for coef, *mult in _MOON_LAT_TERMS:
        a, _ = arg(tuple(mult))
        lat += coef * _sind(a)

    dist_km = 385000.56
    for coef, *mult in _MOON_DIST_TERMS_KM:
        a, _ = arg(tuple(mult))
        dist_km += coef * _cosd(a)

    return _Raw(lon, lat, dist_km / AU_KM, dlon / DAYS_PER_CENTURY, False)


# Planets: mean J2000 ecliptic elements (deg, deg/century; AU)
@dataclass(frozen=True)
class _Orbit:
    L: Tuple[float, float]       # mean longitude
    peri: Tuple[float, float]    # longitude of perihelion
    node: Tuple[float, float]    # longitude of ascending node
    a: float
    e: float
    i: float

    @property
    def mean_motion_deg_per_day(self) -> float:
        return self.L[1] / DAYS_PER_CENTURY


_ORBITS: Dict[Body, _Orbit] = {
    Body.MERCURY: _Orbit((252.250906, 149472.6746358), (77.45779628, 0.16047689),
                         (48.33076593, -0.12534081), 0.38709927, 0.205635, 7.00497902),
    Body.VENUS: _Orbit((181.979801, 58517.8156760), (131.60246718, 0.00268329),
                       (76.67984255, -0.27769418), 0.72333566, 0.006773, 3.39467605),
    Body.MARS: _Orbit((355.433, 19140.299), (336.05637041, 0.44441088),
                      (49.55953891, -0.29257343), 1.52371034, 0.093405, 1.84969142),
    Body.JUPITER: _Orbit((34.351519, 3034.9057), (14.72847983, 0.21252668),
                         (100.47390909, 0.20469106), 5.20288700, 0.048498, 1.30439695),
    Body.SATURN: _Orbit((50.077444, 1222.1138), (92.59887831, -0.41897216),
                        (113.66242448, -0.28867794), 9.53667594, 0.055723, 2.48599187),
}
_EARTH = _Orbit((100.464441, 35999.3728565), (102.93768193, 0.32327364),
                (0.0, 0.0), 1.00000261, 0.01671123, 0.0)


def _heliocentric(orbit: _Orbit, t: float) -> Tuple[float, float, float]:
    """(λ, β, r) of date: mean longitude + three-term equation of center."""
    L = orbit.L[0] + orbit.L[1] * t
    peri = orbit.peri[0] + orbit.peri[1] * t
    node = orbit.node[0] + orbit.node[1] * t
    e = orbit.e
    M = L - peri
    C = math.degrees(
        (2.0 * e - 0.25 * e ** 3) * _sind(M)
        + 1.25 * e * e * _sind(2.0 * M)
        + (13.0 / 12.0) * e ** 3 * _sind(3.0 * M)
    )
    r = orbit.a * (1.0 - e * e) / (1.0 + e * _cosd(M + C))
    u = L + C - node                         # argument of latitude
    if orbit.i == 0.0:
        lon = L + C
        lat = 0.0
    else:
        lon = node + math.degrees(math.atan2(_sind(u) * _cosd(orbit.i), _cosd(u)))
        lat = _asind(_sind(u) * _sind(orbit.i))
    return wrap_deg(lon + PRECESSION_DEG_PER_CENTURY * t), lat, r


def _geocentric(body: Body, t: float) -> Tuple[float, float, float]:
    l, b, r = _heliocentric(_ORBITS[body], t)
    le, _be, re = _heliocentric(_EARTH, t)
    x = r * _cosd(b) * _cosd(l) - re * _cosd(le)
    y = r * _cosd(b) * _sind(l) - re * _sind(le)
    z = r * _sind(b)
    rho = math.hypot(x, y)
    return _atan2d(y, x), math.degrees(math.atan2(z, rho)), math.sqrt(rho * rho + z * z)


def geocentric_rate_deg_per_day(body: Body, t: float, half_step_d: float = RETRO_HALF_STEP_D) -> float:
    """Central difference of the geocentric longitude; negative means retrograde."""
    h = half_step_d / DAYS_PER_CENTURY
    lo = _geocentric(body, t - h)[0]
    hi = _geocentric(body, t + h)[0]
    return delta_deg(lo, hi) / (2.0 * half_step_d)


def _planet(body: Body, t: float) -> _Raw:
    lon, lat, dist = _geocentric(body, t)
    retro = geocentric_rate_deg_per_day(body, t) < 0.0
    rate = _ORBITS[body].mean_motion_deg_per_day
    return _Raw(lon, lat, dist, -rate if retro else rate, retro)


# Mean lunar node
_NODE = (125.044522, -1934.136261, 0.0020754)

def _rahu(t: float) -> _Raw:
    return _Raw(_poly(_NODE, t), 0.0, 0.0, _NODE[1] / DAYS_PER_CENTURY, True)

def _ketu(t: float) -> _Raw:
    r = _rahu(t)
    return r._replace(lon=r.lon + 180.0)


def _raw_position(body: Body, t: float) -> _Raw:
    if body is Body.SUN:
        return _sun(t)
    if body is Body.MOON:
        return _moon(t)
    if body in PLANETS:
        return _planet(body, t)
    if body is Body.RAHU:
        return _rahu(t)
    if body is Body.KETU:
        return _ketu(t)
    raise ComputationError("dispatch", f"no series for body {body!r}")

# ─────────────────────────────────────────────────────────────────────────────
# Engine
# ─────────────────────────────────────────────────────────────────────────────
def _check_finite(pos: BodyPosition) -> BodyPosition:
    vals = (pos.longitude, pos.latitude, pos.distance, pos.speed, pos.declination, pos.right_ascension)
    if not all(math.isfinite(v) for v in vals):
        raise ComputationError("position", "non-finite result", body=pos.body.value)
    return pos


class ApproximatePositionEngine:
    """Pure, deterministic, no I/O; safe to memoize and to share across threads."""

    name = "approximation"

    def position(self, body: Body | str, instant: datetime) -> BodyPosition:
        b = parse_body(body)
        t = julian_centuries(instant_timescales(instant).jd_tt)
        return self.position_at(b, t)

    def positions(self, instant: datetime, bodies: Optional[Iterable[Body | str]] = None) -> Dict[Body, BodyPosition]:
        wanted = [parse_body(b) for b in bodies] if bodies is not None else list(Body)
        t = julian_centuries(instant_timescales(instant).jd_tt)
        return {b: self.position_at(b, t) for b in wanted}

    def position_at(self, body: Body, t: float) -> BodyPosition:
        """Position at t Julian centuries (TT) from J2000.0."""
        try:
            raw = _raw_position(body, t)
            eps = mean_obliquity_deg(t)
            lon = wrap_deg(raw.lon)
            ra, dec = ecliptic_to_equatorial(lon, raw.lat, eps)
        except (ValueError, OverflowError, ZeroDivisionError) as e:
            raise ComputationError("position", str(e), body=body.value, t=t) from e
        return _check_finite(BodyPosition(
            body=body,
            longitude=lon,
            latitude=raw.lat,
            distance=raw.dist,
            speed=raw.speed,
            is_retrograde=raw.retro,
            declination=dec,
            right_ascension=ra,
        ))


__all__ = [
    "ComputationError", "BodyPosition", "PositionProvider", "ApproximatePositionEngine",
    "parse_body", "mean_obliquity_deg", "ecliptic_to_equatorial", "gmst_deg",
    "local_sidereal_time_deg", "geocentric_rate_deg_per_day",
]
