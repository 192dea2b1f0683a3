# jyotish_engine/core/houses.py
"""
House cusps from (instant, latitude, longitude, system).

Fundamental angles
- LST  : GMST polynomial on the UTC Julian Day + east longitude
- ε    : mean obliquity of the date (TT centuries)
- MC   : tan λ = tan RAMC / cos ε
- ASC  : λ = atan2(cos RAMC, −(sin RAMC·cos ε + tan φ·sin ε))

Both are computed once per call and shared by every engine below.

Engines
- closed form : equal, whole_sign, porphyry, vehlow, sripati, equal_mc, morinus,
                regiomontanus, campanus, alcabitius
- quadrant    : placidus, koch. Each intermediate cusp is found by fixed-point
                iteration seeded from the equal-division guess:
                    λ ← λ + wrap(target(λ) − λ)
                until |correction| < HOUSE_TOL_DEG or HOUSE_MAX_ITERS is hit.
                Hitting the cap logs a warning and returns the last estimate.

Cusp 1 is the ascendant except for whole_sign (start of the ascendant's sign),
vehlow (ascendant − 15°), sripati (sandhi preceding the ascendant), equal_mc and
morinus (derived from the meridian). Cusps are monotonic modulo 360 for every
system at non-polar latitudes.

Circumpolar geometry (no diurnal semi-arc) raises ComputationError; it is never
papered over with a different system.
"""

from __future__ import annotations

import logging
import math
import os
import sys
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from jyotish_engine.core.astronomy import (
    ComputationError,
    local_sidereal_time_deg,
    mean_obliquity_deg,
)
from jyotish_engine.core.constants import Body, delta_deg, wrap_deg
from jyotish_engine.core.divisions import sign_lord, sign_of
from jyotish_engine.core.timescales import instant_timescales, julian_centuries
from jyotish_engine.core.validators import (
    ValidationError,
    _err,
    parse_choice,
    parse_int_range,
    parse_latlon,
    require_utc,
)

log = logging.getLogger(__name__)

DEG_R = math.pi / 180.0
EPS_NUM = 4.0 * sys.float_info.epsilon   # ULP-aware tolerance for asin/acos domain checks

# Quadrant solver knobs (env-tunable for ops / testing)
HOUSE_MAX_ITERS = int(os.getenv("JYOTISH_HOUSE_MAX_ITERS", "100"))
HOUSE_TOL_DEG = float(os.getenv("JYOTISH_HOUSE_TOL_DEG", "1e-4"))


class HouseSystem(str, Enum):
    PLACIDUS = "placidus"
    KOCH = "koch"
    EQUAL = "equal"
    WHOLE_SIGN = "whole_sign"
    PORPHYRY = "porphyry"
    VEHLOW = "vehlow"
    SRIPATI = "sripati"
    EQUAL_MC = "equal_mc"
    MORINUS = "morinus"
    REGIOMONTANUS = "regiomontanus"
    CAMPANUS = "campanus"
    ALCABITIUS = "alcabitius"

    def __str__(self) -> str:
        return self.value


QUADRANT_SYSTEMS = frozenset({HouseSystem.PLACIDUS, HouseSystem.KOCH})

_SYSTEMS: Dict[str, HouseSystem] = {s.value: s for s in HouseSystem}
_SYSTEM_ALIASES: Dict[str, str] = {
    "whole": "whole_sign",
    "wholesign": "whole_sign",
    "vehlow_equal": "vehlow",
    "equal_from_mc": "equal_mc",
    "bhava_chalit_equal_from_mc": "equal_mc",
    "madhya_bhava": "sripati",
    "bhava_chalit_sripati": "sripati",
    "regio": "regiomontanus",
}


def parse_house_system(name: Union[str, HouseSystem]) -> HouseSystem:
    if isinstance(name, HouseSystem):
        return name
    return parse_choice(name, _SYSTEMS, "house_system", aliases=_SYSTEM_ALIASES)


def list_house_systems() -> List[str]:
    return [s.value for s in HouseSystem]


# --------------------------- record ---------------------------

@dataclass(frozen=True)
class HouseCusps:
    system: HouseSystem
    cusps: Tuple[float, ...]      # 12 longitudes in [0, 360), cusp 1 first
    ascendant: float
    midheaven: float
    sidereal_time: float          # local, degrees
    obliquity: float
    iterations: int = 0           # worst-case quadrant solver iterations (0 for closed form)

    def cusp(self, n: int) -> float:
        return self.cusps[parse_int_range(n, 1, 12, "house") - 1]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "system": self.system.value,
            "cusps": list(self.cusps),
            "ascendant": self.ascendant,
            "midheaven": self.midheaven,
            "sidereal_time": self.sidereal_time,
            "obliquity": self.obliquity,
            "iterations": self.iterations,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "HouseCusps":
        return cls(
            system=parse_house_system(d["system"]),
            cusps=tuple(float(c) for c in d["cusps"]),
            ascendant=float(d["ascendant"]),
            midheaven=float(d["midheaven"]),
            sidereal_time=float(d["sidereal_time"]),
            obliquity=float(d["obliquity"]),
            iterations=int(d.get("iterations", 0)),
        )

    def shifted(self, offset_deg: float) -> "HouseCusps":
        """
        Every ecliptic angle moved by −offset (tropical -> sidereal).
        Whole-sign cusps are re-anchored on the shifted ascendant's sign.
        """
        asc = wrap_deg(self.ascendant - offset_deg)
        if self.system is HouseSystem.WHOLE_SIGN:
            cusps = _equal_from(math.floor(asc / 30.0) * 30.0)
        else:
            cusps = tuple(wrap_deg(c - offset_deg) for c in self.cusps)
        return HouseCusps(
            system=self.system,
            cusps=cusps,
            ascendant=asc,
            midheaven=wrap_deg(self.midheaven - offset_deg),
            sidereal_time=self.sidereal_time,
            obliquity=self.obliquity,
            iterations=self.iterations,
        )


# --------------------------- angle helpers ---------------------------

def _sind(a: float) -> float: return math.sin(a * DEG_R)
def _cosd(a: float) -> float: return math.cos(a * DEG_R)
def _tand(a: float) -> float: return math.tan(a * DEG_R)

def _atan2d(y: float, x: float) -> float:
    if x == 0.0 and y == 0.0:
        raise ComputationError("houses", "atan2(0,0) undefined in cusp projection")
    return wrap_deg(math.degrees(math.atan2(y, x)))

def _asin_strict_deg(x: float, ctx: str) -> float:
    if x < -1.0 - EPS_NUM or x > 1.0 + EPS_NUM:
        raise ComputationError("houses", f"circumpolar geometry: asin({x:.6g}) in {ctx}")
    return math.degrees(math.asin(max(-1.0, min(1.0, x))))

def _acos_strict_deg(x: float, ctx: str) -> float:
    if x < -1.0 - EPS_NUM or x > 1.0 + EPS_NUM:
        raise ComputationError("houses", f"circumpolar geometry: acos({x:.6g}) in {ctx}")
    return math.degrees(math.acos(max(-1.0, min(1.0, x))))

def _midpoint_wrap(a: float, b: float) -> float:
    """Circular midpoint, halfway from a to b moving forward."""
    return wrap_deg(a + 0.5 * wrap_deg(b - a))


# --------------------------- shared primitives ---------------------------

def midheaven_deg(ramc: float, eps: float) -> float:
    return _atan2d(_sind(ramc) * _cosd(eps), _cosd(ramc))

def ascendant_deg(phi: float, ramc: float, eps: float) -> float:
    """Ecliptic point rising on the horizon of pole height φ when the meridian is at ramc."""
    if abs(_cosd(phi)) < 1e-12:
        raise ComputationError("houses", "ascendant undefined at the geographic poles", latitude=phi)
    y = _cosd(ramc)
    x = -(_sind(ramc) * _cosd(eps) + _tand(phi) * _sind(eps))
    return _atan2d(y, x)

def _lambda_of_ra(ra: float, eps: float) -> float:
    """Ecliptic longitude (β = 0) of the point with right ascension ra."""
    return _atan2d(_sind(ra), _cosd(ra) * _cosd(eps))

def _ra_of_lambda(lam: float, eps: float) -> float:
    return _atan2d(_sind(lam) * _cosd(eps), _cosd(lam))

def _decl_of_lambda(lam: float, eps: float) -> float:
    return _asin_strict_deg(_sind(eps) * _sind(lam), "decl(lambda)")

def _semi_arc(dec: float, phi: float) -> float:
    """Diurnal semi-arc: SDA = acos(−tan φ · tan δ)."""
    return _acos_strict_deg(-_tand(phi) * _tand(dec), "semi-arc")

def _ascensional_difference(dec: float, phi: float) -> float:
    return _asin_strict_deg(_tand(phi) * _tand(dec), "ascensional difference")

def _require_non_circumpolar(phi: float, eps: float, system: HouseSystem) -> None:
    if abs(phi) >= 90.0 - eps:
        raise ComputationError(
            "houses",
            f"{system.value} undefined inside the polar circle (|lat| >= {90.0 - eps:.4f})",
            system=system.value, latitude=phi,
        )


def _fill_opposites(cusps: List[Optional[float]]) -> Tuple[float, ...]:
    """Opposite cusps sit exactly 180° apart; fill whichever side is missing."""
    for a in range(6):
        b = a + 6
        if cusps[a] is None and cusps[b] is not None:
            cusps[a] = wrap_deg(cusps[b] + 180.0)
        elif cusps[b] is None and cusps[a] is not None:
            cusps[b] = wrap_deg(cusps[a] + 180.0)
    if any(c is None for c in cusps):
        raise ComputationError("houses", "incomplete cusp set")
    return tuple(wrap_deg(c) for c in cusps)  # type: ignore[arg-type]


def _equal_from(start: float) -> Tuple[float, ...]:
    return tuple(wrap_deg(start + 30.0 * i) for i in range(12))


# --------------------------- fixed-point iterator ---------------------------

def _iterate_cusp(target: Callable[[float], float], seed: float, label: str) -> Tuple[float, int]:
    """
    λ ← λ + wrap(target(λ) − λ), starting at seed.
    Returns (λ, iterations). The cap is logged and the last estimate returned.
    """
    lam = wrap_deg(seed)
    for it in range(1, HOUSE_MAX_ITERS + 1):
        corr = delta_deg(lam, target(lam))
        lam = wrap_deg(lam + corr)
        if abs(corr) < HOUSE_TOL_DEG:
            return lam, it
    log.warning("house cusp %s not converged after %d iterations (last correction %.3e°)",
                label, HOUSE_MAX_ITERS, abs(corr))
    return lam, HOUSE_MAX_ITERS


@dataclass(frozen=True)
class _Frame:
    phi: float
    ramc: float
    eps: float
    asc: float
    mc: float


# --------------------------- closed-form engines ---------------------------

def _equal(f: _Frame) -> Tuple[Tuple[float, ...], int]:
    return _equal_from(f.asc), 0

def _whole(f: _Frame) -> Tuple[Tuple[float, ...], int]:
    return _equal_from(math.floor(f.asc / 30.0) * 30.0), 0

def _vehlow(f: _Frame) -> Tuple[Tuple[float, ...], int]:
    return _equal_from(f.asc - 15.0), 0

def _equal_mc(f: _Frame) -> Tuple[Tuple[float, ...], int]:
    # cusp 10 = MC, so cusp 1 = MC + 90
    return _equal_from(f.mc + 90.0), 0

def _porphyry_cusps(asc: float, mc: float) -> Tuple[float, ...]:
    cusps: List[Optional[float]] = [None] * 12
    cusps[0], cusps[9] = asc, mc
    s = wrap_deg(asc - mc)                          # MC -> ASC
    cusps[10] = wrap_deg(mc + s / 3.0)
    cusps[11] = wrap_deg(mc + 2.0 * s / 3.0)
    s = wrap_deg(mc + 180.0 - asc)                  # ASC -> IC
    cusps[1] = wrap_deg(asc + s / 3.0)
    cusps[2] = wrap_deg(asc + 2.0 * s / 3.0)
    return _fill_opposites(cusps)

def _porphyry(f: _Frame) -> Tuple[Tuple[float, ...], int]:
    return _porphyry_cusps(f.asc, f.mc), 0

def _sripati(f: _Frame) -> Tuple[Tuple[float, ...], int]:
    """Madhya bhāva: Porphyry cusps are house middles; boundaries are their midpoints."""
    mid = _porphyry_cusps(f.asc, f.mc)
    return tuple(_midpoint_wrap(mid[(i - 1) % 12], mid[i]) for i in range(12)), 0

def _morinus(f: _Frame) -> Tuple[Tuple[float, ...], int]:
    # equator divided into 30° arcs from RAMC, projected onto the ecliptic
    cusps: List[Optional[float]] = [None] * 12
    for k, idx in enumerate((9, 10, 11, 0, 1, 2)):
        F = wrap_deg(f.ramc + 30.0 * k)
        cusps[idx] = _atan2d(_sind(F) * _cosd(f.eps), _cosd(F))
    return _fill_opposites(cusps), 0

def _pole_engine(pole: Callable[[float, float], Tuple[float, float]]) -> Callable[[_Frame], Tuple[Tuple[float, ...], int]]:
    """
    Systems whose house circles pass through the north and south points of the
    horizon. Each circle is the horizon of some pole height φp at some meridian
    ramc', so its cusp is ascendant_deg(φp, ramc', ε). `pole(H, φ)` returns
    (φp, hour angle of the circle's pole) for the house at H ∈ {30, 60, 120, 150}.
    """
    def engine(f: _Frame) -> Tuple[Tuple[float, ...], int]:
        cusps: List[Optional[float]] = [None] * 12
        cusps[0], cusps[9] = f.asc, f.mc
        for H, idx in ((30.0, 10), (60.0, 11), (120.0, 1), (150.0, 2)):
            phi_p, h = pole(H, f.phi)
            cusps[idx] = ascendant_deg(phi_p, wrap_deg(f.ramc - h), f.eps)
        return _fill_opposites(cusps), 0
    return engine

def _regio_pole(H: float, phi: float) -> Tuple[float, float]:
    # equator divided into 30° arcs
    return math.degrees(math.atan(_tand(phi) * _sind(H))), 90.0 - H

def _campanus_pole(H: float, phi: float) -> Tuple[float, float]:
    # prime vertical divided into 30° arcs
    phi_p = _asin_strict_deg(_sind(phi) * _sind(H), "campanus pole")
    h = math.degrees(math.atan2(_cosd(H), _cosd(phi) * _sind(H)))
    return phi_p, h

def _alcabitius(f: _Frame) -> Tuple[Tuple[float, ...], int]:
    """Ascendant's diurnal and nocturnal semi-arcs trisected in right ascension."""
    sda = _semi_arc(_decl_of_lambda(f.asc, f.eps), f.phi)
    nsa = 180.0 - sda
    cusps: List[Optional[float]] = [None] * 12
    cusps[0], cusps[9] = f.asc, f.mc
    for ra_off, idx in ((sda / 3.0, 10), (2.0 * sda / 3.0, 11),
                        (sda + nsa / 3.0, 1), (sda + 2.0 * nsa / 3.0, 2)):
        cusps[idx] = _lambda_of_ra(wrap_deg(f.ramc + ra_off), f.eps)
    return _fill_opposites(cusps), 0


# --------------------------- quadrant engines ---------------------------

# (house index, fraction of diurnal semi-arc, fraction of nocturnal semi-arc) east of the meridian
_PLACIDUS_DIVISIONS = ((10, 1.0 / 3.0, 0.0), (11, 2.0 / 3.0, 0.0), (1, 1.0, 1.0 / 3.0), (2, 1.0, 2.0 / 3.0))

def _placidus(f: _Frame) -> Tuple[Tuple[float, ...], int]:
    """Each cusp trisects its own semi-arc, which depends on its own declination."""
    _require_non_circumpolar(f.phi, f.eps, HouseSystem.PLACIDUS)
    cusps: List[Optional[float]] = [None] * 12
    cusps[0], cusps[9] = f.asc, f.mc
    worst = 0
    for idx, a, b in _PLACIDUS_DIVISIONS:
        def target(lam: float, a: float = a, b: float = b) -> float:
            sda = _semi_arc(_decl_of_lambda(lam, f.eps), f.phi)
            return _lambda_of_ra(wrap_deg(f.ramc + a * sda + b * (180.0 - sda)), f.eps)
        cusps[idx], its = _iterate_cusp(target, f.asc + 30.0 * idx, f"placidus:{idx + 1}")
        worst = max(worst, its)
    return _fill_opposites(cusps), worst

def _koch(f: _Frame) -> Tuple[Tuple[float, ...], int]:
    """
    Birthplace system: the MC's oblique ascension arc to the ascendant is
    trisected; each cusp is the ecliptic point rising with that oblique ascension.
    RA = OA + AD(δ(λ)) is solved by the same iterator.
    """
    _require_non_circumpolar(f.phi, f.eps, HouseSystem.KOCH)
    ad_mc = _ascensional_difference(_decl_of_lambda(f.mc, f.eps), f.phi)
    oamc = wrap_deg(f.ramc - ad_mc)
    dx = wrap_deg(f.ramc + 90.0 - oamc) / 3.0
    cusps: List[Optional[float]] = [None] * 12
    cusps[0], cusps[9] = f.asc, f.mc
    worst = 0
    for k, idx in ((1, 10), (2, 11), (4, 1), (5, 2)):
        oa = wrap_deg(oamc + k * dx)
        def target(lam: float, oa: float = oa) -> float:
            ad = _ascensional_difference(_decl_of_lambda(lam, f.eps), f.phi)
            return _lambda_of_ra(wrap_deg(oa + ad), f.eps)
        cusps[idx], its = _iterate_cusp(target, f.asc + 30.0 * idx, f"koch:{idx + 1}")
        worst = max(worst, its)
    return _fill_opposites(cusps), worst


_ENGINES: Dict[HouseSystem, Callable[[_Frame], Tuple[Tuple[float, ...], int]]] = {
    HouseSystem.EQUAL: _equal,
    HouseSystem.WHOLE_SIGN: _whole,
    HouseSystem.PORPHYRY: _porphyry,
    HouseSystem.VEHLOW: _vehlow,
    HouseSystem.SRIPATI: _sripati,
    HouseSystem.EQUAL_MC: _equal_mc,
    HouseSystem.MORINUS: _morinus,
    HouseSystem.REGIOMONTANUS: _pole_engine(_regio_pole),
    HouseSystem.CAMPANUS: _pole_engine(_campanus_pole),
    HouseSystem.ALCABITIUS: _alcabitius,
    HouseSystem.PLACIDUS: _placidus,
    HouseSystem.KOCH: _koch,
}


# --------------------------- public API ---------------------------

def house_cusps_from_angles(
    sidereal_time: float,
    latitude: float,
    obliquity: float,
    system: Union[str, HouseSystem] = HouseSystem.PLACIDUS,
) -> HouseCusps:
    """Geometry only: local sidereal time (deg), latitude and obliquity already known."""
    sys_ = parse_house_system(system)
    ramc = wrap_deg(sidereal_time)
    mc = midheaven_deg(ramc, obliquity)
    asc = ascendant_deg(latitude, ramc, obliquity)
    frame = _Frame(phi=latitude, ramc=ramc, eps=obliquity, asc=asc, mc=mc)
    try:
        cusps, iters = _ENGINES[sys_](frame)
    except (ValueError, ZeroDivisionError, OverflowError) as e:
        raise ComputationError("houses", str(e), system=sys_.value, latitude=latitude) from e
    if len(cusps) != 12 or not all(math.isfinite(c) for c in cusps):
        raise ComputationError("houses", "non-finite cusp", system=sys_.value)
    return HouseCusps(
        system=sys_,
        cusps=cusps,
        ascendant=asc,
        midheaven=mc,
        sidereal_time=ramc,
        obliquity=obliquity,
        iterations=iters,
    )


def house_cusps(
    instant: datetime,
    latitude: float,
    longitude: float,
    system: Union[str, HouseSystem] = HouseSystem.PLACIDUS,
) -> HouseCusps:
    """Tropical house cusps for a UTC instant and an observer (east longitude positive)."""
    require_utc(instant)
    lat, lon = parse_latlon(latitude, longitude)
    ts = instant_timescales(instant)
    lst = local_sidereal_time_deg(ts.jd_utc, lon)
    eps = mean_obliquity_deg(julian_centuries(ts.jd_tt))
    return house_cusps_from_angles(lst, lat, eps, system)


# --------------------------- placement helpers ---------------------------

def _cusp_list(cusps: Union[HouseCusps, Sequence[float]]) -> List[float]:
    values = list(cusps.cusps) if isinstance(cusps, HouseCusps) else list(cusps)
    if len(values) != 12:
        raise ValidationError(_err("cusps", "exactly 12 cusps are required"))
    return [wrap_deg(c) for c in values]


def _house_index(ordered: List[float], lon: float) -> int:
    lam = wrap_deg(lon)
    for i in range(12):
        span = wrap_deg(ordered[(i + 1) % 12] - ordered[i])
        if wrap_deg(lam - ordered[i]) < span or span == 0.0:
            return i + 1
    return 12


def house_of(longitude: float, cusps: Union[HouseCusps, Sequence[float]]) -> int:
    """House 1..12 holding `longitude`, with forward-wrapping [cusp i, cusp i+1) intervals."""
    return _house_index(_cusp_list(cusps), longitude)


def assign_houses(longitudes: Iterable[float], cusps: Union[HouseCusps, Sequence[float]]) -> List[int]:
    ordered = _cusp_list(cusps)
    return [_house_index(ordered, lon) for lon in longitudes]


def house_lords(cusps: Union[HouseCusps, Sequence[float]]) -> Tuple[Body, ...]:
    """Ruler of the sign on each cusp (use sidereal cusps for Vedic lordship)."""
    return tuple(sign_lord(sign_of(c)) for c in _cusp_list(cusps))


__all__ = [
    "HouseSystem", "HouseCusps", "QUADRANT_SYSTEMS", "parse_house_system", "list_house_systems",
    "ascendant_deg", "midheaven_deg", "house_cusps", "house_cusps_from_angles",
    "house_of", "assign_houses", "house_lords",
]
