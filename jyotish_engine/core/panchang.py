# jyotish_engine/core/panchang.py
"""
Panchang elements and their intervals over a time window.

  tithi  = ⌊((λ☾ − λ☉) mod 360) / 12⌋           0..29  (30 lunar days)
  yoga   = ⌊((λ☾ + λ☉) mod 360) / (360/27)⌋     0..26  (on sidereal longitudes)
  karana = ⌊((λ☾ − λ☉) mod 360) / 6⌋            0..59  (half-tithis)

Karana names: 0 is Kimstughna, 1..56 cycle the seven movable karanas,
57..59 are Shakuni, Chatushpada and Naga.

daily_intervals() samples the window (30 min for tithi/yoga, 15 min for karana)
and refines every change by bisection to 1 second, so interval boundaries are
continuous and the intervals tile [start, start + hours).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Tuple

from jyotish_engine.core.astronomy import PositionProvider
from jyotish_engine.core.ayanamsa import ayanamsha
from jyotish_engine.core.constants import NAKSHATRA_SPAN_DEG, Body, wrap_deg
from jyotish_engine.core.validators import ValidationError, _err, parse_instant, require_utc

log = logging.getLogger(__name__)

TITHI_SPAN_DEG = 12.0
KARANA_SPAN_DEG = 6.0
YOGA_SPAN_DEG = NAKSHATRA_SPAN_DEG

BOUNDARY_RESOLUTION = timedelta(seconds=1)
MAX_WINDOW_HOURS = 72

_LUNAR_DAYS = (
    "Pratipada", "Dwitiya", "Tritiya", "Chaturthi", "Panchami", "Shashthi", "Saptami",
    "Ashtami", "Navami", "Dashami", "Ekadashi", "Dwadashi", "Trayodashi", "Chaturdashi",
)
TITHI_NAMES: Tuple[str, ...] = (
    tuple(f"Shukla {n}" for n in _LUNAR_DAYS) + ("Purnima",)
    + tuple(f"Krishna {n}" for n in _LUNAR_DAYS) + ("Amavasya",)
)

YOGA_NAMES: Tuple[str, ...] = (
    "Vishkambha", "Priti", "Ayushman", "Saubhagya", "Shobhana", "Atiganda", "Sukarma",
    "Dhriti", "Shula", "Ganda", "Vriddhi", "Dhruva", "Vyaghata", "Harshana", "Vajra",
    "Siddhi", "Vyatipata", "Variyan", "Parigha", "Shiva", "Siddha", "Sadhya", "Shubha",
    "Shukla", "Brahma", "Indra", "Vaidhriti",
)

MOVABLE_KARANAS: Tuple[str, ...] = ("Bava", "Balava", "Kaulava", "Taitila", "Gara", "Vanija", "Vishti")
FIXED_KARANAS: Dict[int, str] = {0: "Kimstughna", 57: "Shakuni", 58: "Chatushpada", 59: "Naga"}

# element -> sampling step
_STEPS: Dict[str, timedelta] = {
    "tithi": timedelta(minutes=30),
    "yoga": timedelta(minutes=30),
    "karana": timedelta(minutes=15),
}

# ───────────────────────── point indices ─────────────────────────

def elongation(moon_lon: float, sun_lon: float) -> float:
    return wrap_deg(moon_lon - sun_lon)

def tithi_index(moon_lon: float, sun_lon: float) -> int:
    return min(29, int(elongation(moon_lon, sun_lon) // TITHI_SPAN_DEG))

def karana_index(moon_lon: float, sun_lon: float) -> int:
    return min(59, int(elongation(moon_lon, sun_lon) // KARANA_SPAN_DEG))

def yoga_index(moon_sidereal: float, sun_sidereal: float) -> int:
    return min(26, int(wrap_deg(moon_sidereal + sun_sidereal) // YOGA_SPAN_DEG))

def tithi_name(idx: int) -> str:
    return TITHI_NAMES[idx]

def yoga_name(idx: int) -> str:
    return YOGA_NAMES[idx]

def karana_name(idx: int) -> str:
    if idx in FIXED_KARANAS:
        return FIXED_KARANAS[idx]
    return MOVABLE_KARANAS[(idx - 1) % 7]

def paksha_of(tithi_idx: int) -> str:
    return "Shukla" if tithi_idx < 15 else "Krishna"

_NAMERS: Dict[str, Callable[[int], str]] = {"tithi": tithi_name, "yoga": yoga_name, "karana": karana_name}

# ───────────────────────── records ─────────────────────────

@dataclass(frozen=True)
class PanchangPoint:
    instant: datetime
    tithi: int
    yoga: int
    karana: int
    elongation: float

    @property
    def tithi_name(self) -> str:
        return tithi_name(self.tithi)

    @property
    def yoga_name(self) -> str:
        return yoga_name(self.yoga)

    @property
    def karana_name(self) -> str:
        return karana_name(self.karana)

    @property
    def paksha(self) -> str:
        return paksha_of(self.tithi)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "instant": self.instant.isoformat(),
            "tithi": {"index": self.tithi + 1, "name": self.tithi_name, "paksha": self.paksha},
            "yoga": {"index": self.yoga + 1, "name": self.yoga_name},
            "karana": {"index": self.karana + 1, "name": self.karana_name},
            "elongation": self.elongation,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PanchangPoint":
        return cls(
            instant=parse_instant(d["instant"]),
            tithi=int(d["tithi"]["index"]) - 1,
            yoga=int(d["yoga"]["index"]) - 1,
            karana=int(d["karana"]["index"]) - 1,
            elongation=float(d["elongation"]),
        )


@dataclass(frozen=True)
class PanchangInterval:
    kind: str          # tithi | yoga | karana
    index: int         # 0-based
    start: datetime
    end: datetime

    @property
    def name(self) -> str:
        return _NAMERS[self.kind](self.index)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "index": self.index + 1,
            "name": self.name,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PanchangInterval":
        return cls(
            kind=str(d["type"]),
            index=int(d["index"]) - 1,
            start=parse_instant(d["start"], "start"),
            end=parse_instant(d["end"], "end"),
        )


@dataclass(frozen=True)
class DailyPanchang:
    start: datetime
    end: datetime
    tithi: Tuple[PanchangInterval, ...]
    yoga: Tuple[PanchangInterval, ...]
    karana: Tuple[PanchangInterval, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "tithi": [i.to_dict() for i in self.tithi],
            "yoga": [i.to_dict() for i in self.yoga],
            "karana": [i.to_dict() for i in self.karana],
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DailyPanchang":
        return cls(
            start=parse_instant(d["start"], "start"),
            end=parse_instant(d["end"], "end"),
            tithi=tuple(PanchangInterval.from_dict(x) for x in d["tithi"]),
            yoga=tuple(PanchangInterval.from_dict(x) for x in d["yoga"]),
            karana=tuple(PanchangInterval.from_dict(x) for x in d["karana"]),
        )

# ───────────────────────── sampling ─────────────────────────

def _indices(provider: PositionProvider, instant: datetime, variant: str) -> Dict[str, int]:
    moon = provider.position(Body.MOON, instant).longitude
    sun = provider.position(Body.SUN, instant).longitude
    ayan = ayanamsha(instant, variant)
    return {
        "tithi": tithi_index(moon, sun),
        "karana": karana_index(moon, sun),
        "yoga": yoga_index(moon - ayan, sun - ayan),
    }


def panchang_at(provider: PositionProvider, instant: datetime, *, ayanamsha_variant: str = "lahiri") -> PanchangPoint:
    require_utc(instant)
    moon = provider.position(Body.MOON, instant).longitude
    sun = provider.position(Body.SUN, instant).longitude
    ayan = ayanamsha(instant, ayanamsha_variant)
    return PanchangPoint(
        instant=instant,
        tithi=tithi_index(moon, sun),
        yoga=yoga_index(moon - ayan, sun - ayan),
        karana=karana_index(moon, sun),
        elongation=elongation(moon, sun),
    )


def _refine(index_at: Callable[[datetime], int], lo: datetime, hi: datetime, lo_idx: int) -> datetime:
    """First instant (to BOUNDARY_RESOLUTION) where the index differs from lo_idx."""
    while hi - lo > BOUNDARY_RESOLUTION:
        mid = lo + (hi - lo) / 2
        if index_at(mid) == lo_idx:
            lo = mid
        else:
            hi = mid
    return hi


def _intervals_for(kind: str, index_at: Callable[[datetime], int], start: datetime, end: datetime) -> Tuple[PanchangInterval, ...]:
    step = _STEPS[kind]
    out: List[PanchangInterval] = []
    cur_idx = index_at(start)
    cur_start = start
    t = start
    while t < end:
        nxt = min(t + step, end)
        idx = index_at(nxt)
        if idx != cur_idx:
            boundary = _refine(index_at, t, nxt, cur_idx)
            out.append(PanchangInterval(kind, cur_idx, cur_start, boundary))
            cur_idx, cur_start = index_at(boundary), boundary
            # rescan the rest of the step; it may hold another change
            t = boundary
            continue
        t = nxt
    if cur_start < end:
        out.append(PanchangInterval(kind, cur_idx, cur_start, end))
    return tuple(out)


def daily_intervals(
    provider: PositionProvider,
    day_start: datetime,
    *,
    hours: int = 24,
    ayanamsha_variant: str = "lahiri",
) -> DailyPanchang:
    require_utc(day_start, "day_start")
    if isinstance(hours, bool) or not isinstance(hours, int) or not (1 <= hours <= MAX_WINDOW_HOURS):
        raise ValidationError(_err("hours", f"hours must be an integer in 1..{MAX_WINDOW_HOURS}"))
    end = day_start + timedelta(hours=hours)

    memo: Dict[datetime, Dict[str, int]] = {}

    def sample(t: datetime) -> Dict[str, int]:
        row = memo.get(t)
        if row is None:
            row = memo[t] = _indices(provider, t, ayanamsha_variant)
        return row

    per_kind = {
        kind: _intervals_for(kind, lambda t, k=kind: sample(t)[k], day_start, end)
        for kind in ("tithi", "yoga", "karana")
    }
    log.debug("panchang window %s +%dh: %d samples", day_start.isoformat(), hours, len(memo))
    return DailyPanchang(start=day_start, end=end, **per_kind)


__all__ = [
    "TITHI_NAMES", "YOGA_NAMES", "MOVABLE_KARANAS", "FIXED_KARANAS",
    "elongation", "tithi_index", "karana_index", "yoga_index",
    "tithi_name", "yoga_name", "karana_name", "paksha_of",
    "PanchangPoint", "PanchangInterval", "DailyPanchang",
    "panchang_at", "daily_intervals",
]
