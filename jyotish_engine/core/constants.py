# jyotish_engine/core/constants.py
# -*- coding: utf-8 -*-
"""
Core constants & small helpers

Single source of truth for:
- the nine grahas (bodies) and their canonical names
- zodiac sign / nakshatra (lunar mansion) names and spans
- sign rulership
- Vimshottari lord order and nominal years
- time constants

Pure-Python and safe to import from any core module.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Dict, Tuple

__all__ = [
    "Body", "PLANETS", "NODES", "BODY_ALIASES",
    "SIGN_NAMES", "NAKSHATRA_NAMES", "SIGN_SPAN_DEG", "NAKSHATRA_SPAN_DEG", "QUARTER_SPAN_DEG",
    "SIGN_LORDS", "DASHA_ORDER", "DASHA_YEARS", "DASHA_CYCLE_YEARS",
    "DAYS_PER_YEAR", "J2000_JD", "DAYS_PER_CENTURY",
    "wrap_deg", "delta_deg",
]


class Body(str, Enum):
    SUN = "Sun"
    MOON = "Moon"
    MARS = "Mars"
    MERCURY = "Mercury"
    JUPITER = "Jupiter"
    VENUS = "Venus"
    SATURN = "Saturn"
    RAHU = "Rahu"
    KETU = "Ketu"

    def __str__(self) -> str:
        return self.value


PLANETS: Tuple[Body, ...] = (Body.MERCURY, Body.VENUS, Body.MARS, Body.JUPITER, Body.SATURN)
NODES: Tuple[Body, ...] = (Body.RAHU, Body.KETU)

# name slugs accepted at the boundary
BODY_ALIASES: Dict[str, Body] = {b.value.lower(): b for b in Body}
BODY_ALIASES.update({
    "surya": Body.SUN, "chandra": Body.MOON, "mangal": Body.MARS, "kuja": Body.MARS,
    "budha": Body.MERCURY, "guru": Body.JUPITER, "brihaspati": Body.JUPITER,
    "shukra": Body.VENUS, "shani": Body.SATURN,
    "north_node": Body.RAHU, "mean_node": Body.RAHU, "south_node": Body.KETU,
})

# ── zodiac ───────────────────────────────────────────────────────────────────
SIGN_NAMES: Tuple[str, ...] = (
    "Aries", "Taurus", "Gemini", "Cancer", "Leo", "Virgo",
    "Libra", "Scorpio", "Sagittarius", "Capricorn", "Aquarius", "Pisces",
)

NAKSHATRA_NAMES: Tuple[str, ...] = (
    "Ashwini", "Bharani", "Krittika", "Rohini", "Mrigashira", "Ardra",
    "Punarvasu", "Pushya", "Ashlesha", "Magha", "Purva Phalguni", "Uttara Phalguni",
    "Hasta", "Chitra", "Swati", "Vishakha", "Anuradha", "Jyeshtha",
    "Mula", "Purva Ashadha", "Uttara Ashadha", "Shravana", "Dhanishta", "Shatabhisha",
    "Purva Bhadrapada", "Uttara Bhadrapada", "Revati",
)

SIGN_SPAN_DEG: float = 30.0
NAKSHATRA_SPAN_DEG: float = 360.0 / 27.0     # 13°20'
QUARTER_SPAN_DEG: float = NAKSHATRA_SPAN_DEG / 4.0   # 3°20'

# sign 1..12 -> ruling body
SIGN_LORDS: Tuple[Body, ...] = (
    Body.MARS, Body.VENUS, Body.MERCURY, Body.MOON, Body.SUN, Body.MERCURY,
    Body.VENUS, Body.MARS, Body.JUPITER, Body.SATURN, Body.SATURN, Body.JUPITER,
)

# ── Vimshottari ──────────────────────────────────────────────────────────────
DASHA_ORDER: Tuple[Body, ...] = (
    Body.KETU, Body.VENUS, Body.SUN, Body.MOON, Body.MARS,
    Body.RAHU, Body.JUPITER, Body.SATURN, Body.MERCURY,
)
DASHA_YEARS: Dict[Body, int] = {
    Body.KETU: 7, Body.VENUS: 20, Body.SUN: 6, Body.MOON: 10, Body.MARS: 7,
    Body.RAHU: 18, Body.JUPITER: 16, Body.SATURN: 19, Body.MERCURY: 17,
}
DASHA_CYCLE_YEARS: int = sum(DASHA_YEARS.values())   # 120

# ── time ─────────────────────────────────────────────────────────────────────
DAYS_PER_YEAR: float = 365.25
J2000_JD: float = 2451545.0
DAYS_PER_CENTURY: float = 36525.0


# ── tiny angle helpers ───────────────────────────────────────────────────────
def wrap_deg(x: float) -> float:
    """
    Wrap any angle to [0, 360).
    fmod of a tiny negative value plus 360 rounds to exactly 360.0; fold that to 0.
    """
    x = math.fmod(float(x), 360.0)
    if x < 0.0:
        x += 360.0
    return 0.0 if x >= 360.0 else x

def delta_deg(a: float, b: float) -> float:
    """
    Shortest signed difference b - a in degrees, range (-180, 180].
    Used for speed differencing and fixed-point residuals.
    """
    d = wrap_deg(b) - wrap_deg(a)
    if d > 180.0:
        d -= 360.0
    elif d <= -180.0:
        d += 360.0
    return d
