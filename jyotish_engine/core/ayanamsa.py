# jyotish_engine/core/ayanamsa.py
"""
Ayanāṁśa variants and tropical → sidereal conversion.

Each named variant is a year-indexed polynomial sharing the precession rate
and differing only in its value at 2000.0:

    ayanamsha(year) = base + (5028.796195·T + 1.1054348·T²) / 3600,   T = (year − 2000) / 100
    year            = 2000 + (JD − 2451545.0) / 365.25

convert_to_sidereal() is exactly `tropical − ayanamsha(instant, variant)` with no
normalization; sidereal_longitude() is the same value wrapped to [0, 360).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List

from jyotish_engine.core.constants import DAYS_PER_YEAR, J2000_JD, wrap_deg
from jyotish_engine.core.timescales import julian_day
from jyotish_engine.core.validators import parse_choice

log = logging.getLogger(__name__)

# arcsec per century, arcsec per century²
_PRECESSION_T1 = 5028.796195
_PRECESSION_T2 = 1.1054348


@dataclass(frozen=True)
class AyanamshaVariant:
    key: str
    label: str
    base_deg: float           # value at 2000.0

    def at_year(self, year: float) -> float:
        T = (year - 2000.0) / 100.0
        return self.base_deg + (_PRECESSION_T1 * T + _PRECESSION_T2 * T * T) / 3600.0


_VARIANTS: Dict[str, AyanamshaVariant] = {v.key: v for v in (
    AyanamshaVariant("lahiri", "Lahiri (Chitrapaksha)", 23.857092),
    AyanamshaVariant("raman", "B. V. Raman", 22.410791),
    AyanamshaVariant("krishnamurti", "Krishnamurti (KP)", 23.760240),
    AyanamshaVariant("fagan_bradley", "Fagan/Bradley", 24.740300),
    AyanamshaVariant("yukteshwar", "Sri Yukteshwar", 22.478803),
    AyanamshaVariant("jn_bhasin", "J. N. Bhasin", 22.762137),
    AyanamshaVariant("babylonian", "Babylonian (Huber)", 24.733000),
    AyanamshaVariant("sassanian", "Sassanian", 19.992959),
    AyanamshaVariant("aldebaran_15_tau", "Aldebaran at 15° Taurus", 24.758600),
    AyanamshaVariant("galactic_center", "Galactic Center at 0° Sagittarius", 26.846000),
    AyanamshaVariant("zero", "Tropical (no offset)", 0.0),
)}

_ALIASES: Dict[str, str] = {
    "chitrapaksha": "lahiri",
    "kp": "krishnamurti",
    "fagan": "fagan_bradley",
    "fagan_allen": "fagan_bradley",
    "yukteswar": "yukteshwar",
    "bhasin": "jn_bhasin",
    "tropical": "zero",
    "none": "zero",
}


def parse_variant(name: str | AyanamshaVariant) -> AyanamshaVariant:
    if isinstance(name, AyanamshaVariant):
        return name
    return parse_choice(name, _VARIANTS, "ayanamsha", aliases=_ALIASES)


def list_variants() -> List[str]:
    return sorted(_VARIANTS)


def year_of_jd(jd: float) -> float:
    return 2000.0 + (jd - J2000_JD) / DAYS_PER_YEAR


def ayanamsha_at_jd(jd: float, variant: str | AyanamshaVariant = "lahiri") -> float:
    return parse_variant(variant).at_year(year_of_jd(jd))


def ayanamsha(instant: datetime, variant: str | AyanamshaVariant = "lahiri") -> float:
    """Offset (deg) between tropical and sidereal zodiac at a UTC instant."""
    return ayanamsha_at_jd(julian_day(instant), variant)


def convert_to_sidereal(tropical: float, instant: datetime, variant: str | AyanamshaVariant = "lahiri") -> float:
    return tropical - ayanamsha(instant, variant)


def sidereal_longitude(tropical: float, instant: datetime, variant: str | AyanamshaVariant = "lahiri") -> float:
    return wrap_deg(convert_to_sidereal(tropical, instant, variant))
