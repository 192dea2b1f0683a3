# jyotish_engine/core/divisions.py
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

from jyotish_engine.core.constants import (
    DASHA_ORDER,
    NAKSHATRA_NAMES,
    NAKSHATRA_SPAN_DEG,
    QUARTER_SPAN_DEG,
    SIGN_LORDS,
    SIGN_NAMES,
    SIGN_SPAN_DEG,
    Body,
    wrap_deg,
)
from jyotish_engine.core.validators import ValidationError, _err, parse_int_range, parse_longitude_deg

NAKSHATRA_ARCMIN = 800.0   # 13°20'


def sign_of(longitude: float) -> int:
    """1..12"""
    return min(12, int(math.floor(wrap_deg(longitude) / SIGN_SPAN_DEG)) + 1)

def mansion_of(longitude: float) -> int:
    """1..27"""
    return min(27, int(math.floor(wrap_deg(longitude) / NAKSHATRA_SPAN_DEG)) + 1)

def quarter_of(longitude: float) -> int:
    """1..4 (pada)"""
    within = math.fmod(wrap_deg(longitude), NAKSHATRA_SPAN_DEG)
    return max(1, min(4, int(math.floor(within / QUARTER_SPAN_DEG)) + 1))

def mansion_elapsed_arcmin(longitude: float) -> float:
    """Arc-minutes already traversed inside the current mansion, in [0, 800)."""
    within = math.fmod(wrap_deg(longitude), NAKSHATRA_SPAN_DEG) * 60.0
    return min(within, math.nextafter(NAKSHATRA_ARCMIN, 0.0))

def mansion_progress(longitude: float) -> float:
    return mansion_elapsed_arcmin(longitude) / NAKSHATRA_ARCMIN


def sign_name(sign: int) -> str:
    return SIGN_NAMES[parse_int_range(sign, 1, 12, "sign") - 1]

def mansion_name(mansion: int) -> str:
    return NAKSHATRA_NAMES[parse_int_range(mansion, 1, 27, "mansion") - 1]

def mansion_lord(mansion: int) -> Body:
    return DASHA_ORDER[(parse_int_range(mansion, 1, 27, "mansion") - 1) % 9]

def sign_lord(sign: int) -> Body:
    return SIGN_LORDS[parse_int_range(sign, 1, 12, "sign") - 1]


@dataclass(frozen=True)
class Division:
    sign: int
    mansion: int
    quarter: int
    longitude: Optional[float] = None

    @classmethod
    def of(cls, sign: int, mansion: int, quarter: int) -> "Division":
        """Validated triple without a source longitude (e.g. supplied by a caller)."""
        return cls(
            sign=parse_int_range(sign, 1, 12, "sign"),
            mansion=parse_int_range(mansion, 1, 27, "mansion"),
            quarter=parse_int_range(quarter, 1, 4, "quarter"),
        )

    @classmethod
    def coerce(cls, value: "Division | Sequence[int] | Dict[str, Any]") -> "Division":
        if isinstance(value, Division):
            return cls.of(value.sign, value.mansion, value.quarter) if value.longitude is None else value
        if isinstance(value, dict):
            return cls.of(value.get("sign"), value.get("mansion"), value.get("quarter"))
        try:
            s, m, q = value
        except (TypeError, ValueError):
            raise ValidationError(_err("division", "expected a (sign, mansion, quarter) triple"))
        return cls.of(s, m, q)

    @property
    def triple(self) -> Tuple[int, int, int]:
        return self.sign, self.mansion, self.quarter

    @property
    def sign_name(self) -> str:
        return SIGN_NAMES[self.sign - 1]

    @property
    def mansion_name(self) -> str:
        return NAKSHATRA_NAMES[self.mansion - 1]

    @property
    def mansion_lord(self) -> Body:
        return DASHA_ORDER[(self.mansion - 1) % 9]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sign": self.sign,
            "sign_name": self.sign_name,
            "mansion": self.mansion,
            "mansion_name": self.mansion_name,
            "mansion_lord": self.mansion_lord.value,
            "quarter": self.quarter,
            "longitude": self.longitude,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Division":
        lon = d.get("longitude")
        return cls(int(d["sign"]), int(d["mansion"]), int(d["quarter"]),
                   None if lon is None else float(lon))


def discretize(longitude: float) -> Division:
    """Sidereal longitude -> (sign, mansion, quarter); normalized before division."""
    lam = wrap_deg(parse_longitude_deg(longitude))
    return Division(sign=sign_of(lam), mansion=mansion_of(lam), quarter=quarter_of(lam), longitude=lam)
