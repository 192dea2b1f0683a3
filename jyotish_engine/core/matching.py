# jyotish_engine/core/matching.py
# -*- coding: utf-8 -*-
"""
Ashta Koota (eight-fold) compatibility

Public API
----------
score(a, b) -> CompatibilityScore
    a, b : Division or (sign, mansion, quarter) triples or {"sign","mansion","quarter"} dicts

Kootas (max points)
-------------------
varna 1 · vashya 2 · tara 3 · yoni 4 · graha_maitri 5 · gana 6 · bhakoot 7 · nadi 8  = 36

Every koota is a pure lookup over fixed classification tables. Two documented
exceptions tie mansion and quarter together:
- tara : same mansion with differing quarter scores 3 (janma tara otherwise 0)
- nadi : same nadi is nullified (8) when the mansion matches and the quarter differs

Bhakoot counts d = (sign_b − sign_a) mod 12 and treats {0, 1, 2, 3, 4, 6, 9, 10}
as auspicious; d = 5, 7, 8 and 11 score 0.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Sequence, Tuple, Union

from jyotish_engine.core.constants import SIGN_LORDS, Body
from jyotish_engine.core.divisions import Division

log = logging.getLogger(__name__)

MAX_TOTAL = 36

Person = Union[Division, Sequence[int], Dict[str, Any]]


@dataclass(frozen=True)
class KootaScore:
    name: str
    score: int
    max_score: int
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "score": self.score, "max": self.max_score, "description": self.description}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "KootaScore":
        return cls(str(d["name"]), int(d["score"]), int(d["max"]), str(d["description"]))


@dataclass(frozen=True)
class CompatibilityScore:
    kootas: Tuple[KootaScore, ...]
    total: int
    tier: str
    recommendations: Tuple[str, ...]
    max_total: int = MAX_TOTAL

    @property
    def percentage(self) -> float:
        return 100.0 * self.total / self.max_total

    def koota(self, name: str) -> KootaScore:
        for k in self.kootas:
            if k.name == name:
                return k
        raise KeyError(name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "max_total": self.max_total,
            "percentage": round(self.percentage, 2),
            "tier": self.tier,
            "kootas": {k.name: k.to_dict() for k in self.kootas},
            "recommendations": list(self.recommendations),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CompatibilityScore":
        return cls(
            kootas=tuple(KootaScore.from_dict(k) for k in d["kootas"].values()),
            total=int(d["total"]),
            tier=str(d["tier"]),
            recommendations=tuple(d["recommendations"]),
            max_total=int(d.get("max_total", MAX_TOTAL)),
        )


# ───────────────────────────── classification tables ─────────────────────────────

_VARNA_NAMES = {1: "Brahmin", 2: "Kshatriya", 3: "Vaishya", 4: "Shudra"}
_VASHYA_NAMES = {1: "Manava", 2: "Vanachara"}
_GANA_NAMES = {1: "Deva", 2: "Manushya", 3: "Rakshasa"}
_NADI_NAMES = {1: "Adi", 2: "Madhya", 3: "Antya"}

_YONI_OF_MANSION: Dict[int, int] = {
    1: 1, 24: 1,       # horse
    2: 2, 27: 2,       # elephant
    3: 3, 8: 3,        # goat
    4: 4, 9: 4,        # serpent
    5: 5, 10: 5,       # dog
    6: 6, 11: 6,       # cat
    7: 7, 12: 7,       # rat
    13: 8, 14: 8,      # cow
    15: 9, 16: 9,      # buffalo
    17: 10, 18: 10,    # tiger
    19: 11, 20: 11,    # deer
    21: 12, 22: 12,    # monkey
    23: 13, 25: 13,    # lion
    26: 14,            # mongoose
}
_YONI_NAMES = {
    1: "Horse", 2: "Elephant", 3: "Goat", 4: "Serpent", 5: "Dog", 6: "Cat", 7: "Rat",
    8: "Cow", 9: "Buffalo", 10: "Tiger", 11: "Deer", 12: "Monkey", 13: "Lion", 14: "Mongoose",
}

def _pairs(*pairs: Tuple[Any, Any]) -> FrozenSet[FrozenSet[Any]]:
    return frozenset(frozenset(p) for p in pairs)

_YONI_COMPATIBLE = _pairs((1, 2), (3, 4), (5, 6), (7, 8), (9, 10), (11, 12), (13, 14))
_YONI_ENEMY = _pairs(
    (1, 3), (1, 4), (2, 3), (2, 4), (5, 7), (5, 8), (6, 7), (6, 8),
    (9, 11), (9, 12), (10, 11), (10, 12), (13, 1), (13, 2), (14, 1), (14, 2),
)

# symmetric; friendship is checked before enmity
_LORD_FRIENDS = _pairs(
    (Body.SUN, Body.MOON), (Body.SUN, Body.MARS), (Body.SUN, Body.JUPITER),
    (Body.MOON, Body.MERCURY), (Body.MOON, Body.VENUS), (Body.MARS, Body.MOON),
    (Body.MARS, Body.JUPITER), (Body.MERCURY, Body.SUN), (Body.MERCURY, Body.VENUS),
    (Body.MERCURY, Body.SATURN), (Body.JUPITER, Body.MOON), (Body.JUPITER, Body.MARS),
    (Body.VENUS, Body.SATURN), (Body.SATURN, Body.RAHU), (Body.RAHU, Body.KETU),
    (Body.KETU, Body.MARS),
)
_LORD_ENEMIES = _pairs(
    (Body.SUN, Body.SATURN), (Body.SUN, Body.RAHU), (Body.SUN, Body.KETU),
    (Body.MOON, Body.SATURN), (Body.MOON, Body.RAHU), (Body.MOON, Body.KETU),
    (Body.MARS, Body.MERCURY), (Body.MARS, Body.VENUS), (Body.MARS, Body.SATURN),
    (Body.MERCURY, Body.JUPITER), (Body.MERCURY, Body.RAHU),
    (Body.JUPITER, Body.VENUS), (Body.JUPITER, Body.KETU), (Body.VENUS, Body.RAHU),
)

_TARA_ZERO = frozenset({2, 4, 6})
_TARA_THREE = frozenset({1, 3, 5, 7, 8})
_TARA_TWO = frozenset({9, 10, 11, 12})

_BHAKOOT_AUSPICIOUS = frozenset({0, 1, 2, 3, 4, 6, 9, 10})

TIERS: Tuple[Tuple[int, str, str], ...] = (
    (33, "Excellent", "Excellent compatibility! This is considered a match made in heaven with high potential for a long-lasting marriage."),
    (25, "Good", "Good compatibility. This match has strong potential for a harmonious and successful relationship."),
    (18, "Average", "Acceptable compatibility. This match can work with mutual understanding and effort."),
    (12, "Below Average", "Low compatibility. Consider consulting an experienced astrologer for detailed analysis and remedies."),
    (0, "Poor", "Very poor compatibility. Marriage is not recommended without proper astrological remedies."),
)


# ───────────────────────────── class lookups ─────────────────────────────

def varna_of_sign(sign: int) -> int:
    # fire 1, earth 2, air 3, water 4
    return (sign - 1) % 4 + 1

def varna_of_mansion(mansion: int) -> int:
    """Class of the sign holding the mansion's first degree (start = (m−1)·40/3°)."""
    return varna_of_sign((mansion - 1) * 4 // 9 + 1)

def vashya_of(sign: int) -> int:
    return 1 if sign <= 6 else 2

def yoni_of(mansion: int) -> int:
    return _YONI_OF_MANSION[mansion]

def gana_of(mansion: int) -> int:
    return (mansion - 1) // 9 + 1

def nadi_of(mansion: int) -> int:
    return (mansion - 1) % 3 + 1

def lord_of(sign: int) -> Body:
    return SIGN_LORDS[sign - 1]


# ───────────────────────────── kootas ─────────────────────────────

def varna(a: Division, b: Division) -> KootaScore:
    va, vb = varna_of_mansion(a.mansion), varna_of_mansion(b.mansion)
    pts = 1 if va == vb or {va, vb} == {1, 2} else 0
    return KootaScore("varna", pts, 1, f"{_VARNA_NAMES[va]} / {_VARNA_NAMES[vb]}")

def vashya(a: Division, b: Division) -> KootaScore:
    va, vb = vashya_of(a.sign), vashya_of(b.sign)
    if va == vb:
        pts = 2
    elif {va, vb} == {1, 2}:
        pts = 1
    else:
        pts = 0
    return KootaScore("vashya", pts, 2, f"{_VASHYA_NAMES[va]} / {_VASHYA_NAMES[vb]}")

def tara(a: Division, b: Division) -> KootaScore:
    d = (b.mansion - a.mansion) % 27
    if d == 0:
        pts = 3 if a.quarter != b.quarter else 0
    elif d in _TARA_ZERO:
        pts = 0
    elif d in _TARA_THREE:
        pts = 3
    elif d in _TARA_TWO:
        pts = 2
    else:
        pts = 1
    return KootaScore("tara", pts, 3, f"distance {d} (tara {d % 9 + 1})")

def yoni(a: Division, b: Division) -> KootaScore:
    ya, yb = yoni_of(a.mansion), yoni_of(b.mansion)
    pair = frozenset((ya, yb))
    if ya == yb:
        pts, rel = 4, "same"
    elif pair in _YONI_COMPATIBLE:
        pts, rel = 2, "compatible"
    elif pair in _YONI_ENEMY:
        pts, rel = 0, "enemy"
    else:
        pts, rel = 1, "neutral"
    return KootaScore("yoni", pts, 4, f"{_YONI_NAMES[ya]} / {_YONI_NAMES[yb]} ({rel})")

def graha_maitri(a: Division, b: Division) -> KootaScore:
    la, lb = lord_of(a.sign), lord_of(b.sign)
    pair = frozenset((la, lb))
    if la == lb:
        pts, rel = 5, "same lord"
    elif pair in _LORD_FRIENDS:
        pts, rel = 3, "friends"
    elif pair in _LORD_ENEMIES:
        pts, rel = 0, "enemies"
    else:
        pts, rel = 2, "neutral"
    return KootaScore("graha_maitri", pts, 5, f"{la.value} / {lb.value} ({rel})")

def gana(a: Division, b: Division) -> KootaScore:
    ga, gb = gana_of(a.mansion), gana_of(b.mansion)
    if ga == gb:
        pts = 6
    elif {ga, gb} == {1, 2}:
        pts = 3
    elif 3 in (ga, gb):
        pts = 0
    else:
        pts = 1
    return KootaScore("gana", pts, 6, f"{_GANA_NAMES[ga]} / {_GANA_NAMES[gb]}")

def bhakoot(a: Division, b: Division) -> KootaScore:
    d = (b.sign - a.sign) % 12
    pts = 7 if d in _BHAKOOT_AUSPICIOUS else 0
    return KootaScore("bhakoot", pts, 7, f"{d + 1}/{(12 - d) % 12 + 1} from each other")

def nadi(a: Division, b: Division) -> KootaScore:
    na, nb = nadi_of(a.mansion), nadi_of(b.mansion)
    if na != nb:
        pts, note = 8, ""
    elif a.mansion == b.mansion and a.quarter != b.quarter:
        pts, note = 8, " (dosha cancelled: same mansion, different quarter)"
    else:
        pts, note = 0, " (nadi dosha)"
    return KootaScore("nadi", pts, 8, f"{_NADI_NAMES[na]} / {_NADI_NAMES[nb]}{note}")


KOOTAS = (varna, vashya, tara, yoni, graha_maitri, gana, bhakoot, nadi)


def tier_of(total: int) -> Tuple[str, str]:
    for floor, name, text in TIERS:
        if total >= floor:
            return name, text
    return TIERS[-1][1], TIERS[-1][2]


def _advisories(kootas: Sequence[KootaScore]) -> List[str]:
    return [
        f"Pay special attention to {k.name.replace('_', ' ')} compatibility as it scored low."
        for k in kootas
        if k.score < k.max_score * 0.5
    ]


def score(a: Person, b: Person) -> CompatibilityScore:
    pa, pb = Division.coerce(a), Division.coerce(b)
    kootas = tuple(fn(pa, pb) for fn in KOOTAS)
    total = sum(k.score for k in kootas)
    tier, text = tier_of(total)
    log.debug("ashta koota %s x %s -> %d/36 (%s)", pa.triple, pb.triple, total, tier)
    return CompatibilityScore(
        kootas=kootas,
        total=total,
        tier=tier,
        recommendations=(text, *_advisories(kootas)),
    )


__all__ = [
    "KootaScore", "CompatibilityScore", "score", "tier_of", "KOOTAS", "TIERS", "MAX_TOTAL",
    "varna_of_mansion", "vashya_of", "yoni_of", "gana_of", "nadi_of",
]
