# jyotish_engine/core/chart.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Tuple, Union

from jyotish_engine.core.astronomy import BodyPosition, PositionProvider, parse_body
from jyotish_engine.core.ayanamsa import AyanamshaVariant, ayanamsha as ayanamsha_of, parse_variant
from jyotish_engine.core.constants import Body
from jyotish_engine.core.divisions import Division, discretize
from jyotish_engine.core.houses import HouseCusps, HouseSystem, assign_houses, house_cusps, house_lords, parse_house_system
from jyotish_engine.core.validators import parse_instant, parse_latlon, require_utc

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class BirthChart:
    """
    Everything downstream consumers need from one (instant, place):
    sidereal positions, both cusp sets, per-body house, per-house lord and the
    Moon/ascendant divisions that feed dasha and matching.
    """
    instant: datetime
    latitude: float
    longitude: float
    ayanamsha_variant: str
    ayanamsha: float
    positions: Tuple[BodyPosition, ...]        # sidereal, Body order
    tropical_houses: HouseCusps
    sidereal_houses: HouseCusps
    body_houses: Tuple[Tuple[Body, int], ...]
    house_lords: Tuple[Body, ...]              # lord of house 1..12
    moon: Division
    ascendant: Division

    def position(self, body: Union[Body, str]) -> BodyPosition:
        b = parse_body(body)
        for p in self.positions:
            if p.body is b:
                return p
        raise KeyError(b.value)

    def house_of(self, body: Union[Body, str]) -> int:
        return dict(self.body_houses)[parse_body(body)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "instant": self.instant.isoformat(),
            "latitude": self.latitude,
            "longitude": self.longitude,
            "ayanamsha_variant": self.ayanamsha_variant,
            "ayanamsha": self.ayanamsha,
            "positions": [p.to_dict() for p in self.positions],
            "tropical_houses": self.tropical_houses.to_dict(),
            "sidereal_houses": self.sidereal_houses.to_dict(),
            "body_houses": {b.value: h for b, h in self.body_houses},
            "house_lords": [b.value for b in self.house_lords],
            "moon": self.moon.to_dict(),
            "ascendant": self.ascendant.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "BirthChart":
        return cls(
            instant=parse_instant(d["instant"]),
            latitude=float(d["latitude"]),
            longitude=float(d["longitude"]),
            ayanamsha_variant=str(d["ayanamsha_variant"]),
            ayanamsha=float(d["ayanamsha"]),
            positions=tuple(BodyPosition.from_dict(p) for p in d["positions"]),
            tropical_houses=HouseCusps.from_dict(d["tropical_houses"]),
            sidereal_houses=HouseCusps.from_dict(d["sidereal_houses"]),
            body_houses=tuple((parse_body(k), int(v)) for k, v in d["body_houses"].items()),
            house_lords=tuple(parse_body(b) for b in d["house_lords"]),
            moon=Division.from_dict(d["moon"]),
            ascendant=Division.from_dict(d["ascendant"]),
        )


def build_chart(
    provider: PositionProvider,
    instant: datetime,
    latitude: float,
    longitude: float,
    *,
    ayanamsha: Union[str, AyanamshaVariant] = "lahiri",
    house_system: Union[str, HouseSystem] = HouseSystem.PLACIDUS,
) -> BirthChart:
    require_utc(instant)
    lat, lon = parse_latlon(latitude, longitude)
    variant = parse_variant(ayanamsha)
    system = parse_house_system(house_system)

    offset = ayanamsha_of(instant, variant)
    sidereal = tuple(provider.position(b, instant).shifted(offset) for b in Body)

    tropical_cusps = house_cusps(instant, lat, lon, system)
    sidereal_cusps = tropical_cusps.shifted(offset)
    houses = assign_houses((p.longitude for p in sidereal), sidereal_cusps)

    moon = next(p for p in sidereal if p.body is Body.MOON)
    log.debug("chart %s (%s, %s) %s/%s", instant.isoformat(), lat, lon, variant.key, system.value)
    return BirthChart(
        instant=instant,
        latitude=lat,
        longitude=lon,
        ayanamsha_variant=variant.key,
        ayanamsha=offset,
        positions=sidereal,
        tropical_houses=tropical_cusps,
        sidereal_houses=sidereal_cusps,
        body_houses=tuple((p.body, h) for p, h in zip(sidereal, houses)),
        house_lords=house_lords(sidereal_cusps),
        moon=discretize(moon.longitude),
        ascendant=discretize(sidereal_cusps.ascendant),
    )


__all__ = ["BirthChart", "build_chart"]
