from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

from jyotish_engine.core.astronomy import ApproximatePositionEngine, PositionProvider
from jyotish_engine.core.ayanamsa import AyanamshaVariant, sidereal_longitude
from jyotish_engine.core.constants import (
    DASHA_CYCLE_YEARS,
    DASHA_ORDER,
    DASHA_YEARS,
    DAYS_PER_YEAR,
    Body,
)
from jyotish_engine.core.divisions import NAKSHATRA_ARCMIN, mansion_elapsed_arcmin, mansion_lord, mansion_of
from jyotish_engine.core.validators import ValidationError, _err, parse_int_range, parse_longitude_deg, require_utc

log = logging.getLogger(__name__)

MIN_FIRST_PERIOD = timedelta(days=1)


@dataclass(frozen=True)
class DashaPeriod:
    lord: Body
    start: datetime
    end: datetime
    duration: timedelta

    @property
    def years(self) -> float:
        return self.duration / timedelta(days=DAYS_PER_YEAR)

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lord": self.lord.value,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "duration_days": self.duration / timedelta(days=1),
            "years": self.years,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DashaPeriod":
        start = datetime.fromisoformat(d["start"])
        end = datetime.fromisoformat(d["end"])
        return cls(lord=Body(d["lord"]), start=start, end=end, duration=end - start)


def nominal_duration(lord: Body) -> timedelta:
    return timedelta(days=DASHA_YEARS[lord] * DAYS_PER_YEAR)


def lord_sequence(start_lord: Body, count: int = 9) -> List[Body]:
    i = DASHA_ORDER.index(start_lord)
    return [DASHA_ORDER[(i + k) % 9] for k in range(count)]


def balance_fraction(moon_longitude: float) -> float:
    """Share of the birth mansion still to be traversed, (0, 1]."""
    return 1.0 - mansion_elapsed_arcmin(moon_longitude) / NAKSHATRA_ARCMIN


def first_period_balance(lord: Body, moon_longitude: float) -> timedelta:
    bal = nominal_duration(lord) * balance_fraction(moon_longitude)
    return max(bal, MIN_FIRST_PERIOD)


def _moon_sidereal(instant: datetime, provider: Optional[PositionProvider], ayanamsha: str | AyanamshaVariant) -> float:
    engine = provider or ApproximatePositionEngine()
    tropical = engine.position(Body.MOON, instant).longitude
    return sidereal_longitude(tropical, instant, ayanamsha)


def generate(
    birth_mansion: int,
    birth_instant: datetime,
    *,
    moon_longitude: Optional[float] = None,
    provider: Optional[PositionProvider] = None,
    ayanamsha: str | AyanamshaVariant = "lahiri",
) -> Tuple[DashaPeriod, ...]:
    """
    Nine contiguous Vimshottari mahadashas from birth.

    The birth mansion selects the starting lord. The first period is the
    unexpired balance of that lord, from the sidereal Moon longitude at birth
    (given, or computed with `provider`); the rest run their nominal length.
    """
    mansion = parse_int_range(birth_mansion, 1, 27, "birth_mansion")
    require_utc(birth_instant, "birth_instant")
    if moon_longitude is None:
        moon = _moon_sidereal(birth_instant, provider, ayanamsha)
    else:
        moon = parse_longitude_deg(moon_longitude, "moon_longitude")

    moon_mansion = mansion_of(moon)
    if moon_mansion != mansion:
        log.warning("birth mansion %d disagrees with Moon longitude %.4f° (mansion %d); using %d for the lord",
                    mansion, moon, moon_mansion, mansion)

    lords = lord_sequence(mansion_lord(mansion))
    periods: List[DashaPeriod] = []
    cursor = birth_instant
    for i, lord in enumerate(lords):
        span = first_period_balance(lord, moon) if i == 0 else nominal_duration(lord)
        periods.append(DashaPeriod(lord=lord, start=cursor, end=cursor + span, duration=span))
        cursor = cursor + span
    return tuple(periods)


def current_period(periods: Sequence[DashaPeriod], instant: datetime) -> DashaPeriod:
    """Period bracketing `instant`; clamps to the first/last period outside the timeline."""
    if not periods:
        raise ValidationError(_err("periods", "at least one dasha period is required"))
    require_utc(instant)
    if instant < periods[0].start:
        return periods[0]
    for p in periods:
        if p.contains(instant):
            return p
    return periods[-1]


def period_progress(period: DashaPeriod, instant: datetime) -> float:
    require_utc(instant)
    if period.duration <= timedelta(0):
        return 1.0
    frac = (instant - period.start) / period.duration
    return min(1.0, max(0.0, frac))


def antardashas(period: DashaPeriod) -> Tuple[DashaPeriod, ...]:
    """
    Bhuktis of a mahadasha, proportional to nominal years, covering it exactly.

    The bhuktis are laid out over the nominal mahadasha that ends at
    `period.end`. A shortened first mahadasha therefore keeps only the tail of
    that layout: bhuktis already elapsed at birth are dropped and the first
    remaining one starts at `period.start`.
    """
    span = max(nominal_duration(period.lord), period.duration)
    subs: List[DashaPeriod] = []
    cursor = period.end - span
    lords = lord_sequence(period.lord)
    for i, lord in enumerate(lords):
        if i == len(lords) - 1:
            end = period.end
        else:
            end = cursor + span * (DASHA_YEARS[lord] / DASHA_CYCLE_YEARS)
        if end > period.start:
            start = max(cursor, period.start)
            subs.append(DashaPeriod(lord=lord, start=start, end=end, duration=end - start))
        cursor = end
    return tuple(subs)
