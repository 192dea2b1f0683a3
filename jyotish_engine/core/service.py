# jyotish_engine/core/service.py
"""
AstrologyService: memoized public operations over the engines.

Every operation returns a Result. ValidationError, ComputationError and
EphemerisError are converted at this boundary into ErrorInfo(kind=...) with
kind ∈ {validation, computation, provider}; anything else propagates.

Cache keys are `op|name=value|...` over canonicalized arguments (ISO instant,
coordinates rounded to 1e-6, variant/system keys, provider name). Partner-side
work (compatibility, or any call with partner=True) is memoized with SHORT
retention; everything else with LONG.
"""
from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Generic, Iterable, List, Mapping, Optional, Sequence, Tuple, TypeVar

from jyotish_engine.core.astronomy import ApproximatePositionEngine, BodyPosition, ComputationError, PositionProvider, parse_body
from jyotish_engine.core.ayanamsa import ayanamsha as ayanamsha_of, parse_variant
from jyotish_engine.core.chart import BirthChart, build_chart
from jyotish_engine.core.constants import Body
from jyotish_engine.core import dasha as dasha_engine
from jyotish_engine.core.dasha import DashaPeriod
from jyotish_engine.core.divisions import Division, discretize, mansion_of
from jyotish_engine.core.ephemeris_adapter import EphemerisError, SkyfieldPositionProvider
from jyotish_engine.core.houses import HouseCusps, house_cusps, parse_house_system
from jyotish_engine.core.matching import CompatibilityScore, score as ashta_koota
from jyotish_engine.core.panchang import DailyPanchang, PanchangPoint, daily_intervals, panchang_at
from jyotish_engine.core.validators import ValidationError, _err, parse_instant, parse_latlon, parse_longitude_deg
from jyotish_engine.utils.cache import build_store
from jyotish_engine.utils.config import EngineConfig
from jyotish_engine.utils.memoizer import Memoizer, Retention

log = logging.getLogger(__name__)

T = TypeVar("T")

# ─────────────────────────────────────────────────────────────────────────────
# Result records
# ─────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class ErrorInfo:
    kind: str                     # validation | computation | provider
    message: str
    details: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "details": self.details}


@dataclass(frozen=True)
class Result(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[ErrorInfo] = None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, kind: str, message: str, details: Any = None) -> "Result[T]":
        return cls(ok=False, error=ErrorInfo(kind, message, details))

    def unwrap(self) -> T:
        if not self.ok:
            raise RuntimeError(f"{self.error.kind}: {self.error.message}")
        return self.value

    def to_dict(self) -> Dict[str, Any]:
        if not self.ok:
            return {"ok": False, "error": self.error.to_dict()}
        return {"ok": True, "value": _jsonable(self.value)}


def _jsonable(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    return value


def _boundary(op: str, fn: Callable[[], T]) -> Result[T]:
    try:
        return Result.success(fn())
    except ValidationError as e:
        log.debug("%s rejected: %s", op, e)
        return Result.failure("validation", str(e), e.errors())
    except ComputationError as e:
        log.warning("%s failed at %s: %s", op, e.stage, e.message)
        return Result.failure("computation", e.message, {"stage": e.stage, **e.context})
    except EphemerisError as e:
        log.warning("%s provider failure at %s: %s", op, e.stage, e.message)
        return Result.failure("provider", e.message, {"stage": e.stage, **e.context})

# ─────────────────────────────────────────────────────────────────────────────
# Composite records
# ─────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class BodyDivisions:
    instant: datetime
    ayanamsha_variant: str
    divisions: Tuple[Tuple[Body, Division], ...]

    def of(self, body: Body | str) -> Division:
        return dict(self.divisions)[parse_body(body)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "instant": self.instant.isoformat(),
            "ayanamsha_variant": self.ayanamsha_variant,
            "divisions": {b.value: d.to_dict() for b, d in self.divisions},
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "BodyDivisions":
        return cls(
            instant=parse_instant(d["instant"]),
            ayanamsha_variant=str(d["ayanamsha_variant"]),
            divisions=tuple((parse_body(k), Division.from_dict(v)) for k, v in d["divisions"].items()),
        )


@dataclass(frozen=True)
class DashaTimeline:
    birth_instant: datetime
    birth_mansion: int
    moon_longitude: float
    periods: Tuple[DashaPeriod, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "birth_instant": self.birth_instant.isoformat(),
            "birth_mansion": self.birth_mansion,
            "moon_longitude": self.moon_longitude,
            "periods": [p.to_dict() for p in self.periods],
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DashaTimeline":
        return cls(
            birth_instant=parse_instant(d["birth_instant"]),
            birth_mansion=int(d["birth_mansion"]),
            moon_longitude=float(d["moon_longitude"]),
            periods=tuple(DashaPeriod.from_dict(p) for p in d["periods"]),
        )


@dataclass(frozen=True)
class CurrentDasha:
    at: datetime
    mahadasha: DashaPeriod
    antardasha: DashaPeriod
    progress: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "at": self.at.isoformat(),
            "mahadasha": self.mahadasha.to_dict(),
            "antardasha": self.antardasha.to_dict(),
            "progress": self.progress,
        }


@dataclass(frozen=True)
class CacheReport:
    stats: Dict[str, Any] = field(default_factory=dict)
    health: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"stats": dict(self.stats), "health": dict(self.health)}

# ─────────────────────────────────────────────────────────────────────────────
# Key canonicalization
# ─────────────────────────────────────────────────────────────────────────────
def _canon(v: Any) -> str:
    if isinstance(v, datetime):
        return v.isoformat()
    if isinstance(v, Enum):
        return str(v.value)
    if isinstance(v, bool) or v is None:
        return str(v)
    if isinstance(v, float):
        return f"{v:.6f}"
    if isinstance(v, (tuple, list)):
        return ",".join(_canon(x) for x in v)
    return str(v)


def cache_key(op: str, **parts: Any) -> str:
    return "|".join([op] + [f"{k}={_canon(parts[k])}" for k in sorted(parts)])


def build_provider(cfg: EngineConfig) -> PositionProvider:
    kind = (cfg.provider or "approximation").strip().lower()
    if kind == "skyfield":
        return SkyfieldPositionProvider(cfg.ephemeris or None)
    if kind == "approximation":
        return ApproximatePositionEngine()
    raise ValueError(f"unknown position provider '{cfg.provider}'")

# ─────────────────────────────────────────────────────────────────────────────
# Service
# ─────────────────────────────────────────────────────────────────────────────
class AstrologyService:
    def __init__(
        self,
        provider: Optional[PositionProvider] = None,
        memoizer: Optional[Memoizer] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.config = config or EngineConfig()
        self.provider = provider or ApproximatePositionEngine()
        self.memoizer = memoizer or Memoizer.from_config(self.config)

    @classmethod
    def from_config(cls, cfg: EngineConfig) -> "AstrologyService":
        store = build_store(cfg.store, cfg.store_path)
        memo = Memoizer.from_config(cfg, store)
        if cfg.sweep_seconds > 0:
            memo.start_sweeper(cfg.sweep_seconds)
        log.info("service ready: provider=%s store=%s", cfg.provider, cfg.store)
        return cls(build_provider(cfg), memo, cfg)

    # ---- helpers ------------------------------------------------------------
    @property
    def _pname(self) -> str:
        return getattr(self.provider, "name", type(self.provider).__name__)

    def _variant(self, ayanamsha: Optional[str]):
        return parse_variant(ayanamsha or self.config.ayanamsha)

    def _system(self, house_system: Optional[str]):
        return parse_house_system(house_system or self.config.house_system)

    def _memo(self, key: str, compute: Callable[[], Any], decode: Callable[[Dict[str, Any]], Any], partner: bool = False) -> Any:
        return self.memoizer.get_or_compute(
            key,
            compute,
            retention=Retention.SHORT if partner else Retention.LONG,
            encode=lambda v: v.to_dict(),
            decode=decode,
        )

    def _tropical(self, body: Body, instant: datetime, partner: bool) -> BodyPosition:
        key = cache_key("position", body=body, instant=instant, provider=self._pname)
        return self._memo(key, lambda: self.provider.position(body, instant), BodyPosition.from_dict, partner)

    def _sidereal(self, body: Body, instant: datetime, variant, partner: bool) -> BodyPosition:
        key = cache_key("sidereal_position", body=body, instant=instant, ayanamsha=variant.key, provider=self._pname)
        return self._memo(
            key,
            lambda: self._tropical(body, instant, partner).shifted(ayanamsha_of(instant, variant)),
            BodyPosition.from_dict,
            partner,
        )

    def _divisions(self, instant: datetime, variant, partner: bool) -> BodyDivisions:
        def compute() -> BodyDivisions:
            return BodyDivisions(
                instant=instant,
                ayanamsha_variant=variant.key,
                divisions=tuple((b, discretize(self._sidereal(b, instant, variant, partner).longitude)) for b in Body),
            )
        key = cache_key("divisions", instant=instant, ayanamsha=variant.key, provider=self._pname)
        return self._memo(key, compute, BodyDivisions.from_dict, partner)

    def _chart(self, instant: datetime, lat: float, lon: float, variant, system, partner: bool) -> BirthChart:
        key = cache_key("chart", instant=instant, lat=lat, lon=lon, ayanamsha=variant.key,
                        system=system, provider=self._pname)
        return self._memo(
            key,
            lambda: build_chart(self.provider, instant, lat, lon, ayanamsha=variant, house_system=system),
            BirthChart.from_dict,
            partner,
        )

    def _timeline(self, birth: datetime, birth_mansion: Optional[int], moon_longitude: Optional[float],
                  variant, partner: bool) -> DashaTimeline:
        if moon_longitude is None:
            moon = self._sidereal(Body.MOON, birth, variant, partner).longitude
        else:
            moon = parse_longitude_deg(moon_longitude, "moon_longitude")
        mansion = mansion_of(moon) if birth_mansion is None else birth_mansion

        def compute() -> DashaTimeline:
            periods = dasha_engine.generate(mansion, birth, moon_longitude=moon)
            return DashaTimeline(birth_instant=birth, birth_mansion=mansion, moon_longitude=moon, periods=periods)

        key = cache_key("dasha", instant=birth, mansion=mansion, moon=moon, ayanamsha=variant.key)
        return self._memo(key, compute, DashaTimeline.from_dict, partner)

    # ---- public operations --------------------------------------------------
    def position(self, body: Any, instant: Any, *, partner: bool = False) -> Result[BodyPosition]:
        return _boundary("position", lambda: self._tropical(parse_body(body), parse_instant(instant), partner))

    def sidereal_position(self, body: Any, instant: Any, *, ayanamsha: Optional[str] = None,
                          partner: bool = False) -> Result[BodyPosition]:
        return _boundary("sidereal_position", lambda: self._sidereal(
            parse_body(body), parse_instant(instant), self._variant(ayanamsha), partner))

    def houses(self, instant: Any, latitude: Any, longitude: Any, *, house_system: Optional[str] = None,
               ayanamsha: Optional[str] = None, partner: bool = False) -> Result[HouseCusps]:
        """Tropical cusps, or sidereal when an ayanamsha is named."""
        def run() -> HouseCusps:
            t = parse_instant(instant)
            lat, lon = parse_latlon(latitude, longitude)
            system = self._system(house_system)
            key = cache_key("houses", instant=t, lat=lat, lon=lon, system=system)
            cusps = self._memo(key, lambda: house_cusps(t, lat, lon, system), HouseCusps.from_dict, partner)
            if ayanamsha is None:
                return cusps
            return cusps.shifted(ayanamsha_of(t, parse_variant(ayanamsha)))
        return _boundary("houses", run)

    def divisions(self, instant: Any, *, ayanamsha: Optional[str] = None, partner: bool = False) -> Result[BodyDivisions]:
        return _boundary("divisions", lambda: self._divisions(parse_instant(instant), self._variant(ayanamsha), partner))

    def chart(self, instant: Any, latitude: Any, longitude: Any, *, ayanamsha: Optional[str] = None,
              house_system: Optional[str] = None, partner: bool = False) -> Result[BirthChart]:
        def run() -> BirthChart:
            lat, lon = parse_latlon(latitude, longitude)
            return self._chart(parse_instant(instant), lat, lon, self._variant(ayanamsha),
                               self._system(house_system), partner)
        return _boundary("chart", run)

    def dasha(self, birth_instant: Any, *, birth_mansion: Optional[int] = None, moon_longitude: Optional[float] = None,
              ayanamsha: Optional[str] = None, partner: bool = False) -> Result[DashaTimeline]:
        return _boundary("dasha", lambda: self._timeline(
            parse_instant(birth_instant, "birth_instant"), birth_mansion, moon_longitude,
            self._variant(ayanamsha), partner))

    def current_dasha(self, birth_instant: Any, at: Any, *, birth_mansion: Optional[int] = None,
                      moon_longitude: Optional[float] = None, ayanamsha: Optional[str] = None,
                      partner: bool = False) -> Result[CurrentDasha]:
        def run() -> CurrentDasha:
            when = parse_instant(at, "at")
            timeline = self._timeline(parse_instant(birth_instant, "birth_instant"), birth_mansion,
                                      moon_longitude, self._variant(ayanamsha), partner)
            maha = dasha_engine.current_period(timeline.periods, when)
            bhukti = dasha_engine.current_period(dasha_engine.antardashas(maha), when)
            return CurrentDasha(at=when, mahadasha=maha, antardasha=bhukti,
                                progress=dasha_engine.period_progress(maha, when))
        return _boundary("current_dasha", run)

    def compatibility(self, a: Any, b: Any) -> Result[CompatibilityScore]:
        """Ashta Koota of two (sign, mansion, quarter) profiles; partner data, SHORT retention."""
        def run() -> CompatibilityScore:
            pa, pb = Division.coerce(a), Division.coerce(b)
            key = cache_key("compatibility", a=pa.triple, b=pb.triple)
            return self._memo(key, lambda: ashta_koota(pa, pb), CompatibilityScore.from_dict, partner=True)
        return _boundary("compatibility", run)

    def panchang(self, day_start: Any, *, hours: int = 24, ayanamsha: Optional[str] = None) -> Result[DailyPanchang]:
        def run() -> DailyPanchang:
            t = parse_instant(day_start, "day_start")
            variant = self._variant(ayanamsha)
            key = cache_key("panchang", instant=t, hours=hours, ayanamsha=variant.key, provider=self._pname)
            return self._memo(
                key,
                lambda: daily_intervals(self.provider, t, hours=hours, ayanamsha_variant=variant.key),
                DailyPanchang.from_dict,
            )
        return _boundary("panchang", run)

    def panchang_point(self, instant: Any, *, ayanamsha: Optional[str] = None) -> Result[PanchangPoint]:
        def run() -> PanchangPoint:
            t = parse_instant(instant)
            variant = self._variant(ayanamsha)
            key = cache_key("panchang_at", instant=t, ayanamsha=variant.key, provider=self._pname)
            return self._memo(key, lambda: panchang_at(self.provider, t, ayanamsha_variant=variant.key),
                              PanchangPoint.from_dict)
        return _boundary("panchang_point", run)

    # ---- bulk ---------------------------------------------------------------
    def _fan_out(self, fn: Callable[[Any], Result], items: Iterable[Any]) -> List[Result]:
        items = list(items)
        if not items:
            return []
        workers = max(1, min(self.config.bulk_workers, len(items)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="jyotish-bulk") as pool:
            return list(pool.map(fn, items))

    def bulk_positions(self, instants: Iterable[Any], body: Any = Body.MOON, *, partner: bool = False) -> List[Result[BodyPosition]]:
        return self._fan_out(lambda t: self.position(body, t, partner=partner), instants)

    def bulk_divisions(self, instants: Iterable[Any], *, ayanamsha: Optional[str] = None) -> List[Result[BodyDivisions]]:
        return self._fan_out(lambda t: self.divisions(t, ayanamsha=ayanamsha), instants)

    def bulk_compatibility(self, pairs: Iterable[Sequence[Any]]) -> List[Result[CompatibilityScore]]:
        def one(pair: Sequence[Any]) -> Result[CompatibilityScore]:
            try:
                a, b = pair
            except (TypeError, ValueError):
                return Result.failure("validation", "each pair must hold exactly two profiles",
                                      [_err("pairs", "expected [a, b]")])
            return self.compatibility(a, b)
        return self._fan_out(one, pairs)

    def bulk_charts(self, requests: Iterable[Mapping[str, Any]]) -> List[Result[BirthChart]]:
        def one(req: Mapping[str, Any]) -> Result[BirthChart]:
            if not isinstance(req, Mapping):
                return Result.failure("validation", "chart request must be an object",
                                      [_err("requests", "expected an object")])
            return self.chart(
                req.get("instant"), req.get("latitude"), req.get("longitude"),
                ayanamsha=req.get("ayanamsha"), house_system=req.get("house_system"),
                partner=bool(req.get("partner", False)),
            )
        return self._fan_out(one, requests)

    # ---- cache --------------------------------------------------------------
    def cache_stats(self) -> Result[CacheReport]:
        return Result.success(CacheReport(stats=self.memoizer.stats(), health=self.memoizer.health()))

    def cache_health(self) -> Result[CacheReport]:
        return Result.success(CacheReport(health=self.memoizer.health()))

    def clear_partner_cache(self) -> Result[int]:
        return Result.success(self.memoizer.clear_retention(Retention.SHORT))

    def clear_cache(self, pattern: Optional[str] = None) -> Result[int]:
        if pattern:
            try:
                rx = re.compile(pattern)
            except re.error as e:
                return Result.failure("validation", f"invalid pattern: {e}", [_err("pattern", str(e))])
            return Result.success(self.memoizer.clear_pattern(rx))
        return Result.success(self.memoizer.clear())

    def close(self) -> None:
        self.memoizer.stop_sweeper()


__all__ = [
    "AstrologyService", "Result", "ErrorInfo", "BodyDivisions", "DashaTimeline", "CurrentDasha",
    "CacheReport", "cache_key", "build_provider",
]
