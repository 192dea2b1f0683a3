# jyotish_engine/core/ephemeris_adapter.py
# -----------------------------------------------------------------------------
# Skyfield position provider (JPL kernel)
#
# Same contract as ApproximatePositionEngine: position(body, instant) -> BodyPosition
#
# • Kernel path from JYOTISH_EPHEMERIS (or the constructor); loaded lazily,
#   once, under a lock. No network downloads.
# • Geocentric apparent positions in the ecliptic of date.
# • Speed: central difference of the ecliptic longitude (±step days).
# • Retrograde ⇔ speed < 0.
# • Rahu/Ketu come from the mean-node series of the approximation engine.
# • Failures raise EphemerisError(stage, message, **context); callers apply
#   their own timeouts.
# -----------------------------------------------------------------------------
from __future__ import annotations

import logging
import math
import os
import threading
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from jyotish_engine.core.astronomy import ApproximatePositionEngine, BodyPosition, parse_body
from jyotish_engine.core.constants import NODES, Body, delta_deg, wrap_deg
from jyotish_engine.core.timescales import instant_timescales, julian_centuries

log = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────────────────────────
# Constants / environment
# ─────────────────────────────────────────────────────────────────────────────
EPHEMERIS_ENV = "JYOTISH_EPHEMERIS"

# DE421 nominal span (TT); override for other kernels
KERNEL_JD_MIN = float(os.getenv("JYOTISH_EPHEMERIS_JD_MIN", "2414992.5"))  # 1899-12-31
KERNEL_JD_MAX = float(os.getenv("JYOTISH_EPHEMERIS_JD_MAX", "2469807.5"))  # 2053-10-09

# Velocity half-steps (days); faster bodies get shorter steps
_SPEED_STEP_MAP: Dict[Body, float] = {
    Body.MOON: 0.05,
    Body.MERCURY: 0.25,
    Body.VENUS: 0.33,
}
_SPEED_STEP_DEFAULT = float(os.getenv("JYOTISH_SPEED_STEP_DAYS", "0.5"))

_KERNEL_TARGETS: Dict[Body, str] = {
    Body.SUN: "sun",
    Body.MOON: "moon",
    Body.MERCURY: "mercury",
    Body.VENUS: "venus",
    Body.MARS: "mars",
    Body.JUPITER: "jupiter barycenter",
    Body.SATURN: "saturn barycenter",
}

# ─────────────────────────────────────────────────────────────────────────────
# Exceptions
# ─────────────────────────────────────────────────────────────────────────────
class EphemerisError(RuntimeError):
    """Categorized provider error (dependency, kernel, validation, compute)."""
    def __init__(self, stage: str, message: str, **context: Any):
        super().__init__(f"{stage}: {message}")
        self.stage = stage
        self.message = message
        self.context = context


def _looks_like_lfs_pointer(path: str) -> bool:
    if os.path.getsize(path) > 512:
        return False
    with open(path, "rb") as f:
        head = f.read(128)
    return head.startswith(b"version https://git-lfs.github.com/spec/v1")


def resolve_kernel_path(path: Optional[str] = None) -> Optional[str]:
    p = path or os.getenv(EPHEMERIS_ENV)
    return p if p and os.path.isfile(p) else None


def _speed_step_for(body: Body) -> float:
    return _SPEED_STEP_MAP.get(body, _SPEED_STEP_DEFAULT)

# ─────────────────────────────────────────────────────────────────────────────
# Provider
# ─────────────────────────────────────────────────────────────────────────────
class SkyfieldPositionProvider:
    name = "skyfield"

    def __init__(self, kernel_path: Optional[str] = None, *, jd_min: float = KERNEL_JD_MIN, jd_max: float = KERNEL_JD_MAX):
        self.kernel_path = kernel_path
        self.jd_min = jd_min
        self.jd_max = jd_max
        self._lock = threading.Lock()
        self._ts = None
        self._kernel = None
        self._nodes = ApproximatePositionEngine()

    # ---- kernel bootstrap ---------------------------------------------------
    def _load(self) -> Tuple[Any, Any]:
        if self._kernel is not None:
            return self._ts, self._kernel
        with self._lock:
            if self._kernel is not None:
                return self._ts, self._kernel
            try:
                from skyfield.api import load
            except ImportError as e:
                raise EphemerisError("dependency", "Skyfield not installed") from e

            path = resolve_kernel_path(self.kernel_path)
            if not path:
                raise EphemerisError("kernel", f"No JPL kernel found (set {EPHEMERIS_ENV})",
                                     path=self.kernel_path)
            if _looks_like_lfs_pointer(path):
                raise EphemerisError("kernel", f"Kernel looks like a Git LFS pointer: {path}")
            try:
                kernel = load(path)
            except Exception as e:
                raise EphemerisError("kernel", f"Skyfield failed to load kernel: {path}", error=str(e)) from e
            self._ts = load.timescale()
            self._kernel = kernel
            log.info("Loaded ephemeris kernel %s", os.path.basename(path))
        return self._ts, self._kernel

    @property
    def loaded(self) -> bool:
        return self._kernel is not None

    # ---- computations -------------------------------------------------------
    def _check_jd(self, jd_tt: float) -> None:
        if not (self.jd_min <= jd_tt <= self.jd_max):
            raise EphemerisError("validation", "Julian date outside kernel span",
                                 jd_tt=jd_tt, jd_min=self.jd_min, jd_max=self.jd_max)

    def _apparent(self, body: Body, jd_tt: float):
        ts, kernel = self._load()
        earth = kernel["earth"]
        target = kernel[_KERNEL_TARGETS[body]]
        return earth.at(ts.tt_jd(jd_tt)).observe(target).apparent()

    def _ecliptic(self, body: Body, jd_tt: float) -> Tuple[float, float, float]:
        from skyfield.framelib import ecliptic_frame
        lat, lon, dist = self._apparent(body, jd_tt).frame_latlon(ecliptic_frame)
        return wrap_deg(float(lon.degrees)), float(lat.degrees), float(dist.au)

    def position(self, body: Body | str, instant: datetime) -> BodyPosition:
        b = parse_body(body)
        jd_tt = instant_timescales(instant).jd_tt
        if b in NODES:
            return self._nodes.position_at(b, julian_centuries(jd_tt))
        self._check_jd(jd_tt)
        try:
            lon, lat, dist = self._ecliptic(b, jd_tt)
            h = _speed_step_for(b)
            lon_m, _, _ = self._ecliptic(b, jd_tt - h)
            lon_p, _, _ = self._ecliptic(b, jd_tt + h)
            speed = delta_deg(lon_m, lon_p) / (2.0 * h)
            ra, dec, _ = self._apparent(b, jd_tt).radec(epoch="date")
            ra_deg = wrap_deg(float(ra.hours) * 15.0)
            dec_deg = float(dec.degrees)
        except EphemerisError:
            raise
        except Exception as e:
            raise EphemerisError("compute", f"Skyfield computation failed for {b.value}", error=str(e)) from e
        if not all(math.isfinite(v) for v in (lon, lat, dist, speed, ra_deg, dec_deg)):
            raise EphemerisError("compute", "non-finite result", body=b.value)
        return BodyPosition(
            body=b,
            longitude=lon,
            latitude=lat,
            distance=dist,
            speed=speed,
            is_retrograde=speed < 0.0,
            declination=dec_deg,
            right_ascension=ra_deg,
        )


__all__ = ["EphemerisError", "SkyfieldPositionProvider", "resolve_kernel_path", "EPHEMERIS_ENV"]
