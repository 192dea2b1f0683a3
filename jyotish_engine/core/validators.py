# jyotish_engine/core/validators.py
from __future__ import annotations

import difflib
import math
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

# ───────────────────────── errors ─────────────────────────

class ValidationError(ValueError):
    """Boundary input error; carries structured details via .errors()."""
    def __init__(self, details: Union[str, Dict[str, Any], List[Dict[str, Any]]]):
        if isinstance(details, str):
            self._details = [{"loc": [], "msg": details, "type": "value_error"}]
            super().__init__(details)
        elif isinstance(details, dict):
            self._details = [details]
            super().__init__(details.get("msg", "validation_error"))
        elif isinstance(details, list):
            self._details = details
            super().__init__(self._details[0]["msg"] if self._details else "validation_error")
        else:
            self._details = [{"loc": [], "msg": "validation_error", "type": "value_error"}]
            super().__init__("validation_error")

    def errors(self) -> List[Dict[str, Any]]:
        return list(self._details)


# ───────────────────────── helpers ─────────────────────────

def _err(loc: List[str] | str, msg: str, typ: str = "value_error") -> Dict[str, Any]:
    return {"loc": [loc] if isinstance(loc, str) else loc, "msg": msg, "type": typ}

def _as_float(v: Any) -> Optional[float]:
    if isinstance(v, bool) or v is None:
        return None
    try:
        x = float(v)
    except (TypeError, ValueError):
        return None
    return x if math.isfinite(x) else None

def slug(name: Any) -> str:
    """'Fagan-Bradley' / 'fagan bradley' / 'FAGAN_BRADLEY' -> 'fagan_bradley'."""
    s = str(name or "").strip().lower()
    for ch in ("-", " ", "."):
        s = s.replace(ch, "_")
    while "__" in s:
        s = s.replace("__", "_")
    return s

def suggest(name: str, choices: Iterable[str], n: int = 3) -> List[str]:
    return difflib.get_close_matches(slug(name), list(choices), n=n, cutoff=0.5)


# ───────────────────────── atomic parsers ─────────────────────────

def require_utc(instant: Any, loc: str = "instant") -> datetime:
    """
    Accept only timezone-aware datetimes whose UTC offset is exactly zero.
    Naive datetimes and non-UTC offsets are rejected, never converted.
    """
    if not isinstance(instant, datetime):
        raise ValidationError(_err(loc, "instant must be a datetime", "type_error.datetime"))
    off = instant.utcoffset()
    if off is None:
        raise ValidationError(_err(loc, "instant must be timezone-aware UTC (got naive datetime)", "value_error.utc"))
    if off != timedelta(0):
        raise ValidationError(_err(loc, f"instant must be UTC (got offset {off})", "value_error.utc"))
    return instant

def parse_instant(value: Any, loc: str = "instant") -> datetime:
    """ISO-8601 string or datetime -> validated UTC datetime. 'Z' suffix accepted."""
    if isinstance(value, datetime):
        return require_utc(value, loc)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(_err(loc, "instant must be an ISO-8601 UTC timestamp", "type_error.datetime"))
    s = value.strip()
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        raise ValidationError(_err(loc, "instant must be an ISO-8601 UTC timestamp", "value_error.datetime"))
    return require_utc(dt, loc)

def parse_latlon(lat: Any, lon: Any, lat_key: str = "latitude", lon_key: str = "longitude") -> Tuple[float, float]:
    lat_f = _as_float(lat); lon_f = _as_float(lon)
    if lat_f is None or lon_f is None:
        raise ValidationError(_err([lat_key, lon_key], "latitude/longitude must be finite numbers", "type_error.float"))
    if not (-90.0 <= lat_f <= 90.0):
        raise ValidationError(_err(lat_key, "latitude must be between -90 and 90"))
    if not (-180.0 <= lon_f <= 180.0):
        raise ValidationError(_err(lon_key, "longitude must be between -180 and 180"))
    return lat_f, lon_f

def parse_longitude_deg(value: Any, loc: str = "longitude") -> float:
    x = _as_float(value)
    if x is None:
        raise ValidationError(_err(loc, "ecliptic longitude must be a finite number", "type_error.float"))
    return x

def parse_int_range(value: Any, lo: int, hi: int, loc: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(_err(loc, f"{loc} must be an integer in {lo}..{hi}", "type_error.integer"))
    if not (lo <= value <= hi):
        raise ValidationError(_err(loc, f"{loc} must be in {lo}..{hi} (got {value})"))
    return value

def parse_choice(value: Any, choices: Dict[str, Any], loc: str, aliases: Optional[Dict[str, str]] = None) -> Any:
    """Resolve a user-supplied name against a {slug: value} table, with typo hints."""
    key = slug(value)
    if aliases and key in aliases:
        key = aliases[key]
    if key in choices:
        return choices[key]
    hints = suggest(key, choices.keys())
    msg = f"unsupported {loc} '{value}'"
    if hints:
        msg += f"; did you mean: {', '.join(hints)}"
    raise ValidationError(_err(loc, msg, f"value_error.{loc}"))
