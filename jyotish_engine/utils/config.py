# jyotish_engine/utils/config.py
from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import yaml

DEFAULT_CONFIG_PATH = "config/defaults.yaml"

_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "engine": {"ayanamsha": "lahiri", "house_system": "placidus", "provider": "approximation", "ephemeris": ""},
    "cache": {
        "fast_capacity": 100,
        "short_cap": 25,
        "long_ttl_days": 365,
        "short_ttl_days": 30,
        "store": "memory",
        "store_path": "data/jyotish_cache.sqlite3",
        "store_retries": 0,
        "sweep_seconds": 0,
    },
    "bulk": {"workers": 4},
}

# env var -> (section, key, parser)
_ENV_OVERRIDES: Dict[str, Tuple[str, str, Callable[[str], Any]]] = {
    "JYOTISH_AYANAMSHA": ("engine", "ayanamsha", str),
    "JYOTISH_HOUSE_SYSTEM": ("engine", "house_system", str),
    "JYOTISH_PROVIDER": ("engine", "provider", str),
    "JYOTISH_EPHEMERIS": ("engine", "ephemeris", str),
    "JYOTISH_FAST_CAPACITY": ("cache", "fast_capacity", int),
    "JYOTISH_SHORT_CAP": ("cache", "short_cap", int),
    "JYOTISH_LONG_TTL_DAYS": ("cache", "long_ttl_days", float),
    "JYOTISH_SHORT_TTL_DAYS": ("cache", "short_ttl_days", float),
    "JYOTISH_STORE": ("cache", "store", str),
    "JYOTISH_STORE_PATH": ("cache", "store_path", str),
    "JYOTISH_STORE_RETRIES": ("cache", "store_retries", int),
    "JYOTISH_SWEEP_SECONDS": ("cache", "sweep_seconds", float),
    "JYOTISH_BULK_WORKERS": ("bulk", "workers", int),
}


class AttrDict(dict):
    """Dict that also supports attribute access: cfg.cache and cfg['cache'] both work."""
    def __getattr__(self, item):
        try:
            return self[item]
        except KeyError as e:
            raise AttributeError(item) from e
    def __setattr__(self, key, value):
        self[key] = value

def _to_attr(obj):
    if isinstance(obj, dict):
        return AttrDict({k: _to_attr(v) for k, v in obj.items()})
    if isinstance(obj, list):
        return [_to_attr(x) for x in obj]
    return obj

def _merge(base: Dict[str, Any], over: Mapping[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for k, v in (over or {}).items():
        if isinstance(v, Mapping) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out

def load_config(path: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> AttrDict:
    """
    Built-in defaults <- YAML at `path` (or $JYOTISH_CONFIG) <- JYOTISH_* env overrides.
    A missing YAML file is not an error; a malformed one is (yaml.YAMLError).
    Returns an AttrDict for convenient access.
    """
    env = os.environ if env is None else env
    path = path or env.get("JYOTISH_CONFIG", DEFAULT_CONFIG_PATH)
    data: Dict[str, Any] = _merge({}, _DEFAULTS)
    if path and os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            data = _merge(data, yaml.safe_load(f) or {})

    for var, (section, key, parse) in _ENV_OVERRIDES.items():
        raw = env.get(var)
        if raw not in (None, ""):
            data.setdefault(section, {})[key] = parse(raw)

    return _to_attr(data)


@dataclass(frozen=True)
class EngineConfig:
    ayanamsha: str = "lahiri"
    house_system: str = "placidus"
    provider: str = "approximation"
    ephemeris: str = ""
    fast_capacity: int = 100
    short_cap: int = 25
    long_ttl_seconds: float = 365 * 86400.0
    short_ttl_seconds: float = 30 * 86400.0
    store: str = "memory"
    store_path: str = "data/jyotish_cache.sqlite3"
    store_retries: int = 0
    sweep_seconds: float = 0.0
    bulk_workers: int = 4

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any]) -> "EngineConfig":
        eng = cfg.get("engine", {}) or {}
        cache = cfg.get("cache", {}) or {}
        bulk = cfg.get("bulk", {}) or {}
        return cls(
            ayanamsha=str(eng.get("ayanamsha", cls.ayanamsha)),
            house_system=str(eng.get("house_system", cls.house_system)),
            provider=str(eng.get("provider", cls.provider)),
            ephemeris=str(eng.get("ephemeris", cls.ephemeris) or ""),
            fast_capacity=int(cache.get("fast_capacity", cls.fast_capacity)),
            short_cap=int(cache.get("short_cap", cls.short_cap)),
            long_ttl_seconds=float(cache.get("long_ttl_days", 365)) * 86400.0,
            short_ttl_seconds=float(cache.get("short_ttl_days", 30)) * 86400.0,
            store=str(cache.get("store", cls.store)),
            store_path=str(cache.get("store_path", cls.store_path)),
            store_retries=int(cache.get("store_retries", cls.store_retries)),
            sweep_seconds=float(cache.get("sweep_seconds", cls.sweep_seconds)),
            bulk_workers=max(1, int(bulk.get("workers", cls.bulk_workers))),
        )

    @classmethod
    def load(cls, path: Optional[str] = None) -> "EngineConfig":
        return cls.from_config(load_config(path))

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}
