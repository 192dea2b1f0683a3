# jyotish_engine/api/routes.py
"""
JSON routes over AstrologyService.

- Engines:  /api/positions, /api/houses, /api/divisions, /api/chart,
            /api/dasha, /api/compatibility, /api/panchang
- Bulk:     /api/bulk/positions, /api/bulk/divisions, /api/bulk/compatibility, /api/bulk/charts
- Cache:    /api/cache/stats, /api/cache/clear
- Catalogs: /api/ayanamshas, /api/house-systems, /api/config, /api/health

Success bodies are {"ok": true, ...}. Service failures map by kind:
validation 400, computation 422, provider 502.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List

from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import BadRequest

from jyotish_engine.core.ayanamsa import list_variants, parse_variant
from jyotish_engine.core.houses import QUADRANT_SYSTEMS, list_house_systems
from jyotish_engine.core.constants import Body
from jyotish_engine.core.service import AstrologyService, Result
from jyotish_engine.core.validators import ValidationError, _err
from jyotish_engine.utils.ratelimit import rate_limit
from jyotish_engine.version import version_info

log = logging.getLogger(__name__)
api = Blueprint("api", __name__)

# ── per-endpoint rate-limit caps (calls per minute, env-overridable) ───────────
_RL = lambda k, d: int(os.getenv(k, str(d)))
RL_ENGINE = _RL("JYOTISH_RL_ENGINE_PER_MIN", 120)
RL_CHART = _RL("JYOTISH_RL_CHART_PER_MIN", 60)
RL_PANCHANG = _RL("JYOTISH_RL_PANCHANG_PER_MIN", 30)
RL_BULK = _RL("JYOTISH_RL_BULK_ITEMS_PER_MIN", 2000)
RL_OPS = _RL("JYOTISH_RL_OPS_PER_MIN", 30)

BULK_MAX_ITEMS = _RL("JYOTISH_BULK_MAX_ITEMS", 500)

_STATUS = {"validation": 400, "computation": 422, "provider": 502}
_ERROR_CODES = {"validation": "validation_error", "computation": "computation_error", "provider": "provider_error"}


# ───────────────────────── helpers ─────────────────────────
def _service() -> AstrologyService:
    return current_app.extensions["jyotish"]


def _body_json() -> Dict[str, Any]:
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        raise BadRequest("JSON body must be an object")
    return data


def _require(body: Dict[str, Any], key: str) -> Any:
    if body.get(key) in (None, ""):
        raise ValidationError(_err(key, "field required", "value_error.missing"))
    return body[key]


def _json_error(code: str, message: str, details: Any = None, http: int = 400):
    out: Dict[str, Any] = {"ok": False, "error": code, "message": message}
    if details is not None:
        out["details"] = details
    return jsonify(out), http


def _failure(res: Result):
    err = res.error
    return _json_error(_ERROR_CODES[err.kind], err.message, err.details, _STATUS[err.kind])


def _respond(res: Result, key: str = "result"):
    if not res.ok:
        return _failure(res)
    return jsonify({"ok": True, key: res.to_dict()["value"]}), 200


def _bulk_items(body: Dict[str, Any], key: str) -> List[Any]:
    items = body.get(key)
    if not isinstance(items, list):
        raise ValidationError(_err(key, f"{key} must be a list", "type_error.list"))
    if len(items) > BULK_MAX_ITEMS:
        raise ValidationError(_err(key, f"at most {BULK_MAX_ITEMS} items per request"))
    return items


def _bulk_cost(req) -> float:
    data = req.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        return 1.0
    for key in ("instants", "pairs", "requests"):
        if isinstance(data.get(key), list):
            return float(max(1, len(data[key])))
    return 1.0


def _bulk_respond(results: List[Result]):
    return jsonify({
        "ok": True,
        "count": len(results),
        "failed": sum(1 for r in results if not r.ok),
        "results": [r.to_dict() for r in results],
    }), 200


# ───────────────────────── ops / catalogs ─────────────────────────
@api.get("/api/health")
def health():
    return jsonify({"ok": True, "status": "up", **version_info()}), 200


@api.get("/api/config")
@rate_limit(RL_OPS)
def config_info():
    svc = _service()
    return jsonify({
        "ok": True,
        **version_info(),
        "provider": getattr(svc.provider, "name", type(svc.provider).__name__),
        "config": svc.config.to_dict(),
    }), 200


@api.get("/api/ayanamshas")
def ayanamshas():
    rows = []
    for key in list_variants():
        v = parse_variant(key)
        rows.append({"key": v.key, "label": v.label, "base_deg_2000": v.base_deg})
    return jsonify({"ok": True, "default": _service().config.ayanamsha, "variants": rows}), 200


@api.get("/api/house-systems")
def house_systems():
    return jsonify({
        "ok": True,
        "default": _service().config.house_system,
        "systems": list_house_systems(),
        "iterative": sorted(s.value for s in QUADRANT_SYSTEMS),
    }), 200


# ───────────────────────── engines ─────────────────────────
@api.post("/api/positions")
@rate_limit(RL_ENGINE)
def positions():
    """
    {"instant": ISO-UTC, "bodies": [...]?, "ayanamsha": str?, "sidereal": bool?, "partner": bool?}
    Tropical unless `sidereal` is true or an ayanamsha is named.
    """
    body = _body_json()
    svc = _service()
    instant = _require(body, "instant")
    names = body.get("bodies") or [b.value for b in Body]
    if not isinstance(names, list):
        raise ValidationError(_err("bodies", "bodies must be a list", "type_error.list"))
    ayan = body.get("ayanamsha")
    sidereal = bool(body.get("sidereal")) or ayan is not None
    partner = bool(body.get("partner", False))

    out = []
    for name in names:
        if sidereal:
            res = svc.sidereal_position(name, instant, ayanamsha=ayan, partner=partner)
        else:
            res = svc.position(name, instant, partner=partner)
        if not res.ok:
            return _failure(res)
        out.append(res.value.to_dict())
    return jsonify({"ok": True, "zodiac": "sidereal" if sidereal else "tropical", "positions": out}), 200


@api.post("/api/houses")
@rate_limit(RL_ENGINE)
def houses():
    body = _body_json()
    res = _service().houses(
        _require(body, "instant"), body.get("latitude"), body.get("longitude"),
        house_system=body.get("house_system"), ayanamsha=body.get("ayanamsha"),
        partner=bool(body.get("partner", False)),
    )
    return _respond(res, "houses")


@api.post("/api/divisions")
@rate_limit(RL_ENGINE)
def divisions():
    body = _body_json()
    res = _service().divisions(_require(body, "instant"), ayanamsha=body.get("ayanamsha"),
                               partner=bool(body.get("partner", False)))
    return _respond(res, "divisions")


@api.post("/api/chart")
@rate_limit(RL_CHART)
def chart():
    body = _body_json()
    res = _service().chart(
        _require(body, "instant"), body.get("latitude"), body.get("longitude"),
        ayanamsha=body.get("ayanamsha"), house_system=body.get("house_system"),
        partner=bool(body.get("partner", False)),
    )
    return _respond(res, "chart")


@api.post("/api/dasha")
@rate_limit(RL_ENGINE)
def dasha():
    """
    {"birth_instant": ISO-UTC, "birth_mansion": 1..27?, "moon_longitude": deg?,
     "ayanamsha": str?, "at": ISO-UTC?}
    With `at`, the running mahadasha/antardasha is returned alongside the timeline.
    """
    body = _body_json()
    svc = _service()
    birth = _require(body, "birth_instant")
    kwargs = dict(
        birth_mansion=body.get("birth_mansion"),
        moon_longitude=body.get("moon_longitude"),
        ayanamsha=body.get("ayanamsha"),
        partner=bool(body.get("partner", False)),
    )
    timeline = svc.dasha(birth, **kwargs)
    if not timeline.ok:
        return _failure(timeline)
    out: Dict[str, Any] = {"ok": True, "dasha": timeline.value.to_dict()}
    if body.get("at") is not None:
        cur = svc.current_dasha(birth, body["at"], **kwargs)
        if not cur.ok:
            return _failure(cur)
        out["current"] = cur.value.to_dict()
    return jsonify(out), 200


@api.post("/api/compatibility")
@rate_limit(RL_ENGINE)
def compatibility():
    """{"a": {sign, mansion, quarter} | [s, m, q], "b": ...}"""
    body = _body_json()
    res = _service().compatibility(_require(body, "a"), _require(body, "b"))
    return _respond(res, "compatibility")


@api.post("/api/panchang")
@rate_limit(RL_PANCHANG)
def panchang():
    """
    {"day_start": ISO-UTC, "hours": int?, "ayanamsha": str?} -> tithi/yoga/karana intervals
    {"instant": ISO-UTC, "ayanamsha": str?}                  -> point values
    """
    body = _body_json()
    svc = _service()
    if body.get("day_start") is None and body.get("instant") is not None:
        return _respond(svc.panchang_point(body["instant"], ayanamsha=body.get("ayanamsha")), "panchang")
    res = svc.panchang(_require(body, "day_start"), hours=body.get("hours", 24), ayanamsha=body.get("ayanamsha"))
    return _respond(res, "panchang")


# ───────────────────────── bulk ─────────────────────────
@api.post("/api/bulk/positions")
@rate_limit(RL_BULK, cost_fn=_bulk_cost)
def bulk_positions():
    body = _body_json()
    instants = _bulk_items(body, "instants")
    return _bulk_respond(_service().bulk_positions(instants, body.get("body", Body.MOON.value),
                                                   partner=bool(body.get("partner", False))))


@api.post("/api/bulk/divisions")
@rate_limit(RL_BULK, cost_fn=_bulk_cost)
def bulk_divisions():
    body = _body_json()
    instants = _bulk_items(body, "instants")
    return _bulk_respond(_service().bulk_divisions(instants, ayanamsha=body.get("ayanamsha")))


@api.post("/api/bulk/compatibility")
@rate_limit(RL_BULK, cost_fn=_bulk_cost)
def bulk_compatibility():
    body = _body_json()
    pairs = _bulk_items(body, "pairs")
    return _bulk_respond(_service().bulk_compatibility(pairs))


@api.post("/api/bulk/charts")
@rate_limit(RL_BULK, cost_fn=_bulk_cost)
def bulk_charts():
    body = _body_json()
    reqs = _bulk_items(body, "requests")
    return _bulk_respond(_service().bulk_charts(reqs))


# ───────────────────────── cache ─────────────────────────
@api.get("/api/cache/stats")
@rate_limit(RL_OPS)
def cache_stats():
    return _respond(_service().cache_stats(), "cache")


@api.post("/api/cache/clear")
@rate_limit(RL_OPS)
def cache_clear():
    """{"scope": "all" | "partner", "pattern": regex?}"""
    body = request.get_json(force=True, silent=True) or {}
    if not isinstance(body, dict):
        raise BadRequest("JSON body must be an object")
    scope = str(body.get("scope", "all")).lower()
    svc = _service()
    if scope == "partner":
        res = svc.clear_partner_cache()
    elif scope == "all":
        res = svc.clear_cache(body.get("pattern"))
    else:
        raise ValidationError(_err("scope", "scope must be 'all' or 'partner'"))
    if not res.ok:
        return _failure(res)
    log.info("cache clear scope=%s removed=%d", scope, res.value)
    return jsonify({"ok": True, "scope": scope, "removed": res.value}), 200
