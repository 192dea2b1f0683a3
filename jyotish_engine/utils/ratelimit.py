# jyotish_engine/utils/ratelimit.py
from __future__ import annotations

"""
Per-process token-bucket rate limiting for the Flask routes.

    @api.post("/api/chart")
    @rate_limit(RL_CHART)
    def chart(): ...

- one bucket per client (X-API-Key, bearer token, else first X-Forwarded-For/IP)
  and route; bulk routes charge one token per item via `cost_fn`
- 429 JSON envelope {"ok": false, "error": "rate_limited", ...} with Retry-After
- X-RateLimit-* headers on every limited response
- JYOTISH_RL_DISABLE turns the limiter off, JYOTISH_RL_ALLOWLIST skips clients;
  both are read per request so tests and operators can flip them live
"""

import math
import os
import time
from dataclasses import dataclass
from functools import wraps
from threading import RLock
from typing import Any, Callable, Dict, Optional

from flask import jsonify, make_response, request

__all__ = ["rate_limit", "client_key", "RateLimiter", "LIMITER"]

_TRUTHY = ("1", "true", "yes", "on")
_IDLE_EVICT_S = 180.0
_CLEANUP_EVERY_S = 30.0


def _disabled() -> bool:
    return os.getenv("JYOTISH_RL_DISABLE", "0").lower() in _TRUTHY


def _allowlist() -> set:
    return {s.strip() for s in os.getenv("JYOTISH_RL_ALLOWLIST", "").split(",") if s.strip()}


def _client_ip(req) -> str:
    xff = req.headers.get("X-Forwarded-For", "")
    return (xff.split(",")[0].strip() if xff else "") or (req.remote_addr or "anon")


def client_key(req) -> str:
    """API credential if present, else client IP; always scoped to the route."""
    ident = (req.headers.get("X-API-Key") or "").strip()
    if not ident:
        auth = (req.headers.get("Authorization") or "").strip()
        if auth.lower().startswith("bearer "):
            ident = auth.split(None, 1)[1]
    return f"{ident or _client_ip(req)}:{req.endpoint or req.path or '*'}"


@dataclass
class Bucket:
    tokens: float
    capacity: float
    rate: float          # tokens per second
    ts: float            # last refill (monotonic)

    def refill(self, now: float) -> None:
        if now > self.ts:
            self.tokens = min(self.capacity, self.tokens + (now - self.ts) * self.rate)
            self.ts = now


class RateLimiter:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._buckets: Dict[str, Bucket] = {}
        self._lock = RLock()
        self._last_cleanup = 0.0

    def _cleanup(self, now: float) -> None:
        if now - self._last_cleanup < _CLEANUP_EVERY_S:
            return
        self._last_cleanup = now
        idle = [k for k, b in self._buckets.items() if b.tokens >= b.capacity and now - b.ts > _IDLE_EVICT_S]
        for k in idle:
            self._buckets.pop(k, None)

    def take(self, key: str, capacity: float, rate: float, cost: float) -> Optional[int]:
        """Consume `cost` tokens; None on success, else seconds until it would succeed."""
        now = self._clock()
        with self._lock:
            self._cleanup(now)
            b = self._buckets.get(key)
            if b is None:
                b = self._buckets[key] = Bucket(tokens=capacity, capacity=capacity, rate=rate, ts=now)
            else:
                b.refill(now)
            if b.tokens + 1e-12 < cost:
                return max(1, math.ceil((cost - b.tokens) / b.rate - 1e-9))
            b.tokens -= cost
            return None

    def remaining(self, key: str) -> int:
        with self._lock:
            b = self._buckets.get(key)
            return max(0, int(b.tokens)) if b else 0

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()


LIMITER = RateLimiter()


def rate_limit(
    max_per_minute: int,
    *,
    burst: Optional[int] = None,
    cost_fn: Optional[Callable[[Any], float]] = None,
    limiter: Optional[RateLimiter] = None,
):
    """Token bucket: steady `max_per_minute`, capacity `burst` (defaults to the same)."""
    if max_per_minute <= 0:
        raise ValueError("max_per_minute must be > 0")
    limit = int(max_per_minute)
    capacity = float(burst if burst is not None else limit)
    rate = limit / 60.0
    policy = f"{limit};w=60;burst={int(capacity)}"

    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            if _disabled() or request.method in ("HEAD", "OPTIONS"):
                return f(*args, **kwargs)
            key = client_key(request)
            allow = _allowlist()
            if key in allow or key.split(":", 1)[0] in allow:
                return f(*args, **kwargs)

            lim = limiter or LIMITER
            cost = max(0.0, float(cost_fn(request))) if cost_fn else 1.0
            retry_after = lim.take(key, capacity, rate, cost)
            if retry_after is not None:
                resp = make_response(jsonify(
                    ok=False, error="rate_limited", details={"retry_after_seconds": retry_after},
                ), 429)
                resp.headers["Retry-After"] = str(retry_after)
                resp.headers["X-RateLimit-Limit"] = str(limit)
                resp.headers["X-RateLimit-Remaining"] = "0"
                resp.headers["X-RateLimit-Policy"] = policy
                return resp

            resp = make_response(f(*args, **kwargs))
            resp.headers["X-RateLimit-Limit"] = str(limit)
            resp.headers["X-RateLimit-Remaining"] = str(lim.remaining(key))
            resp.headers["X-RateLimit-Policy"] = policy
            return resp

        return wrapper

    return decorator
