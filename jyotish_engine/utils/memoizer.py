# jyotish_engine/utils/memoizer.py
"""
Single-flight, two-tier memoizer.

get_or_compute(key, compute, retention=..., ttl=..., encode=..., decode=...)

Tiers
- fast    : InsertionOrderedCache, bounded; over capacity the oldest insertion
            leaves memory (its durable copy, if any, stays).
- durable : optional DurableStore (get/set/remove by string key). Keys are
            prefixed `astro_cache_`; payloads are JSON
            {"data": ..., "timestamp": ..., "ttl": ..., "retention": ...}.

Retention
- LONG  : 365 days, unbounded count (the caller's own profile data)
- SHORT : 30 days, at most `short_cap` entries; the oldest SHORT entry is
          evicted from both tiers when a new one would exceed the cap.

Single flight
At most one `compute` runs per key. The first caller registers a
concurrent.futures.Future under the lock before computing; concurrent callers
wait on that future and receive the same value (or the same exception).
Failures are never cached.

Durable-tier faults (exceptions, corrupt or undecodable payloads) are logged,
counted and treated as a miss or a skipped write; they never reach the caller.
"""
from __future__ import annotations

import json
import re
import threading
import time
from collections import OrderedDict
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from jyotish_engine.utils.cache import DurableStore, InsertionOrderedCache
from jyotish_engine.utils.logs import source_logger
from jyotish_engine.utils.metrics import GAUGE_CACHE_ENTRIES, cache_event

log = source_logger("memoizer", name=__name__)

KEY_PREFIX = "astro_cache_"
DAY_S = 86400.0


class Retention(str, Enum):
    LONG = "long"
    SHORT = "short"

    def __str__(self) -> str:
        return self.value


@dataclass
class CacheEntry:
    key: str
    value: Any
    inserted_at: float
    ttl: float
    retention: Retention

    def expired(self, now: float) -> bool:
        return now - self.inserted_at >= self.ttl

    def to_payload(self, encode: Callable[[Any], Any]) -> str:
        return json.dumps({
            "data": encode(self.value),
            "timestamp": self.inserted_at,
            "ttl": self.ttl,
            "retention": self.retention.value,
        }, separators=(",", ":"))

    @classmethod
    def from_payload(cls, key: str, raw: Union[str, bytes], decode: Callable[[Any], Any]) -> "CacheEntry":
        """Raises ValueError/KeyError/TypeError on corrupt payloads."""
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        obj = json.loads(raw)
        return cls(
            key=key,
            value=decode(obj["data"]),
            inserted_at=float(obj["timestamp"]),
            ttl=float(obj["ttl"]),
            retention=Retention(obj["retention"]),
        )


def _identity(x: Any) -> Any:
    return x


_CORRUPT = (ValueError, KeyError, TypeError, AttributeError, UnicodeDecodeError)


class Memoizer:
    def __init__(
        self,
        store: Optional[DurableStore] = None,
        *,
        fast_capacity: int = 100,
        short_cap: int = 25,
        long_ttl: float = 365 * DAY_S,
        short_ttl: float = 30 * DAY_S,
        store_retries: int = 0,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.fast_capacity = fast_capacity
        self.short_cap = short_cap
        self.default_ttl = {Retention.LONG: float(long_ttl), Retention.SHORT: float(short_ttl)}
        self.store_retries = max(0, int(store_retries))
        self._clock = clock

        self._fast = InsertionOrderedCache(fast_capacity)
        # key -> (retention, expires_at) for every entry resident in either tier
        self._index: Dict[str, Tuple[Retention, float]] = {}
        self._short_order: "OrderedDict[str, None]" = OrderedDict()
        self._inflight: Dict[str, Future] = {}
        self._lock = threading.Lock()
        self._sweeper: Optional[threading.Timer] = None
        self._sweep_interval: Optional[float] = None

        self._counts: Dict[str, int] = {
            "hits": 0, "durable_hits": 0, "misses": 0, "computes": 0, "waits": 0,
            "evictions": 0, "expired": 0, "store_errors": 0, "corrupt": 0,
        }

    @classmethod
    def from_config(cls, cfg: Any, store: Optional[DurableStore] = None, **kw: Any) -> "Memoizer":
        return cls(
            store,
            fast_capacity=cfg.fast_capacity,
            short_cap=cfg.short_cap,
            long_ttl=cfg.long_ttl_seconds,
            short_ttl=cfg.short_ttl_seconds,
            store_retries=cfg.store_retries,
            **kw,
        )

    # ───────────────────────── core ─────────────────────────

    def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Any],
        *,
        retention: Retention = Retention.LONG,
        ttl: Optional[float] = None,
        encode: Callable[[Any], Any] = _identity,
        decode: Callable[[Any], Any] = _identity,
    ) -> Any:
        retention = Retention(retention)
        now = self._clock()
        expired_key = False
        with self._lock:
            entry = self._fast.get(key)
            if entry is not None:
                if not entry.expired(now):
                    self._bump("hits", "hit")
                    return entry.value
                self._drop_locked(key)
                self._bump("expired", "expired")
                expired_key = True
            fut = self._inflight.get(key)
            owner = fut is None
            if owner:
                fut = Future()
                self._inflight[key] = fut
            else:
                self._bump("waits", "wait")
        if expired_key:
            self._durable_remove(key)

        if not owner:
            return fut.result()

        try:
            found = self._durable_lookup(key, decode)
            if found is not None:
                value = found.value
                self._admit(found)
            else:
                with self._lock:
                    self._bump("misses", "miss")
                    self._bump("computes", "compute")
                value = compute()
                self._store(key, value, retention, ttl, encode)
            fut.set_result(value)
            return value
        except BaseException as e:
            fut.set_exception(e)
            raise
        finally:
            with self._lock:
                self._inflight.pop(key, None)

    def get(self, key: str, decode: Callable[[Any], Any] = _identity) -> Any:
        """Cached value or None; never computes."""
        now = self._clock()
        with self._lock:
            entry = self._fast.get(key)
            if entry is not None and not entry.expired(now):
                self._bump("hits", "hit")
                return entry.value
        found = self._durable_lookup(key, decode)
        if found is None:
            return None
        self._admit(found)
        return found.value

    def put(self, key: str, value: Any, *, retention: Retention = Retention.LONG,
            ttl: Optional[float] = None, encode: Callable[[Any], Any] = _identity) -> None:
        self._store(key, value, Retention(retention), ttl, encode)

    # ───────────────────────── tier plumbing ─────────────────────────

    def _bump(self, counter: str, event: str) -> None:
        self._counts[counter] += 1
        cache_event(event)

    def _drop_locked(self, key: str) -> None:
        self._fast.pop(key)
        self._forget_locked(key)

    def _forget_locked(self, key: str) -> None:
        self._index.pop(key, None)
        self._short_order.pop(key, None)

    def _prune_index_locked(self, now: float) -> List[str]:
        """Forget keys that left the fast tier and whose durable copy has expired."""
        gone = [k for k, (_, exp) in self._index.items() if now >= exp and k not in self._fast]
        for k in gone:
            self._forget_locked(k)
        return gone

    def _admit(self, entry: CacheEntry) -> None:
        """Place an entry into the fast tier and the retention bookkeeping."""
        to_remove: List[str] = []
        with self._lock:
            for ek, _ in self._fast.set(entry.key, entry):
                self._bump("evictions", "evict")
                log.debug("fast tier evicted %s", ek)
                if self.store is None:
                    self._forget_locked(ek)
            self._index[entry.key] = (entry.retention, entry.inserted_at + entry.ttl)
            if entry.retention is Retention.SHORT:
                self._short_order.pop(entry.key, None)
                self._short_order[entry.key] = None
                while len(self._short_order) > self.short_cap:
                    old, _ = self._short_order.popitem(last=False)
                    self._fast.pop(old)
                    self._index.pop(old, None)
                    to_remove.append(old)
                    self._bump("evictions", "evict")
            else:
                self._short_order.pop(entry.key, None)
            self._update_gauges_locked()
        for old in to_remove:
            log.debug("short-term cap reached; evicted oldest entry %s", old, meta={"key": old})
            self._durable_remove(old)

    def _store(self, key: str, value: Any, retention: Retention, ttl: Optional[float],
               encode: Callable[[Any], Any]) -> None:
        entry = CacheEntry(
            key=key,
            value=value,
            inserted_at=self._clock(),
            ttl=float(ttl) if ttl is not None else self.default_ttl[retention],
            retention=retention,
        )
        self._admit(entry)
        self._durable_write(entry, encode)

    def _durable_lookup(self, key: str, decode: Callable[[Any], Any]) -> Optional[CacheEntry]:
        if self.store is None:
            return None
        skey = KEY_PREFIX + key
        raw = None
        answered = False
        for attempt in range(self.store_retries + 1):
            try:
                raw = self.store.get(skey)
                answered = True
                break
            except Exception as e:
                with self._lock:
                    self._bump("store_errors", "store_error")
                log.warning("durable read failed (attempt %d): %s", attempt + 1, e, meta={"key": key})
        if raw is None:
            if answered:
                with self._lock:
                    if key not in self._fast:
                        self._forget_locked(key)
            return None
        try:
            entry = CacheEntry.from_payload(key, raw, decode)
        except _CORRUPT as e:
            with self._lock:
                self._bump("corrupt", "corrupt")
                self._forget_locked(key)
            log.warning("dropping corrupt cache entry: %s", e, meta={"key": key})
            self._durable_remove(key)
            return None
        if entry.expired(self._clock()):
            with self._lock:
                self._bump("expired", "expired")
                self._forget_locked(key)
            self._durable_remove(key)
            return None
        with self._lock:
            self._bump("durable_hits", "durable_hit")
        return entry

    def _durable_write(self, entry: CacheEntry, encode: Callable[[Any], Any]) -> None:
        if self.store is None:
            return
        try:
            payload = entry.to_payload(encode)
            self.store.set(KEY_PREFIX + entry.key, payload, entry.ttl)
        except Exception as e:
            with self._lock:
                self._bump("store_errors", "store_error")
            log.warning("durable write skipped: %s", e, meta={"key": entry.key})

    def _durable_remove(self, key: str) -> None:
        if self.store is None:
            return
        try:
            self.store.remove(KEY_PREFIX + key)
        except Exception as e:
            with self._lock:
                self._bump("store_errors", "store_error")
            log.warning("durable remove failed: %s", e, meta={"key": key})

    def _update_gauges_locked(self) -> None:
        short = len(self._short_order)
        GAUGE_CACHE_ENTRIES.labels(retention="short").set(short)
        GAUGE_CACHE_ENTRIES.labels(retention="long").set(len(self._index) - short)

    # ───────────────────────── maintenance ─────────────────────────

    def _known_keys_locked(self) -> List[str]:
        keys = list(self._index.keys())
        seen = set(keys)
        keys.extend(k for k in self._fast.keys() if k not in seen)
        return keys

    def invalidate(self, key: str) -> bool:
        with self._lock:
            known = key in self._index or key in self._fast
            self._drop_locked(key)
            self._update_gauges_locked()
        self._durable_remove(key)
        return known

    def clear(self) -> int:
        with self._lock:
            keys = self._known_keys_locked()
            self._fast.clear()
            self._index.clear()
            self._short_order.clear()
            self._update_gauges_locked()
        for k in keys:
            self._durable_remove(k)
        log.info("cache cleared (%d entries)", len(keys))
        return len(keys)

    def clear_pattern(self, pattern: Union[str, "re.Pattern[str]"]) -> int:
        rx = re.compile(pattern) if isinstance(pattern, str) else pattern
        with self._lock:
            keys = [k for k in self._known_keys_locked() if rx.search(k)]
        for k in keys:
            self.invalidate(k)
        return len(keys)

    def clear_retention(self, retention: Retention) -> int:
        retention = Retention(retention)
        with self._lock:
            keys = [k for k, (r, _) in self._index.items() if r is retention]
        for k in keys:
            self.invalidate(k)
        log.info("cleared %d %s-term entries", len(keys), retention.value)
        return len(keys)

    def preload(
        self,
        items: Union[Mapping[str, Any], Iterable[Tuple[str, Any]]],
        *,
        retention: Retention = Retention.LONG,
        ttl: Optional[float] = None,
        encode: Callable[[Any], Any] = _identity,
    ) -> int:
        pairs = items.items() if isinstance(items, Mapping) else items
        n = 0
        for key, value in pairs:
            self._store(key, value, Retention(retention), ttl, encode)
            n += 1
        return n

    def sweep_expired(self) -> int:
        """Eagerly drop every expired fast-tier entry (and its durable copy)."""
        now = self._clock()
        with self._lock:
            stale = [k for k, e in self._fast.items() if e.expired(now)]
            for k in stale:
                self._drop_locked(k)
                self._bump("expired", "expired")
            lapsed = self._prune_index_locked(now)
            self._update_gauges_locked()
        for k in stale + lapsed:
            self._durable_remove(k)
        if stale:
            log.debug("sweep removed %d expired entries", len(stale))
        return len(stale)

    def start_sweeper(self, interval: float) -> None:
        if interval <= 0:
            return
        self.stop_sweeper()
        self._sweep_interval = float(interval)
        self._schedule_sweep()

    def _schedule_sweep(self) -> None:
        if self._sweep_interval is None:
            return
        t = threading.Timer(self._sweep_interval, self._sweep_tick)
        t.daemon = True
        self._sweeper = t
        t.start()

    def _sweep_tick(self) -> None:
        try:
            self.sweep_expired()
        except Exception:
            log.exception("expiry sweep failed")
        self._schedule_sweep()

    def stop_sweeper(self) -> None:
        self._sweep_interval = None
        if self._sweeper is not None:
            self._sweeper.cancel()
            self._sweeper = None

    # ───────────────────────── reporting ─────────────────────────

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            self._prune_index_locked(self._clock())
            self._update_gauges_locked()
            c = dict(self._counts)
            short = len(self._short_order)
            indexed = len(self._index)
            fast = len(self._fast)
            inflight = len(self._inflight)
        served = c["hits"] + c["durable_hits"]
        lookups = served + c["misses"]
        return {
            **c,
            "hit_rate": (100.0 * served / lookups) if lookups else 0.0,
            "fast_size": fast,
            "fast_capacity": self.fast_capacity,
            "long_entries": indexed - short,
            "short_entries": short,
            "short_cap": self.short_cap,
            "inflight": inflight,
            "durable": self.store is not None,
        }

    def health(self) -> Dict[str, Any]:
        s = self.stats()
        rate = s["hit_rate"]
        if rate >= 80:
            status = "Excellent"
        elif rate >= 60:
            status = "Good"
        elif rate >= 40:
            status = "Fair"
        else:
            status = "Poor"
        recs: List[str] = []
        if rate < 40:
            recs.append("Consider increasing cache size or TTL")
            recs.append("Review cache key generation strategy")
        if s["fast_size"] >= self.fast_capacity * 0.9:
            recs.append("Cache is nearly full, consider increasing max size")
        if s["evictions"] > s["hits"]:
            recs.append("High eviction rate, consider optimizing cache strategy")
        return {
            "status": status,
            "hit_rate": rate,
            "utilization": 100.0 * s["fast_size"] / self.fast_capacity if self.fast_capacity else 0.0,
            "recommendations": recs,
        }

    def reset_stats(self) -> None:
        with self._lock:
            for k in self._counts:
                self._counts[k] = 0


__all__ = ["Memoizer", "Retention", "CacheEntry", "KEY_PREFIX"]
