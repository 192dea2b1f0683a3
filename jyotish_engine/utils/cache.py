from __future__ import annotations
from collections import OrderedDict
import os, sqlite3, threading, time
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol, Tuple


class DurableStore(Protocol):
    """String-keyed byte/str store; JSON encoding is the caller's business."""
    def get(self, key: str) -> Optional[str]: ...
    def set(self, key: str, data: str, ttl_hint: Optional[float] = None) -> None: ...
    def remove(self, key: str) -> None: ...


class InsertionOrderedCache:
    """Bounded map; over capacity drops the globally oldest insertion. Reads do not reorder."""
    def __init__(self, capacity: int = 100):
        self.capacity = capacity
        self.store: "OrderedDict[str, Any]" = OrderedDict()
        self.lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self.lock:
            return self.store.get(key, default)

    def set(self, key: str, value: Any) -> List[Tuple[str, Any]]:
        """Insert/refresh `key`; returns the (key, value) pairs evicted to make room."""
        evicted: List[Tuple[str, Any]] = []
        with self.lock:
            if key in self.store:
                del self.store[key]
            self.store[key] = value
            while len(self.store) > self.capacity:
                evicted.append(self.store.popitem(last=False))
        return evicted

    def pop(self, key: str, default: Any = None) -> Any:
        with self.lock:
            return self.store.pop(key, default)

    def oldest(self) -> Optional[Tuple[str, Any]]:
        with self.lock:
            return next(iter(self.store.items()), None)

    def keys(self) -> List[str]:
        with self.lock:
            return list(self.store.keys())

    def items(self) -> List[Tuple[str, Any]]:
        with self.lock:
            return list(self.store.items())

    def clear(self) -> None:
        with self.lock:
            self.store.clear()

    def __contains__(self, key: str) -> bool:
        with self.lock:
            return key in self.store

    def __len__(self) -> int:
        with self.lock:
            return len(self.store)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())


class MemoryStore:
    """Process-local durable-tier stand-in: dict + lock, TTL hints honoured."""
    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self.lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self.lock:
            row = self._data.get(key)
            if row is None:
                return None
            data, expires_at = row
            if expires_at is not None and self._clock() >= expires_at:
                del self._data[key]
                return None
            return data

    def set(self, key: str, data: str, ttl_hint: Optional[float] = None) -> None:
        expires_at = self._clock() + ttl_hint if ttl_hint else None
        with self.lock:
            self._data[key] = (data, expires_at)

    def remove(self, key: str) -> None:
        with self.lock:
            self._data.pop(key, None)

    def keys(self) -> List[str]:
        with self.lock:
            return list(self._data.keys())

    def __len__(self) -> int:
        with self.lock:
            return len(self._data)


class SQLiteStore:
    def __init__(self, path: str, clock: Callable[[], float] = time.time):
        self.path = path
        self._clock = clock
        d = os.path.dirname(path)
        if d:
            os.makedirs(d, exist_ok=True)
        self.conn = sqlite3.connect(self.path, check_same_thread=False)
        self.lock = threading.Lock()
        self._init()

    def _init(self):
        with self.lock:
            cur = self.conn.cursor()
            cur.execute("""CREATE TABLE IF NOT EXISTS cache (
                k TEXT PRIMARY KEY,
                v TEXT NOT NULL,
                expires_at REAL
            )""")
            self.conn.commit()

    def get(self, key: str) -> Optional[str]:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute("SELECT v, expires_at FROM cache WHERE k=?", (key,))
            row = cur.fetchone()
            if not row:
                return None
            v, expires_at = row
            if expires_at is not None and self._clock() >= expires_at:
                cur.execute("DELETE FROM cache WHERE k=?", (key,))
                self.conn.commit()
                return None
            return v

    def set(self, key: str, data: str, ttl_hint: Optional[float] = None) -> None:
        expires_at = self._clock() + ttl_hint if ttl_hint else None
        with self.lock:
            cur = self.conn.cursor()
            cur.execute("REPLACE INTO cache (k,v,expires_at) VALUES (?,?,?)", (key, data, expires_at))
            self.conn.commit()

    def remove(self, key: str) -> None:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute("DELETE FROM cache WHERE k=?", (key,))
            self.conn.commit()

    def keys(self) -> List[str]:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute("SELECT k FROM cache")
            return [r[0] for r in cur.fetchall()]

    def close(self) -> None:
        with self.lock:
            self.conn.close()


def build_store(kind: str, path: Optional[str] = None, clock: Callable[[], float] = time.time) -> Optional[DurableStore]:
    """'memory' | 'sqlite' | 'none' -> store instance (None runs the memoizer memory-only)."""
    k = (kind or "none").strip().lower()
    if k == "memory":
        return MemoryStore(clock)
    if k == "sqlite":
        if not path:
            raise ValueError("sqlite store requires a path")
        return SQLiteStore(path, clock)
    if k in ("none", "off", ""):
        return None
    raise ValueError(f"unknown cache store '{kind}' (expected memory, sqlite or none)")
