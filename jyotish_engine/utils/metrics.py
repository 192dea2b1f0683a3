from __future__ import annotations

from typing import Final, Iterable

from prometheus_client import Counter, Gauge, Histogram

# Process-wide collectors (prometheus_client registers each name once)
MET_REQUESTS: Final = Counter("jyotish_api_requests_total", "API requests", ["route"])
REQ_LATENCY: Final = Histogram("jyotish_request_seconds", "API request latency", ["route"])
CACHE_EVENTS: Final = Counter("jyotish_cache_events_total", "Memoizer events", ["event"])
GAUGE_APP_UP: Final = Gauge("jyotish_app_up", "1 if app is running")
GAUGE_CACHE_ENTRIES: Final = Gauge("jyotish_cache_entries", "Resident memoizer entries", ["retention"])

CACHE_EVENT_NAMES = (
    "hit", "durable_hit", "miss", "compute", "wait", "expired", "evict", "store_error", "corrupt",
)


def cache_event(event: str, amount: float = 1.0) -> None:
    CACHE_EVENTS.labels(event=event).inc(amount)


def seed(routes: Iterable[str]) -> None:
    """Pre-create labelled series so scrapes show zeros before first traffic."""
    for route in routes:
        MET_REQUESTS.labels(route=route).inc(0)
        REQ_LATENCY.labels(route=route)
    for ev in CACHE_EVENT_NAMES:
        CACHE_EVENTS.labels(event=ev).inc(0)
    GAUGE_APP_UP.set(1.0)
