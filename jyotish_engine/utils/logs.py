# jyotish_engine/utils/logs.py
"""
Source-tagged logging.

    log = source_logger("memoizer")
    log.info("durable read failed", meta={"key": key})

Records carry `source` and `meta` attributes (via `extra`), so handlers and
formatters can route or render them. Logging never alters control flow.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, MutableMapping, Optional, Tuple


class SourceLoggerAdapter(logging.LoggerAdapter):
    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        meta: Optional[Dict[str, Any]] = kwargs.pop("meta", None)
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("source", self.extra["source"])
        extra["meta"] = {**(self.extra.get("meta") or {}), **(meta or {})}
        kwargs["extra"] = extra
        return msg, kwargs


def source_logger(source: str, name: Optional[str] = None, **meta: Any) -> SourceLoggerAdapter:
    """Adapter over `logging.getLogger(name or 'jyotish_engine.<source>')` tagging every record."""
    logger = logging.getLogger(name or f"jyotish_engine.{source}")
    return SourceLoggerAdapter(logger, {"source": source, "meta": meta})
