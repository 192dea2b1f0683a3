# jyotish_engine/version.py
from __future__ import annotations
import os

# Engine release; CI may override it for preview builds
VERSION = os.getenv("JYOTISH_VERSION", "0.1.0")
# Commit or image tag of the running build, empty when unknown
BUILD = os.getenv("JYOTISH_BUILD", "").strip()


def version_info() -> dict:
    return {"version": VERSION, "build": BUILD or None}
