"""Configuration constants for the KidPicks web service."""
from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


SQLITE_FILE_NAME = os.environ.get("KIDPICKS_SQLITE", "kidpicks.db")
WEIGHT_CACHE_TTL_SECONDS = _env_float("KIDPICKS_WEIGHT_CACHE_TTL", 30.0)
PEER_QUERY_TIMEOUT_SECONDS = _env_float("KIDPICKS_PEER_TIMEOUT", 2.0)
PEER_QUERY_WORKERS = _env_int("KIDPICKS_PEER_WORKERS", 4)
DEFAULT_RECOMMENDATION_LIMIT = _env_int("KIDPICKS_DEFAULT_LIMIT", 20)
MAX_RECOMMENDATION_LIMIT = 100
EVENT_LOG_PATH: Optional[str] = os.environ.get("KIDPICKS_EVENT_LOG") or None

__all__ = [
    "SQLITE_FILE_NAME",
    "WEIGHT_CACHE_TTL_SECONDS",
    "PEER_QUERY_TIMEOUT_SECONDS",
    "PEER_QUERY_WORKERS",
    "DEFAULT_RECOMMENDATION_LIMIT",
    "MAX_RECOMMENDATION_LIMIT",
    "EVENT_LOG_PATH",
]
