"""Operational utilities for KidPicks."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Optional


class HealthMonitor:
    """Aggregate runtime health information for the status endpoint."""

    def __init__(self) -> None:
        self.store_online = True
        self.last_store_error: Optional[str] = None
        self.weights_cached_at: Optional[datetime] = None

    def mark_store_down(self, reason: str) -> None:
        self.store_online = False
        self.last_store_error = reason

    def mark_store_up(self) -> None:
        self.store_online = True

    def set_weights_cached_at(self, timestamp: datetime) -> None:
        self.weights_cached_at = timestamp

    def status(self) -> dict:
        return {
            "store": "ok" if self.store_online else "down",
            "last_store_error": self.last_store_error,
            "weight_cache_age_seconds": self.cache_age_seconds(),
        }

    def cache_age_seconds(self) -> Optional[int]:
        if not self.weights_cached_at:
            return None
        return int((datetime.utcnow() - self.weights_cached_at).total_seconds())


class StructuredLogger:
    """Write JSON lines log entries for admin inspection."""

    def __init__(self, *, path: Path | None = None, keep: int = 500) -> None:
        self.path = path
        self._keep = keep
        self._entries: list[dict] = []

    def log(self, event_type: str, **fields: object) -> dict:
        entry = {"timestamp": datetime.utcnow().isoformat(), "event": event_type, **fields}
        self._entries.append(entry)
        if len(self._entries) > self._keep:
            del self._entries[: len(self._entries) - self._keep]
        if self.path:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry, default=str) + "\n")
        return entry

    def tail(self, limit: int = 50) -> tuple[dict, ...]:
        return tuple(self._entries[-limit:])

    def events(self, event_type: str) -> tuple[dict, ...]:
        return tuple(entry for entry in self._entries if entry["event"] == event_type)


__all__ = ["HealthMonitor", "StructuredLogger"]
