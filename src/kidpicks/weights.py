"""Per-user recommendation weights, presets and a short-lived read cache."""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from threading import Lock
from typing import Callable, Dict, Iterator, Mapping, Optional, Tuple

from .exceptions import InvalidWeightError, UnknownPresetError
from .models import FACTOR_NAMES, Factor, WeightRule
from .ops import HealthMonitor, StructuredLogger
from .store import PreferenceStore

PRESETS: Dict[str, Dict[str, float]] = {
    "balanced": {
        "preference_match": 0.40,
        "parent_influence": 0.20,
        "similar_kids": 0.20,
        "teacher_endorsement": 0.10,
        "context_match": 0.10,
        "novelty_boost": 0.05,
        "recency_penalty": 0.15,
    },
    "kid-led": {
        "preference_match": 0.60,
        "parent_influence": 0.05,
        "similar_kids": 0.15,
        "teacher_endorsement": 0.05,
        "context_match": 0.15,
        "novelty_boost": 0.10,
        "recency_penalty": 0.10,
    },
    "parent-guided": {
        "preference_match": 0.25,
        "parent_influence": 0.40,
        "similar_kids": 0.10,
        "teacher_endorsement": 0.15,
        "context_match": 0.10,
        "novelty_boost": 0.03,
        "recency_penalty": 0.10,
    },
    "discovery": {
        "preference_match": 0.20,
        "parent_influence": 0.15,
        "similar_kids": 0.25,
        "teacher_endorsement": 0.10,
        "context_match": 0.10,
        "novelty_boost": 0.30,
        "recency_penalty": 0.20,
    },
}
DEFAULT_PRESET = "balanced"


def preset(name: str) -> Dict[str, float]:
    """Return a copy of the named preset weight vector."""

    try:
        return dict(PRESETS[name])
    except KeyError as exc:
        raise UnknownPresetError(f"Unknown preset '{name}'. Choose one of: {', '.join(PRESETS)}.") from exc


def validate_factor(factor_name: str | Factor) -> str:
    name = factor_name.value if isinstance(factor_name, Factor) else str(factor_name)
    if name not in FACTOR_NAMES:
        raise InvalidWeightError(f"Unknown factor '{name}'.")
    return name


def validate_weight(factor_name: str | Factor, weight: object) -> Tuple[str, float]:
    """Check a factor/weight pair, rejecting rather than clamping bad values."""

    name = validate_factor(factor_name)
    if isinstance(weight, bool) or not isinstance(weight, (int, float)):
        raise InvalidWeightError(f"Weight for '{name}' must be a number.")
    value = float(weight)
    if math.isnan(value) or not 0.0 <= value <= 1.0:
        raise InvalidWeightError(f"Weight for '{name}' must be between 0 and 1, got {weight!r}.")
    return name, value


class WeightSet(Mapping[str, float]):
    """Read-only mapping of factor name to weight, with enabled flags.

    Weights are combined as a plain weighted sum so they need not add up to 1;
    :meth:`normalized` exists for display only.
    """

    __slots__ = ("_weights", "_enabled", "loaded_at")

    def __init__(
        self,
        weights: Mapping[str, float],
        enabled: Optional[Mapping[str, bool]] = None,
        *,
        loaded_at: Optional[datetime] = None,
    ) -> None:
        flags = dict(enabled or {})
        self._weights = {name: float(weights[name]) for name in FACTOR_NAMES}
        self._enabled = {name: bool(flags.get(name, True)) for name in FACTOR_NAMES}
        self.loaded_at = loaded_at

    @classmethod
    def from_preset(cls, name: str = DEFAULT_PRESET, *, loaded_at: Optional[datetime] = None) -> "WeightSet":
        return cls(preset(name), loaded_at=loaded_at)

    def __getitem__(self, factor: str) -> float:
        key = factor.value if isinstance(factor, Factor) else factor
        return self._weights[key]

    def __iter__(self) -> Iterator[str]:
        return iter(FACTOR_NAMES)

    def __len__(self) -> int:
        return len(FACTOR_NAMES)

    def __repr__(self) -> str:
        return f"WeightSet({self._weights!r}, enabled={self._enabled!r})"

    def is_enabled(self, factor: str | Factor) -> bool:
        key = factor.value if isinstance(factor, Factor) else factor
        return self._enabled[key]

    def effective(self, factor: str | Factor) -> float:
        """Weight actually applied when combining; 0 for disabled factors."""

        return self[factor] if self.is_enabled(factor) else 0.0

    @property
    def enabled(self) -> Dict[str, bool]:
        return dict(self._enabled)

    def as_dict(self) -> Dict[str, float]:
        return dict(self._weights)

    def normalized(self) -> Dict[str, float]:
        active = {name: self.effective(name) for name in FACTOR_NAMES}
        total = sum(active.values())
        if total <= 0:
            return {name: 0.0 for name in FACTOR_NAMES}
        return {name: value / total for name, value in active.items()}

    def with_weight(self, factor: str | Factor, weight: float, *, enabled: bool = True) -> "WeightSet":
        name, value = validate_weight(factor, weight)
        weights = dict(self._weights)
        flags = dict(self._enabled)
        weights[name] = value
        flags[name] = enabled
        return WeightSet(weights, flags, loaded_at=self.loaded_at)


class WeightConfiguration:
    """Load and update per-user weights through a :class:`PreferenceStore`.

    Reads are cached per user for ``ttl_seconds``; every write for a user drops
    that user's cache entry so the next request sees the change.
    """

    def __init__(
        self,
        store: PreferenceStore,
        *,
        ttl_seconds: float = 30.0,
        clock: Callable[[], datetime] = datetime.utcnow,
        logger: Optional[StructuredLogger] = None,
        health: Optional[HealthMonitor] = None,
    ) -> None:
        self._store = store
        self._ttl = timedelta(seconds=max(0.0, ttl_seconds))
        self._clock = clock
        self._logger = logger or StructuredLogger()
        self._health = health
        self._cache: Dict[str, WeightSet] = {}
        self._lock = Lock()

    def load_weights(self, user_id: str) -> WeightSet:
        now = self._clock()
        with self._lock:
            cached = self._cache.get(user_id)
        if cached is not None and cached.loaded_at is not None and now - cached.loaded_at < self._ttl:
            return cached

        weights = preset(DEFAULT_PRESET)
        enabled = {name: True for name in FACTOR_NAMES}
        for rule in self._store.list_weights(user_id):
            if rule.factor_name not in weights:
                continue
            weights[rule.factor_name] = float(rule.weight)
            enabled[rule.factor_name] = bool(rule.is_enabled)
        loaded = WeightSet(weights, enabled, loaded_at=now)
        with self._lock:
            self._cache[user_id] = loaded
        if self._health is not None:
            self._health.mark_store_up()
            self._health.set_weights_cached_at(now)
        return loaded

    def set_weight(
        self,
        user_id: str,
        factor_name: str | Factor,
        weight: object,
        *,
        enabled: bool = True,
    ) -> WeightSet:
        name, value = validate_weight(factor_name, weight)
        self._store.upsert_weight(WeightRule(user_id=user_id, factor_name=name, weight=value, is_enabled=bool(enabled)))
        self.invalidate(user_id)
        self._logger.log("weights_updated", user=user_id, factor=name, weight=value, enabled=bool(enabled))
        return self.load_weights(user_id)

    def apply_preset(self, user_id: str, preset_name: str) -> WeightSet:
        values = preset(preset_name)
        for name in FACTOR_NAMES:
            self._store.upsert_weight(WeightRule(user_id=user_id, factor_name=name, weight=values[name], is_enabled=True))
        self.invalidate(user_id)
        self._logger.log("preset_applied", user=user_id, preset=preset_name)
        return self.load_weights(user_id)

    def reset(self, user_id: str) -> WeightSet:
        return self.apply_preset(user_id, DEFAULT_PRESET)

    def invalidate(self, user_id: Optional[str] = None) -> None:
        with self._lock:
            if user_id is None:
                self._cache.clear()
            else:
                self._cache.pop(user_id, None)


__all__ = [
    "DEFAULT_PRESET",
    "PRESETS",
    "WeightConfiguration",
    "WeightSet",
    "preset",
    "validate_factor",
    "validate_weight",
]
