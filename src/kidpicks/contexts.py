"""Matching activities against a requested situational context."""

from __future__ import annotations

import re
from typing import Dict, Iterable, Optional, Union
from uuid import uuid4

from .models import ActivityContext, RecommendationContext, RequestedContext

CONTEXT_TYPE_LOCATION = "location"
CONTEXT_TYPE_ENERGY = "energy_level"
CONTEXT_TYPE_TIME_OF_DAY = "time_of_day"
CONTEXT_TYPES = (CONTEXT_TYPE_LOCATION, CONTEXT_TYPE_ENERGY, CONTEXT_TYPE_TIME_OF_DAY)

ContextLike = Union[ActivityContext, RecommendationContext]


def _norm(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def _snake(name: str) -> str:
    return re.sub(r"\s+", "_", name.strip().lower())


def derive_attributes(context_type: str, name: str) -> Dict[str, str]:
    """Build the structured attributes stored with a new context.

    Older contexts were tagged by name only and carry no attributes, which is
    why :func:`field_matches` keeps a name based fallback.
    """

    lowered = name.strip().lower()
    if context_type == CONTEXT_TYPE_LOCATION:
        return {"location": _snake(name)}
    if context_type == CONTEXT_TYPE_ENERGY:
        if "high" in lowered:
            return {"energy": "high"}
        if "low" in lowered:
            return {"energy": "low"}
        return {"energy": "medium"}
    if context_type == CONTEXT_TYPE_TIME_OF_DAY:
        return {"time_of_day": _snake(name)}
    return {}


def build_context(
    name: str,
    context_type: str = "",
    description: Optional[str] = None,
    *,
    context_id: Optional[str] = None,
) -> RecommendationContext:
    """Create a context record whose attributes are derived from its type and name."""

    clean = (name or "").strip()
    if not clean:
        raise ValueError("Context name is required.")
    kind = (context_type or "").strip()
    return RecommendationContext(
        id=context_id or uuid4().hex,
        name=clean,
        context_type=kind,
        attributes=derive_attributes(kind, clean),
        description=(description or "").strip() or None,
    )


def field_matches(context: RecommendationContext, key: str, requested: str) -> bool:
    wanted = _norm(requested)
    if not wanted:
        return True
    attribute = context.attributes.get(key) if context.attributes else None
    if attribute is not None and _norm(str(attribute)) == wanted:
        return True
    name = _norm(context.name)
    return wanted in name or wanted.replace("_", " ") in name


def context_satisfies(context: RecommendationContext, requested: RequestedContext) -> bool:
    """True when one context satisfies every non-empty requested field."""

    return all(field_matches(context, key, value) for key, value in requested.fields().items())


def matches(contexts: Iterable[ContextLike], requested: Optional[RequestedContext]) -> bool:
    """Return whether any tagged context satisfies the requested filter.

    An empty filter matches everything; an activity with no tags never
    matches a non-empty filter.
    """

    if requested is None or requested.is_empty:
        return True
    for item in contexts:
        context = item.context if isinstance(item, ActivityContext) else item
        if context_satisfies(context, requested):
            return True
    return False


__all__ = [
    "CONTEXT_TYPES",
    "CONTEXT_TYPE_ENERGY",
    "CONTEXT_TYPE_LOCATION",
    "CONTEXT_TYPE_TIME_OF_DAY",
    "build_context",
    "context_satisfies",
    "derive_attributes",
    "field_matches",
    "matches",
]
