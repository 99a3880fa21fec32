"""Display helpers for recommendation cards."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Mapping, Union

from .models import Explanation

DISPLAY_SCALE = 1.0


@dataclass(frozen=True, slots=True)
class Reason:
    kind: str
    text: str


def score_percent(score: float | None, *, scale: float = DISPLAY_SCALE) -> int:
    """Map a raw, unbounded score to a percentage clamped to 0-100.

    ``scale`` is the score shown as 100%; cards that rate on a 0-5 scale pass 5.
    """

    raw = float(score or 0.0)
    return max(0, min(100, round(raw / scale * 100)))


def confidence_stars(percent: float | None) -> str:
    clamped = max(0.0, min(100.0, float(percent or 0)))
    full = min(5, int(clamped // 20))
    half = "½" if clamped % 20 >= 10 and full < 5 else ""
    empty = max(0, 5 - full - (1 if half else 0))
    return "★" * full + half + "☆" * empty


def describe_reasons(explanation: Union[Explanation, Mapping[str, Any]]) -> List[Reason]:
    """Turn an explanation into short, human readable reason tags."""

    payload = explanation.as_dict() if isinstance(explanation, Explanation) else explanation
    reasons: List[Reason] = []

    level = (payload.get("preference_match") or {}).get("level")
    if level == "loves":
        reasons.append(Reason("preference", "Your kid loves this!"))
    elif level == "likes":
        reasons.append(Reason("preference", "Your kid likes this"))

    parent = (payload.get("parent_influence") or {}).get("level")
    if parent == "both":
        reasons.append(Reason("parent", "Both caregivers enjoy this"))
    elif parent in {"caregiver1", "caregiver2"}:
        reasons.append(Reason("parent", f"Caregiver preference: {parent}"))

    peers = (payload.get("similar_kids") or {}).get("count", 0)
    if peers:
        reasons.append(Reason("similar-kids", f"{peers} similar kid(s) love this"))

    observed = (payload.get("teacher_endorsement") or {}).get("count", 0)
    if observed:
        reasons.append(Reason("teacher", f"Teacher observed interest ({observed})"))

    if (payload.get("context_match") or {}).get("matched"):
        reasons.append(Reason("context", "Perfect for current context"))

    if not reasons:
        reasons.append(Reason("context", "Something new to try"))
    return reasons


__all__ = ["DISPLAY_SCALE", "Reason", "confidence_stars", "describe_reasons", "score_percent"]
