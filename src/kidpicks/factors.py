"""The seven factor scorers.

Every scorer is a pure function returning a :class:`FactorScore` whose score
lies in ``[0, 1]``.  Missing data maps to the documented neutral default so
activities with sparse history stay comparable.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Dict, Iterable, Optional

from .models import (
    Activity,
    CaregiverLevel,
    CaregiverPreference,
    ContextFragment,
    CountFragment,
    Factor,
    FactorScore,
    FeedbackAction,
    FeedbackRecord,
    NoveltyFragment,
    ParentFragment,
    PreferenceFragment,
    PreferenceLevel,
    RecencyFragment,
    TeacherObservation,
)

PREFERENCE_SCORES: Dict[PreferenceLevel, float] = {
    PreferenceLevel.LOVES: 1.0,
    PreferenceLevel.LIKES: 0.7,
    PreferenceLevel.NEUTRAL: 0.4,
    PreferenceLevel.DISLIKES: 0.1,
    PreferenceLevel.REFUSES: 0.0,
}
UNKNOWN_PREFERENCE_SCORE = 0.5
PEER_LEVELS = (PreferenceLevel.LOVES, PreferenceLevel.LIKES)
SIMILAR_KIDS_SATURATION = 5
TEACHER_SATURATION = 3
RECENCY_FULL_PENALTY_DAYS = 7
RECENCY_RECOVERY_DAYS = 30


def _saturate(count: int, cap: int) -> float:
    return min(1.0, max(0, count) / cap)


def preference_match(level: Optional[PreferenceLevel]) -> FactorScore:
    if level is None:
        return FactorScore(Factor.PREFERENCE_MATCH, UNKNOWN_PREFERENCE_SCORE, PreferenceFragment("unknown"))
    level = PreferenceLevel(level)
    return FactorScore(Factor.PREFERENCE_MATCH, PREFERENCE_SCORES[level], PreferenceFragment(level.value))


def _who(first: bool, second: bool) -> str:
    if first and second:
        return "both"
    if first:
        return "caregiver1"
    return "caregiver2"


def parent_influence(preference: Optional[CaregiverPreference]) -> FactorScore:
    first = preference.caregiver1 if preference else CaregiverLevel.UNSET
    second = preference.caregiver2 if preference else CaregiverLevel.UNSET
    for level, score in (
        (CaregiverLevel.DROP_ANYTHING, None),
        (CaregiverLevel.SOMETIMES, 0.4),
        (CaregiverLevel.ON_YOUR_OWN, 0.2),
    ):
        hit_first, hit_second = first is level, second is level
        if not (hit_first or hit_second):
            continue
        if score is None:
            score = 1.0 if hit_first and hit_second else 0.7
        return FactorScore(Factor.PARENT_INFLUENCE, score, ParentFragment(_who(hit_first, hit_second)))
    return FactorScore(Factor.PARENT_INFLUENCE, 0.3, ParentFragment("none"))


def similar_kids(count: int) -> FactorScore:
    """Peers (any household) who love or like the activity; five saturates."""

    return FactorScore(Factor.SIMILAR_KIDS, _saturate(count, SIMILAR_KIDS_SATURATION), CountFragment(max(0, count)))


def observation_mentions(observation: TeacherObservation, activity: Activity) -> bool:
    if observation.activity_id is not None:
        return observation.activity_id == activity.id
    needle = activity.name.strip().lower()
    if not needle:
        return False
    haystack = f"{observation.title or ''} {observation.description or ''}".lower()
    return re.search(rf"(?<!\w){re.escape(needle)}(?!\w)", haystack) is not None


def count_endorsements(
    observations: Iterable[TeacherObservation],
    activity: Activity,
    *,
    include_hidden: bool = False,
) -> int:
    """Count observations relevant to ``activity``.

    Observations hidden from parents only count when ``include_hidden`` is set,
    which the engine does for teacher and admin callers.
    """

    return sum(
        1
        for observation in observations
        if (include_hidden or observation.is_visible_to_parent) and observation_mentions(observation, activity)
    )


def teacher_endorsement(count: int) -> FactorScore:
    return FactorScore(Factor.TEACHER_ENDORSEMENT, _saturate(count, TEACHER_SATURATION), CountFragment(max(0, count)))


def context_match(matched: Optional[bool]) -> FactorScore:
    """``None`` means no filter was requested: a neutral 0.5 with ``matched=None``."""

    if matched is None:
        return FactorScore(Factor.CONTEXT_MATCH, 0.5, ContextFragment(None))
    return FactorScore(Factor.CONTEXT_MATCH, 1.0 if matched else 0.0, ContextFragment(bool(matched)))


def novelty_boost(has_history: bool) -> FactorScore:
    return FactorScore(Factor.NOVELTY_BOOST, 0.0 if has_history else 1.0, NoveltyFragment(not has_history))


def days_since_last_dismissal(
    feedback: Iterable[FeedbackRecord],
    activity_id: str,
    now: datetime,
) -> Optional[float]:
    latest: Optional[datetime] = None
    for record in feedback:
        if record.activity_id != activity_id or record.action is not FeedbackAction.DISMISSED:
            continue
        if latest is None or record.created_at > latest:
            latest = record.created_at
    if latest is None:
        return None
    return (now - latest).total_seconds() / 86400


def recency_penalty(days_since_dismissal: Optional[float]) -> FactorScore:
    """0 inside a week of a dismissal, rising linearly to 1 at thirty days.

    The engine subtracts ``weight * (1 - score)``, so a high score means
    little penalty.
    """

    if days_since_dismissal is None:
        return FactorScore(Factor.RECENCY_PENALTY, 1.0, RecencyFragment(None))
    days = float(days_since_dismissal)
    if days <= RECENCY_FULL_PENALTY_DAYS:
        score = 0.0
    elif days >= RECENCY_RECOVERY_DAYS:
        score = 1.0
    else:
        score = (days - RECENCY_FULL_PENALTY_DAYS) / (RECENCY_RECOVERY_DAYS - RECENCY_FULL_PENALTY_DAYS)
    return FactorScore(Factor.RECENCY_PENALTY, score, RecencyFragment(round(days, 2)))


__all__ = [
    "PEER_LEVELS",
    "PREFERENCE_SCORES",
    "RECENCY_FULL_PENALTY_DAYS",
    "RECENCY_RECOVERY_DAYS",
    "SIMILAR_KIDS_SATURATION",
    "TEACHER_SATURATION",
    "UNKNOWN_PREFERENCE_SCORE",
    "context_match",
    "count_endorsements",
    "days_since_last_dismissal",
    "novelty_boost",
    "observation_mentions",
    "parent_influence",
    "preference_match",
    "recency_penalty",
    "similar_kids",
    "teacher_endorsement",
]
