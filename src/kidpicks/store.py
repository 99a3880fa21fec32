"""Preference store interface and an in-memory implementation.

The recommendation engine, weight configuration and feedback recorder only
talk to a :class:`PreferenceStore`.  :class:`InMemoryPreferenceStore` backs the
unit tests and local tooling; :mod:`kidpicks.webapp.persistence` provides the
SQLModel implementation used by the web application.
"""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import replace
from threading import Lock
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Protocol, Sequence, Set, Tuple
from uuid import uuid4

from .contexts import build_context
from .exceptions import (
    ActivityNotFoundError,
    ContextNotFoundError,
    DuplicateContextError,
    StoreUnavailableError,
)
from .models import (
    Activity,
    ActivityContext,
    CaregiverPreference,
    FeedbackRecord,
    HouseholdActivity,
    Kid,
    KidPreference,
    PreferenceLevel,
    RecommendationContext,
    Role,
    TeacherObservation,
    WeightRule,
)


class PreferenceStore(Protocol):
    """Query interface the scoring core needs from persistence."""

    def get_kid(self, kid_id: str) -> Optional[Kid]: ...

    def get_activity(self, activity_id: str) -> Optional[Activity]: ...

    def list_household_activities(self, household_id: str) -> Sequence[Tuple[HouseholdActivity, Activity]]: ...

    def list_kid_preferences(self, kid_id: str) -> Sequence[KidPreference]: ...

    def upsert_kid_preference(self, preference: KidPreference) -> KidPreference: ...

    def list_caregiver_preferences(self, household_activity_ids: Iterable[str]) -> Sequence[CaregiverPreference]: ...

    def list_activity_contexts(self, activity_ids: Iterable[str]) -> Sequence[ActivityContext]: ...

    def create_context(
        self,
        name: str,
        context_type: str = "",
        description: Optional[str] = None,
    ) -> RecommendationContext: ...

    def tag_activity(self, activity_id: str, context_id: str, fit_score: float = 1.0) -> ActivityContext: ...

    def untag_activity(self, activity_id: str, context_id: str) -> bool: ...

    def list_teacher_observations(self, kid_id: str) -> Sequence[TeacherObservation]: ...

    def count_peer_preferences(
        self,
        activity_id: str,
        *,
        exclude_kid_id: str,
        levels: Iterable[PreferenceLevel],
    ) -> int: ...

    def list_feedback(self, kid_id: str) -> Sequence[FeedbackRecord]: ...

    def append_feedback(self, record: FeedbackRecord) -> FeedbackRecord: ...

    def list_weights(self, user_id: str) -> Sequence[WeightRule]: ...

    def upsert_weight(self, rule: WeightRule) -> WeightRule: ...

    def get_roles(self, user_id: str) -> FrozenSet[Role]: ...


_ROLE_ALIASES: Dict[str, Role] = {
    "parent": Role.PARENT,
    "user": Role.PARENT,
    "caregiver": Role.PARENT,
    "teacher": Role.TEACHER,
    "educator": Role.TEACHER,
    "admin": Role.ADMIN,
    "administrator": Role.ADMIN,
}


def normalize_roles(profile: Mapping[str, Any] | str | Iterable[str] | None) -> FrozenSet[Role]:
    """Collapse the different role formats of a user profile into one set.

    Profiles may carry a ``roles`` list, a single ``role`` string (possibly
    comma separated) or boolean ``is_admin``/``is_teacher`` flags.  Unknown
    role names are ignored and an empty result means a plain parent.
    """

    raw: List[str] = []
    if profile is None:
        pass
    elif isinstance(profile, str):
        raw.append(profile)
    elif isinstance(profile, Mapping):
        for key in ("roles", "role", "user_role"):
            value = profile.get(key)
            if isinstance(value, str):
                raw.append(value)
            elif isinstance(value, Iterable):
                raw.extend(str(item) for item in value)
        if profile.get("is_admin"):
            raw.append("admin")
        if profile.get("is_teacher"):
            raw.append("teacher")
    else:
        raw.extend(str(item) for item in profile)

    roles: Set[Role] = set()
    for chunk in raw:
        for token in re.split(r"[\s,;|]+", chunk.strip().lower()):
            role = _ROLE_ALIASES.get(token)
            if role is not None:
                roles.add(role)
    return frozenset(roles or {Role.PARENT})


class InMemoryPreferenceStore:
    """Dictionary backed :class:`PreferenceStore`.

    Setting ``online`` to ``False`` makes every query raise
    :class:`StoreUnavailableError`, mirroring an unreachable database.
    """

    def __init__(self) -> None:
        self.online = True
        self._lock = Lock()
        self._kids: Dict[str, Kid] = {}
        self._activities: Dict[str, Activity] = {}
        self._household_activities: Dict[str, HouseholdActivity] = {}
        self._kid_preferences: Dict[Tuple[str, str], KidPreference] = {}
        self._caregiver_preferences: Dict[str, CaregiverPreference] = {}
        self._contexts: Dict[str, RecommendationContext] = {}
        self._activity_contexts: Dict[str, Dict[str, ActivityContext]] = defaultdict(dict)
        self._observations: List[TeacherObservation] = []
        self._feedback: List[FeedbackRecord] = []
        self._weights: Dict[Tuple[str, str], WeightRule] = {}
        self._roles: Dict[str, FrozenSet[Role]] = {}

    # ------------------------------------------------------------------
    # Seeding helpers
    # ------------------------------------------------------------------
    def add_kid(self, kid_id: str, household_id: str, name: str = "", *, is_active: bool = True) -> Kid:
        kid = Kid(id=kid_id, household_id=household_id, name=name or kid_id, is_active=is_active)
        self._kids[kid_id] = kid
        return kid

    def add_activity(
        self,
        activity_id: str,
        name: str,
        *,
        category: str = "",
        description: Optional[str] = None,
    ) -> Activity:
        activity = Activity(id=activity_id, name=name, category=category, description=description)
        self._activities[activity_id] = activity
        return activity

    def link_activity(self, household_id: str, activity_id: str) -> HouseholdActivity:
        link = HouseholdActivity(id=f"{household_id}:{activity_id}", household_id=household_id, activity_id=activity_id)
        self._household_activities[link.id] = link
        return link

    def set_caregiver_preference(self, preference: CaregiverPreference) -> CaregiverPreference:
        self._caregiver_preferences[preference.household_activity_id] = preference
        return preference

    def add_context(self, context: RecommendationContext) -> RecommendationContext:
        """Store a context as given, e.g. a legacy context without attributes."""

        self._contexts[context.id] = context
        return context

    def add_observation(self, observation: TeacherObservation) -> TeacherObservation:
        self._observations.append(observation)
        return observation

    def set_roles(self, user_id: str, profile: Mapping[str, Any] | str | Iterable[str]) -> FrozenSet[Role]:
        roles = normalize_roles(profile)
        self._roles[user_id] = roles
        return roles

    # ------------------------------------------------------------------
    # PreferenceStore
    # ------------------------------------------------------------------
    def _ensure_online(self) -> None:
        if not self.online:
            raise StoreUnavailableError("Preference store is offline.")

    def get_kid(self, kid_id: str) -> Optional[Kid]:
        self._ensure_online()
        return self._kids.get(kid_id)

    def get_activity(self, activity_id: str) -> Optional[Activity]:
        self._ensure_online()
        return self._activities.get(activity_id)

    def list_household_activities(self, household_id: str) -> Sequence[Tuple[HouseholdActivity, Activity]]:
        self._ensure_online()
        pairs = [
            (link, self._activities[link.activity_id])
            for link in self._household_activities.values()
            if link.household_id == household_id and link.activity_id in self._activities
        ]
        return sorted(pairs, key=lambda pair: pair[1].id)

    def list_kid_preferences(self, kid_id: str) -> Sequence[KidPreference]:
        self._ensure_online()
        return [pref for (owner, _), pref in sorted(self._kid_preferences.items()) if owner == kid_id]

    def upsert_kid_preference(self, preference: KidPreference) -> KidPreference:
        self._ensure_online()
        with self._lock:
            self._kid_preferences[(preference.kid_id, preference.activity_id)] = preference
        return preference

    def list_caregiver_preferences(self, household_activity_ids: Iterable[str]) -> Sequence[CaregiverPreference]:
        self._ensure_online()
        wanted = set(household_activity_ids)
        return [pref for key, pref in sorted(self._caregiver_preferences.items()) if key in wanted]

    def list_activity_contexts(self, activity_ids: Iterable[str]) -> Sequence[ActivityContext]:
        self._ensure_online()
        tags: List[ActivityContext] = []
        for activity_id in sorted(set(activity_ids)):
            mapped = self._activity_contexts.get(activity_id, {})
            tags.extend(sorted(mapped.values(), key=lambda tag: tag.context.name))
        return tags

    def create_context(
        self,
        name: str,
        context_type: str = "",
        description: Optional[str] = None,
    ) -> RecommendationContext:
        self._ensure_online()
        context = build_context(name, context_type, description)
        with self._lock:
            if any(existing.name == context.name for existing in self._contexts.values()):
                raise DuplicateContextError(f"A context named '{context.name}' already exists.")
            self._contexts[context.id] = context
        return context

    def tag_activity(self, activity_id: str, context_id: str, fit_score: float = 1.0) -> ActivityContext:
        self._ensure_online()
        if activity_id not in self._activities:
            raise ActivityNotFoundError(f"Activity '{activity_id}' does not exist.")
        context = self._contexts.get(context_id)
        if context is None:
            raise ContextNotFoundError(f"Context '{context_id}' does not exist.")
        tag = ActivityContext(activity_id=activity_id, context=context, fit_score=fit_score)
        with self._lock:
            self._activity_contexts[activity_id][context_id] = tag
        return tag

    def untag_activity(self, activity_id: str, context_id: str) -> bool:
        self._ensure_online()
        with self._lock:
            return self._activity_contexts.get(activity_id, {}).pop(context_id, None) is not None

    def list_teacher_observations(self, kid_id: str) -> Sequence[TeacherObservation]:
        self._ensure_online()
        return [observation for observation in self._observations if observation.kid_id == kid_id]

    def count_peer_preferences(
        self,
        activity_id: str,
        *,
        exclude_kid_id: str,
        levels: Iterable[PreferenceLevel],
    ) -> int:
        self._ensure_online()
        accepted = {PreferenceLevel(level) for level in levels}
        return sum(
            1
            for (kid_id, pref_activity), pref in self._kid_preferences.items()
            if pref_activity == activity_id and kid_id != exclude_kid_id and pref.level in accepted
        )

    def list_feedback(self, kid_id: str) -> Sequence[FeedbackRecord]:
        self._ensure_online()
        return [record for record in self._feedback if record.kid_id == kid_id]

    def append_feedback(self, record: FeedbackRecord) -> FeedbackRecord:
        self._ensure_online()
        stored = replace(record, id=record.id or uuid4().hex)
        with self._lock:
            self._feedback.append(stored)
        return stored

    def list_weights(self, user_id: str) -> Sequence[WeightRule]:
        self._ensure_online()
        return [rule for (owner, _), rule in sorted(self._weights.items()) if owner == user_id]

    def upsert_weight(self, rule: WeightRule) -> WeightRule:
        self._ensure_online()
        with self._lock:
            self._weights[(rule.user_id, rule.factor_name)] = rule
        return rule

    def get_roles(self, user_id: str) -> FrozenSet[Role]:
        self._ensure_online()
        return self._roles.get(user_id, frozenset({Role.PARENT}))


__all__ = ["InMemoryPreferenceStore", "PreferenceStore", "normalize_roles"]
