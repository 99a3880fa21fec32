"""Domain models used by the KidPicks package."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple, Union


class Factor(str, Enum):
    """The seven scoring dimensions combined by the recommendation engine."""

    PREFERENCE_MATCH = "preference_match"
    PARENT_INFLUENCE = "parent_influence"
    SIMILAR_KIDS = "similar_kids"
    TEACHER_ENDORSEMENT = "teacher_endorsement"
    CONTEXT_MATCH = "context_match"
    NOVELTY_BOOST = "novelty_boost"
    RECENCY_PENALTY = "recency_penalty"


FACTOR_NAMES: Tuple[str, ...] = tuple(factor.value for factor in Factor)
POSITIVE_FACTORS: Tuple[Factor, ...] = tuple(factor for factor in Factor if factor is not Factor.RECENCY_PENALTY)


class PreferenceLevel(str, Enum):
    """How much a kid enjoys an activity."""

    LOVES = "loves"
    LIKES = "likes"
    NEUTRAL = "neutral"
    DISLIKES = "dislikes"
    REFUSES = "refuses"


class CaregiverLevel(str, Enum):
    """How keen a caregiver is to do an activity with the kids."""

    DROP_ANYTHING = "drop_anything"
    SOMETIMES = "sometimes"
    ON_YOUR_OWN = "on_your_own"
    UNSET = "unset"


class FeedbackAction(str, Enum):
    """Action a user took on a recommendation card."""

    SELECTED = "selected"
    SAVED = "saved"
    DISMISSED = "dismissed"


class Role(str, Enum):
    """Normalised caller roles resolved at the data-access boundary."""

    PARENT = "parent"
    TEACHER = "teacher"
    ADMIN = "admin"


@dataclass(slots=True)
class Kid:
    id: str
    household_id: str
    name: str = ""
    is_active: bool = True


@dataclass(slots=True)
class Activity:
    """Universal catalog entry shared by every household."""

    id: str
    name: str
    category: str = ""
    description: Optional[str] = None


@dataclass(slots=True)
class HouseholdActivity:
    """Links a catalog activity to one family so caregivers can rate it."""

    id: str
    household_id: str
    activity_id: str


@dataclass(slots=True)
class KidPreference:
    kid_id: str
    activity_id: str
    level: PreferenceLevel
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self) -> None:
        self.level = PreferenceLevel(self.level)


@dataclass(slots=True)
class CaregiverPreference:
    household_activity_id: str
    caregiver1: CaregiverLevel = CaregiverLevel.UNSET
    caregiver2: CaregiverLevel = CaregiverLevel.UNSET

    def __post_init__(self) -> None:
        self.caregiver1 = CaregiverLevel(self.caregiver1 or CaregiverLevel.UNSET)
        self.caregiver2 = CaregiverLevel(self.caregiver2 or CaregiverLevel.UNSET)


@dataclass(slots=True)
class RecommendationContext:
    """A named situational descriptor such as "Outdoors" or "High energy"."""

    id: str
    name: str
    context_type: str = ""
    attributes: Dict[str, str] = field(default_factory=dict)
    description: Optional[str] = None


@dataclass(slots=True)
class ActivityContext:
    activity_id: str
    context: RecommendationContext
    fit_score: float = 1.0

    def __post_init__(self) -> None:
        if not 0.0 <= float(self.fit_score) <= 1.0:
            raise ValueError("fit_score must be between 0 and 1.")
        self.fit_score = float(self.fit_score)


@dataclass(slots=True)
class TeacherObservation:
    """Append-only teacher note about a kid; only visibility may change."""

    id: str
    kid_id: str
    teacher_id: str
    title: str
    observation_type: str = "interest"
    description: Optional[str] = None
    observed_date: date = field(default_factory=date.today)
    is_visible_to_parent: bool = True
    activity_id: Optional[str] = None


@dataclass(slots=True)
class WeightRule:
    user_id: str
    factor_name: str
    weight: float
    is_enabled: bool = True


@dataclass(slots=True)
class RequestedContext:
    """Optional situational filter supplied with a recommendation request."""

    location: Optional[str] = None
    energy: Optional[str] = None
    time_of_day: Optional[str] = None

    @classmethod
    def from_mapping(cls, payload: Optional[Mapping[str, Any]]) -> "RequestedContext":
        if not payload:
            return cls()
        time_of_day = payload.get("time_of_day", payload.get("timeOfDay"))
        return cls(
            location=_clean(payload.get("location")),
            energy=_clean(payload.get("energy")),
            time_of_day=_clean(time_of_day),
        )

    def fields(self) -> Dict[str, str]:
        """Return the non-empty requested fields keyed by attribute name."""

        values = {"location": self.location, "energy": self.energy, "time_of_day": self.time_of_day}
        return {key: value for key, value in values.items() if value}

    @property
    def is_empty(self) -> bool:
        return not self.fields()

    def as_dict(self) -> Dict[str, str]:
        payload = {"location": self.location, "energy": self.energy, "timeOfDay": self.time_of_day}
        return {key: value for key, value in payload.items() if value}


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(slots=True)
class FeedbackRecord:
    """Append-only record of what a user did with a recommendation."""

    kid_id: str
    activity_id: str
    action: FeedbackAction
    score: Optional[float] = None
    explanation: Dict[str, Any] = field(default_factory=dict)
    context: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.utcnow)
    id: Optional[str] = None

    def __post_init__(self) -> None:
        self.action = FeedbackAction(self.action)


# ---------------------------------------------------------------------------
# Explanation fragments
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class PreferenceFragment:
    level: str

    def as_dict(self) -> Dict[str, Any]:
        return {"level": self.level}


@dataclass(frozen=True, slots=True)
class ParentFragment:
    level: str

    def as_dict(self) -> Dict[str, Any]:
        return {"level": self.level}


@dataclass(frozen=True, slots=True)
class CountFragment:
    count: int

    def as_dict(self) -> Dict[str, Any]:
        return {"count": self.count}


@dataclass(frozen=True, slots=True)
class ContextFragment:
    matched: Optional[bool]

    def as_dict(self) -> Dict[str, Any]:
        return {"matched": self.matched}


@dataclass(frozen=True, slots=True)
class NoveltyFragment:
    is_novel: bool

    def as_dict(self) -> Dict[str, Any]:
        return {"isNovel": self.is_novel}


@dataclass(frozen=True, slots=True)
class RecencyFragment:
    days_since_dismissal: Optional[float]

    def as_dict(self) -> Dict[str, Any]:
        return {"daysSinceDismissal": self.days_since_dismissal}


Fragment = Union[
    PreferenceFragment,
    ParentFragment,
    CountFragment,
    ContextFragment,
    NoveltyFragment,
    RecencyFragment,
]


@dataclass(frozen=True, slots=True)
class FactorScore:
    """Normalised sub-score in ``[0, 1]`` with the reason behind it."""

    factor: Factor
    score: float
    fragment: Fragment


@dataclass(frozen=True, slots=True)
class Explanation:
    """One optional fragment per factor name."""

    preference_match: Optional[PreferenceFragment] = None
    parent_influence: Optional[ParentFragment] = None
    similar_kids: Optional[CountFragment] = None
    teacher_endorsement: Optional[CountFragment] = None
    context_match: Optional[ContextFragment] = None
    novelty_boost: Optional[NoveltyFragment] = None
    recency_penalty: Optional[RecencyFragment] = None

    @classmethod
    def from_scores(cls, scores: Mapping[Factor, FactorScore]) -> "Explanation":
        return cls(**{factor.value: result.fragment for factor, result in scores.items()})

    def as_dict(self) -> Dict[str, Dict[str, Any]]:
        payload: Dict[str, Dict[str, Any]] = {}
        for name in FACTOR_NAMES:
            fragment = getattr(self, name)
            if fragment is not None:
                payload[name] = fragment.as_dict()
        return payload


@dataclass(frozen=True, slots=True)
class RecommendationRequest:
    kid_id: str
    context: RequestedContext = field(default_factory=RequestedContext)
    limit: int = 20
    user_id: Optional[str] = None
    roles: Optional[FrozenSet[Role]] = None
    exclude: FrozenSet[str] = frozenset()


@dataclass(frozen=True, slots=True)
class Recommendation:
    activity_id: str
    name: str
    description: Optional[str]
    score: float
    explanation: Explanation
    factor_scores: Mapping[str, float] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "activityId": self.activity_id,
            "name": self.name,
            "description": self.description,
            "score": self.score,
            "explanation": self.explanation.as_dict(),
        }


@dataclass(frozen=True, slots=True)
class RecommendationResult:
    """Ranked output plus the factors that had to fall back to defaults."""

    kid_id: str
    items: Tuple[Recommendation, ...]
    degraded_factors: Tuple[str, ...] = ()

    @property
    def degraded(self) -> bool:
        return bool(self.degraded_factors)

    def __iter__(self):
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)
