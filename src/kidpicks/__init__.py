"""KidPicks package for ranking family activities for a kid."""

from .contexts import derive_attributes, matches
from .engine import RecommendationEngine, combine
from .exceptions import (
    ActivityNotFoundError,
    InvalidWeightError,
    KidNotFoundError,
    KidPicksError,
    StoreUnavailableError,
    UnknownPresetError,
)
from .feedback import FeedbackRecorder
from .models import (
    FACTOR_NAMES,
    Activity,
    ActivityContext,
    CaregiverLevel,
    CaregiverPreference,
    Explanation,
    Factor,
    FactorScore,
    FeedbackAction,
    FeedbackRecord,
    HouseholdActivity,
    Kid,
    KidPreference,
    PreferenceLevel,
    Recommendation,
    RecommendationContext,
    RecommendationRequest,
    RecommendationResult,
    RequestedContext,
    Role,
    TeacherObservation,
    WeightRule,
)
from .ops import HealthMonitor, StructuredLogger
from .presentation import Reason, confidence_stars, describe_reasons, score_percent
from .store import InMemoryPreferenceStore, PreferenceStore, normalize_roles
from .weights import PRESETS, WeightConfiguration, WeightSet

__all__ = [
    "Activity",
    "ActivityContext",
    "ActivityNotFoundError",
    "CaregiverLevel",
    "CaregiverPreference",
    "Explanation",
    "FACTOR_NAMES",
    "Factor",
    "FactorScore",
    "FeedbackAction",
    "FeedbackRecord",
    "FeedbackRecorder",
    "HealthMonitor",
    "HouseholdActivity",
    "InMemoryPreferenceStore",
    "InvalidWeightError",
    "Kid",
    "KidNotFoundError",
    "KidPicksError",
    "KidPreference",
    "PRESETS",
    "PreferenceLevel",
    "PreferenceStore",
    "Reason",
    "Recommendation",
    "RecommendationContext",
    "RecommendationEngine",
    "RecommendationRequest",
    "RecommendationResult",
    "RequestedContext",
    "Role",
    "StoreUnavailableError",
    "StructuredLogger",
    "TeacherObservation",
    "UnknownPresetError",
    "WeightConfiguration",
    "WeightRule",
    "WeightSet",
    "combine",
    "confidence_stars",
    "derive_attributes",
    "describe_reasons",
    "matches",
    "normalize_roles",
    "score_percent",
]
