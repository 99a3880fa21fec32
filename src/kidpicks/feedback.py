"""Recording what families do with recommendations."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Mapping, Optional

from .exceptions import ActivityNotFoundError, KidNotFoundError
from .models import Explanation, FeedbackAction, FeedbackRecord, KidPreference, PreferenceLevel, RequestedContext
from .ops import HealthMonitor, StructuredLogger
from .store import PreferenceStore


class FeedbackRecorder:
    """Append-only writer for recommendation feedback.

    Feedback rows are the only input to the novelty and recency factors, so
    nothing else needs to track which activities were shown.
    """

    def __init__(
        self,
        store: PreferenceStore,
        *,
        logger: Optional[StructuredLogger] = None,
        health: Optional[HealthMonitor] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self._store = store
        self._logger = logger or StructuredLogger()
        self._health = health
        self._clock = clock

    def _store_ok(self) -> None:
        if self._health is not None:
            self._health.mark_store_up()

    def _require(self, kid_id: str, activity_id: str) -> None:
        kid = self._store.get_kid(kid_id)
        if kid is None or not kid.is_active:
            raise KidNotFoundError(f"Kid '{kid_id}' does not exist.")
        if self._store.get_activity(activity_id) is None:
            raise ActivityNotFoundError(f"Activity '{activity_id}' does not exist.")

    def record(
        self,
        kid_id: str,
        activity_id: str,
        action: FeedbackAction | str,
        score: Optional[float] = None,
        explanation: Explanation | Mapping[str, Any] | None = None,
        context: RequestedContext | Mapping[str, Any] | None = None,
    ) -> FeedbackRecord:
        try:
            action = FeedbackAction(action)
        except ValueError as exc:
            choices = ", ".join(item.value for item in FeedbackAction)
            raise ValueError(f"Unknown feedback action '{action}'. Expected one of: {choices}.") from exc
        self._require(kid_id, activity_id)

        if isinstance(explanation, Explanation):
            explanation = explanation.as_dict()
        if isinstance(context, RequestedContext):
            context = context.as_dict()
        record = self._store.append_feedback(
            FeedbackRecord(
                kid_id=kid_id,
                activity_id=activity_id,
                action=action,
                score=None if score is None else float(score),
                explanation=dict(explanation or {}),
                context=dict(context or {}),
                created_at=self._clock(),
            )
        )
        self._store_ok()
        self._logger.log("feedback_recorded", kid=kid_id, activity=activity_id, action=action.value, score=record.score)
        return record

    def adopt(
        self,
        kid_id: str,
        activity_id: str,
        level: PreferenceLevel | str = PreferenceLevel.LIKES,
    ) -> KidPreference:
        """Add an accepted recommendation to the kid's preferences.

        An existing preference is returned untouched; only missing rows are
        created.
        """

        level = PreferenceLevel(level)
        self._require(kid_id, activity_id)
        for existing in self._store.list_kid_preferences(kid_id):
            if existing.activity_id == activity_id:
                return existing
        preference = self._store.upsert_kid_preference(
            KidPreference(kid_id=kid_id, activity_id=activity_id, level=level, updated_at=self._clock())
        )
        self._store_ok()
        self._logger.log("preference_adopted", kid=kid_id, activity=activity_id, level=level.value)
        return preference


__all__ = ["FeedbackRecorder"]
