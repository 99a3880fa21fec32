"""Weighted multi-factor recommendation engine."""

from __future__ import annotations

import time
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from datetime import datetime
from typing import Callable, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from . import factors
from .contexts import matches
from .exceptions import KidNotFoundError, StoreUnavailableError
from .models import (
    POSITIVE_FACTORS,
    Activity,
    ActivityContext,
    CaregiverPreference,
    Explanation,
    Factor,
    FactorScore,
    FeedbackRecord,
    PreferenceLevel,
    Recommendation,
    RecommendationRequest,
    RecommendationResult,
    Role,
    TeacherObservation,
)
from .ops import HealthMonitor, StructuredLogger
from .store import PreferenceStore
from .weights import WeightConfiguration, WeightSet

DEFAULT_LIMIT = 20


def combine(weights: WeightSet, scores: Mapping[Factor, FactorScore]) -> float:
    """Weighted sum of the positive factors minus the recency penalty.

    Recency is inverted before subtraction: a score of 1 (no recent
    dismissal) costs nothing, a score of 0 costs the full weight.  The result
    is not clamped.
    """

    total = 0.0
    for factor in POSITIVE_FACTORS:
        total += weights.effective(factor) * scores[factor].score
    total -= weights.effective(Factor.RECENCY_PENALTY) * (1.0 - scores[Factor.RECENCY_PENALTY].score)
    return round(total, 6)


class RecommendationEngine:
    """Rank a household's activities for one kid.

    Each call is an independent request: bulk facts are fetched once, peer
    counts run on a bounded thread pool with a shared deadline, and every
    candidate is scored before the deterministic sort.
    """

    def __init__(
        self,
        store: PreferenceStore,
        weights: Optional[WeightConfiguration] = None,
        *,
        logger: Optional[StructuredLogger] = None,
        health: Optional[HealthMonitor] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
        peer_timeout: Optional[float] = 2.0,
        max_workers: int = 4,
    ) -> None:
        self._store = store
        self._logger = logger or StructuredLogger()
        self._health = health
        self._weights = weights or WeightConfiguration(store, logger=self._logger, health=health)
        self._clock = clock
        self._peer_timeout = peer_timeout
        self._max_workers = max(1, max_workers)

    def recommend(self, request: RecommendationRequest) -> RecommendationResult:
        if request.limit < 1:
            raise ValueError("limit must be at least 1.")
        try:
            result = self._recommend(request)
        except StoreUnavailableError as exc:
            self._logger.log("store_unavailable", kid=request.kid_id, error=str(exc))
            if self._health is not None:
                self._health.mark_store_down(str(exc))
            raise
        if self._health is not None:
            self._health.mark_store_up()
        return result

    def _recommend(self, request: RecommendationRequest) -> RecommendationResult:
        kid = self._store.get_kid(request.kid_id)
        if kid is None or not kid.is_active:
            raise KidNotFoundError(f"Kid '{request.kid_id}' does not exist.")
        weights = self._weights.load_weights(request.user_id or kid.household_id)
        now = self._clock()

        candidates = [
            (link, activity)
            for link, activity in self._store.list_household_activities(kid.household_id)
            if activity.id not in request.exclude
        ]
        tags: Dict[str, List[ActivityContext]] = defaultdict(list)
        for tag in self._store.list_activity_contexts([activity.id for _, activity in candidates]):
            tags[tag.activity_id].append(tag)

        filtered = not request.context.is_empty
        if filtered:
            candidates = [pair for pair in candidates if matches(tags[pair[1].id], request.context)]
        if not candidates:
            self._logger.log("recommendations_ranked", kid=kid.id, candidates=0, returned=0)
            return RecommendationResult(kid_id=kid.id, items=())

        levels = {pref.activity_id: pref.level for pref in self._store.list_kid_preferences(kid.id)}
        caregivers = {
            pref.household_activity_id: pref
            for pref in self._store.list_caregiver_preferences([link.id for link, _ in candidates])
        }
        observations = list(self._store.list_teacher_observations(kid.id))
        feedback = list(self._store.list_feedback(kid.id))
        include_hidden = bool(self._roles(request) & {Role.TEACHER, Role.ADMIN})
        peer_counts, degraded = self._peer_counts(kid.id, [activity.id for _, activity in candidates])

        items = [
            self._score(
                weights,
                activity,
                level=levels.get(activity.id),
                caregiver=caregivers.get(link.id),
                peer_count=peer_counts.get(activity.id, 0),
                observations=observations,
                include_hidden=include_hidden,
                context_matched=matches(tags[activity.id], request.context) if filtered else None,
                feedback=feedback,
                now=now,
            )
            for link, activity in candidates
        ]
        items.sort(key=lambda item: (-item.score, item.activity_id))
        ranked = tuple(items[: request.limit])
        degraded_factors = (Factor.SIMILAR_KIDS.value,) if degraded else ()
        self._logger.log(
            "recommendations_ranked",
            kid=kid.id,
            candidates=len(items),
            returned=len(ranked),
            context=request.context.as_dict(),
            degraded=list(degraded_factors),
        )
        return RecommendationResult(kid_id=kid.id, items=ranked, degraded_factors=degraded_factors)

    def _roles(self, request: RecommendationRequest) -> FrozenSet[Role]:
        """Explicit roles win; otherwise they are looked up for the caller."""

        if request.roles is not None:
            return request.roles
        if request.user_id:
            return self._store.get_roles(request.user_id)
        return frozenset({Role.PARENT})

    def _peer_counts(self, kid_id: str, activity_ids: Sequence[str]) -> Tuple[Dict[str, int], List[str]]:
        """Fetch peer counts in parallel; failures and timeouts count as 0."""

        counts: Dict[str, int] = {}
        failed: List[str] = []
        pool = ThreadPoolExecutor(max_workers=min(self._max_workers, len(activity_ids)))
        try:
            futures = {
                activity_id: pool.submit(
                    self._store.count_peer_preferences,
                    activity_id,
                    exclude_kid_id=kid_id,
                    levels=factors.PEER_LEVELS,
                )
                for activity_id in activity_ids
            }
            deadline = None if self._peer_timeout is None else time.monotonic() + self._peer_timeout
            for activity_id, future in futures.items():
                remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
                try:
                    counts[activity_id] = int(future.result(timeout=remaining))
                except FuturesTimeout:
                    future.cancel()
                    failed.append(activity_id)
                    self._logger.log("factor_degraded", factor=Factor.SIMILAR_KIDS.value, activity=activity_id, reason="timeout")
                except Exception as exc:  # one factor's query must not abort the request
                    failed.append(activity_id)
                    self._logger.log(
                        "factor_degraded",
                        factor=Factor.SIMILAR_KIDS.value,
                        activity=activity_id,
                        reason=f"{type(exc).__name__}: {exc}",
                    )
        finally:
            pool.shutdown(wait=False, cancel_futures=True)
        return counts, failed

    def _score(
        self,
        weights: WeightSet,
        activity: Activity,
        *,
        level: Optional[PreferenceLevel],
        caregiver: Optional[CaregiverPreference],
        peer_count: int,
        observations: Sequence[TeacherObservation],
        include_hidden: bool,
        context_matched: Optional[bool],
        feedback: Sequence[FeedbackRecord],
        now: datetime,
    ) -> Recommendation:
        results = (
            factors.preference_match(level),
            factors.parent_influence(caregiver),
            factors.similar_kids(peer_count),
            factors.teacher_endorsement(
                factors.count_endorsements(observations, activity, include_hidden=include_hidden)
            ),
            factors.context_match(context_matched),
            factors.novelty_boost(any(record.activity_id == activity.id for record in feedback)),
            factors.recency_penalty(factors.days_since_last_dismissal(feedback, activity.id, now)),
        )
        scores = {result.factor: result for result in results}
        return Recommendation(
            activity_id=activity.id,
            name=activity.name,
            description=activity.description,
            score=combine(weights, scores),
            explanation=Explanation.from_scores(scores),
            factor_scores={result.factor.value: result.score for result in results},
        )


__all__ = ["DEFAULT_LIMIT", "RecommendationEngine", "combine"]
