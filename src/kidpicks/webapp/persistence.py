"""Persistence and SQLModel definitions for the KidPicks web service."""
from __future__ import annotations

import json
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Dict, FrozenSet, Iterable, Iterator, Optional, Sequence, Tuple
from uuid import uuid4

from sqlalchemy import UniqueConstraint, func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlmodel import Field, Session, SQLModel, create_engine, select

from ..contexts import build_context
from ..exceptions import (
    ActivityNotFoundError,
    ContextNotFoundError,
    DuplicateContextError,
    StoreUnavailableError,
)
from ..models import (
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
from ..store import normalize_roles
from .config import SQLITE_FILE_NAME


def _new_id() -> str:
    return uuid4().hex


# ---------------------------------------------------------------------------
# Database models
# ---------------------------------------------------------------------------
def build_engine(sqlite_file: str = SQLITE_FILE_NAME) -> Engine:
    return create_engine(
        f"sqlite:///{sqlite_file}",
        echo=False,
        connect_args={"check_same_thread": False},
    )


engine = build_engine()


class UserProfileRow(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(primary_key=True)
    email: Optional[str] = None
    role: str = "user"
    is_admin: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)


class KidRow(SQLModel, table=True):
    __tablename__ = "kids"

    id: str = Field(default_factory=_new_id, primary_key=True)
    parent_id: str = Field(index=True)
    name: str
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)


class ActivityRow(SQLModel, table=True):
    __tablename__ = "kid_activities"

    id: str = Field(default_factory=_new_id, primary_key=True)
    name: str
    category: str = ""
    description: Optional[str] = None


class HouseholdActivityRow(SQLModel, table=True):
    __tablename__ = "household_activities"
    __table_args__ = (UniqueConstraint("user_id", "activity_id"),)

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(index=True)
    activity_id: str = Field(index=True)
    added_at: datetime = Field(default_factory=datetime.utcnow)


class KidPreferenceRow(SQLModel, table=True):
    __tablename__ = "kid_preferences"
    __table_args__ = (UniqueConstraint("kid_id", "activity_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    kid_id: str = Field(index=True)
    activity_id: str = Field(index=True)
    preference_level: str
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class CaregiverPreferenceRow(SQLModel, table=True):
    __tablename__ = "household_activity_preferences"

    household_activity_id: str = Field(primary_key=True)
    caregiver1_preference: str = "unset"
    caregiver2_preference: str = "unset"
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class ContextRow(SQLModel, table=True):
    __tablename__ = "recommendation_contexts"

    id: str = Field(default_factory=_new_id, primary_key=True)
    name: str = Field(index=True, unique=True)
    context_type: str = ""
    attributes: str = "{}"  # JSON object: location|energy|time_of_day
    description: Optional[str] = None


class ActivityContextRow(SQLModel, table=True):
    __tablename__ = "activity_contexts"
    __table_args__ = (UniqueConstraint("activity_id", "context_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    activity_id: str = Field(index=True)
    context_id: str
    fit_score: float = 1.0


class TeacherObservationRow(SQLModel, table=True):
    __tablename__ = "teacher_observations"

    id: str = Field(default_factory=_new_id, primary_key=True)
    kid_id: str = Field(index=True)
    teacher_id: str
    observation_type: str = "interest"
    title: str
    description: Optional[str] = None
    observed_date: date = Field(default_factory=date.today)
    is_visible_to_parent: bool = True
    activity_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class RecommendationRuleRow(SQLModel, table=True):
    __tablename__ = "recommendation_rules"
    __table_args__ = (UniqueConstraint("user_id", "rule_type"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    rule_type: str
    weight: float
    is_enabled: bool = True
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class RecommendationFeedbackRow(SQLModel, table=True):
    __tablename__ = "recommendation_feedback"

    id: str = Field(default_factory=_new_id, primary_key=True)
    kid_id: str = Field(index=True)
    activity_id: str
    action: str  # selected|saved|dismissed
    recommendation_score: Optional[float] = None
    explanation: str = "{}"
    context: str = "{}"
    created_at: datetime = Field(default_factory=datetime.utcnow)


# ---------------------------------------------------------------------------
# Database initialisation
# ---------------------------------------------------------------------------
def create_db_and_tables(target: Engine | None = None) -> None:
    SQLModel.metadata.create_all(target or engine)


def _load_json(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except ValueError:
        return {}
    return value if isinstance(value, dict) else {}


# ---------------------------------------------------------------------------
# PreferenceStore implementation
# ---------------------------------------------------------------------------
class SqlPreferenceStore:
    """:class:`~kidpicks.store.PreferenceStore` backed by SQLModel tables.

    Connection level failures surface as :class:`StoreUnavailableError`.
    """

    def __init__(self, bind: Engine | None = None) -> None:
        self.engine = bind or engine

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with Session(self.engine, expire_on_commit=False) as session:
                yield session
        except (OperationalError, InterfaceError) as exc:
            raise StoreUnavailableError(f"Preference store unavailable: {exc.orig or exc}") from exc

    def get_kid(self, kid_id: str) -> Optional[Kid]:
        with self._session() as session:
            row = session.get(KidRow, kid_id)
            if row is None:
                return None
            return Kid(id=row.id, household_id=row.parent_id, name=row.name, is_active=row.is_active)

    def get_activity(self, activity_id: str) -> Optional[Activity]:
        with self._session() as session:
            row = session.get(ActivityRow, activity_id)
            return _to_activity(row) if row else None

    def list_household_activities(self, household_id: str) -> Sequence[Tuple[HouseholdActivity, Activity]]:
        query = (
            select(HouseholdActivityRow, ActivityRow)
            .where(HouseholdActivityRow.activity_id == ActivityRow.id)
            .where(HouseholdActivityRow.user_id == household_id)
            .order_by(ActivityRow.id)
        )
        with self._session() as session:
            return [
                (
                    HouseholdActivity(id=link.id, household_id=link.user_id, activity_id=link.activity_id),
                    _to_activity(activity),
                )
                for link, activity in session.exec(query).all()
            ]

    def list_kid_preferences(self, kid_id: str) -> Sequence[KidPreference]:
        query = select(KidPreferenceRow).where(KidPreferenceRow.kid_id == kid_id).order_by(KidPreferenceRow.activity_id)
        with self._session() as session:
            return [_to_kid_preference(row) for row in session.exec(query).all()]

    def upsert_kid_preference(self, preference: KidPreference) -> KidPreference:
        with self._session() as session:
            row = session.exec(
                select(KidPreferenceRow)
                .where(KidPreferenceRow.kid_id == preference.kid_id)
                .where(KidPreferenceRow.activity_id == preference.activity_id)
            ).first()
            if row is None:
                row = KidPreferenceRow(kid_id=preference.kid_id, activity_id=preference.activity_id, preference_level="")
            row.preference_level = preference.level.value
            row.updated_at = preference.updated_at
            session.add(row)
            session.commit()
            return _to_kid_preference(row)

    def list_caregiver_preferences(self, household_activity_ids: Iterable[str]) -> Sequence[CaregiverPreference]:
        ids = sorted(set(household_activity_ids))
        if not ids:
            return []
        query = select(CaregiverPreferenceRow).where(CaregiverPreferenceRow.household_activity_id.in_(ids))
        with self._session() as session:
            return [
                CaregiverPreference(
                    household_activity_id=row.household_activity_id,
                    caregiver1=row.caregiver1_preference,
                    caregiver2=row.caregiver2_preference,
                )
                for row in session.exec(query).all()
            ]

    def list_activity_contexts(self, activity_ids: Iterable[str]) -> Sequence[ActivityContext]:
        ids = sorted(set(activity_ids))
        if not ids:
            return []
        query = (
            select(ActivityContextRow, ContextRow)
            .where(ActivityContextRow.context_id == ContextRow.id)
            .where(ActivityContextRow.activity_id.in_(ids))
            .order_by(ActivityContextRow.activity_id, ContextRow.name)
        )
        with self._session() as session:
            return [
                ActivityContext(
                    activity_id=mapping.activity_id,
                    context=_to_context(context),
                    fit_score=mapping.fit_score,
                )
                for mapping, context in session.exec(query).all()
            ]

    def create_context(
        self,
        name: str,
        context_type: str = "",
        description: Optional[str] = None,
    ) -> RecommendationContext:
        context = build_context(name, context_type, description, context_id=_new_id())
        with self._session() as session:
            existing = session.exec(select(ContextRow).where(ContextRow.name == context.name)).first()
            if existing is not None:
                raise DuplicateContextError(f"A context named '{context.name}' already exists.")
            row = ContextRow(
                id=context.id,
                name=context.name,
                context_type=context.context_type,
                attributes=json.dumps(context.attributes, sort_keys=True),
                description=context.description,
            )
            session.add(row)
            session.commit()
            return _to_context(row)

    def tag_activity(self, activity_id: str, context_id: str, fit_score: float = 1.0) -> ActivityContext:
        with self._session() as session:
            if session.get(ActivityRow, activity_id) is None:
                raise ActivityNotFoundError(f"Activity '{activity_id}' does not exist.")
            context = session.get(ContextRow, context_id)
            if context is None:
                raise ContextNotFoundError(f"Context '{context_id}' does not exist.")
            tag = ActivityContext(activity_id=activity_id, context=_to_context(context), fit_score=fit_score)
            row = session.exec(
                select(ActivityContextRow)
                .where(ActivityContextRow.activity_id == activity_id)
                .where(ActivityContextRow.context_id == context_id)
            ).first()
            if row is None:
                row = ActivityContextRow(activity_id=activity_id, context_id=context_id)
            row.fit_score = tag.fit_score
            session.add(row)
            session.commit()
            return tag

    def untag_activity(self, activity_id: str, context_id: str) -> bool:
        with self._session() as session:
            row = session.exec(
                select(ActivityContextRow)
                .where(ActivityContextRow.activity_id == activity_id)
                .where(ActivityContextRow.context_id == context_id)
            ).first()
            if row is None:
                return False
            session.delete(row)
            session.commit()
            return True

    def list_teacher_observations(self, kid_id: str) -> Sequence[TeacherObservation]:
        query = (
            select(TeacherObservationRow)
            .where(TeacherObservationRow.kid_id == kid_id)
            .order_by(TeacherObservationRow.observed_date, TeacherObservationRow.id)
        )
        with self._session() as session:
            return [
                TeacherObservation(
                    id=row.id,
                    kid_id=row.kid_id,
                    teacher_id=row.teacher_id,
                    title=row.title,
                    observation_type=row.observation_type,
                    description=row.description,
                    observed_date=row.observed_date,
                    is_visible_to_parent=row.is_visible_to_parent,
                    activity_id=row.activity_id,
                )
                for row in session.exec(query).all()
            ]

    def count_peer_preferences(
        self,
        activity_id: str,
        *,
        exclude_kid_id: str,
        levels: Iterable[PreferenceLevel],
    ) -> int:
        wanted = [PreferenceLevel(level).value for level in levels]
        query = (
            select(func.count(func.distinct(KidPreferenceRow.kid_id)))
            .where(KidPreferenceRow.activity_id == activity_id)
            .where(KidPreferenceRow.kid_id != exclude_kid_id)
            .where(KidPreferenceRow.preference_level.in_(wanted))
        )
        with self._session() as session:
            return int(session.exec(query).one() or 0)

    def list_feedback(self, kid_id: str) -> Sequence[FeedbackRecord]:
        query = (
            select(RecommendationFeedbackRow)
            .where(RecommendationFeedbackRow.kid_id == kid_id)
            .order_by(RecommendationFeedbackRow.created_at)
        )
        with self._session() as session:
            return [_to_feedback(row) for row in session.exec(query).all()]

    def append_feedback(self, record: FeedbackRecord) -> FeedbackRecord:
        row = RecommendationFeedbackRow(
            id=record.id or _new_id(),
            kid_id=record.kid_id,
            activity_id=record.activity_id,
            action=record.action.value,
            recommendation_score=record.score,
            explanation=json.dumps(record.explanation, sort_keys=True, default=str),
            context=json.dumps(record.context, sort_keys=True, default=str),
            created_at=record.created_at,
        )
        with self._session() as session:
            session.add(row)
            session.commit()
            return _to_feedback(row)

    def list_weights(self, user_id: str) -> Sequence[WeightRule]:
        query = select(RecommendationRuleRow).where(RecommendationRuleRow.user_id == user_id)
        with self._session() as session:
            return [
                WeightRule(user_id=row.user_id, factor_name=row.rule_type, weight=row.weight, is_enabled=row.is_enabled)
                for row in session.exec(query).all()
            ]

    def upsert_weight(self, rule: WeightRule) -> WeightRule:
        with self._session() as session:
            row = session.exec(
                select(RecommendationRuleRow)
                .where(RecommendationRuleRow.user_id == rule.user_id)
                .where(RecommendationRuleRow.rule_type == rule.factor_name)
            ).first()
            if row is None:
                row = RecommendationRuleRow(user_id=rule.user_id, rule_type=rule.factor_name, weight=rule.weight)
            row.weight = rule.weight
            row.is_enabled = rule.is_enabled
            row.updated_at = datetime.utcnow()
            session.add(row)
            session.commit()
        return rule

    def get_roles(self, user_id: str) -> FrozenSet[Role]:
        with self._session() as session:
            row = session.get(UserProfileRow, user_id)
        if row is None:
            return frozenset({Role.PARENT})
        return normalize_roles({"role": row.role, "is_admin": row.is_admin})


def _to_activity(row: ActivityRow) -> Activity:
    return Activity(id=row.id, name=row.name, category=row.category or "", description=row.description)


def _to_context(row: ContextRow) -> RecommendationContext:
    return RecommendationContext(
        id=row.id,
        name=row.name,
        context_type=row.context_type,
        attributes={key: str(value) for key, value in _load_json(row.attributes).items()},
        description=row.description,
    )


def _to_kid_preference(row: KidPreferenceRow) -> KidPreference:
    return KidPreference(
        kid_id=row.kid_id,
        activity_id=row.activity_id,
        level=PreferenceLevel(row.preference_level),
        updated_at=row.updated_at,
    )


def _to_feedback(row: RecommendationFeedbackRow) -> FeedbackRecord:
    return FeedbackRecord(
        id=row.id,
        kid_id=row.kid_id,
        activity_id=row.activity_id,
        action=row.action,
        score=row.recommendation_score,
        explanation=_load_json(row.explanation),
        context=_load_json(row.context),
        created_at=row.created_at,
    )


__all__ = [
    "engine",
    "build_engine",
    "UserProfileRow",
    "KidRow",
    "ActivityRow",
    "HouseholdActivityRow",
    "KidPreferenceRow",
    "CaregiverPreferenceRow",
    "ContextRow",
    "ActivityContextRow",
    "TeacherObservationRow",
    "RecommendationRuleRow",
    "RecommendationFeedbackRow",
    "SqlPreferenceStore",
    "create_db_and_tables",
]
