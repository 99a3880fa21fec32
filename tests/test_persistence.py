from datetime import datetime

import pytest

pytest.importorskip("sqlmodel")
from sqlmodel import Session, select

from kidpicks.exceptions import ActivityNotFoundError, ContextNotFoundError, DuplicateContextError
from kidpicks.models import FeedbackAction, FeedbackRecord, KidPreference, PreferenceLevel, WeightRule
from kidpicks.webapp.persistence import (
    ActivityContextRow,
    ActivityRow,
    ContextRow,
    RecommendationRuleRow,
    SqlPreferenceStore,
    build_engine,
    create_db_and_tables,
)


@pytest.fixture()
def sql_store(tmp_path):
    engine = build_engine(str(tmp_path / "store.db"))
    create_db_and_tables(engine)
    with Session(engine) as session:
        session.add(ActivityRow(id="swim", name="Swimming"))
        session.add(ActivityRow(id="read", name="Reading"))
        session.commit()
    return SqlPreferenceStore(engine), engine


def test_feedback_is_written_and_read_back(sql_store) -> None:
    store, _ = sql_store
    when = datetime(2024, 5, 1, 12, 0)

    stored = store.append_feedback(
        FeedbackRecord(
            "kid-1",
            "swim",
            FeedbackAction.DISMISSED,
            score=0.42,
            explanation={"novelty_boost": {"isNovel": True}},
            created_at=when,
        )
    )

    assert stored.id
    records = store.list_feedback("kid-1")
    assert len(records) == 1
    assert records[0].action is FeedbackAction.DISMISSED
    assert records[0].score == pytest.approx(0.42)
    assert records[0].explanation == {"novelty_boost": {"isNovel": True}}
    assert records[0].created_at == when
    assert store.list_feedback("kid-2") == []


def test_weights_are_upserted_per_factor(sql_store) -> None:
    store, engine = sql_store

    store.upsert_weight(WeightRule("parent-1", "novelty_boost", 0.3))
    store.upsert_weight(WeightRule("parent-1", "novelty_boost", 0.7, is_enabled=False))

    assert store.list_weights("parent-1") == [WeightRule("parent-1", "novelty_boost", 0.7, is_enabled=False)]
    with Session(engine) as session:
        assert len(session.exec(select(RecommendationRuleRow)).all()) == 1


def test_kid_preference_upsert_replaces_level(sql_store) -> None:
    store, _ = sql_store

    store.upsert_kid_preference(KidPreference("kid-1", "swim", PreferenceLevel.LIKES))
    store.upsert_kid_preference(KidPreference("kid-1", "swim", PreferenceLevel.LOVES))

    prefs = store.list_kid_preferences("kid-1")
    assert [(pref.activity_id, pref.level) for pref in prefs] == [("swim", PreferenceLevel.LOVES)]


def test_create_context_stores_derived_attributes(sql_store) -> None:
    store, engine = sql_store

    context = store.create_context("Morning", "time_of_day", "Before school")

    assert context.attributes == {"time_of_day": "morning"}
    with Session(engine) as session:
        row = session.get(ContextRow, context.id)
        assert row is not None
        assert row.description == "Before school"
    with pytest.raises(DuplicateContextError):
        store.create_context("Morning", "time_of_day")


def test_tagging_activities_with_contexts(sql_store) -> None:
    store, engine = sql_store
    outdoor = store.create_context("Outdoor", "location")

    store.tag_activity("swim", outdoor.id)
    store.tag_activity("swim", outdoor.id, fit_score=0.5)

    tags = store.list_activity_contexts(["swim", "read"])
    assert [(tag.activity_id, tag.context.name, tag.fit_score) for tag in tags] == [("swim", "Outdoor", 0.5)]
    assert tags[0].context.attributes == {"location": "outdoor"}
    with Session(engine) as session:
        assert len(session.exec(select(ActivityContextRow)).all()) == 1

    with pytest.raises(ActivityNotFoundError):
        store.tag_activity("climb", outdoor.id)
    with pytest.raises(ContextNotFoundError):
        store.tag_activity("swim", "missing")

    assert store.untag_activity("swim", outdoor.id) is True
    assert store.untag_activity("swim", outdoor.id) is False
    assert store.list_activity_contexts(["swim"]) == []
