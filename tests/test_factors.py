from datetime import datetime, timedelta

import pytest

from kidpicks import factors
from kidpicks.models import (
    Activity,
    CaregiverLevel,
    CaregiverPreference,
    FeedbackAction,
    FeedbackRecord,
    PreferenceLevel,
    TeacherObservation,
)

NOW = datetime(2024, 5, 1, 12, 0)


@pytest.mark.parametrize(
    "level, expected",
    [
        (PreferenceLevel.LOVES, 1.0),
        (PreferenceLevel.LIKES, 0.7),
        (PreferenceLevel.NEUTRAL, 0.4),
        (PreferenceLevel.DISLIKES, 0.1),
        (PreferenceLevel.REFUSES, 0.0),
        (None, 0.5),
    ],
)
def test_preference_match_table(level, expected) -> None:
    assert factors.preference_match(level).score == expected


def test_unknown_preference_is_explained() -> None:
    assert factors.preference_match(None).fragment.level == "unknown"


@pytest.mark.parametrize(
    "first, second, score, who",
    [
        ("drop_anything", "drop_anything", 1.0, "both"),
        ("drop_anything", "sometimes", 0.7, "caregiver1"),
        ("unset", "drop_anything", 0.7, "caregiver2"),
        ("sometimes", "on_your_own", 0.4, "caregiver1"),
        ("on_your_own", "on_your_own", 0.2, "both"),
        ("unset", "unset", 0.3, "none"),
    ],
)
def test_parent_influence_table(first, second, score, who) -> None:
    result = factors.parent_influence(CaregiverPreference("home:swim", first, second))

    assert result.score == score
    assert result.fragment.level == who


def test_missing_caregiver_row_is_neutral() -> None:
    assert factors.parent_influence(None).score == 0.3


def test_similar_kids_saturates_at_five() -> None:
    assert factors.similar_kids(0).score == 0.0
    assert factors.similar_kids(2).score == pytest.approx(0.4)
    assert factors.similar_kids(5).score == 1.0
    assert factors.similar_kids(12).score == 1.0
    assert factors.similar_kids(12).fragment.count == 12


def test_teacher_endorsement_saturates_at_three() -> None:
    assert factors.teacher_endorsement(1).score == pytest.approx(1 / 3)
    assert factors.teacher_endorsement(3).score == 1.0
    assert factors.teacher_endorsement(7).score == 1.0


def test_observation_relevance_by_id_or_name() -> None:
    swim = Activity("swim", "Swimming")
    by_id = TeacherObservation("o1", "kid-1", "t1", "Great day", activity_id="swim")
    by_name = TeacherObservation("o2", "kid-1", "t1", "Loved swimming at recess")
    other = TeacherObservation("o3", "kid-1", "t1", "Painted a dinosaur", activity_id="paint")
    hidden = TeacherObservation("o4", "kid-1", "t1", "Swimming again", is_visible_to_parent=False)
    observations = [by_id, by_name, other, hidden]

    assert factors.count_endorsements(observations, swim) == 2
    assert factors.count_endorsements(observations, swim, include_hidden=True) == 3


def test_activity_names_only_match_whole_words() -> None:
    art = Activity("art", "Art")
    notes = [
        TeacherObservation("o1", "kid-1", "t1", "Started reading chapter books"),
        TeacherObservation("o2", "kid-1", "t1", "Loved the party game"),
        TeacherObservation("o3", "kid-1", "t1", "Very smart with puzzles"),
    ]

    assert factors.count_endorsements(notes, art) == 0
    assert factors.teacher_endorsement(factors.count_endorsements(notes, art)).score == 0.0

    notes.append(TeacherObservation("o4", "kid-1", "t1", "Asked for more art, time!"))
    assert factors.count_endorsements(notes, art) == 1


def test_context_match_scores() -> None:
    assert factors.context_match(None).score == 0.5
    assert factors.context_match(None).fragment.matched is None
    assert factors.context_match(False).fragment.matched is False
    assert factors.context_match(True).score == 1.0
    assert factors.context_match(False).score == 0.0


def test_novelty_boost() -> None:
    assert factors.novelty_boost(False).score == 1.0
    assert factors.novelty_boost(True).score == 0.0
    assert factors.novelty_boost(True).fragment.is_novel is False


def test_recency_penalty_curve_is_monotonic() -> None:
    days = [0, 3, 7, 8, 15, 22, 29, 30, 45]
    scores = [factors.recency_penalty(day).score for day in days]

    assert scores[:3] == [0.0, 0.0, 0.0]
    assert scores[-2:] == [1.0, 1.0]
    assert scores == sorted(scores)
    assert factors.recency_penalty(None).score == 1.0
    assert factors.recency_penalty(18.5).score == pytest.approx(0.5)


def test_days_since_last_dismissal_uses_newest_dismissal() -> None:
    feedback = [
        FeedbackRecord("kid-1", "swim", FeedbackAction.DISMISSED, created_at=NOW - timedelta(days=20)),
        FeedbackRecord("kid-1", "swim", FeedbackAction.DISMISSED, created_at=NOW - timedelta(days=4)),
        FeedbackRecord("kid-1", "swim", FeedbackAction.SELECTED, created_at=NOW - timedelta(days=1)),
        FeedbackRecord("kid-1", "paint", FeedbackAction.DISMISSED, created_at=NOW),
    ]

    assert factors.days_since_last_dismissal(feedback, "swim", NOW) == pytest.approx(4.0)
    assert factors.days_since_last_dismissal(feedback, "bike", NOW) is None


def test_caregiver_levels_are_coerced() -> None:
    preference = CaregiverPreference("home:swim", None, "sometimes")

    assert preference.caregiver1 is CaregiverLevel.UNSET
    assert preference.caregiver2 is CaregiverLevel.SOMETIMES
