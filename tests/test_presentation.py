import pytest

from kidpicks.models import ContextFragment, CountFragment, Explanation, ParentFragment, PreferenceFragment
from kidpicks.presentation import confidence_stars, describe_reasons, score_percent


@pytest.mark.parametrize(
    "score, scale, expected",
    [(0.56, 1.0, 56), (1.4, 1.0, 100), (-0.2, 1.0, 0), (None, 1.0, 0), (2.5, 5, 50)],
)
def test_score_percent_is_clamped(score, scale, expected) -> None:
    assert score_percent(score, scale=scale) == expected


def test_confidence_stars() -> None:
    assert confidence_stars(100) == "★★★★★"
    assert confidence_stars(56) == "★★½☆☆"
    assert confidence_stars(40) == "★★☆☆☆"
    assert confidence_stars(0) == "☆☆☆☆☆"


def test_reasons_from_explanation() -> None:
    explanation = Explanation(
        preference_match=PreferenceFragment("loves"),
        parent_influence=ParentFragment("both"),
        similar_kids=CountFragment(2),
        teacher_endorsement=CountFragment(0),
        context_match=ContextFragment(True),
    )

    kinds = [reason.kind for reason in describe_reasons(explanation)]

    assert kinds == ["preference", "parent", "similar-kids", "context"]


def test_reasons_from_stored_payload_fall_back() -> None:
    reasons = describe_reasons({"preference_match": {"level": "unknown"}, "parent_influence": {"level": "none"}})

    assert [reason.text for reason in reasons] == ["Something new to try"]
