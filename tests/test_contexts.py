import pytest

from kidpicks.contexts import derive_attributes, field_matches, matches
from kidpicks.models import ActivityContext, RecommendationContext, RequestedContext


def context(name: str, **attributes: str) -> RecommendationContext:
    return RecommendationContext(id=name.lower().replace(" ", "-"), name=name, attributes=attributes)


def test_empty_filter_matches_everything() -> None:
    assert matches([], RequestedContext())
    assert matches([], None)
    assert matches([context("Indoor")], RequestedContext.from_mapping({"energy": "  "}))


def test_untagged_activity_never_matches_a_filter() -> None:
    assert not matches([], RequestedContext(location="indoor"))


def test_quiet_time_does_not_match_high_energy() -> None:
    requested = RequestedContext(energy="high")

    assert not matches([context("Quiet time")], requested)


def test_name_fallback_matches_legacy_contexts() -> None:
    requested = RequestedContext(energy="high")

    assert matches([context("High energy play")], requested)


def test_structured_attributes_match_case_insensitively() -> None:
    tagged = context("Backyard", location="outdoor")

    assert matches([tagged], RequestedContext(location="Outdoor"))
    assert not matches([tagged], RequestedContext(location="indoor"))


def test_all_requested_fields_must_hold_on_one_context() -> None:
    tags = [
        ActivityContext("swim", context("Pool", location="outdoor")),
        ActivityContext("swim", context("Morning burst", energy="high", time_of_day="morning")),
    ]

    assert not matches(tags, RequestedContext(location="outdoor", energy="high"))
    assert matches(tags, RequestedContext(energy="high", time_of_day="morning"))


def test_underscored_values_match_spaced_names() -> None:
    assert field_matches(context("After school fun"), "time_of_day", "after_school")


@pytest.mark.parametrize(
    "context_type, name, expected",
    [
        ("location", "Grandma's House", {"location": "grandma's_house"}),
        ("energy_level", "High Energy", {"energy": "high"}),
        ("energy_level", "Low key", {"energy": "low"}),
        ("energy_level", "Steady", {"energy": "medium"}),
        ("time_of_day", "After School", {"time_of_day": "after_school"}),
        ("mood", "Silly", {}),
    ],
)
def test_derive_attributes(context_type, name, expected) -> None:
    assert derive_attributes(context_type, name) == expected


def test_requested_context_accepts_camel_case() -> None:
    requested = RequestedContext.from_mapping({"timeOfDay": " evening ", "location": ""})

    assert requested.fields() == {"time_of_day": "evening"}
    assert requested.as_dict() == {"timeOfDay": "evening"}


def test_fit_score_must_be_a_fraction() -> None:
    with pytest.raises(ValueError):
        ActivityContext("swim", context("Pool"), fit_score=1.5)
