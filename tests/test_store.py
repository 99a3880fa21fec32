import pytest

from kidpicks.exceptions import (
    ActivityNotFoundError,
    ContextNotFoundError,
    DuplicateContextError,
    StoreUnavailableError,
)
from kidpicks.models import FeedbackAction, FeedbackRecord, Role
from kidpicks.store import InMemoryPreferenceStore, normalize_roles


@pytest.mark.parametrize(
    "profile, expected",
    [
        (None, {Role.PARENT}),
        ("user", {Role.PARENT}),
        ("teacher, admin", {Role.TEACHER, Role.ADMIN}),
        ({"roles": ["educator"]}, {Role.TEACHER}),
        ({"role": "user", "is_admin": True}, {Role.PARENT, Role.ADMIN}),
        ({"user_role": "astronaut"}, {Role.PARENT}),
        (["Administrator"], {Role.ADMIN}),
    ],
)
def test_normalize_roles(profile, expected) -> None:
    assert normalize_roles(profile) == frozenset(expected)


def test_roles_default_to_parent() -> None:
    store = InMemoryPreferenceStore()
    store.set_roles("ms-lee", {"role": "teacher"})

    assert store.get_roles("ms-lee") == frozenset({Role.TEACHER})
    assert store.get_roles("someone") == frozenset({Role.PARENT})


def test_offline_store_raises() -> None:
    store = InMemoryPreferenceStore()
    store.online = False

    with pytest.raises(StoreUnavailableError):
        store.get_kid("kid-1")
    with pytest.raises(StoreUnavailableError):
        store.append_feedback(FeedbackRecord("kid-1", "swim", FeedbackAction.SAVED))


def test_append_feedback_assigns_ids() -> None:
    store = InMemoryPreferenceStore()

    first = store.append_feedback(FeedbackRecord("kid-1", "swim", "saved"))
    second = store.append_feedback(FeedbackRecord("kid-1", "swim", "selected"))

    assert first.id and second.id and first.id != second.id
    assert [record.action for record in store.list_feedback("kid-1")] == [FeedbackAction.SAVED, FeedbackAction.SELECTED]


def test_create_context_derives_attributes() -> None:
    store = InMemoryPreferenceStore()

    context = store.create_context(" High energy ", "energy_level", "Run around")

    assert context.name == "High energy"
    assert context.attributes == {"energy": "high"}
    assert context.description == "Run around"
    with pytest.raises(DuplicateContextError):
        store.create_context("High energy", "energy_level")
    with pytest.raises(ValueError):
        store.create_context("   ")


def test_tag_and_untag_activity() -> None:
    store = InMemoryPreferenceStore()
    store.add_activity("swim", "Swimming")
    context = store.create_context("Outdoor", "location")

    store.tag_activity("swim", context.id)
    retagged = store.tag_activity("swim", context.id, fit_score=0.4)

    tags = store.list_activity_contexts(["swim"])
    assert tags == [retagged]
    assert tags[0].fit_score == 0.4
    assert tags[0].context.attributes == {"location": "outdoor"}

    with pytest.raises(ActivityNotFoundError):
        store.tag_activity("climb", context.id)
    with pytest.raises(ContextNotFoundError):
        store.tag_activity("swim", "missing")

    assert store.untag_activity("swim", context.id) is True
    assert store.untag_activity("swim", context.id) is False
    assert store.list_activity_contexts(["swim"]) == []
