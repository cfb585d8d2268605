"""Tests for StoryService: story/test mutations over a fake store."""

import pytest

from qa_stories.errors import MissingTemplateWarning, NotFoundError
from qa_stories.models.story import FailureReason, Outcome, Status
from qa_stories.service import StoryService
from tests.unit.fakes import FakeTemplateCatalog, FakeTreeStore


def test_add_test_builds_sections_from_template(
    service: StoryService, store: FakeTreeStore
) -> None:
    test = service.add_test("s1", "T1", "Remember me")

    assert [s.name for s in test.sections] == ["A", "B"]
    assert all(s.status == Status.NOT_TESTED for s in test.sections)
    assert test.status == Status.NOT_TESTED
    assert test.template == "Login checklist"
    assert len(store.saves) == 1
    assert service.get_test("s1", test.id) == test


def test_section_results_drive_test_and_story_status(service: StoryService) -> None:
    """A passed + B failed is failed; after B passes the test and story pass."""
    story = service.add_story("root", "Signup")
    test = service.add_test(story.id, "T1", "Smoke")

    service.set_section_status(story.id, test.id, 0, Status.PASSED)
    updated = service.set_section_status(story.id, test.id, 1, "failed")
    assert updated.status == Status.FAILED
    assert service.story_status(story.id) == Status.FAILED

    updated = service.set_section_status(story.id, test.id, 1, Status.PASSED)
    assert updated.status == Status.PASSED
    assert service.story_status(story.id) == Status.PASSED


def test_section_status_write_is_persisted(service: StoryService, store: FakeTreeStore) -> None:
    service.set_section_status("s1", "t2", 1, Status.PASSED)

    test = store.root.stories[0].tests[1]
    assert test.sections[1].status == Status.PASSED
    assert test.status == Status.PASSED


@pytest.mark.parametrize(
    ("story_id", "test_id", "index"),
    [("nope", "t1", 0), ("s1", "nope", 0), ("s1", "t1", 2), ("s1", "t1", -1)],
    ids=["story", "test", "index-past-end", "negative-index"],
)
def test_set_section_status_unknown_target_saves_nothing(
    service: StoryService, store: FakeTreeStore, story_id: str, test_id: str, index: int
) -> None:
    with pytest.raises(NotFoundError):
        service.set_section_status(story_id, test_id, index, Status.FAILED)
    assert store.saves == []


def test_add_test_unknown_template_saves_nothing(
    service: StoryService, store: FakeTreeStore
) -> None:
    with pytest.raises(NotFoundError, match="Template"):
        service.add_test("s1", "T404", "Ghost")
    assert store.saves == []


def test_add_test_unknown_story_saves_nothing(service: StoryService, store: FakeTreeStore) -> None:
    with pytest.raises(NotFoundError, match="Story"):
        service.add_test("nope", "T1", "Ghost")
    assert store.saves == []


def test_section_notes_are_appended(service: StoryService) -> None:
    service.set_section_notes("s1", "t1", 0, "worked", author="alice")
    test = service.set_section_notes("s1", "t1", 0, "worked again", author="bob")

    notes = test.sections[0].notes
    assert [(n.note, n.created_by) for n in notes] == [("worked", "alice"), ("worked again", "bob")]
    assert notes[0].created_at == "2024-02-01T12:00:00+00:00"
    assert notes[0].id != notes[1].id
    # Notes do not affect status.
    assert test.status == Status.PASSED


def test_blank_note_is_ignored(service: StoryService, store: FakeTreeStore) -> None:
    test = service.set_section_notes("s1", "t1", 0, "   ", author="alice")

    assert test.sections[0].notes == ()
    assert store.saves == []
    with pytest.raises(NotFoundError):
        service.set_section_notes("s1", "t1", 5, "  ", author="alice")


def test_add_test_note(service: StoryService) -> None:
    test = service.add_test_note("s1", "t2", "password rules changed", author="carol")

    assert [n.note for n in test.notes] == ["password rules changed"]
    assert test.sections == service.get_test("s1", "t2").sections  # type: ignore[union-attr]


def test_load_story_for_run_fills_empty_tests_once(
    service: StoryService, store: FakeTreeStore
) -> None:
    story = service.load_story_for_run("s2")

    assert [s.name for s in story.tests[0].sections] == ["A", "B"]
    assert len(store.saves) == 1

    assert service.load_story_for_run("s2") == story
    assert len(store.saves) == 1


def test_load_story_for_run_keeps_recorded_tests(
    service: StoryService, store: FakeTreeStore
) -> None:
    before = service.get_story("s1")

    assert service.load_story_for_run("s1") == before
    assert store.saves == []


def test_load_story_for_run_missing_template(store: FakeTreeStore) -> None:
    service = StoryService(store, FakeTemplateCatalog())

    with pytest.warns(MissingTemplateWarning):
        story = service.load_story_for_run("s2")

    assert story.tests[0].sections == ()
    assert story.tests[0].status == Status.NOT_TESTED
    assert store.saves == []


def test_complete_story_records_snapshot(service: StoryService, store: FakeTreeStore) -> None:
    record = service.complete_story("s1", "all good", author="alice")

    assert record.outcome == Outcome.COMPLETED
    assert record.test_statuses == (("t1", Status.PASSED), ("t2", Status.NOT_TESTED))
    assert store.root.stories[0].history == (record,)


def test_fail_story_records_reasons(service: StoryService) -> None:
    reasons = [FailureReason("t2", "locked out", section_index=1), FailureReason("t1", "slow")]

    record = service.fail_story("s1", "blocked", reasons, author="bob")

    assert record.outcome == Outcome.FAILED
    assert record.reasons == tuple(reasons)
    story = service.get_story("s1")
    assert story is not None
    assert story.history[-1] == record


@pytest.mark.parametrize(
    "reason",
    [FailureReason("nope", "x"), FailureReason("t1", "x", section_index=9)],
    ids=["test", "section"],
)
def test_fail_story_invalid_reason_saves_nothing(
    service: StoryService, store: FakeTreeStore, reason: FailureReason
) -> None:
    with pytest.raises(NotFoundError):
        service.fail_story("s1", "", [reason], author="bob")
    assert store.saves == []


def test_add_folder_and_story(service: StoryService) -> None:
    folder = service.add_folder("f1", "Wallets")
    story = service.add_story(folder.id, "Apple Pay", "Pay with a phone")

    tree = service.get_tree()
    assert tree.subfolders[0].subfolders[-1].id == folder.id
    assert tree.subfolders[0].subfolders[-1].parent_id == "f1"
    assert service.get_story(story.id) == story


def test_add_story_unknown_folder(service: StoryService, store: FakeTreeStore) -> None:
    with pytest.raises(NotFoundError, match="Folder"):
        service.add_story("nope", "Ghost")
    with pytest.raises(NotFoundError, match="Folder"):
        service.add_folder("nope", "Ghost")
    assert store.saves == []


def test_remove_test_and_story(service: StoryService) -> None:
    story = service.remove_test("s1", "t1")
    assert [t.id for t in story.tests] == ["t2"]

    service.remove_story("s1")
    assert service.get_story("s1") is None
    with pytest.raises(NotFoundError):
        service.remove_story("s1")


def test_read_queries_return_none_for_missing(service: StoryService) -> None:
    assert service.get_story("nope") is None
    assert service.get_test("s1", "nope") is None
    assert service.get_test("nope", "t1") is None
    assert service.story_status("nope") is None


def test_complete_unfinished_story_reads_tree_once(
    service: StoryService, store: FakeTreeStore
) -> None:
    """The not-passed check and the write use the same read of the tree."""
    service.complete_story("s1", author="alice")

    assert store.loads == 1
    assert len(store.saves) == 1


def test_update_story_title_and_description(service: StoryService, store: FakeTreeStore) -> None:
    story = service.update_story("s1", title="Sign in")
    assert story.title == "Sign in"
    assert story.description == "User can log in"

    story = service.update_story("s2", description="Card payments that bounce")
    assert story.title == "Declines"
    assert service.get_story("s2") == story
    assert len(store.saves) == 2


def test_update_story_keeps_tests_and_history(service: StoryService) -> None:
    before = service.get_story("s1")
    service.complete_story("s1", author="alice")

    story = service.update_story("s1", title="Sign in")

    assert before is not None
    assert story.tests == before.tests
    assert len(story.history) == 1


def test_update_story_without_changes_saves_nothing(
    service: StoryService, store: FakeTreeStore
) -> None:
    service.update_story("s1", title="Login")
    service.update_story("s1")
    assert store.saves == []


def test_update_unknown_story_saves_nothing(service: StoryService, store: FakeTreeStore) -> None:
    with pytest.raises(NotFoundError, match="Story"):
        service.update_story("nope", title="Ghost")
    assert store.saves == []
