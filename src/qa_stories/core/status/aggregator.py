"""Derive test, story and folder status from section results."""

from collections.abc import Iterable

from qa_stories.core.tree.navigation import iter_stories
from qa_stories.models.story import Section, Status, Story, StoryFolder, StorySummary, Test


def derive_test_status(sections: Iterable[Section]) -> Status:
    """Compute a test's status from its sections.

    The all-passed check runs before the any-failed check: [passed, failed] is
    failed, [passed, not_tested] is not_tested, and no sections is not_tested.
    """
    statuses = [s.status for s in sections]
    if not statuses:
        return Status.NOT_TESTED
    if all(s == Status.PASSED for s in statuses):
        return Status.PASSED
    if any(s == Status.FAILED for s in statuses):
        return Status.FAILED
    return Status.NOT_TESTED


def derive_story_status(tests: Iterable[Test]) -> Status:
    """Compute a story's status from its tests' statuses."""
    statuses = [t.status for t in tests]
    if not statuses:
        return Status.NOT_TESTED
    if any(s == Status.FAILED for s in statuses):
        return Status.FAILED
    if all(s == Status.PASSED for s in statuses):
        return Status.PASSED
    return Status.NOT_TESTED


def pass_rate(tests: Iterable[Test]) -> int:
    """Percentage of passed tests, rounded half up. No tests is 0%."""
    statuses = [t.status for t in tests]
    if not statuses:
        return 0
    passed = sum(1 for s in statuses if s == Status.PASSED)
    # Integer arithmetic for round-half-up: floor((200 * p + n) / (2 * n)).
    return (200 * passed + len(statuses)) // (2 * len(statuses))


def _summarize(tests: list[Test]) -> StorySummary:
    passed = sum(1 for t in tests if t.status == Status.PASSED)
    failed = sum(1 for t in tests if t.status == Status.FAILED)
    return StorySummary(
        total=len(tests),
        passed=passed,
        failed=failed,
        not_tested=len(tests) - passed - failed,
        pass_rate=pass_rate(tests),
        status=derive_story_status(tests),
    )


def summarize_story(story: Story) -> StorySummary:
    return _summarize(list(story.tests))


def summarize_folder(folder: StoryFolder) -> StorySummary:
    """Summarize every test of every story below `folder`, as if one story."""
    tests = [t for _, story in iter_stories(folder) for t in story.tests]
    return _summarize(tests)
