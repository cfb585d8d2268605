"""Tests for markdown rendering of the story tree and stories."""

import dataclasses

from qa_stories.core.tree.markdown import render_story_as_markdown, render_tree_as_markdown
from qa_stories.models.story import (
    FailureReason,
    Note,
    Outcome,
    StoryFolder,
    StoryOutcome,
)


def test_render_tree(sample_tree: StoryFolder) -> None:
    assert render_tree_as_markdown(sample_tree) == (
        "- Stories/ (1/3 passed)\n"
        "    - [ ] Login (50%, id=s1)\n"
        "    - Payments/ (0/1 passed)\n"
        "        - Cards/ (0/1 passed)\n"
        "            - [ ] Declines (0%, id=s2)\n"
    )


def test_render_tree_max_depth_marks_hidden_subfolders(sample_tree: StoryFolder) -> None:
    result = render_tree_as_markdown(sample_tree, max_depth=0)
    assert result.endswith("    - ... (1 more subfolder, id=root)\n")
    assert "Payments" not in result


def test_render_tree_with_tests(sample_tree: StoryFolder) -> None:
    result = render_tree_as_markdown(sample_tree, include_tests=True)
    assert "        - [x] Happy path\n" in result
    assert "        - [ ] Bad password\n" in result


def test_render_story(sample_tree: StoryFolder) -> None:
    result = render_story_as_markdown(sample_tree.stories[0])
    assert result.startswith("# Login\n\nUser can log in\n\n")
    assert "Status: not_tested - 1/2 passed (50%)\n" in result
    assert "## [x] Happy path\n" in result
    assert "- [x] 0. A\n" in result
    assert "- [ ] 1. B\n" in result


def test_render_story_with_notes_and_history(sample_tree: StoryFolder) -> None:
    story = sample_tree.stories[0]
    test = story.tests[1]
    section = dataclasses.replace(
        test.sections[1], notes=(Note("n1", "locked after 3 tries", "2024-01-03", "bob"),)
    )
    test = dataclasses.replace(test, sections=(test.sections[0], section))
    outcome = StoryOutcome(
        id="o1",
        outcome=Outcome.FAILED,
        notes="blocked",
        created_at="2024-01-04",
        created_by="bob",
        reasons=(FailureReason("t2", "lockout", section_index=1),),
    )
    story = dataclasses.replace(story, tests=(story.tests[0], test), history=(outcome,))

    result = render_story_as_markdown(story)

    assert "  > 2024-01-03 by bob\n  >   locked after 3 tries\n" in result
    assert "## History\n- 2024-01-04 failed by bob\n  blocked\n" in result
    assert "  - t2 section 1: lockout\n" in result
    assert "locked" not in render_story_as_markdown(story, include_notes=False)
