"""Render story trees and stories as markdown."""

import io

from qa_stories.config import INITIAL_NOTES_SHOWN, NOTE_COLLAPSE_LINES
from qa_stories.core.notes.history import render_note_history
from qa_stories.core.status.aggregator import summarize_folder, summarize_story
from qa_stories.models.story import Note, Status, Story, StoryFolder

_STATUS_MARK = {
    Status.PASSED: "[x]",
    Status.FAILED: "[!]",
    Status.NOT_TESTED: "[ ]",
}


def render_tree_as_markdown(
    root: StoryFolder,
    *,
    max_depth: int | None = None,
    include_tests: bool = False,
) -> str:
    """Render folders and stories as an indented markdown list.

    Args:
        root: The folder to start rendering from.
        max_depth: Max folder levels below `root` to include (None = unlimited).
        include_tests: Also list each story's tests with their status.

    Returns:
        Markdown string with bullet-list hierarchy.
    """
    out = io.StringIO()

    def walk(folder: StoryFolder, depth: int) -> None:
        indent = "    " * depth
        summary = summarize_folder(folder)
        out.write(f"{indent}- {folder.name}/ ({summary.passed}/{summary.total} passed)\n")

        for story in folder.stories:
            s = summarize_story(story)
            out.write(
                f"{indent}    - {_STATUS_MARK[s.status]} {story.title} "
                f"({s.pass_rate}%, id={story.id})\n"
            )
            if include_tests:
                for test in story.tests:
                    out.write(f"{indent}        - {_STATUS_MARK[test.status]} {test.title}\n")

        if max_depth is not None and depth >= max_depth:
            if folder.subfolders:
                n = len(folder.subfolders)
                noun = "subfolder" if n == 1 else "subfolders"
                out.write(f"{indent}    - ... ({n} more {noun}, id={folder.id})\n")
            return
        for sub in folder.subfolders:
            walk(sub, depth + 1)

    walk(root, 0)
    return out.getvalue()


def render_story_as_markdown(
    story: Story,
    *,
    include_notes: bool = True,
    initial_notes_shown: int = INITIAL_NOTES_SHOWN,
    max_note_lines: int = NOTE_COLLAPSE_LINES,
) -> str:
    """Render a story with its tests, sections, notes and run history."""
    summary = summarize_story(story)
    out = io.StringIO()
    out.write(f"# {story.title}\n\n")
    if story.description:
        out.write(f"{story.description}\n\n")
    out.write(
        f"Status: {summary.status} - {summary.passed}/{summary.total} passed "
        f"({summary.pass_rate}%)\n"
    )

    def notes_block(notes: tuple[Note, ...], indent: str) -> None:
        if not include_notes or not notes:
            return
        text = render_note_history(
            notes, initial_shown=initial_notes_shown, max_lines=max_note_lines
        )
        for line in text.rstrip("\n").split("\n"):
            out.write(f"{indent}> {line}\n")

    for test in story.tests:
        out.write(f"\n## {_STATUS_MARK[test.status]} {test.title}\n")
        out.write(f"Template: {test.template or '-'}  id={test.id}\n")
        notes_block(test.notes, "")
        for i, section in enumerate(test.sections):
            out.write(f"- {_STATUS_MARK[section.status]} {i}. {section.name}\n")
            if section.description:
                out.write(f"  {section.description}\n")
            notes_block(section.notes, "  ")

    if story.history:
        out.write("\n## History\n")
        for record in story.history:
            out.write(f"- {record.created_at} {record.outcome} by {record.created_by or '-'}\n")
            if record.notes:
                out.write(f"  {record.notes}\n")
            for reason in record.reasons:
                where = reason.test_id
                if reason.section_index is not None:
                    where += f" section {reason.section_index}"
                out.write(f"  - {where}: {reason.reason}\n")

    return out.getvalue()
