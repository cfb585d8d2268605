"""Story/test mutation API over a tree store and a template catalog.

Every write is one read-modify-write cycle against the store: load the tree,
locate the target, change a copy, recompute derived status, replace the story
in the tree and save. If the target cannot be located, NotFoundError is raised
and nothing is saved.
"""

import uuid
from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import UTC, datetime

from loguru import logger

from qa_stories.core.status.aggregator import derive_story_status, derive_test_status
from qa_stories.core.templates.merge import attach_template, build_sections
from qa_stories.core.tree.navigation import (
    add_story_to_folder,
    add_subfolder,
    find_folder,
    find_story,
    remove_story,
    replace_story,
)
from qa_stories.errors import NotFoundError
from qa_stories.models.story import (
    FailureReason,
    Note,
    Outcome,
    Section,
    Status,
    Story,
    StoryFolder,
    StoryOutcome,
    Test,
)
from qa_stories.protocols import TemplateCatalogProtocol, TreeStoreProtocol


def _utc_now() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="seconds")


def _uuid_id() -> str:
    return uuid.uuid4().hex[:12]


def _find_test(story: Story, test_id: str) -> tuple[int, Test]:
    for i, test in enumerate(story.tests):
        if test.id == test_id:
            return i, test
    msg = f"Test {test_id!r} not found in story {story.id!r}"
    raise NotFoundError(msg)


def _check_section_index(test: Test, section_index: int) -> None:
    if not 0 <= section_index < len(test.sections):
        msg = (
            f"Section {section_index} not found in test {test.id!r} "
            f"({len(test.sections)} sections)"
        )
        raise NotFoundError(msg)


def _with_test(story: Story, index: int, test: Test) -> Story:
    return replace(story, tests=(*story.tests[:index], test, *story.tests[index + 1 :]))


def _with_section(test: Test, index: int, section: Section) -> Test:
    sections = (*test.sections[:index], section, *test.sections[index + 1 :])
    # Status is stored together with the sections it derives from.
    return replace(test, sections=sections, status=derive_test_status(sections))


class StoryService:
    """Mutation API and read-only queries for the story tree.

    Args:
        store: Persists the tree as one document.
        catalog: Template lookup.
        clock: Returns the current timestamp string (ISO 8601 UTC by default).
        id_factory: Returns fresh ids for folders, stories, tests, notes and outcomes.
    """

    def __init__(
        self,
        store: TreeStoreProtocol,
        catalog: TemplateCatalogProtocol,
        *,
        clock: Callable[[], str] = _utc_now,
        id_factory: Callable[[], str] = _uuid_id,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.clock = clock
        self.id_factory = id_factory

    # --- Read-only queries ---

    def get_tree(self) -> StoryFolder:
        return self.store.load()

    def get_story(self, story_id: str) -> Story | None:
        return find_story(self.store.load(), story_id)

    def get_test(self, story_id: str, test_id: str) -> Test | None:
        story = self.get_story(story_id)
        if story is None:
            return None
        return next((t for t in story.tests if t.id == test_id), None)

    def story_status(self, story_id: str) -> Status | None:
        story = self.get_story(story_id)
        return derive_story_status(story.tests) if story is not None else None

    # --- Internals ---

    def _load_story(self, story_id: str) -> tuple[StoryFolder, Story]:
        root = self.store.load()
        story = find_story(root, story_id)
        if story is None:
            msg = f"Story {story_id!r} not found"
            raise NotFoundError(msg)
        return root, story

    def _commit(self, root: StoryFolder, story: Story) -> None:
        self.store.save(replace_story(root, story))

    def _update_test(self, story_id: str, test_id: str, change: Callable[[Test], Test]) -> Test:
        root, story = self._load_story(story_id)
        index, test = _find_test(story, test_id)
        updated = change(test)
        self._commit(root, _with_test(story, index, updated))
        return updated

    def _new_note(self, text: str, author: str) -> Note:
        return Note(id=self.id_factory(), note=text, created_at=self.clock(), created_by=author)

    # --- Folders and stories ---

    def add_folder(self, parent_id: str, name: str) -> StoryFolder:
        root = self.store.load()
        if find_folder(root, parent_id) is None:
            msg = f"Folder {parent_id!r} not found"
            raise NotFoundError(msg)
        folder = StoryFolder(
            id=self.id_factory(), name=name, created_at=self.clock(), parent_id=parent_id
        )
        self.store.save(add_subfolder(root, parent_id, folder))
        logger.info("Added folder {!r} ({}) under {}", name, folder.id, parent_id)
        return folder

    def add_story(self, folder_id: str, title: str, description: str = "") -> Story:
        root = self.store.load()
        if find_folder(root, folder_id) is None:
            msg = f"Folder {folder_id!r} not found"
            raise NotFoundError(msg)
        story = Story(
            id=self.id_factory(), title=title, description=description, created_at=self.clock()
        )
        self.store.save(add_story_to_folder(root, folder_id, story))
        logger.info("Added story {!r} ({}) to folder {}", title, story.id, folder_id)
        return story

    def update_story(
        self, story_id: str, *, title: str | None = None, description: str | None = None
    ) -> Story:
        """Change a story's title and/or description. Tests and history are kept."""
        root, story = self._load_story(story_id)
        updated = replace(
            story,
            title=story.title if title is None else title,
            description=story.description if description is None else description,
        )
        if updated == story:
            return story
        self._commit(root, updated)
        logger.info("Updated story {} ({!r})", story_id, updated.title)
        return updated

    def remove_story(self, story_id: str) -> None:
        root, _ = self._load_story(story_id)
        self.store.save(remove_story(root, story_id))
        logger.info("Removed story {}", story_id)

    # --- Tests ---

    def add_test(self, story_id: str, template_id: str, title: str) -> Test:
        """Append a new test built from a template, with every section not_tested."""
        template = self.catalog.get_by_id(template_id)
        if template is None:
            msg = f"Template {template_id!r} not found"
            raise NotFoundError(msg)
        root, story = self._load_story(story_id)
        sections = build_sections(template)
        test = Test(
            id=self.id_factory(),
            title=title,
            template=template.name,
            template_id=template.id,
            sections=sections,
            status=derive_test_status(sections),
        )
        self._commit(root, replace(story, tests=(*story.tests, test)))
        logger.info("Added test {!r} ({}) to story {}", title, test.id, story_id)
        return test

    def remove_test(self, story_id: str, test_id: str) -> Story:
        root, story = self._load_story(story_id)
        index, _ = _find_test(story, test_id)
        updated = replace(story, tests=(*story.tests[:index], *story.tests[index + 1 :]))
        self._commit(root, updated)
        logger.info("Removed test {} from story {}", test_id, story_id)
        return updated

    def load_story_for_run(self, story_id: str) -> Story:
        """Return the story with every empty test filled from its template.

        Tests whose template is missing stay empty (MissingTemplateWarning is
        issued). The tree is saved only if some test changed.
        """
        root, story = self._load_story(story_id)
        tests = tuple(
            attach_template(t, self.catalog.get_by_id(t.template_id)) if not t.sections else t
            for t in story.tests
        )
        if tests == story.tests:
            return story
        updated = replace(story, tests=tests)
        self._commit(root, updated)
        logger.info("Filled sections from templates for story {}", story_id)
        return updated

    # --- Sections ---

    def set_section_status(
        self, story_id: str, test_id: str, section_index: int, status: Status | str
    ) -> Test:
        """Set one section's status and recompute the test status."""
        new_status = Status(status)

        def change(test: Test) -> Test:
            _check_section_index(test, section_index)
            section = replace(test.sections[section_index], status=new_status)
            return _with_section(test, section_index, section)

        updated = self._update_test(story_id, test_id, change)
        logger.info(
            "Story {} test {} section {} -> {} (test {})",
            story_id, test_id, section_index, str(new_status), str(updated.status),
        )
        return updated

    def set_section_notes(
        self, story_id: str, test_id: str, section_index: int, notes: str, *, author: str
    ) -> Test:
        """Append a note to a section's history. Blank notes are ignored."""
        if not notes.strip():
            _, story = self._load_story(story_id)
            _, test = _find_test(story, test_id)
            _check_section_index(test, section_index)
            return test

        def change(test: Test) -> Test:
            _check_section_index(test, section_index)
            section = test.sections[section_index]
            section = replace(section, notes=(*section.notes, self._new_note(notes, author)))
            return _with_section(test, section_index, section)

        updated = self._update_test(story_id, test_id, change)
        logger.info("Story {} test {} section {}: note added", story_id, test_id, section_index)
        return updated

    def add_test_note(self, story_id: str, test_id: str, note: str, *, author: str) -> Test:
        """Append a note to a test's own history. Blank notes are ignored."""
        if not note.strip():
            _, story = self._load_story(story_id)
            return _find_test(story, test_id)[1]
        updated = self._update_test(
            story_id,
            test_id,
            lambda t: replace(t, notes=(*t.notes, self._new_note(note, author))),
        )
        logger.info("Story {} test {}: note added", story_id, test_id)
        return updated

    # --- Story outcomes ---

    def _record_outcome(
        self,
        story_id: str,
        outcome: Outcome,
        notes: str,
        reasons: tuple[FailureReason, ...],
        author: str,
    ) -> StoryOutcome:
        root, story = self._load_story(story_id)
        for reason in reasons:
            _, test = _find_test(story, reason.test_id)
            if reason.section_index is not None:
                _check_section_index(test, reason.section_index)
        if outcome == Outcome.COMPLETED and derive_story_status(story.tests) != Status.PASSED:
            logger.warning("Completing story {} although not all tests passed", story_id)

        record = StoryOutcome(
            id=self.id_factory(),
            outcome=outcome,
            notes=notes,
            created_at=self.clock(),
            created_by=author,
            reasons=reasons,
            test_statuses=tuple((t.id, t.status) for t in story.tests),
        )
        self._commit(root, replace(story, history=(*story.history, record)))
        return record

    def complete_story(self, story_id: str, notes: str = "", *, author: str) -> StoryOutcome:
        """Record that a story run completed."""
        record = self._record_outcome(story_id, Outcome.COMPLETED, notes, (), author)
        logger.info("Story {} completed by {}", story_id, author)
        return record

    def fail_story(
        self,
        story_id: str,
        notes: str = "",
        reasons: Iterable[FailureReason] = (),
        *,
        author: str,
    ) -> StoryOutcome:
        """Record that a story run failed, with informational per-test reasons."""
        record = self._record_outcome(story_id, Outcome.FAILED, notes, tuple(reasons), author)
        logger.info("Story {} failed by {} ({} reasons)", story_id, author, len(record.reasons))
        return record
