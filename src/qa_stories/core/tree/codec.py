"""Convert the persisted story tree document to domain models and back."""

from collections import deque
from dataclasses import replace
from typing import Any

from loguru import logger

from qa_stories.core.notes.history import notes_from_legacy, parse_note
from qa_stories.core.status.aggregator import derive_test_status
from qa_stories.errors import CorruptStateError
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


def _require(data: Any, key: str, kind: type | tuple[type, ...], where: str) -> Any:
    if not isinstance(data, dict):
        msg = f"{where}: expected an object, got {type(data).__name__}"
        raise CorruptStateError(msg)
    if key not in data:
        msg = f"{where}: missing required field {key!r}"
        raise CorruptStateError(msg)
    value = data[key]
    if not isinstance(value, kind):
        msg = f"{where}: field {key!r} has wrong type {type(value).__name__}"
        raise CorruptStateError(msg)
    return value


def _optional(
    data: dict[str, Any],
    key: str,
    kind: type | tuple[type, ...],
    where: str,
    default: Any,
    *,
    nullable: bool = True,
) -> Any:
    """Like `_require`, but a missing field (or null, if nullable) gives `default`."""
    if key not in data or (nullable and data[key] is None):
        return default
    value = data[key]
    # bool is an int subclass, and never a valid index or id.
    if not isinstance(value, kind) or isinstance(value, bool):
        msg = f"{where}: field {key!r} has wrong type {type(value).__name__}"
        raise CorruptStateError(msg)
    return value


def _status(value: Any, where: str) -> Status:
    try:
        return Status(value)
    except ValueError:
        msg = f"{where}: unknown status {value!r}"
        raise CorruptStateError(msg) from None


def _encoded_note(raw: str, note_id: str) -> Note:
    entry = parse_note(raw)
    if entry is None:
        return Note(id=note_id, note=raw, created_at="", created_by="")
    return Note(id=note_id, note=entry.content, created_at=entry.timestamp, created_by=entry.author)


def _parse_notes(raw: Any, where: str) -> tuple[Note, ...]:
    """Notes as records, as a list of encoded strings, or as one legacy string."""
    if raw is None:
        return ()
    if isinstance(raw, str):
        return notes_from_legacy(raw)
    if not isinstance(raw, list):
        msg = f"{where}: notes must be a list or a string"
        raise CorruptStateError(msg)
    notes: list[Note] = []
    for i, n in enumerate(raw):
        if isinstance(n, str):
            notes.append(_encoded_note(n, f"legacy-{i}"))
            continue
        notes.append(
            Note(
                id=str(_require(n, "id", (str, int), where)),
                note=_require(n, "note", str, where),
                created_at=_require(n, "createdAt", str, where),
                created_by=_require(n, "createdBy", str, where),
            )
        )
    return tuple(notes)


def _parse_section(raw: Any, where: str) -> Section:
    return Section(
        name=_require(raw, "name", str, where),
        description=_optional(raw, "description", str, where, ""),
        status=_status(raw.get("status", Status.NOT_TESTED), where),
        notes=_parse_notes(raw.get("notes"), where),
    )


def _merge_section_notes(
    sections: tuple[Section, ...], raw: Any, where: str
) -> tuple[Section, ...]:
    """Move `[Section: name]`-tagged note strings into the notes of the named section."""
    if not isinstance(raw, list) or not all(isinstance(r, str) for r in raw):
        msg = f"{where}: sectionNotes must be a list of strings"
        raise CorruptStateError(msg)
    names = {s.name for s in sections}
    for r in raw:
        entry = parse_note(r)
        if entry is None or entry.section not in names:
            logger.warning("{}: dropping section note {!r}, no matching section", where, r[:40])

    merged: list[Section] = []
    for section in sections:
        extra: list[Note] = []
        for i, r in enumerate(raw):
            entry = parse_note(r, section=section.name)
            if entry is not None:
                extra.append(
                    Note(
                        id=f"section-legacy-{i}",
                        note=entry.content,
                        created_at=entry.timestamp,
                        created_by=entry.author,
                    )
                )
        merged.append(replace(section, notes=(*section.notes, *extra)))
    return tuple(merged)


def _parse_test(raw: Any, where: str) -> Test:
    test_id = str(_require(raw, "id", (str, int), where))
    where = f"{where} test {test_id!r}"
    sections = tuple(
        _parse_section(s, f"{where} section {i}")
        for i, s in enumerate(_require(raw, "sections", list, where))
    )
    if raw.get("sectionNotes") is not None:
        sections = _merge_section_notes(sections, raw["sectionNotes"], where)
    status = derive_test_status(sections)
    stored = raw.get("status")
    if stored is not None and stored != status:
        logger.warning("{}: stored status {!r} recomputed as {!r}", where, stored, str(status))
    return Test(
        id=test_id,
        title=_require(raw, "title", str, where),
        template=_optional(raw, "template", str, where, ""),
        template_id=str(_optional(raw, "templateId", (str, int), where, "")),
        sections=sections,
        status=status,
        notes=_parse_notes(raw.get("notes"), where),
    )


def _parse_reason(raw: Any, where: str) -> FailureReason:
    return FailureReason(
        test_id=str(_require(raw, "testId", (str, int), where)),
        reason=_require(raw, "reason", str, where),
        section_index=_optional(raw, "sectionIndex", int, where, None),
    )


def _parse_outcome(raw: Any, where: str) -> StoryOutcome:
    try:
        outcome = Outcome(_require(raw, "outcome", str, where))
    except ValueError:
        msg = f"{where}: unknown outcome {raw['outcome']!r}"
        raise CorruptStateError(msg) from None
    reasons = tuple(
        _parse_reason(r, where)
        for r in _optional(raw, "reasons", list, where, [], nullable=False)
    )
    statuses = _optional(raw, "testStatuses", dict, where, {}, nullable=False)
    snapshot = tuple((str(test_id), _status(status, where)) for test_id, status in statuses.items())
    return StoryOutcome(
        id=str(_require(raw, "id", (str, int), where)),
        outcome=outcome,
        notes=_optional(raw, "notes", str, where, ""),
        created_at=_require(raw, "createdAt", str, where),
        created_by=_optional(raw, "createdBy", str, where, ""),
        reasons=reasons,
        test_statuses=snapshot,
    )


def _parse_story(raw: Any, where: str) -> Story:
    story_id = str(_require(raw, "id", (str, int), where))
    where = f"story {story_id!r}"
    tests = tuple(_parse_test(t, where) for t in _require(raw, "tests", list, where))
    test_ids = [t.id for t in tests]
    if len(set(test_ids)) != len(test_ids):
        msg = f"{where}: duplicate test ids"
        raise CorruptStateError(msg)
    history = _optional(raw, "history", list, where, [], nullable=False)
    return Story(
        id=story_id,
        title=_require(raw, "title", str, where),
        description=_optional(raw, "description", str, where, ""),
        created_at=_require(raw, "createdAt", str, where),
        tests=tests,
        history=tuple(_parse_outcome(o, where) for o in history),
    )


def parse_tree_data(data: Any) -> StoryFolder:
    """Parse a story tree document into the root StoryFolder.

    Validates the tree shape: required fields and types, folder ids and story
    ids unique across the tree, and every subfolder's parentId pointing at its
    owning folder.

    Raises:
        CorruptStateError: If the document is not a valid tree.
    """
    if not isinstance(data, dict):
        msg = "Tree document must be a JSON object"
        raise CorruptStateError(msg)
    if data.get("parentId") is not None:
        msg = f"Root folder must have parentId null, got {data.get('parentId')!r}"
        raise CorruptStateError(msg)

    seen_folders: set[str] = set()
    seen_stories: set[str] = set()

    def build(raw: Any, parent_id: str | None) -> StoryFolder:
        folder_id = str(_require(raw, "id", (str, int), "folder"))
        where = f"folder {folder_id!r}"
        if folder_id in seen_folders:
            msg = f"{where}: folder appears more than once (cycle or duplicate id)"
            raise CorruptStateError(msg)
        seen_folders.add(folder_id)
        if raw.get("parentId") != parent_id:
            msg = f"{where}: parentId {raw.get('parentId')!r} does not match owner {parent_id!r}"
            raise CorruptStateError(msg)

        stories: list[Story] = []
        for story_raw in _require(raw, "stories", list, where):
            story = _parse_story(story_raw, where)
            if story.id in seen_stories:
                msg = f"story {story.id!r} appears more than once in the tree"
                raise CorruptStateError(msg)
            seen_stories.add(story.id)
            stories.append(story)

        raw_subfolders = _require(raw, "subfolders", list, where)
        subfolders = tuple(build(sub, folder_id) for sub in raw_subfolders)
        return StoryFolder(
            id=folder_id,
            name=_require(raw, "name", str, where),
            created_at=_require(raw, "createdAt", str, where),
            parent_id=parent_id,
            stories=tuple(stories),
            subfolders=subfolders,
        )

    try:
        root = build(data, None)
    except RecursionError:
        msg = "Tree document is nested too deeply"
        raise CorruptStateError(msg) from None

    logger.debug("Parsed tree: {} folders, {} stories", len(seen_folders), len(seen_stories))
    return root


def _dump_notes(notes: tuple[Note, ...]) -> list[dict[str, Any]]:
    return [
        {"id": n.id, "note": n.note, "createdAt": n.created_at, "createdBy": n.created_by}
        for n in notes
    ]


def _dump_test(test: Test) -> dict[str, Any]:
    return {
        "id": test.id,
        "title": test.title,
        "template": test.template,
        "templateId": test.template_id,
        "status": str(test.status),
        "sections": [
            {
                "name": s.name,
                "description": s.description,
                "status": str(s.status),
                "notes": _dump_notes(s.notes),
            }
            for s in test.sections
        ],
        "notes": _dump_notes(test.notes),
    }


def _dump_outcome(outcome: StoryOutcome) -> dict[str, Any]:
    reasons: list[dict[str, Any]] = []
    for r in outcome.reasons:
        entry: dict[str, Any] = {"testId": r.test_id, "reason": r.reason}
        if r.section_index is not None:
            entry["sectionIndex"] = r.section_index
        reasons.append(entry)
    return {
        "id": outcome.id,
        "outcome": str(outcome.outcome),
        "notes": outcome.notes,
        "createdAt": outcome.created_at,
        "createdBy": outcome.created_by,
        "reasons": reasons,
        "testStatuses": {test_id: str(status) for test_id, status in outcome.test_statuses},
    }


def dump_story(story: Story) -> dict[str, Any]:
    return {
        "id": story.id,
        "title": story.title,
        "description": story.description,
        "createdAt": story.created_at,
        "tests": [_dump_test(t) for t in story.tests],
        "history": [_dump_outcome(o) for o in story.history],
    }


def dump_tree(root: StoryFolder) -> dict[str, Any]:
    """Serialize a folder tree into a JSON-compatible dict."""
    # Iterative so that deep trees serialize without hitting the recursion limit.
    out: dict[str, Any] = {}
    todo: deque[tuple[StoryFolder, dict[str, Any]]] = deque([(root, out)])
    while todo:
        folder, target = todo.popleft()
        target.update(
            {
                "id": folder.id,
                "name": folder.name,
                "createdAt": folder.created_at,
                "parentId": folder.parent_id,
                "stories": [dump_story(s) for s in folder.stories],
                "subfolders": [],
            }
        )
        for sub in folder.subfolders:
            child: dict[str, Any] = {}
            target["subfolders"].append(child)
            todo.append((sub, child))
    return out
