"""Domain models for the story tree."""

from dataclasses import dataclass
from enum import StrEnum


class Status(StrEnum):
    """Execution state of a section, a test or a story."""

    NOT_TESTED = "not_tested"
    PASSED = "passed"
    FAILED = "failed"


class Outcome(StrEnum):
    """How a story run was closed."""

    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class Note:
    """A single entry in a note history."""

    id: str
    note: str
    created_at: str
    created_by: str


@dataclass(frozen=True)
class TemplateSection:
    """Schema of one section in a template."""

    name: str
    description: str = ""


@dataclass(frozen=True)
class Template:
    """A reusable checklist of sections."""

    id: str
    name: str
    sections: tuple[TemplateSection, ...] = ()


@dataclass(frozen=True)
class Section:
    """One checklist item within a test instance."""

    name: str
    description: str = ""
    status: Status = Status.NOT_TESTED
    notes: tuple[Note, ...] = ()


@dataclass(frozen=True)
class Test:
    """A test instance owned by a story.

    `status` is derived from `sections`; it is only ever written together with them.
    """

    __test__ = False  # not a pytest class

    id: str
    title: str
    template: str
    template_id: str
    sections: tuple[Section, ...] = ()
    status: Status = Status.NOT_TESTED
    notes: tuple[Note, ...] = ()


@dataclass(frozen=True)
class FailureReason:
    """Why a story run failed, pointing at a test and optionally a section."""

    test_id: str
    reason: str
    section_index: int | None = None


@dataclass(frozen=True)
class StoryOutcome:
    """A completion or failure record in a story's history."""

    id: str
    outcome: Outcome
    notes: str
    created_at: str
    created_by: str
    reasons: tuple[FailureReason, ...] = ()
    # (test_id, status) at the time the outcome was recorded
    test_statuses: tuple[tuple[str, Status], ...] = ()


@dataclass(frozen=True)
class Story:
    """A named collection of test instances executed together."""

    id: str
    title: str
    description: str
    created_at: str
    tests: tuple[Test, ...] = ()
    history: tuple[StoryOutcome, ...] = ()


@dataclass(frozen=True)
class StoryFolder:
    """A grouping node that owns stories and further folders."""

    id: str
    name: str
    created_at: str
    parent_id: str | None = None
    stories: tuple[Story, ...] = ()
    subfolders: tuple["StoryFolder", ...] = ()


@dataclass(frozen=True)
class StorySummary:
    """Aggregated test counts for a story or a folder subtree."""

    total: int
    passed: int
    failed: int
    not_tested: int
    pass_rate: int
    status: Status
