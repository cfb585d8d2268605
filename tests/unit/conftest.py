"""Shared test fixtures."""

import itertools

import pytest

from qa_stories.models.story import (
    Section,
    Status,
    Story,
    StoryFolder,
    Template,
    TemplateSection,
    Test,
)
from qa_stories.service import StoryService
from tests.unit.fakes import FakeTemplateCatalog, FakeTreeStore

CREATED = "2024-01-01T00:00:00+00:00"
NOW = "2024-02-01T12:00:00+00:00"

TEMPLATE_T1 = Template(
    id="T1",
    name="Login checklist",
    sections=(TemplateSection("A", "Open the login page"), TemplateSection("B")),
)


def make_sample_tree() -> StoryFolder:
    """Root with one story, and a nested folder holding a story with an empty test.

    - Stories/ (root)
        - Login (s1): t1 passed, t2 not_tested
        - Payments/ (f1)
            - Cards/ (f2)
                - Declines (s2): t3 with no sections yet
    """
    t1 = Test(
        id="t1",
        title="Happy path",
        template="Login checklist",
        template_id="T1",
        sections=(Section("A", status=Status.PASSED), Section("B", status=Status.PASSED)),
        status=Status.PASSED,
    )
    t2 = Test(
        id="t2",
        title="Bad password",
        template="Login checklist",
        template_id="T1",
        sections=(Section("A", status=Status.PASSED), Section("B")),
        status=Status.NOT_TESTED,
    )
    t3 = Test(id="t3", title="Card declined", template="Login checklist", template_id="T1")

    login = Story("s1", "Login", "User can log in", CREATED, tests=(t1, t2))
    declines = Story("s2", "Declines", "", CREATED, tests=(t3,))
    cards = StoryFolder("f2", "Cards", CREATED, parent_id="f1", stories=(declines,))
    payments = StoryFolder("f1", "Payments", CREATED, parent_id="root", subfolders=(cards,))
    return StoryFolder(
        "root", "Stories", CREATED, parent_id=None, stories=(login,), subfolders=(payments,)
    )


@pytest.fixture
def sample_tree() -> StoryFolder:
    return make_sample_tree()


@pytest.fixture
def template_t1() -> Template:
    return TEMPLATE_T1


@pytest.fixture
def store(sample_tree: StoryFolder) -> FakeTreeStore:
    return FakeTreeStore(sample_tree)


@pytest.fixture
def catalog() -> FakeTemplateCatalog:
    return FakeTemplateCatalog([TEMPLATE_T1])


@pytest.fixture
def service(store: FakeTreeStore, catalog: FakeTemplateCatalog) -> StoryService:
    """StoryService over the sample tree, with a fixed clock and sequential ids."""
    counter = itertools.count(1)
    return StoryService(
        store,
        catalog,
        clock=lambda: NOW,
        id_factory=lambda: f"new-{next(counter)}",
    )
