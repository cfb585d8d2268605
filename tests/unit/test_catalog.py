"""Tests for the JSON template catalog and its import/export."""

import json
from pathlib import Path

import pytest

from qa_stories.core.templates.catalog import (
    JsonTemplateCatalog,
    parse_template_record,
    template_to_record,
)
from qa_stories.errors import CorruptStateError, MissingTemplateWarning, NotFoundError
from qa_stories.models.story import Template, TemplateSection
from qa_stories.service import StoryService
from tests.unit.fakes import FakeTreeStore

RECORDS = [
    {"name": "Login checklist", "sections": [{"name": "A", "description": "Open"}, {"name": "B"}]},
    {"name": "Checkout", "sections": []},
]


def test_missing_catalog_file_is_empty(tmp_path: Path) -> None:
    catalog = JsonTemplateCatalog(tmp_path)
    assert catalog.list_templates() == []
    assert catalog.get_by_id("T1") is None


def test_add_template_then_get_by_id(tmp_path: Path) -> None:
    catalog = JsonTemplateCatalog(tmp_path)
    added = catalog.add_template("Smoke", [TemplateSection("Start"), TemplateSection("Stop")])

    found = JsonTemplateCatalog(tmp_path).get_by_id(added.id)
    assert found == added


def test_import_is_additive_with_fresh_ids(tmp_path: Path) -> None:
    catalog = JsonTemplateCatalog(tmp_path)
    first = catalog.import_templates(RECORDS)
    second = catalog.import_templates(RECORDS)

    templates = catalog.list_templates()
    assert len(templates) == 4
    assert [t.name for t in templates] == ["Login checklist", "Checkout"] * 2
    ids = {t.id for t in [*first, *second]}
    assert len(ids) == 4


def test_export_matches_imported_records(tmp_path: Path) -> None:
    catalog = JsonTemplateCatalog(tmp_path)
    catalog.import_templates(RECORDS)

    exported = catalog.export_templates()

    assert all("id" not in r for r in exported)
    assert exported[0]["sections"] == [
        {"name": "A", "description": "Open"},
        {"name": "B", "description": ""},
    ]
    # Export output is valid import input.
    assert len(JsonTemplateCatalog(tmp_path / "other").import_templates(exported)) == 2


def test_import_validates_everything_before_writing(tmp_path: Path) -> None:
    catalog = JsonTemplateCatalog(tmp_path)
    with pytest.raises(CorruptStateError):
        catalog.import_templates([RECORDS[0], {"sections": []}])
    assert not catalog.path.exists()


def test_import_requires_a_list(tmp_path: Path) -> None:
    with pytest.raises(CorruptStateError, match="JSON array"):
        JsonTemplateCatalog(tmp_path).import_templates({"name": "x"})


def test_corrupt_catalog_file_raises(tmp_path: Path) -> None:
    (tmp_path / "templates.json").write_text("{not json")
    with pytest.raises(CorruptStateError):
        JsonTemplateCatalog(tmp_path).list_templates()


def test_catalog_file_must_be_array(tmp_path: Path) -> None:
    (tmp_path / "templates.json").write_text(json.dumps({"id": "T1", "name": "x"}))
    with pytest.raises(CorruptStateError, match="JSON array"):
        JsonTemplateCatalog(tmp_path).list_templates()


def test_parse_template_record_rejects_bad_section() -> None:
    with pytest.raises(CorruptStateError, match="section"):
        parse_template_record({"id": "T1", "name": "x", "sections": [{"description": "no name"}]})


def test_template_record_round_trip() -> None:
    template = Template("T1", "Login", (TemplateSection("A", "Open"),))
    assert parse_template_record(template_to_record(template)) == template


def test_update_template_renames_and_replaces_sections(tmp_path: Path) -> None:
    catalog = JsonTemplateCatalog(tmp_path)
    first, second = catalog.import_templates(RECORDS)

    renamed = catalog.update_template(first.id, name="Sign-in checklist")
    assert renamed.sections == first.sections

    updated = catalog.update_template(second.id, sections=[TemplateSection("Pay", "Use a card")])

    assert JsonTemplateCatalog(tmp_path).list_templates() == [renamed, updated]
    assert updated.name == "Checkout"
    assert updated.sections == (TemplateSection("Pay", "Use a card"),)


def test_delete_template(tmp_path: Path) -> None:
    catalog = JsonTemplateCatalog(tmp_path)
    first, second = catalog.import_templates(RECORDS)

    catalog.delete_template(first.id)

    assert catalog.list_templates() == [second]
    assert catalog.get_by_id(first.id) is None


@pytest.mark.parametrize("action", ["update", "delete"])
def test_unknown_template_raises_not_found(tmp_path: Path, action: str) -> None:
    catalog = JsonTemplateCatalog(tmp_path)
    catalog.import_templates(RECORDS)
    before = catalog.path.read_text()

    with pytest.raises(NotFoundError, match="T404"):
        if action == "update":
            catalog.update_template("T404", name="x")
        else:
            catalog.delete_template("T404")
    assert catalog.path.read_text() == before


def test_deleted_template_leaves_empty_tests_empty(tmp_path: Path, store: FakeTreeStore) -> None:
    """A test whose template was deleted stays empty when its story is run."""
    (tmp_path / "templates.json").write_text(
        json.dumps([{"id": "T1", "name": "Login checklist", "sections": [{"name": "A"}]}])
    )
    catalog = JsonTemplateCatalog(tmp_path)
    catalog.delete_template("T1")

    with pytest.warns(MissingTemplateWarning):
        story = StoryService(store, catalog).load_story_for_run("s2")

    assert story.tests[0].sections == ()
    assert store.saves == []
