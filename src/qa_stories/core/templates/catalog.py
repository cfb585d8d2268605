"""Template catalog stored as a JSON array, with bulk import/export."""

import json
import uuid
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from loguru import logger

from qa_stories.config import TEMPLATES_FILENAME
from qa_stories.errors import CorruptStateError, NotFoundError
from qa_stories.models.story import Template, TemplateSection
from qa_stories.writer import JsonFileWriter


def parse_template_record(record: Any, *, template_id: str | None = None) -> Template:
    """Build a Template from a `{name, sections: [{name, description}]}` record.

    Args:
        record: The raw record.
        template_id: Id to assign. Defaults to the record's own "id".

    Raises:
        CorruptStateError: If the record is malformed.
    """
    if not isinstance(record, dict) or not isinstance(record.get("name"), str):
        msg = f"Template record must be an object with a string 'name': {record!r}"
        raise CorruptStateError(msg)
    raw_sections = record.get("sections", [])
    if not isinstance(raw_sections, list):
        msg = f"Template {record['name']!r}: 'sections' must be a list"
        raise CorruptStateError(msg)

    sections: list[TemplateSection] = []
    for s in raw_sections:
        if not isinstance(s, dict) or not isinstance(s.get("name"), str):
            msg = f"Template {record['name']!r}: section must have a string 'name': {s!r}"
            raise CorruptStateError(msg)
        sections.append(TemplateSection(name=s["name"], description=s.get("description") or ""))

    tid = template_id if template_id is not None else record.get("id")
    if tid is None:
        msg = f"Template {record['name']!r} has no id"
        raise CorruptStateError(msg)
    return Template(id=str(tid), name=record["name"], sections=tuple(sections))


def template_to_record(template: Template, *, include_id: bool = True) -> dict[str, Any]:
    record: dict[str, Any] = {
        "name": template.name,
        "sections": [{"name": s.name, "description": s.description} for s in template.sections],
    }
    if include_id:
        record["id"] = template.id
    return record


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


class JsonTemplateCatalog:
    """Template catalog persisted in a JSON file in the data directory."""

    def __init__(self, datadir: str | Path, *, filename: str = TEMPLATES_FILENAME) -> None:
        self.path = Path(datadir) / filename
        self.writer = JsonFileWriter()

    def list_templates(self) -> list[Template]:
        try:
            data = self.writer.try_read_json(self.path)
        except (json.JSONDecodeError, UnicodeDecodeError, ValueError, RecursionError) as e:
            msg = f"Cannot read template catalog {str(self.path)!r}: {e}"
            raise CorruptStateError(msg) from e
        if data is None:
            return []
        if not isinstance(data, list):
            msg = f"Template catalog {str(self.path)!r} must be a JSON array"
            raise CorruptStateError(msg)
        return [parse_template_record(r) for r in data]

    def get_by_id(self, template_id: str) -> Template | None:
        for template in self.list_templates():
            if template.id == template_id:
                return template
        return None

    def _save(self, templates: list[Template]) -> None:
        self.writer.write_json(self.path, [template_to_record(t) for t in templates])

    def add_template(self, name: str, sections: Iterable[TemplateSection]) -> Template:
        template = Template(id=_new_id(), name=name, sections=tuple(sections))
        self._save([*self.list_templates(), template])
        logger.info("Added template {!r} ({})", name, template.id)
        return template

    def update_template(
        self,
        template_id: str,
        *,
        name: str | None = None,
        sections: Iterable[TemplateSection] | None = None,
    ) -> Template:
        """Rename a template and/or replace its sections.

        Tests already built from the template keep their sections.

        Raises:
            NotFoundError: If no template has this id.
        """
        templates = self.list_templates()
        for i, template in enumerate(templates):
            if template.id == template_id:
                break
        else:
            msg = f"Template {template_id!r} not found"
            raise NotFoundError(msg)
        updated = Template(
            id=template.id,
            name=template.name if name is None else name,
            sections=template.sections if sections is None else tuple(sections),
        )
        templates[i] = updated
        self._save(templates)
        logger.info("Updated template {!r} ({})", updated.name, template_id)
        return updated

    def delete_template(self, template_id: str) -> None:
        """Remove a template. Tests referring to it keep their sections.

        Raises:
            NotFoundError: If no template has this id.
        """
        templates = self.list_templates()
        kept = [t for t in templates if t.id != template_id]
        if len(kept) == len(templates):
            msg = f"Template {template_id!r} not found"
            raise NotFoundError(msg)
        self._save(kept)
        logger.info("Deleted template {}", template_id)

    def import_templates(self, records: Any) -> list[Template]:
        """Append templates from a JSON array of records.

        Import is additive: every record gets a fresh id, names are not
        de-duplicated. All records are validated before anything is written.

        Raises:
            CorruptStateError: If `records` is not a list of valid records.
        """
        if not isinstance(records, list):
            msg = "Template import must be a JSON array"
            raise CorruptStateError(msg)
        imported = [parse_template_record(r, template_id=_new_id()) for r in records]
        if imported:
            self._save([*self.list_templates(), *imported])
        logger.info("Imported {} templates", len(imported))
        return imported

    def export_templates(self) -> list[dict[str, Any]]:
        """Plain JSON array of `{name, sections}` records, suitable for import."""
        return [template_to_record(t, include_id=False) for t in self.list_templates()]
