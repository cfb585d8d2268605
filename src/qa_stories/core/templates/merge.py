"""Reconcile a template's section schema into a test instance."""

import warnings
from dataclasses import replace

from loguru import logger

from qa_stories.core.status.aggregator import derive_test_status
from qa_stories.errors import MissingTemplateWarning
from qa_stories.models.story import Section, Status, Template, Test


def build_sections(template: Template) -> tuple[Section, ...]:
    """Fresh, untested sections in the template's order."""
    return tuple(
        Section(name=s.name, description=s.description, status=Status.NOT_TESTED)
        for s in template.sections
    )


def attach_template(test: Test, template: Template | None) -> Test:
    """Fill an empty test from its template.

    Tests that already have sections are returned unchanged, so recorded
    results survive later template edits and repeated calls are no-ops.

    If `template` is None (the test's template no longer exists), the test is
    left with no sections and status not_tested, and a MissingTemplateWarning
    is issued.
    """
    if test.sections:
        return test

    if template is None:
        message = f"Template {test.template_id!r} for test {test.id!r} not found"
        logger.warning(message)
        warnings.warn(message, MissingTemplateWarning, stacklevel=2)
        return replace(test, sections=(), status=Status.NOT_TESTED)

    sections = build_sections(template)
    return replace(test, sections=sections, status=derive_test_status(sections))
