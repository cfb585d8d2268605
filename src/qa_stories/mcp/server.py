"""MCP server exposing story tree browsing and test-run recording tools."""

import os
import warnings
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from typing import Any

from loguru import logger
from mcp.server.fastmcp import Context, FastMCP

from qa_stories.api import CatalogApi, RestTemplateCatalog
from qa_stories.config import CATALOG_URL_ENV, resolve_data_directory
from qa_stories.core.status.aggregator import summarize_folder, summarize_story
from qa_stories.core.templates.catalog import JsonTemplateCatalog
from qa_stories.core.tree.codec import dump_story
from qa_stories.core.tree.markdown import render_story_as_markdown, render_tree_as_markdown
from qa_stories.errors import MissingTemplateWarning, StoryTreeError
from qa_stories.models.story import FailureReason, Status, TemplateSection
from qa_stories.protocols import TemplateCatalogProtocol
from qa_stories.service import StoryService
from qa_stories.store import JsonTreeStore

# --- Core functions (testable without MCP context) ---


def stories_get_tree(
    service: StoryService, *, max_depth: int | None = None, include_tests: bool = False
) -> dict[str, Any]:
    """Render the folder/story tree as markdown with an overall summary."""
    try:
        root = service.get_tree()
    except StoryTreeError as e:
        return {"error": str(e)}
    return {
        "tree": render_tree_as_markdown(root, max_depth=max_depth, include_tests=include_tests),
        "summary": asdict(summarize_folder(root)),
    }


def stories_read_story(
    service: StoryService, *, story_id: str, output_format: str = "markdown"
) -> dict[str, Any]:
    """Read a story as markdown or structured JSON.

    Args:
        story_id: Story ID to read.
        output_format: "markdown" or "json".
    """
    try:
        story = service.get_story(story_id)
    except StoryTreeError as e:
        return {"error": str(e)}
    if story is None:
        return {"error": f"Story '{story_id}' not found."}

    output: dict[str, Any] = {"story_id": story.id, "summary": asdict(summarize_story(story))}
    if output_format == "json":
        output["story"] = dump_story(story)
    else:
        output["content"] = render_story_as_markdown(story)
    return output


def stories_prepare_run(service: StoryService, *, story_id: str) -> dict[str, Any]:
    """Fill empty tests from their templates and return the story for execution."""
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", MissingTemplateWarning)
        try:
            story = service.load_story_for_run(story_id)
        except StoryTreeError as e:
            return {"success": False, "error": str(e)}
    return {
        "success": True,
        "content": render_story_as_markdown(story),
        "warnings": [
            str(w.message) for w in caught if issubclass(w.category, MissingTemplateWarning)
        ],
    }


def stories_add_test(
    service: StoryService, *, story_id: str, template_id: str, title: str
) -> dict[str, Any]:
    try:
        test = service.add_test(story_id, template_id, title)
    except StoryTreeError as e:
        return {"success": False, "error": str(e)}
    return {
        "success": True,
        "test_id": test.id,
        "sections": [s.name for s in test.sections],
        "status": str(test.status),
    }


def stories_update_story(
    service: StoryService,
    *,
    story_id: str,
    title: str | None = None,
    description: str | None = None,
) -> dict[str, Any]:
    """Change a story's title and/or description."""
    if title is None and description is None:
        return {"success": False, "error": "Pass a title and/or a description."}
    try:
        story = service.update_story(story_id, title=title, description=description)
    except StoryTreeError as e:
        return {"success": False, "error": str(e)}
    return {"success": True, "story_id": story.id, "title": story.title}


def stories_set_section_status(
    service: StoryService,
    *,
    story_id: str,
    test_id: str,
    section_index: int,
    status: str,
) -> dict[str, Any]:
    """Set a section's status; returns the recomputed test status."""
    try:
        new_status = Status(status)
    except ValueError:
        allowed = ", ".join(s.value for s in Status)
        return {"success": False, "error": f"Unknown status {status!r}, expected one of: {allowed}"}
    try:
        test = service.set_section_status(story_id, test_id, section_index, new_status)
    except StoryTreeError as e:
        return {"success": False, "error": str(e)}
    return {"success": True, "test_id": test.id, "test_status": str(test.status)}


def stories_add_note(
    service: StoryService,
    *,
    story_id: str,
    test_id: str,
    note: str,
    author: str,
    section_index: int | None = None,
) -> dict[str, Any]:
    """Add a note to a test, or to one of its sections if section_index is given."""
    if not note.strip():
        return {"success": False, "error": "Note is empty."}
    try:
        if section_index is None:
            service.add_test_note(story_id, test_id, note, author=author)
        else:
            service.set_section_notes(story_id, test_id, section_index, note, author=author)
    except StoryTreeError as e:
        return {"success": False, "error": str(e)}
    return {"success": True}


def stories_close_story(
    service: StoryService,
    *,
    story_id: str,
    outcome: str,
    notes: str,
    author: str,
    reasons: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Record a story run outcome ("completed" or "failed")."""
    for r in reasons or []:
        index = r.get("section_index") if isinstance(r, dict) else None
        if index is not None and (not isinstance(index, int) or isinstance(index, bool)):
            return {"success": False, "error": f"section_index must be an integer, got {index!r}."}
    try:
        if outcome == "completed":
            record = service.complete_story(story_id, notes, author=author)
        elif outcome == "failed":
            parsed = [
                FailureReason(
                    test_id=str(r["test_id"]),
                    reason=str(r.get("reason", "")),
                    section_index=r.get("section_index"),
                )
                for r in reasons or []
            ]
            record = service.fail_story(story_id, notes, parsed, author=author)
        else:
            return {"success": False, "error": f"Unknown outcome {outcome!r}."}
    except (KeyError, TypeError):
        return {"success": False, "error": "Each reason needs a test_id."}
    except StoryTreeError as e:
        return {"success": False, "error": str(e)}
    return {"success": True, "outcome_id": record.id}


def stories_list_templates(catalog: JsonTemplateCatalog) -> dict[str, Any]:
    try:
        templates = catalog.list_templates()
    except StoryTreeError as e:
        return {"error": str(e)}
    return {
        "templates": [
            {"id": t.id, "name": t.name, "sections": [s.name for s in t.sections]}
            for t in templates
        ],
        "count": len(templates),
    }


def stories_update_template(
    catalog: JsonTemplateCatalog,
    *,
    template_id: str,
    name: str | None = None,
    sections: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Rename a template and/or replace its sections ([{"name", "description"?}, ...])."""
    parsed: list[TemplateSection] | None = None
    if sections is not None:
        if not all(isinstance(s, dict) and isinstance(s.get("name"), str) for s in sections):
            return {"success": False, "error": "Each section needs a string name."}
        parsed = [TemplateSection(s["name"], str(s.get("description") or "")) for s in sections]
    try:
        template = catalog.update_template(template_id, name=name, sections=parsed)
    except StoryTreeError as e:
        return {"success": False, "error": str(e)}
    return {
        "success": True,
        "template_id": template.id,
        "name": template.name,
        "sections": [s.name for s in template.sections],
    }


def stories_delete_template(catalog: JsonTemplateCatalog, *, template_id: str) -> dict[str, Any]:
    try:
        catalog.delete_template(template_id)
    except StoryTreeError as e:
        return {"success": False, "error": str(e)}
    return {"success": True}


# --- MCP Server Setup ---


@dataclass
class ServerContext:
    """Shared resources for the MCP server lifetime."""

    service: StoryService
    catalog: JsonTemplateCatalog


@asynccontextmanager
async def server_lifespan(_server: FastMCP) -> AsyncIterator[ServerContext]:
    """Open the data directory on startup."""
    data_dir = resolve_data_directory()
    data_dir.mkdir(parents=True, exist_ok=True)
    catalog = JsonTemplateCatalog(data_dir)
    lookup: TemplateCatalogProtocol = catalog
    catalog_url = os.environ.get(CATALOG_URL_ENV)
    if catalog_url:
        lookup = RestTemplateCatalog(CatalogApi(base_url=catalog_url))
        logger.info("Looking up templates in {}", catalog_url)
    logger.info("Serving stories from {}", data_dir)
    yield ServerContext(service=StoryService(JsonTreeStore(data_dir), lookup), catalog=catalog)


mcp_server = FastMCP(
    "qa-stories",
    instructions="""\
QA stories are folders of stories; each story holds tests built from templates,
and each test is a checklist of sections with status not_tested, passed or failed.

## Workflow
1. Call stories_get_tree_tool to find a story id.
2. Call stories_prepare_run_tool before executing a story; it fills tests whose
   sections are still empty from their templates.
3. Record results with stories_set_section_status_tool. Test status is derived
   from section statuses and cannot be set directly.
4. Close the run with stories_close_story_tool.
""",
    lifespan=server_lifespan,
)


def _ctx(mcp_ctx: Context) -> ServerContext:
    return mcp_ctx.request_context.lifespan_context  # type: ignore[return-value]


# --- MCP Tool Wrappers ---


@mcp_server.tool()
async def stories_get_tree_tool(
    ctx: Context, max_depth: int | None = None, include_tests: bool = False
) -> dict[str, Any]:
    """Show the folder/story tree with pass rates.

    Args:
        max_depth: Max folder levels (None = unlimited).
        include_tests: List each story's tests with status.
    """
    return stories_get_tree(_ctx(ctx).service, max_depth=max_depth, include_tests=include_tests)


@mcp_server.tool()
async def stories_read_story_tool(
    ctx: Context, story_id: str, output_format: str = "markdown"
) -> dict[str, Any]:
    """Read a story with its tests, sections, notes and run history.

    Args:
        story_id: Story ID from the tree.
        output_format: "markdown" (human-readable) or "json" (structured).
    """
    return stories_read_story(_ctx(ctx).service, story_id=story_id, output_format=output_format)


@mcp_server.tool()
async def stories_prepare_run_tool(ctx: Context, story_id: str) -> dict[str, Any]:
    """Prepare a story for execution by filling empty tests from their templates."""
    return stories_prepare_run(_ctx(ctx).service, story_id=story_id)


@mcp_server.tool()
async def stories_add_test_tool(
    ctx: Context, story_id: str, template_id: str, title: str
) -> dict[str, Any]:
    """Add a test built from a template to a story.

    Args:
        story_id: Story to add the test to.
        template_id: Template whose sections seed the test.
        title: Test title.
    """
    return stories_add_test(
        _ctx(ctx).service, story_id=story_id, template_id=template_id, title=title
    )


@mcp_server.tool()
async def stories_set_section_status_tool(
    ctx: Context, story_id: str, test_id: str, section_index: int, status: str
) -> dict[str, Any]:
    """Set one section's status (not_tested, passed or failed).

    Args:
        story_id: Story ID.
        test_id: Test ID within the story.
        section_index: Section position within the test (0-based).
        status: New status.
    """
    return stories_set_section_status(
        _ctx(ctx).service,
        story_id=story_id,
        test_id=test_id,
        section_index=section_index,
        status=status,
    )


@mcp_server.tool()
async def stories_add_note_tool(
    ctx: Context,
    story_id: str,
    test_id: str,
    note: str,
    author: str,
    section_index: int | None = None,
) -> dict[str, Any]:
    """Add a note to a test or to one of its sections.

    Args:
        story_id: Story ID.
        test_id: Test ID within the story.
        note: Note text.
        author: Who wrote the note.
        section_index: Section position; omit for a test-level note.
    """
    return stories_add_note(
        _ctx(ctx).service,
        story_id=story_id,
        test_id=test_id,
        note=note,
        author=author,
        section_index=section_index,
    )


@mcp_server.tool()
async def stories_close_story_tool(
    ctx: Context,
    story_id: str,
    outcome: str,
    notes: str,
    author: str,
    reasons: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Record that a story run completed or failed.

    Args:
        story_id: Story ID.
        outcome: "completed" or "failed".
        notes: Free-text notes for the run.
        author: Who closed the run.
        reasons: For failures, [{"test_id", "reason", "section_index"?}, ...].
    """
    return stories_close_story(
        _ctx(ctx).service,
        story_id=story_id,
        outcome=outcome,
        notes=notes,
        author=author,
        reasons=reasons,
    )


@mcp_server.tool()
async def stories_list_templates_tool(ctx: Context) -> dict[str, Any]:
    """List templates available for new tests."""
    return stories_list_templates(_ctx(ctx).catalog)


@mcp_server.tool()
async def stories_update_story_tool(
    ctx: Context, story_id: str, title: str | None = None, description: str | None = None
) -> dict[str, Any]:
    """Edit a story's title and/or description. Tests and run history are kept.

    Args:
        story_id: Story ID.
        title: New title (omit to keep).
        description: New description (omit to keep).
    """
    return stories_update_story(
        _ctx(ctx).service, story_id=story_id, title=title, description=description
    )


@mcp_server.tool()
async def stories_update_template_tool(
    ctx: Context,
    template_id: str,
    name: str | None = None,
    sections: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Rename a template or replace its sections. Existing tests keep their sections.

    Args:
        template_id: Template ID.
        name: New name (omit to keep).
        sections: New sections as [{"name", "description"?}, ...] (omit to keep).
    """
    return stories_update_template(
        _ctx(ctx).catalog, template_id=template_id, name=name, sections=sections
    )


@mcp_server.tool()
async def stories_delete_template_tool(ctx: Context, template_id: str) -> dict[str, Any]:
    """Delete a template from the catalog."""
    return stories_delete_template(_ctx(ctx).catalog, template_id=template_id)


def run_mcp_server() -> None:
    """Run the MCP server with stdio transport."""
    from qa_stories.logging_config import configure_logging

    configure_logging(verbose=False)
    mcp_server.run(transport="stdio")
