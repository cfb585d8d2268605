"""CLI for qa-stories: browse the story tree and record test runs."""

import getpass
import json
import warnings
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict
from pathlib import Path
from typing import Annotated

import requests
import typer
from loguru import logger

from qa_stories.api import CatalogApi, RestTemplateCatalog
from qa_stories.config import CATALOG_URL_ENV, ROOT_FOLDER_ID, resolve_data_directory
from qa_stories.core.status.aggregator import summarize_story
from qa_stories.core.templates.catalog import JsonTemplateCatalog
from qa_stories.core.tree.markdown import render_story_as_markdown, render_tree_as_markdown
from qa_stories.errors import MissingTemplateWarning, StoryTreeError
from qa_stories.logging_config import configure_logging
from qa_stories.models.story import FailureReason, Status, TemplateSection
from qa_stories.service import StoryService
from qa_stories.store import JsonTreeStore

app = typer.Typer(help="qa-stories: QA stories built from reusable test templates.")
folder_app = typer.Typer(help="Manage story folders.")
story_app = typer.Typer(help="Manage and run stories.")
test_app = typer.Typer(help="Manage the tests of a story.")
section_app = typer.Typer(help="Record section results.")
template_app = typer.Typer(help="Manage the template catalog.")
app.add_typer(folder_app, name="folder")
app.add_typer(story_app, name="story")
app.add_typer(test_app, name="test")
app.add_typer(section_app, name="section")
app.add_typer(template_app, name="template")

DataDir = Annotated[
    Path | None,
    typer.Option("--data-dir", "-d", help="Directory with stories.json and templates.json"),
]
Author = Annotated[
    str | None,
    typer.Option("--author", "-a", help="Note author (default: current user)"),
]

# Set by the main callback on every invocation.
_catalog_url: str | None = None


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log warnings and errors"),
    catalog_url: Annotated[
        str | None,
        typer.Option(
            "--catalog-url",
            envvar=CATALOG_URL_ENV,
            help="Look up test templates in this catalog API instead of templates.json",
        ),
    ] = None,
) -> None:
    global _catalog_url
    configure_logging(verbose=verbose, quiet=quiet)
    _catalog_url = catalog_url


def _data_dir(data_dir: Path | None) -> Path:
    return data_dir or resolve_data_directory()


def _catalog(data_dir: Path | None) -> JsonTemplateCatalog:
    return JsonTemplateCatalog(_data_dir(data_dir))


def _service(data_dir: Path | None) -> StoryService:
    dst = _data_dir(data_dir)
    dst.mkdir(parents=True, exist_ok=True)
    if not _catalog_url:
        return StoryService(JsonTreeStore(dst), JsonTemplateCatalog(dst))
    try:
        api = CatalogApi(base_url=_catalog_url)
    except RuntimeError as e:
        logger.error("{}", e)
        raise typer.Exit(1) from None
    return StoryService(JsonTreeStore(dst), RestTemplateCatalog(api))


def _author(author: str | None) -> str:
    return author or getpass.getuser()


@contextmanager
def _errors_exit() -> Iterator[None]:
    """Report core and catalog API errors as a log line and exit code 1."""
    try:
        yield
    except (StoryTreeError, requests.RequestException) as e:
        logger.error("{}", e)
        raise typer.Exit(1) from None


# --- Tree ---


@app.command()
def tree(
    max_depth: Annotated[
        int | None,
        typer.Option("--max-depth", "-m", help="Max folder levels to render"),
    ] = None,
    tests: bool = typer.Option(False, "--tests", "-t", help="List tests under each story"),
    data_dir: DataDir = None,
) -> None:
    """Show the folder/story tree with pass rates."""
    with _errors_exit():
        root = _service(data_dir).get_tree()
    typer.echo(render_tree_as_markdown(root, max_depth=max_depth, include_tests=tests), nl=False)


@folder_app.command("add")
def folder_add(
    name: str = typer.Argument(..., help="Folder name"),
    parent: str = typer.Option(ROOT_FOLDER_ID, "--parent", "-p", help="Parent folder id"),
    data_dir: DataDir = None,
) -> None:
    """Create a folder."""
    with _errors_exit():
        folder = _service(data_dir).add_folder(parent, name)
    typer.echo(f"Created folder {folder.name!r} [id={folder.id}]")


# --- Stories ---


@story_app.command("add")
def story_add(
    title: str = typer.Argument(..., help="Story title"),
    description: str = typer.Option("", "--description", help="Story description"),
    folder: str = typer.Option(ROOT_FOLDER_ID, "--folder", "-f", help="Owning folder id"),
    data_dir: DataDir = None,
) -> None:
    """Create a story in a folder."""
    with _errors_exit():
        story = _service(data_dir).add_story(folder, title, description)
    typer.echo(f"Created story {story.title!r} [id={story.id}]")


@story_app.command("edit")
def story_edit(
    story_id: str = typer.Argument(..., help="Story id"),
    title: str | None = typer.Option(None, "--title", "-t", help="New title"),
    description: str | None = typer.Option(None, "--description", help="New description"),
    data_dir: DataDir = None,
) -> None:
    """Change a story's title or description."""
    if title is None and description is None:
        typer.echo("Nothing to change, pass --title and/or --description")
        raise typer.Exit(2)
    with _errors_exit():
        story = _service(data_dir).update_story(story_id, title=title, description=description)
    typer.echo(f"Updated story {story.title!r} [id={story.id}]")


@story_app.command("show")
def story_show(
    story_id: str = typer.Argument(..., help="Story id"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
    data_dir: DataDir = None,
) -> None:
    """Show a story with its tests, sections and notes."""
    from qa_stories.core.tree.codec import dump_story

    with _errors_exit():
        story = _service(data_dir).get_story(story_id)
    if story is None:
        typer.echo(f"Story '{story_id}' not found.")
        raise typer.Exit(1)
    if output_json:
        data = dump_story(story)
        data["summary"] = asdict(summarize_story(story))
        typer.echo(json.dumps(data, indent=2))
    else:
        typer.echo(render_story_as_markdown(story), nl=False)


@story_app.command("run")
def story_run(
    story_id: str = typer.Argument(..., help="Story id"),
    data_dir: DataDir = None,
) -> None:
    """Prepare a story for execution: fill empty tests from their templates."""
    with _errors_exit(), warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", MissingTemplateWarning)
        story = _service(data_dir).load_story_for_run(story_id)
    for w in caught:
        if issubclass(w.category, MissingTemplateWarning):
            typer.echo(f"warning: {w.message}")
    typer.echo(render_story_as_markdown(story), nl=False)


@story_app.command("remove")
def story_remove(
    story_id: str = typer.Argument(..., help="Story id"),
    data_dir: DataDir = None,
) -> None:
    """Delete a story."""
    with _errors_exit():
        _service(data_dir).remove_story(story_id)
    typer.echo(f"Removed story {story_id}")


@story_app.command("complete")
def story_complete(
    story_id: str = typer.Argument(..., help="Story id"),
    notes: str = typer.Option("", "--notes", "-n", help="Completion notes"),
    author: Author = None,
    data_dir: DataDir = None,
) -> None:
    """Record that a story run completed."""
    with _errors_exit():
        record = _service(data_dir).complete_story(story_id, notes, author=_author(author))
    typer.echo(f"Story {story_id} completed [outcome={record.id}]")


@story_app.command("fail")
def story_fail(
    story_id: str = typer.Argument(..., help="Story id"),
    notes: str = typer.Option("", "--notes", "-n", help="Failure notes"),
    reasons: Annotated[
        list[str] | None,
        typer.Option(
            "--reason",
            "-r",
            help="Failure reason as TEST_ID[:SECTION_INDEX]=TEXT (repeatable)",
        ),
    ] = None,
    author: Author = None,
    data_dir: DataDir = None,
) -> None:
    """Record that a story run failed."""
    parsed: list[FailureReason] = []
    for raw in reasons or []:
        target, sep, text = raw.partition("=")
        test_id, _, section = target.partition(":")
        if not sep or not test_id or (section and not section.isdigit()):
            typer.echo(f"Invalid reason {raw!r}, expected TEST_ID[:SECTION_INDEX]=TEXT")
            raise typer.Exit(2)
        parsed.append(
            FailureReason(
                test_id=test_id, reason=text, section_index=int(section) if section else None
            )
        )
    with _errors_exit():
        record = _service(data_dir).fail_story(story_id, notes, parsed, author=_author(author))
    typer.echo(f"Story {story_id} failed [outcome={record.id}]")


# --- Tests and sections ---


@test_app.command("add")
def test_add_cmd(
    story_id: str = typer.Argument(..., help="Story id"),
    template_id: str = typer.Argument(..., help="Template id"),
    title: str = typer.Argument(..., help="Test title"),
    data_dir: DataDir = None,
) -> None:
    """Add a test built from a template to a story."""
    with _errors_exit():
        test = _service(data_dir).add_test(story_id, template_id, title)
    typer.echo(f"Added test {test.title!r} with {len(test.sections)} sections [id={test.id}]")


@test_app.command("remove")
def test_remove_cmd(
    story_id: str = typer.Argument(..., help="Story id"),
    test_id: str = typer.Argument(..., help="Test id"),
    data_dir: DataDir = None,
) -> None:
    """Remove a test from a story."""
    with _errors_exit():
        _service(data_dir).remove_test(story_id, test_id)
    typer.echo(f"Removed test {test_id}")


@test_app.command("note")
def test_note_cmd(
    story_id: str = typer.Argument(..., help="Story id"),
    test_id: str = typer.Argument(..., help="Test id"),
    note: str = typer.Argument(..., help="Note text"),
    author: Author = None,
    data_dir: DataDir = None,
) -> None:
    """Add a note to a test."""
    with _errors_exit():
        _service(data_dir).add_test_note(story_id, test_id, note, author=_author(author))
    typer.echo("Note added")


@section_app.command("status")
def section_status(
    story_id: str = typer.Argument(..., help="Story id"),
    test_id: str = typer.Argument(..., help="Test id"),
    section_index: int = typer.Argument(..., help="Section position (0-based)"),
    status: Status = typer.Argument(..., help="New section status"),
    data_dir: DataDir = None,
) -> None:
    """Set a section's status; the test status is recomputed."""
    with _errors_exit():
        test = _service(data_dir).set_section_status(story_id, test_id, section_index, status)
    typer.echo(f"Section {section_index} is {status}; test {test.title!r} is {test.status}")


@section_app.command("note")
def section_note(
    story_id: str = typer.Argument(..., help="Story id"),
    test_id: str = typer.Argument(..., help="Test id"),
    section_index: int = typer.Argument(..., help="Section position (0-based)"),
    note: str = typer.Argument(..., help="Note text"),
    author: Author = None,
    data_dir: DataDir = None,
) -> None:
    """Add a note to a section."""
    with _errors_exit():
        _service(data_dir).set_section_notes(
            story_id, test_id, section_index, note, author=_author(author)
        )
    typer.echo("Note added")


# --- Templates ---


@template_app.command("list")
def template_list(data_dir: DataDir = None) -> None:
    """List templates in the catalog."""
    with _errors_exit():
        templates = _catalog(data_dir).list_templates()
    typer.echo(f"{len(templates)} templates:\n")
    for t in templates:
        typer.echo(f"  {t.name} - {len(t.sections)} sections  [id={t.id}]")


@template_app.command("import")
def template_import(
    path: Path = typer.Argument(..., help="JSON file with an array of templates"),
    data_dir: DataDir = None,
) -> None:
    """Append templates from a JSON file (no de-duplication)."""
    try:
        records = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.error("Cannot read {}: {}", path, e)
        raise typer.Exit(1) from None
    with _errors_exit():
        _data_dir(data_dir).mkdir(parents=True, exist_ok=True)
        imported = _catalog(data_dir).import_templates(records)
    typer.echo(f"Imported {len(imported)} templates")


@template_app.command("update")
def template_update(
    template_id: str = typer.Argument(..., help="Template id"),
    name: str | None = typer.Option(None, "--name", help="New template name"),
    sections: Annotated[
        list[str] | None,
        typer.Option(
            "--section",
            "-s",
            help="Section as NAME[=DESCRIPTION]; replaces all sections (repeatable)",
        ),
    ] = None,
    data_dir: DataDir = None,
) -> None:
    """Rename a template or replace its sections. Existing tests are not changed."""
    parsed: list[TemplateSection] | None = None
    if sections:
        parsed = []
        for raw in sections:
            section_name, _, section_description = raw.partition("=")
            parsed.append(TemplateSection(section_name.strip(), section_description.strip()))
    with _errors_exit():
        template = _catalog(data_dir).update_template(template_id, name=name, sections=parsed)
    typer.echo(f"Updated template {template.name!r} with {len(template.sections)} sections")


@template_app.command("delete")
def template_delete(
    template_id: str = typer.Argument(..., help="Template id"),
    data_dir: DataDir = None,
) -> None:
    """Delete a template. Tests built from it keep their sections."""
    with _errors_exit():
        _catalog(data_dir).delete_template(template_id)
    typer.echo(f"Deleted template {template_id}")


@template_app.command("export")
def template_export(
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write to this file instead of stdout"),
    ] = None,
    data_dir: DataDir = None,
) -> None:
    """Export the catalog as a JSON array of templates."""
    with _errors_exit():
        records = _catalog(data_dir).export_templates()
    text = json.dumps(records, indent=2) + "\n"
    if output is None:
        typer.echo(text, nl=False)
    else:
        output.write_text(text, encoding="utf-8")
        typer.echo(f"Exported {len(records)} templates to {output}")


@app.command()
def serve() -> None:
    """Start the MCP server (stdio transport)."""
    from qa_stories.mcp.server import run_mcp_server

    run_mcp_server()
