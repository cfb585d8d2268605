"""Tests for JsonFileWriter: atomic, change-aware JSON writes."""

import json
from pathlib import Path

import pytest

from qa_stories.writer import JsonFileWriter, dumps


def test_dumps_is_stable_and_ends_with_newline() -> None:
    """Key order does not affect the serialized text."""
    assert dumps({"b": 1, "a": "é"}) == dumps({"a": "é", "b": 1})
    assert dumps({"a": "é"}).endswith("\n")
    assert "é" in dumps({"a": "é"})


def test_write_json_creates_file(tmp_path: Path) -> None:
    """A new file is written and counted."""
    writer = JsonFileWriter()
    path = tmp_path / "sub" / "data.json"

    assert writer.write_json(path, {"x": 1}) is True

    assert json.loads(path.read_text()) == {"x": 1}
    assert writer.num_written == 1


def test_write_json_skips_unchanged_contents(tmp_path: Path) -> None:
    """Writing the same data twice touches the file once."""
    writer = JsonFileWriter()
    path = tmp_path / "data.json"
    writer.write_json(path, {"x": 1})
    mtime = path.stat().st_mtime_ns

    assert writer.write_json(path, {"x": 1}) is False

    assert writer.num_same == 1
    assert path.stat().st_mtime_ns == mtime


def test_write_json_leaves_no_temporary_files(tmp_path: Path) -> None:
    """The temporary file is renamed over the target."""
    writer = JsonFileWriter()
    writer.write_json(tmp_path / "data.json", {"x": 1})
    writer.write_json(tmp_path / "data.json", {"x": 2})

    assert [p.name for p in tmp_path.iterdir()] == ["data.json"]


def test_write_json_dry_run_does_not_write(tmp_path: Path) -> None:
    """In dry-run mode, nothing reaches the disk."""
    writer = JsonFileWriter(dry_run=True)
    path = tmp_path / "data.json"

    assert writer.write_json(path, {"x": 1}) is True

    assert not path.exists()
    assert writer.num_written == 0


def test_try_read_json_missing_returns_none(tmp_path: Path) -> None:
    """A missing file reads as None."""
    assert JsonFileWriter().try_read_json(tmp_path / "missing.json") is None


def test_try_read_json_raises_on_null(tmp_path: Path) -> None:
    """A JSON null would be ambiguous with a missing file, so it is an error."""
    path = tmp_path / "null.json"
    path.write_text("null")

    with pytest.raises(ValueError, match="None object"):
        JsonFileWriter().try_read_json(path)
