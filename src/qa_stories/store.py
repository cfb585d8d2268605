"""Persist the story tree as a single JSON document."""

import json
from datetime import UTC, datetime
from pathlib import Path

from loguru import logger

from qa_stories.config import ROOT_FOLDER_ID, ROOT_FOLDER_NAME, TREE_FILENAME
from qa_stories.core.tree.codec import dump_tree, parse_tree_data
from qa_stories.errors import CorruptStateError
from qa_stories.models.story import StoryFolder
from qa_stories.writer import JsonFileWriter


def empty_root(*, created_at: str | None = None) -> StoryFolder:
    """A root folder with no stories or subfolders."""
    return StoryFolder(
        id=ROOT_FOLDER_ID,
        name=ROOT_FOLDER_NAME,
        created_at=created_at or datetime.now(tz=UTC).isoformat(),
        parent_id=None,
    )


class JsonTreeStore:
    """Tree store backed by one JSON file.

    There is no locking: concurrent writers are last-write-wins, so callers
    load immediately before each mutation.
    """

    def __init__(
        self, datadir: str | Path, *, filename: str = TREE_FILENAME, dry_run: bool = False
    ) -> None:
        self.path = Path(datadir) / filename
        self.writer = JsonFileWriter(dry_run=dry_run)

    def load(self) -> StoryFolder:
        """Load the root folder. A missing document is an empty tree.

        Raises:
            CorruptStateError: If the document is not valid JSON or not a valid tree.
        """
        try:
            data = self.writer.try_read_json(self.path)
        except (json.JSONDecodeError, UnicodeDecodeError, ValueError, RecursionError) as e:
            msg = f"Cannot read story tree {str(self.path)!r}: {e}"
            raise CorruptStateError(msg) from e
        if data is None:
            logger.debug("No tree document at {}, starting empty", self.path)
            return empty_root()
        return parse_tree_data(data)

    def save(self, root: StoryFolder) -> None:
        if self.writer.write_json(self.path, dump_tree(root)):
            logger.debug("Saved story tree to {}", self.path)
