"""Configuration constants for qa-stories."""

import os
from pathlib import Path

# Directory with data. First directory which is found is used.
DATA_DIRECTORIES: list[Path] = [
    Path("~/.local/share/qa-stories").expanduser(),
    Path("~/.qa-stories").expanduser(),
    Path("~/.config/qa-stories").expanduser(),
]

# Used when none of DATA_DIRECTORIES exists yet.
DEFAULT_DATA_DIRECTORY: Path = DATA_DIRECTORIES[0]

TREE_FILENAME: str = "stories.json"
TEMPLATES_FILENAME: str = "templates.json"

ROOT_FOLDER_ID: str = "root"
ROOT_FOLDER_NAME: str = "Stories"

# Note display: notes longer than this many lines are collapsed.
NOTE_COLLAPSE_LINES: int = 20
# Note display: number of most recent notes shown before "more notes".
INITIAL_NOTES_SHOWN: int = 2

# Catalog-backed deployment. Templates are read from it when $QA_STORIES_API_URL
# (or the CLI --catalog-url option) is set. Token location, first file found is used.
CATALOG_URL_ENV: str = "QA_STORIES_API_URL"
CATALOG_API_URL: str = os.environ.get(CATALOG_URL_ENV, "http://localhost:3000")
API_TOKEN_FILES: list[Path] = [
    Path("~/.config/qa-stories-token.txt").expanduser(),
    Path("~/.config/secret/qa-stories-token.txt").expanduser(),
]
API_TIMEOUT: float = 10.0


def resolve_data_directory() -> Path:
    """Return the data directory: $QA_STORIES_DIR, else the first existing candidate."""
    env_dir = os.environ.get("QA_STORIES_DIR")
    if env_dir:
        return Path(env_dir).expanduser()
    for candidate in DATA_DIRECTORIES:
        if candidate.is_dir():
            return candidate
    return DEFAULT_DATA_DIRECTORY
