"""Smart JSON file writer used by the document stores."""

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from loguru import logger


def dumps(data: Any) -> str:
    """Canonical serialization: stable key order, so unchanged data gives unchanged bytes."""
    return json.dumps(data, sort_keys=True, indent=4, ensure_ascii=False) + "\n"


class JsonFileWriter:
    """Write JSON documents in a smart way.

    - Do not rewrite files if contents are the same.
    - Replace files atomically: write a temporary file next to the target, then
      rename it over the target, so readers never see a partial document.
    """

    def __init__(self, *, dry_run: bool = False) -> None:
        self.dry_run = dry_run
        self.num_same = 0
        self.num_written = 0

    def write_json(self, path: str | Path, data: Any) -> bool:
        """Write `data` to `path`.

        Returns:
            True if the file was (or, in dry-run mode, would be) written.
        """
        path = Path(path)
        contents = dumps(data)

        action = "create"
        try:
            if path.read_text(encoding="utf-8") == contents:
                self.num_same += 1
                logger.debug("Unchanged, not writing {}", path)
                return False
            action = "update"
        except (FileNotFoundError, UnicodeDecodeError):
            pass

        if self.dry_run:
            logger.info("dry-run: would {} {}", action, path)
            return True

        logger.debug("Writing ({}) {}", action, path)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(contents)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        self.num_written += 1
        return True

    def try_read_json(self, path: str | Path) -> Any | None:
        """Try to read json from given path.

        Returns:
            Json contents if file is found, None if file is not found.
            Raises on all other errors.
        """
        try:
            contents = Path(path).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        rj = json.loads(contents)
        # If we read None, it'll be ambiguous vs "file not found". We do not expect this
        # to happen, so raise.
        if rj is None:
            msg = f"try_read_json found None object in {str(path)!r}"
            raise ValueError(msg)
        return rj
