"""Temp files for request bodies too large to send inline."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


class TempFileStore:
    """Creates request temp files and deletes them on a best-effort basis."""

    def __init__(self, directory: str | Path | None = None, prefix: str = "snail-"):
        self.directory = Path(directory) if directory is not None else None
        self.prefix = prefix

    def create(self, contents: str, suffix: str = ".jl") -> Path:
        """Write ``contents`` to a new temp file and return its path."""
        if self.directory is not None:
            self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(suffix=suffix, prefix=self.prefix, dir=self.directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(contents)
        except Exception:
            Path(tmp_path).unlink(missing_ok=True)
            raise
        logger.debug("Created request temp file %s", tmp_path)
        return Path(tmp_path)

    def delete(self, path: str | Path) -> None:
        """Remove a temp file. Missing files and OS errors are ignored."""
        try:
            Path(path).unlink(missing_ok=True)
        except OSError as e:
            logger.debug("Could not delete temp file %s: %s", path, e)
