"""Zip bundling of a task's downloaded files."""

from __future__ import annotations

import logging
import os
import zipfile
from collections.abc import Iterable, Sequence
from pathlib import Path

from core.errors import ArchiveError

from .base import Plugin

logger = logging.getLogger(__name__)


class ArchiverPlugin(Plugin):
    """Writes ``<archive_dir>/<task_id>.zip`` and returns its public URL."""

    def __init__(self, *, archive_dir: Path, base_url: str):
        super().__init__()
        self.archive_dir = Path(archive_dir)
        self.base_url = base_url.rstrip("/")

    def setup(self) -> None:
        self.archive_dir.mkdir(parents=True, exist_ok=True)

    def archive_path(self, task_id: str) -> Path:
        return self.archive_dir / f"{task_id}.zip"

    def archive_url(self, task_id: str) -> str:
        return f"{self.base_url}/{task_id}.zip"

    def create_archive(self, task_id: str, files: Sequence[Path]) -> str:
        """Bundle ``files`` under their base names.

        Entries sharing a base name collapse to the last file given. The zip is
        written to a ``.part`` file and renamed, so a failed run never leaves a
        half-written archive behind.

        Raises:
            ArchiveError: if any file cannot be read or the zip cannot be written.
        """
        if not files:
            raise ArchiveError(f"no files to archive for task {task_id}")

        entries: dict[str, Path] = {}
        for file in files:
            path = Path(file)
            if path.name in entries:
                logger.warning(
                    "Duplicate entry name %s in task %s; keeping %s.", path.name, task_id, path
                )
            entries[path.name] = path

        target = self.archive_path(task_id)
        partial = target.with_name(target.name + ".part")
        try:
            with zipfile.ZipFile(partial, "w", compression=zipfile.ZIP_DEFLATED) as bundle:
                for name, path in entries.items():
                    bundle.write(path, arcname=name)
            os.replace(partial, target)
        except (OSError, zipfile.BadZipFile, ValueError) as exc:
            partial.unlink(missing_ok=True)
            raise ArchiveError(f"failed to create archive for task {task_id}: {exc}") from exc

        logger.info("Archive for task %s written to %s (%d entries).", task_id, target, len(entries))
        return self.archive_url(task_id)

    def cleanup(self, files: Iterable[Path]) -> None:
        """Remove temporary downloads; missing files are ignored."""
        for file in files:
            try:
                Path(file).unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Could not remove temporary file %s: %s", file, exc)
