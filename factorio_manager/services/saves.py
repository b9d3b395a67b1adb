import logging
import os
import shutil
from contextlib import suppress
from typing import BinaryIO, Optional

from ..config import settings

logger = logging.getLogger(__name__)

AUTOSAVE_PREFIX = "_autosave"
SAVE_EXTENSION = ".zip"
UPLOAD_SUFFIX = ".upload"


class SaveError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def _is_save_name(name: str) -> bool:
    return name.lower().endswith(SAVE_EXTENSION)


class SaveManager:
    def __init__(self, saves_dir: Optional[str] = None) -> None:
        self.saves_dir = saves_dir or settings.saves_dir

    def _save_entries(self) -> list[os.DirEntry]:
        with os.scandir(self.saves_dir) as entries:
            return [entry for entry in entries if entry.is_file() and _is_save_name(entry.name)]

    def clean_autosaves(self) -> list[str]:
        """Delete ``_autosave*.zip`` files so the uploaded save is the newest one.

        Raises ``OSError`` if the directory cannot be read or a file cannot be
        removed; files removed before the failure stay removed.
        """
        removed: list[str] = []
        with os.scandir(self.saves_dir) as entries:
            names = sorted(
                entry.name
                for entry in entries
                if entry.is_file()
                and entry.name.startswith(AUTOSAVE_PREFIX)
                and entry.name.endswith(SAVE_EXTENSION)
            )
        for name in names:
            os.remove(os.path.join(self.saves_dir, name))
            logger.info("Removed autosave %s", name)
            removed.append(name)
        return removed

    def replace(self, filename: str, source: BinaryIO) -> str:
        """Make ``filename`` the only save in the directory.

        The upload is written next to the saves first, so a failed copy
        leaves the existing saves untouched. Only then are the other ``.zip``
        files removed and the upload renamed into place.
        """
        if not filename or os.path.basename(filename) != filename:
            raise SaveError(400, f"Invalid save file name: {filename!r}")
        if not _is_save_name(filename):
            raise SaveError(400, "Only .zip files are allowed")

        dest_path = os.path.join(self.saves_dir, filename)
        upload_path = dest_path + UPLOAD_SUFFIX
        try:
            with open(upload_path, "wb") as handle:
                shutil.copyfileobj(source, handle)
            for entry in self._save_entries():
                if entry.name != filename:
                    os.remove(entry.path)
                    logger.info("Removed save %s", entry.name)
            os.replace(upload_path, dest_path)
        except BaseException:
            with suppress(FileNotFoundError):
                os.remove(upload_path)
            raise
        logger.info("Stored save %s (%d bytes)", filename, os.path.getsize(dest_path))
        return dest_path

    def latest_save(self) -> tuple[str, str]:
        """Return ``(name, path)`` of the most recently modified ``.zip`` save."""
        newest: Optional[tuple[int, str, str]] = None
        for entry in self._save_entries():
            try:
                modified = entry.stat().st_mtime_ns
            except FileNotFoundError:
                continue
            if newest is None or modified > newest[0]:
                newest = (modified, entry.name, entry.path)
        if newest is None:
            raise SaveError(404, f"No save files found in {self.saves_dir}")
        return newest[1], newest[2]
