"""Snapshots of the page directory bracketing a sync attempt."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Protocol

from .errors import BackupError, StoreIOError

LOGGER = logging.getLogger(__name__)

BACKUP_DIR_PREFIX = "backup"


def backup_dir(root: Path, backup_id: int) -> Path:
    return root / f"{BACKUP_DIR_PREFIX}_{backup_id}"


class BackupAllocator(Protocol):
    """Strategy that picks the id of the next backup directory."""

    def allocate(self, root: Path) -> int: ...


class ProbingAllocator:
    """Return the smallest id whose backup directory does not exist.

    Two processes probing the same root can pick the same id; callers must
    serialize access to a store root.
    """

    def allocate(self, root: Path) -> int:
        backup_id = 1
        while backup_dir(root, backup_id).exists():
            backup_id += 1
        return backup_id


def _copy_files(source: Path, destination: Path) -> int:
    copied = 0
    for entry in source.iterdir():
        if entry.is_file() and not entry.is_symlink():
            shutil.copy2(entry, destination / entry.name)
            copied += 1
    return copied


class BackupManager:
    """Copy the page directory aside and restore it on failure."""

    def __init__(
        self,
        root: Path,
        page_dir: Path,
        allocator: BackupAllocator | None = None,
    ) -> None:
        self._root = root
        self._page_dir = page_dir
        self._allocator = allocator or ProbingAllocator()

    def path_for(self, backup_id: int) -> Path:
        return backup_dir(self._root, backup_id)

    def begin(self) -> int:
        """Snapshot every regular file of the page directory.

        Returns:
            int: Identifier of the new snapshot.

        Raises:
            StoreIOError: If the snapshot cannot be created.
        """
        backup_id = self._allocator.allocate(self._root)
        target = self.path_for(backup_id)
        try:
            target.mkdir()
        except OSError as exc:
            raise StoreIOError(target, f"Unable to create backup ({exc})") from exc
        try:
            copied = _copy_files(self._page_dir, target)
        except OSError as exc:
            shutil.rmtree(target, ignore_errors=True)
            raise StoreIOError(target, f"Unable to create backup ({exc})") from exc
        LOGGER.info("Backed up %d page files to %s.", copied, target.name)
        return backup_id

    def commit(self, backup_id: int) -> None:
        """Discard a snapshot after a successful sync."""
        target = self.path_for(backup_id)
        try:
            shutil.rmtree(target)
        except OSError as exc:
            raise BackupError(f"Unable to remove backup {target}: {exc}") from exc

    def rollback(self, backup_id: int) -> None:
        """Replace the page directory with the snapshot, then discard it."""
        target = self.path_for(backup_id)
        if not target.is_dir():
            raise BackupError(f"Backup {target} does not exist")
        try:
            shutil.rmtree(self._page_dir)
            self._page_dir.mkdir()
            restored = _copy_files(target, self._page_dir)
        except OSError as exc:
            raise BackupError(f"Unable to restore backup {target}: {exc}") from exc
        LOGGER.warning("Restored %d page files from %s.", restored, target.name)
        self.commit(backup_id)


__all__ = ["BackupManager", "BackupAllocator", "ProbingAllocator", "BACKUP_DIR_PREFIX", "backup_dir"]
