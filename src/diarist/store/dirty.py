"""Persisted record of files changed since the last sync."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Callable, Set

from .models import DirtySet
from .shards import read_model, write_model

LOGGER = logging.getLogger(__name__)

DIRTY_SET_FILENAME = "edited_entries.json"


class FileKind(str, Enum):
    """Kinds of tracked files."""

    PAGE = "page"
    IMAGE = "image"


def _files(entries: DirtySet, kind: FileKind) -> Set[str]:
    return entries.page_files if kind is FileKind.PAGE else entries.image_files


class DirtyTracker:
    """Load, mutate, and persist the dirty set document of a store root.

    Every mutation is a full read-modify-write of a single JSON document. A
    crash between the read and the write loses at most the entry being
    recorded; the file content itself is already on disk.
    """

    def __init__(self, root: Path) -> None:
        self._root = root

    @property
    def path(self) -> Path:
        """Return the location of the dirty set document."""
        return self._root / DIRTY_SET_FILENAME

    def snapshot(self) -> DirtySet:
        """Return the persisted dirty set, or an empty one if none exists yet."""
        if not self.path.exists():
            return DirtySet()
        return read_model(self.path, DirtySet)

    def update(self, edit: Callable[[DirtySet], None]) -> DirtySet:
        """Apply ``edit`` to the current dirty set and persist the result."""
        entries = self.snapshot()
        edit(entries)
        write_model(self.path, entries)
        return entries

    def record(self, kind: FileKind, filename: str) -> None:
        """Mark ``filename`` as changed locally."""
        self.update(lambda entries: _files(entries, kind).add(filename))
        LOGGER.debug("Marked %s file %s as edited.", kind.value, filename)

    def discard(self, kind: FileKind, filename: str) -> None:
        """Drop ``filename`` from the recorded changes, if present."""
        self.update(lambda entries: _files(entries, kind).discard(filename))
        LOGGER.debug("Unmarked %s file %s.", kind.value, filename)

    def clear(self) -> None:
        """Forget every recorded change."""
        self.update(DirtySet.clear)


__all__ = ["DirtyTracker", "FileKind", "DIRTY_SET_FILENAME"]
