"""Bring local shards and images in line with the remote store."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, Set

from pydantic import ValidationError

from diarist.store import DirtyTracker, FileKind, ShardStore
from diarist.store.errors import InvariantViolation, StoreSerializationError
from diarist.store.models import WeekPage, utcnow
from diarist.store.shards import read_bytes, read_model, write_bytes, write_model

from .remote import RemoteStore

LOGGER = logging.getLogger(__name__)

PAGES_FOLDER = "/pages"
IMAGES_FOLDER = "/images"


class FileState(Enum):
    """Action required for one filename, derived from its location flags."""

    DOWNLOAD_NEW = "download"
    UPLOAD_NEW = "upload"
    MERGE_BOTH = "merge"
    INVALID = "invalid"

    @classmethod
    def from_flags(cls, local: bool, remote: bool, edited: bool) -> "FileState":
        """Map ``(exists_on_local, exists_on_remote, is_edited)`` to a state."""
        if not local and remote and not edited:
            return cls.DOWNLOAD_NEW
        if local and not remote and edited:
            return cls.UPLOAD_NEW
        if local and remote and edited:
            return cls.MERGE_BOTH
        return cls.INVALID


def check_actionable(name: str, state: FileState) -> FileState:
    """Return ``state`` unless it is :attr:`FileState.INVALID`.

    Raises:
        InvariantViolation: For the invalid state.
    """
    if state is FileState.INVALID:
        raise InvariantViolation(f"{name} is in an impossible sync state")
    return state


def classify(local_dir: Path, edited: Set[str], remote_names: Iterable[str]) -> Dict[str, FileState]:
    """Decide what to do with every file that differs between both sides.

    Files present on both sides but not edited locally are already in sync
    and are left out, as are files that only exist locally without edits.

    Raises:
        InvariantViolation: If an edited file is missing locally.
    """
    states: Dict[str, FileState] = {}

    for name in remote_names:
        local = (local_dir / name).exists()
        is_edited = name in edited
        if local and not is_edited:
            continue
        if not local and is_edited:
            raise InvariantViolation(f"{name} is marked edited but missing locally")
        states[name] = check_actionable(name, FileState.from_flags(local, True, is_edited))

    for name in edited:
        if not (local_dir / name).exists():
            raise InvariantViolation(f"{name} is marked edited but missing locally")
        states.setdefault(name, FileState.UPLOAD_NEW)

    return states


def integrate(local: WeekPage, remote: WeekPage) -> WeekPage:
    """Union two versions of one shard keyed by page id.

    Every remote page is kept as is; local pages are appended only when no
    remote page shares their id, so remote content wins on conflicts.
    """
    merged = remote.model_copy(deep=True)
    remote_ids = {page.id for page in remote.pages}
    for page in local.pages:
        if page.id not in remote_ids:
            merged.pages.append(page)
    return merged


@dataclass
class SyncReport:
    """Counts of actions taken per file kind."""

    downloaded: Dict[FileKind, int] = field(default_factory=lambda: dict.fromkeys(FileKind, 0))
    uploaded: Dict[FileKind, int] = field(default_factory=lambda: dict.fromkeys(FileKind, 0))
    merged: Dict[FileKind, int] = field(default_factory=lambda: dict.fromkeys(FileKind, 0))

    def count(self, kind: FileKind, state: FileState) -> None:
        target = {
            FileState.DOWNLOAD_NEW: self.downloaded,
            FileState.UPLOAD_NEW: self.uploaded,
            FileState.MERGE_BOTH: self.merged,
        }[state]
        target[kind] += 1

    @property
    def total(self) -> int:
        return sum(
            sum(counts.values()) for counts in (self.downloaded, self.uploaded, self.merged)
        )

    def as_dict(self) -> dict[str, dict[str, int]]:
        return {
            kind.value: {
                "downloaded": self.downloaded[kind],
                "uploaded": self.uploaded[kind],
                "merged": self.merged[kind],
            }
            for kind in FileKind
        }


class Reconciler:
    """Run one sequential pass over pages, then images."""

    def __init__(
        self,
        store: ShardStore,
        remote: RemoteStore,
        *,
        tracker: DirtyTracker | None = None,
        clock: Callable[[], datetime] = utcnow,
        pages_folder: str = PAGES_FOLDER,
        images_folder: str = IMAGES_FOLDER,
    ) -> None:
        self._store = store
        self._remote = remote
        self._tracker = tracker or store.tracker
        self._clock = clock
        self._pages_folder = pages_folder.rstrip("/")
        self._images_folder = images_folder.rstrip("/")

    def run(self) -> SyncReport:
        """Reconcile everything and clear the dirty set on success."""
        self._remote.create_folder(self._pages_folder)
        self._remote.create_folder(self._images_folder)

        entries = self._tracker.snapshot()
        report = SyncReport()

        page_states = self._classify(self._store.page_dir, entries.page_files, self._pages_folder)
        for name, state in page_states:
            self._sync_page(name, state)
            report.count(FileKind.PAGE, state)

        image_states = self._classify(
            self._store.image_dir, entries.image_files, self._images_folder
        )
        for name, state in image_states:
            self._sync_image(name, state)
            report.count(FileKind.IMAGE, state)

        self._tracker.clear()
        return report

    def _classify(
        self, local_dir: Path, edited: Set[str], folder: str
    ) -> list[tuple[str, FileState]]:
        remote_names = [entry.name for entry in self._remote.list_files(folder)]
        return sorted(classify(local_dir, edited, remote_names).items())

    def _sync_page(self, name: str, state: FileState) -> None:
        local_path = self._store.page_dir / name
        remote_path = f"{self._pages_folder}/{name}"

        if state is FileState.DOWNLOAD_NEW:
            LOGGER.info("Downloading %s.", name)
            write_bytes(local_path, self._remote.download(remote_path))
        elif state is FileState.UPLOAD_NEW:
            LOGGER.info("Uploading %s.", name)
            week_page = read_model(local_path, WeekPage)
            week_page.uploaded_at = self._clock()
            self._remote.upload(remote_path, week_page.model_dump_json().encode("utf-8"))
            write_model(local_path, week_page)
        elif state is FileState.MERGE_BOTH:
            LOGGER.info("Merging %s.", name)
            local = read_model(local_path, WeekPage)
            remote = self._parse_remote(remote_path, self._remote.download(remote_path))
            merged = integrate(local, remote)
            merged.uploaded_at = self._clock()
            write_model(local_path, merged)
            self._remote.upload(remote_path, merged.model_dump_json().encode("utf-8"))
        else:
            check_actionable(name, state)

    def _sync_image(self, name: str, state: FileState) -> None:
        local_path = self._store.image_dir / name
        remote_path = f"{self._images_folder}/{name}"

        if state is FileState.DOWNLOAD_NEW:
            LOGGER.info("Downloading %s.", name)
            write_bytes(local_path, self._remote.download(remote_path))
        elif state in (FileState.UPLOAD_NEW, FileState.MERGE_BOTH):
            # Images are never merged; the local copy replaces the remote one.
            LOGGER.info("Uploading %s.", name)
            self._remote.upload(remote_path, read_bytes(local_path))
        else:
            check_actionable(name, state)

    def _parse_remote(self, remote_path: str, content: bytes) -> WeekPage:
        try:
            return WeekPage.model_validate_json(content)
        except ValidationError as exc:
            raise StoreSerializationError(remote_path, "Invalid remote shard") from exc


__all__ = [
    "FileState",
    "Reconciler",
    "SyncReport",
    "check_actionable",
    "classify",
    "integrate",
    "PAGES_FOLDER",
    "IMAGES_FOLDER",
]
