"""Week-sharded page persistence for Diarist."""

from __future__ import annotations

import logging
import shutil
from datetime import date, datetime, time, timedelta, tzinfo
from pathlib import Path
from typing import Callable, Iterator, Optional

from .dirty import DIRTY_SET_FILENAME, DirtyTracker, FileKind
from .errors import (
    BackupError,
    InvariantViolation,
    MigrationError,
    SchemaVersionMismatch,
    StoreError,
    StoreIOError,
    StoreSerializationError,
)
from .models import DirtySet, Page, WeekPage, utc
from .shards import read_model, shard_filename, shard_paths, write_model

LOGGER = logging.getLogger(__name__)

PAGE_DIRNAME = "pages"
IMAGE_DIRNAME = "images"

PagePredicate = Callable[[Page], bool]


class ShardStore:
    """Read and write pages grouped into one JSON file per calendar week."""

    def __init__(self, root: Path, tracker: DirtyTracker | None = None) -> None:
        """Initialize the store.

        Args:
            root: Store root holding the page and image directories.
            tracker: Dirty tracker to notify on writes; one rooted at
                ``root`` is created when omitted.
        """
        self._root = root
        self._tracker = tracker or DirtyTracker(root)

    @property
    def root(self) -> Path:
        return self._root

    @property
    def tracker(self) -> DirtyTracker:
        return self._tracker

    @property
    def page_dir(self) -> Path:
        return self._root / PAGE_DIRNAME

    @property
    def image_dir(self) -> Path:
        return self._root / IMAGE_DIRNAME

    def initialize(self) -> Path:
        """Create the page and image directories if they are missing.

        Returns:
            Path: The store root.
        """
        self.page_dir.mkdir(parents=True, exist_ok=True)
        self.image_dir.mkdir(parents=True, exist_ok=True)
        return self._root

    # Shards -----------------------------------------------------------

    def shard_path(self, when: date | datetime) -> Path:
        """Return the shard path for the week containing ``when``."""
        return self.page_dir / shard_filename(when)

    def load_shard(self, filename: str) -> WeekPage:
        return read_model(self.page_dir / filename, WeekPage)

    def save_shard(self, filename: str, week_page: WeekPage) -> None:
        write_model(self.page_dir / filename, week_page)

    def write(self, page: Page) -> str:
        """Insert or replace ``page`` in the shard of its creation week.

        The page replaces an existing one with an identical ``created_at``;
        otherwise it is appended. The shard loses its upload stamp and is
        recorded as edited before being rewritten in full.

        Args:
            page: Page to persist.

        Returns:
            str: Filename of the shard that was written.
        """
        path = self.shard_path(page.created_at)
        week_page = read_model(path, WeekPage) if path.exists() else WeekPage()
        week_page.uploaded_at = None

        for position, existing in enumerate(week_page.pages):
            if existing.created_at == page.created_at:
                week_page.pages[position] = page
                break
        else:
            week_page.pages.append(page)

        self._tracker.record(FileKind.PAGE, path.name)
        write_model(path, week_page)
        LOGGER.debug("Wrote page %s to %s.", page.id, path.name)
        return path.name

    def write_image(self, source: Path, file_name: str) -> Path:
        """Copy an image into the store under ``file_name`` and mark it edited."""
        if not source.is_file():
            raise StoreIOError(source, "Image file does not exist")
        destination = self.image_dir / file_name
        self._tracker.record(FileKind.IMAGE, file_name)
        try:
            shutil.copyfile(source, destination)
        except OSError as exc:
            # A dirty entry must name a file that exists locally.
            if not destination.exists():
                self._tracker.discard(FileKind.IMAGE, file_name)
            raise StoreIOError(destination, f"Unable to copy image ({exc.strerror})") from exc
        return destination

    # Queries ----------------------------------------------------------

    def iter_pages(self) -> Iterator[Page]:
        """Yield pages newest first, loading one shard at a time."""
        for path in shard_paths(self.page_dir):
            week_page = read_model(path, WeekPage)
            yield from sorted(week_page.pages, key=lambda page: page.created_at, reverse=True)

    def list(self, limit: int) -> list[Page]:
        return self.list_with_filter(limit, lambda _: True)

    def list_with_filter(self, limit: int, predicate: PagePredicate) -> list[Page]:
        """Return up to ``limit`` pages matching ``predicate``, newest first.

        Shards past the one that fills the limit are never read.
        """
        pages: list[Page] = []
        if limit <= 0:
            return pages
        for page in self.iter_pages():
            if predicate(page):
                pages.append(page)
                if len(pages) >= limit:
                    break
        return pages

    def latest(self) -> Optional[Page]:
        pages = self.list(1)
        return pages[0] if pages else None

    def get_week_page_range(
        self, start: datetime, end: datetime, *, missing_ok: bool = False
    ) -> list[WeekPage]:
        """Load every shard touched by the span from ``start`` to ``end``.

        Stepping seven days from ``start`` can stop short of the week holding
        ``end``, so that shard is loaded separately when the loop missed it.

        Args:
            start: First moment of the span.
            end: Last moment of the span.
            missing_ok: Skip weeks that have no shard instead of failing.

        Raises:
            StoreIOError: If a shard in the span does not exist and
                ``missing_ok`` is false.
        """
        if start > end:
            return []

        day = utc(start).date()
        last_day = utc(end).date()
        week_pages: list[WeekPage] = []
        last_path: Path | None = None

        def _load(path: Path) -> None:
            if missing_ok and not path.exists():
                return
            week_pages.append(read_model(path, WeekPage))

        while day <= last_day:
            last_path = self.shard_path(day)
            _load(last_path)
            day += timedelta(days=7)

        end_path = self.shard_path(last_day)
        if end_path != last_path:
            _load(end_path)

        return week_pages

    def pages_on(self, day: date, tz: tzinfo) -> list[Page]:
        """Return pages created on the local calendar ``day`` in ``tz``."""
        start = datetime.combine(day, time.min, tzinfo=tz)
        week_pages = self.get_week_page_range(start, start + timedelta(days=1), missing_ok=True)
        return [
            page
            for week_page in week_pages
            for page in week_page.pages
            if page.created_at.astimezone(tz).date() == day
        ]


__all__ = [
    "ShardStore",
    "DirtyTracker",
    "FileKind",
    "DirtySet",
    "Page",
    "WeekPage",
    "PAGE_DIRNAME",
    "IMAGE_DIRNAME",
    "DIRTY_SET_FILENAME",
    "StoreError",
    "StoreIOError",
    "StoreSerializationError",
    "InvariantViolation",
    "BackupError",
    "MigrationError",
    "SchemaVersionMismatch",
]
