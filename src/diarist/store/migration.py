"""Page format versioning and one-shot upgrades."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Callable, Dict, Tuple

from .errors import MigrationError, SchemaVersionMismatch, StoreIOError, StoreSerializationError
from .models import Page, WeekPage, WeekPageV1
from .shards import read_model, shard_paths, write_model

LOGGER = logging.getLogger(__name__)

CURRENT_PAGE_VERSION = 2
PAGE_VERSION_FILENAME = "page_version"


class VersionMarker:
    """Plain-text file holding the on-disk page format version."""

    def __init__(self, root: Path) -> None:
        self._path = root / PAGE_VERSION_FILENAME

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> int:
        """Return the stored version, stamping a fresh store as current."""
        if not self._path.exists():
            self.write(CURRENT_PAGE_VERSION)
            return CURRENT_PAGE_VERSION
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StoreIOError(self._path, f"Unable to read version ({exc.strerror})") from exc
        try:
            return int(raw.strip())
        except ValueError as exc:
            raise StoreSerializationError(self._path, "Version is not a number") from exc

    def write(self, version: int) -> None:
        try:
            self._path.write_text(str(version), encoding="utf-8")
        except OSError as exc:
            raise StoreIOError(self._path, f"Unable to write version ({exc.strerror})") from exc


def require_current(marker: VersionMarker) -> int:
    """Refuse to continue unless the stored version is the supported one.

    Raises:
        SchemaVersionMismatch: If the versions differ.
    """
    stored = marker.read()
    if stored != CURRENT_PAGE_VERSION:
        raise SchemaVersionMismatch(stored, CURRENT_PAGE_VERSION)
    return stored


def upgrade_v1_to_v2(week_page: WeekPageV1) -> WeekPage:
    """Give every page a newly generated id.

    Running this twice on the same input yields different ids.
    """
    return WeekPage(
        pages=[
            Page(
                id=str(uuid.uuid4()),
                title=old.title,
                text=old.text,
                hidden=old.hidden,
                created_at=old.created_at,
                updated_at=old.updated_at,
            )
            for old in week_page.pages
        ],
        uploaded_at=week_page.uploaded_at,
    )


ShardUpgrade = Callable[[Path], None]


def _rewrite_v1_as_v2(path: Path) -> None:
    old = read_model(path, WeekPageV1)
    write_model(path, upgrade_v1_to_v2(old))


class SchemaMigrator:
    """Rewrite every shard of a page directory from one format to the next.

    The migrator does not check whether it already ran; callers gate it on
    the stored version.
    """

    _upgrades: Dict[Tuple[int, int], ShardUpgrade] = {
        (1, 2): _rewrite_v1_as_v2,
    }

    def __init__(self, page_dir: Path) -> None:
        self._page_dir = page_dir

    def migrate(self, from_version: int, to_version: int) -> bool:
        """Upgrade all shards between the given versions.

        Returns:
            bool: False when the versions already match and nothing ran.

        Raises:
            MigrationError: If no upgrade exists for the transition.
        """
        if from_version == to_version:
            return False
        upgrade = self._upgrades.get((from_version, to_version))
        if upgrade is None:
            raise MigrationError(
                f"No migration from page format {from_version} to {to_version}"
            )
        paths = shard_paths(self._page_dir)
        for path in paths:
            upgrade(path)
        LOGGER.info(
            "Migrated %d shards from version %d to %d.", len(paths), from_version, to_version
        )
        return True


__all__ = [
    "CURRENT_PAGE_VERSION",
    "PAGE_VERSION_FILENAME",
    "VersionMarker",
    "SchemaMigrator",
    "require_current",
    "upgrade_v1_to_v2",
]
