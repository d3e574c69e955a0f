"""Sync orchestration between the local store and the remote store."""

from __future__ import annotations

import logging

from diarist.store.backup import BackupManager
from diarist.store.errors import BackupError

from .reconciler import (
    IMAGES_FOLDER,
    PAGES_FOLDER,
    FileState,
    Reconciler,
    SyncReport,
    check_actionable,
    classify,
    integrate,
)
from .remote import DropboxClient, RemoteError, RemoteFile, RemoteStore

LOGGER = logging.getLogger(__name__)


def run_sync(reconciler: Reconciler, backups: BackupManager) -> SyncReport:
    """Run ``reconciler`` inside a backup snapshot of the page directory.

    The snapshot is discarded on success. On any failure the page directory
    is restored from it before the original error propagates.

    Raises:
        BackupError: If restoring the snapshot fails as well.
    """
    backup_id = backups.begin()
    try:
        report = reconciler.run()
    except Exception as exc:
        LOGGER.error("Sync failed, rolling back: %s", exc)
        try:
            backups.rollback(backup_id)
        except BackupError as rollback_exc:
            raise BackupError(
                f"{rollback_exc} (while recovering from: {exc})"
            ) from rollback_exc
        raise
    backups.commit(backup_id)
    return report


__all__ = [
    "run_sync",
    "Reconciler",
    "SyncReport",
    "FileState",
    "check_actionable",
    "classify",
    "integrate",
    "DropboxClient",
    "RemoteError",
    "RemoteFile",
    "RemoteStore",
    "PAGES_FOLDER",
    "IMAGES_FOLDER",
]
