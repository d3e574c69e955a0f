"""Store errors."""

from __future__ import annotations

from pathlib import Path


class StoreError(Exception):
    """Base exception for page store operations."""


class StoreIOError(StoreError):
    """Raised when a store file cannot be read, written, or found."""

    def __init__(self, path: Path | str, message: str) -> None:
        super().__init__(f"{message}: {path}")
        self.path = Path(path)


class StoreSerializationError(StoreError):
    """Raised when a store document is malformed or uses another schema."""

    def __init__(self, path: Path | str, message: str) -> None:
        super().__init__(f"{message}: {path}")
        self.path = Path(path)


class InvariantViolation(StoreError):
    """Raised when on-disk state contradicts the dirty-tracking invariants."""


class BackupError(StoreError):
    """Raised when a backup snapshot cannot be restored or discarded."""


class MigrationError(StoreError):
    """Raised when no upgrade path exists between two schema versions."""


class SchemaVersionMismatch(StoreError):
    """Raised when the stored schema version differs from the supported one."""

    def __init__(self, stored: int, expected: int) -> None:
        super().__init__(
            f"Stored page format version {stored} does not match version {expected}; "
            "run `diarist fixpage` first."
        )
        self.stored = stored
        self.expected = expected
