"""Shared fixtures for store and sync tests."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from diarist.store import Page, ShardStore
from diarist.sync.remote import RemoteError, RemoteFile


class FakeRemote:
    """In-memory remote store recording every call."""

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self.folders: set[str] = set()
        self.calls: list[tuple[str, str]] = []
        self.fail_on: set[tuple[str, str]] = set()

    def _check(self, operation: str, path: str) -> None:
        self.calls.append((operation, path))
        if (operation, path) in self.fail_on:
            raise RemoteError(operation, path, "simulated failure", status=500)

    def list_files(self, folder: str) -> list[RemoteFile]:
        self._check("list", folder)
        prefix = folder.rstrip("/") + "/"
        return [
            RemoteFile(name=path[len(prefix) :])
            for path in sorted(self.files)
            if path.startswith(prefix)
        ]

    def download(self, path: str) -> bytes:
        self._check("download", path)
        return self.files[path]

    def upload(self, path: str, content: bytes) -> RemoteFile:
        self._check("upload", path)
        self.files[path] = content
        return RemoteFile(name=path.rsplit("/", 1)[-1], modified_time=datetime.now(timezone.utc))

    def create_folder(self, path: str) -> None:
        self._check("create_folder", path)
        self.folders.add(path)


def make_page(
    title: str,
    created_at: datetime,
    *,
    text: str = "body",
    hidden: bool = False,
    page_id: str | None = None,
) -> Page:
    """Return a page with deterministic timestamps."""
    page = Page.create(title, text, hidden=hidden, created_at=created_at, updated_at=created_at)
    if page_id is not None:
        page = page.model_copy(update={"id": page_id})
    return page


@pytest.fixture
def store(tmp_path: Path) -> ShardStore:
    """Return an initialized store rooted in a temporary directory."""
    shard_store = ShardStore(tmp_path / "store")
    shard_store.initialize()
    return shard_store


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()
