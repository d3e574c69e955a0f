"""HTTP client for the remote object store.

The reconciler depends only on the :class:`RemoteStore` protocol; the
Dropbox implementation below speaks the v2 HTTP API with a static bearer
token and never retries.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

import requests
from pydantic import BaseModel, ValidationError

from diarist.store.errors import StoreError

LOGGER = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.dropboxapi.com/2"
DEFAULT_CONTENT_URL = "https://content.dropboxapi.com/2"

# Dropbox reports endpoint errors as HTTP 409 with a slash-separated summary.
CONFLICT_SUMMARY = "path/conflict"


class RemoteError(StoreError):
    """Raised when a remote call fails or returns an unexpected payload."""

    def __init__(
        self,
        operation: str,
        path: str,
        detail: str,
        status: Optional[int] = None,
        summary: Optional[str] = None,
    ):
        status_note = f" (HTTP {status})" if status is not None else ""
        super().__init__(f"Remote {operation} failed for {path}{status_note}: {detail}")
        self.operation = operation
        self.path = path
        self.status = status
        self.summary = summary


class RemoteFile(BaseModel):
    """Metadata of a remote file entry."""

    name: str
    modified_time: Optional[datetime] = None


class RemoteStore(Protocol):
    """Primitives the reconciler needs from a remote store."""

    def list_files(self, folder: str) -> List[RemoteFile]: ...

    def download(self, path: str) -> bytes: ...

    def upload(self, path: str, content: bytes) -> RemoteFile: ...

    def create_folder(self, path: str) -> None: ...


def _entry_to_file(entry: Dict[str, Any]) -> RemoteFile:
    return RemoteFile(name=entry["name"], modified_time=entry.get("client_modified"))


def _error_summary(response: requests.Response) -> Optional[str]:
    try:
        payload = response.json()
    except ValueError:
        return None
    if isinstance(payload, dict) and isinstance(payload.get("error_summary"), str):
        return payload["error_summary"]
    return None


class DropboxClient:
    """Thin Dropbox API v2 wrapper translating failures into :class:`RemoteError`."""

    def __init__(
        self,
        token: str,
        *,
        session: requests.Session | None = None,
        timeout: float = 30.0,
        api_url: str = DEFAULT_API_URL,
        content_url: str = DEFAULT_CONTENT_URL,
    ) -> None:
        self._session = session or requests.Session()
        self._session.headers["Authorization"] = f"Bearer {token.strip()}"
        self._timeout = timeout
        self._api_url = api_url.rstrip("/")
        self._content_url = content_url.rstrip("/")

    def list_files(self, folder: str) -> List[RemoteFile]:
        """Return the files directly inside ``folder``, following pagination."""
        payload = self._rpc("list_folder", folder, "files/list_folder", {"path": folder})
        files: List[RemoteFile] = []
        while True:
            try:
                entries = payload["entries"]
                files.extend(
                    _entry_to_file(entry) for entry in entries if entry.get(".tag", "file") == "file"
                )
                if not payload.get("has_more"):
                    break
                cursor = payload["cursor"]
            except (KeyError, TypeError, ValidationError) as exc:
                raise RemoteError("list_folder", folder, f"malformed response ({exc})") from exc
            payload = self._rpc(
                "list_folder", folder, "files/list_folder/continue", {"cursor": cursor}
            )
        return files

    def download(self, path: str) -> bytes:
        response = self._content("download", path, "files/download", {"path": path})
        return response.content

    def upload(self, path: str, content: bytes) -> RemoteFile:
        response = self._content(
            "upload",
            path,
            "files/upload",
            {"path": path, "mode": "overwrite"},
            data=content,
        )
        try:
            return _entry_to_file(response.json())
        except (ValueError, KeyError, TypeError, ValidationError) as exc:
            raise RemoteError("upload", path, f"malformed response ({exc})") from exc

    def create_folder(self, path: str) -> None:
        """Create ``path`` unless it already exists."""
        try:
            self._rpc("create_folder", path, "files/create_folder_v2", {"path": path})
        except RemoteError as exc:
            if exc.status != 409 or not (exc.summary or "").startswith(CONFLICT_SUMMARY):
                raise
            LOGGER.debug("Remote folder %s already exists.", path)

    # Internal helpers -------------------------------------------------

    def _rpc(self, operation: str, path: str, endpoint: str, body: Dict[str, Any]) -> Dict[str, Any]:
        response = self._send(
            operation, path, f"{self._api_url}/{endpoint}", json=body
        )
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteError(operation, path, "response is not JSON") from exc

    def _content(
        self,
        operation: str,
        path: str,
        endpoint: str,
        argument: Dict[str, Any],
        *,
        data: bytes | None = None,
    ) -> requests.Response:
        headers = {"Dropbox-API-Arg": json.dumps(argument)}
        if data is not None:
            headers["Content-Type"] = "application/octet-stream"
        return self._send(
            operation, path, f"{self._content_url}/{endpoint}", headers=headers, data=data
        )

    def _send(self, operation: str, path: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            response = self._session.post(url, timeout=self._timeout, **kwargs)
        except requests.RequestException as exc:
            raise RemoteError(operation, path, str(exc)) from exc
        if not response.ok:
            raise RemoteError(
                operation,
                path,
                response.text[:200] or response.reason,
                status=response.status_code,
                summary=_error_summary(response),
            )
        return response


__all__ = [
    "RemoteError",
    "RemoteFile",
    "RemoteStore",
    "DropboxClient",
    "DEFAULT_API_URL",
    "DEFAULT_CONTENT_URL",
]
