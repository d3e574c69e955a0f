"""Dropbox client tests with a patched HTTP session."""

from __future__ import annotations

import json
from unittest.mock import Mock, patch

import pytest
import requests

from diarist.sync.remote import DEFAULT_API_URL, DEFAULT_CONTENT_URL, DropboxClient, RemoteError


def _response(status: int = 200, payload: object | None = None, content: bytes = b"") -> Mock:
    response = Mock()
    response.status_code = status
    response.ok = 200 <= status < 300
    response.reason = "reason"
    response.content = content
    response.text = json.dumps(payload) if payload is not None else content.decode()
    if payload is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = payload
    return response


@pytest.fixture
def session() -> requests.Session:
    return requests.Session()


def test_client_sets_bearer_header(session: requests.Session) -> None:
    DropboxClient(" secret\n", session=session)

    assert session.headers["Authorization"] == "Bearer secret"


def test_list_files_follows_cursor(session: requests.Session) -> None:
    first = {
        "entries": [
            {".tag": "file", "name": "a.json", "client_modified": "2024-03-06T10:00:00Z"},
            {".tag": "folder", "name": "nested"},
        ],
        "has_more": True,
        "cursor": "c1",
    }
    second = {"entries": [{".tag": "file", "name": "b.json"}], "has_more": False}

    with patch.object(session, "post", side_effect=[_response(payload=first), _response(payload=second)]) as post:
        files = DropboxClient("t", session=session).list_files("/pages")

    assert [entry.name for entry in files] == ["a.json", "b.json"]
    assert files[0].modified_time is not None
    assert post.call_args_list[0].args[0] == f"{DEFAULT_API_URL}/files/list_folder"
    assert post.call_args_list[0].kwargs["json"] == {"path": "/pages"}
    assert post.call_args_list[1].kwargs["json"] == {"cursor": "c1"}


def test_download_returns_body(session: requests.Session) -> None:
    with patch.object(session, "post", return_value=_response(content=b"data")) as post:
        content = DropboxClient("t", session=session).download("/pages/a.json")

    assert content == b"data"
    assert post.call_args.args[0] == f"{DEFAULT_CONTENT_URL}/files/download"
    assert json.loads(post.call_args.kwargs["headers"]["Dropbox-API-Arg"]) == {
        "path": "/pages/a.json"
    }


def test_upload_overwrites(session: requests.Session) -> None:
    payload = {"name": "a.json", "client_modified": "2024-03-06T10:00:00Z"}
    with patch.object(session, "post", return_value=_response(payload=payload)) as post:
        info = DropboxClient("t", session=session).upload("/pages/a.json", b"{}")

    assert info.name == "a.json"
    kwargs = post.call_args.kwargs
    assert kwargs["data"] == b"{}"
    assert kwargs["headers"]["Content-Type"] == "application/octet-stream"
    assert json.loads(kwargs["headers"]["Dropbox-API-Arg"]) == {
        "path": "/pages/a.json",
        "mode": "overwrite",
    }


def test_create_folder_ignores_existing_folder(session: requests.Session) -> None:
    payload = {"error_summary": "path/conflict/folder/...", "error": {".tag": "path"}}
    with patch.object(session, "post", return_value=_response(409, payload=payload)):
        DropboxClient("t", session=session).create_folder("/pages")


@pytest.mark.parametrize(
    "summary", ["path/no_write_permission/..", "path/insufficient_space/..", None]
)
def test_create_folder_propagates_other_endpoint_errors(
    session: requests.Session, summary: str | None
) -> None:
    payload = {"error_summary": summary} if summary is not None else {"error": "unknown"}
    with patch.object(session, "post", return_value=_response(409, payload=payload)):
        with pytest.raises(RemoteError) as excinfo:
            DropboxClient("t", session=session).create_folder("/pages")

    assert excinfo.value.status == 409
    assert excinfo.value.summary == summary


def test_create_folder_propagates_other_errors(session: requests.Session) -> None:
    with patch.object(session, "post", return_value=_response(401, payload={"error": "auth"})):
        with pytest.raises(RemoteError) as excinfo:
            DropboxClient("t", session=session).create_folder("/pages")

    assert excinfo.value.status == 401


def test_network_error_becomes_remote_error(session: requests.Session) -> None:
    with patch.object(session, "post", side_effect=requests.ConnectionError("down")):
        with pytest.raises(RemoteError):
            DropboxClient("t", session=session).download("/pages/a.json")


def test_malformed_listing_is_rejected(session: requests.Session) -> None:
    with patch.object(session, "post", return_value=_response(payload={"unexpected": []})):
        with pytest.raises(RemoteError):
            DropboxClient("t", session=session).list_files("/pages")
