"""Week arithmetic and whole-file JSON persistence for shards."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Type, TypeVar

from pydantic import BaseModel, ValidationError

from .errors import StoreIOError, StoreSerializationError
from .models import utc

ModelT = TypeVar("ModelT", bound=BaseModel)

SHARD_SUFFIX = ".json"


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return utc(value).date()
    return value


def week_bounds(day: date | datetime) -> tuple[date, date]:
    """Return the Sunday and Saturday enclosing ``day``.

    Datetimes are converted to UTC before the calendar date is taken.
    """
    current = _as_date(day)
    since_sunday = (current.weekday() + 1) % 7
    begin = current - timedelta(days=since_sunday)
    return begin, begin + timedelta(days=6)


def shard_filename(day: date | datetime) -> str:
    """Return the shard filename for the week containing ``day``.

    Examples:
        >>> shard_filename(date(2024, 3, 6))
        '2024-03-03-2024-03-09.json'
    """
    begin, end = week_bounds(day)
    return f"{begin:%Y-%m-%d}-{end:%Y-%m-%d}{SHARD_SUFFIX}"


def read_model(path: Path, model: Type[ModelT]) -> ModelT:
    """Load ``path`` and validate it against ``model``.

    Raises:
        StoreIOError: If the file is missing or unreadable.
        StoreSerializationError: If the content does not match ``model``.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise StoreIOError(path, "File does not exist") from exc
    except OSError as exc:
        raise StoreIOError(path, f"Unable to read file ({exc.strerror})") from exc

    try:
        return model.model_validate_json(raw)
    except ValidationError as exc:
        raise StoreSerializationError(
            path, f"Invalid {model.__name__} data ({exc.error_count()} errors)"
        ) from exc


def write_model(path: Path, value: BaseModel) -> None:
    """Replace ``path`` with the JSON form of ``value``."""
    write_bytes(path, value.model_dump_json().encode("utf-8"))


def write_bytes(path: Path, content: bytes) -> None:
    try:
        path.write_bytes(content)
    except OSError as exc:
        raise StoreIOError(path, f"Unable to write file ({exc.strerror})") from exc


def read_bytes(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except FileNotFoundError as exc:
        raise StoreIOError(path, "File does not exist") from exc
    except OSError as exc:
        raise StoreIOError(path, f"Unable to read file ({exc.strerror})") from exc


def shard_paths(directory: Path) -> list[Path]:
    """Return shard files in ``directory`` sorted newest week first."""
    try:
        entries = [entry for entry in directory.iterdir() if entry.is_file()]
    except OSError as exc:
        raise StoreIOError(directory, f"Unable to list directory ({exc.strerror})") from exc
    return sorted(entries, key=lambda entry: entry.name, reverse=True)


__all__ = [
    "SHARD_SUFFIX",
    "week_bounds",
    "shard_filename",
    "read_model",
    "write_model",
    "read_bytes",
    "write_bytes",
    "shard_paths",
]
