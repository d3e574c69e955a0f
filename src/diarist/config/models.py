"""Configuration models describing Diarist settings."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from diarist.sync.remote import DEFAULT_API_URL, DEFAULT_CONTENT_URL


class DiaristBaseModel(BaseModel):
    """Shared configuration for Diarist settings models."""

    model_config = ConfigDict(extra="forbid")


class EditorSettings(DiaristBaseModel):
    """External editor used to compose pages.

    Attributes:
        command: Editor command; falls back to ``$VISUAL``/``$EDITOR`` when unset.
    """

    command: Optional[str] = None


class ListSettings(DiaristBaseModel):
    """Defaults for listing and search commands.

    Attributes:
        default_limit: Number of pages shown when ``--limit`` is omitted.
    """

    default_limit: int = Field(default=7, ge=0)


class RemoteSettings(DiaristBaseModel):
    """Remote store endpoints and layout.

    Attributes:
        api_url: Base URL for metadata calls.
        content_url: Base URL for upload and download calls.
        pages_folder: Remote folder holding shards.
        images_folder: Remote folder holding images.
        timeout_seconds: Per-request timeout.
    """

    api_url: str = DEFAULT_API_URL
    content_url: str = DEFAULT_CONTENT_URL
    pages_folder: str = "/pages"
    images_folder: str = "/images"
    timeout_seconds: float = Field(default=30.0, gt=0)


class LoggingSettings(DiaristBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
        max_size_mb: Maximum log size before rotation.
        backup_count: Number of historical log files to retain.
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    max_size_mb: int = Field(default=5, gt=0)
    backup_count: int = Field(default=3, ge=0)


class DiaristConfig(DiaristBaseModel):
    """Top-level configuration for Diarist."""

    editor: EditorSettings = Field(default_factory=EditorSettings)
    listing: ListSettings = Field(default_factory=ListSettings)
    remote: RemoteSettings = Field(default_factory=RemoteSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


__all__ = [
    "DiaristBaseModel",
    "EditorSettings",
    "ListSettings",
    "RemoteSettings",
    "LoggingSettings",
    "DiaristConfig",
]
