"""Page and shard data models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


def utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime, treating naive values as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoreModel(BaseModel):
    """Shared configuration for on-disk models."""

    model_config = ConfigDict(extra="forbid")


class Page(StoreModel):
    """A single journal entry.

    Attributes:
        id: Stable identifier assigned once at creation.
        title: First line of the entry.
        text: Markdown body, possibly embedding image references.
        hidden: Whether listings should skip the page.
        created_at: Creation time; decides which shard holds the page.
        updated_at: Append-only history of edit times.
    """

    id: str
    title: str
    text: str
    hidden: bool = False
    created_at: datetime
    updated_at: List[datetime] = Field(min_length=1)

    @field_validator("created_at")
    @classmethod
    def _created_utc(cls, value: datetime) -> datetime:
        return utc(value)

    @field_validator("updated_at")
    @classmethod
    def _updated_utc(cls, value: List[datetime]) -> List[datetime]:
        return [utc(item) for item in value]

    @classmethod
    def create(
        cls,
        title: str,
        text: str,
        *,
        hidden: bool = False,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ) -> "Page":
        """Build a new page with a fresh id and a single edit entry."""
        created = created_at or utcnow()
        return cls(
            id=str(uuid.uuid4()),
            title=title,
            text=text,
            hidden=hidden,
            created_at=created,
            updated_at=[updated_at or utcnow()],
        )

    def amend(self, title: str, text: str, at: datetime | None = None) -> "Page":
        """Return a copy with replaced content and ``at`` appended to the history."""
        return self.model_copy(
            update={
                "title": title,
                "text": text,
                "updated_at": [*self.updated_at, utc(at or utcnow())],
            }
        )


class WeekPage(StoreModel):
    """All pages created within one Sunday to Saturday week."""

    pages: List[Page] = Field(default_factory=list)
    uploaded_at: Optional[datetime] = None

    @field_validator("uploaded_at")
    @classmethod
    def _uploaded_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return utc(value) if value is not None else None


class PageV1(StoreModel):
    """Page layout of format version 1, before pages carried an id."""

    title: str
    text: str
    hidden: bool = False
    created_at: datetime
    updated_at: List[datetime] = Field(min_length=1)


class WeekPageV1(StoreModel):
    """Shard layout of format version 1."""

    pages: List[PageV1] = Field(default_factory=list)
    uploaded_at: Optional[datetime] = None


class DirtySet(StoreModel):
    """Files changed locally since the last successful sync."""

    page_files: Set[str] = Field(default_factory=set)
    image_files: Set[str] = Field(default_factory=set)

    @field_serializer("page_files", "image_files")
    def _sorted(self, value: Set[str]) -> List[str]:
        return sorted(value)

    def clear(self) -> None:
        self.page_files.clear()
        self.image_files.clear()

    def is_empty(self) -> bool:
        return not self.page_files and not self.image_files


__all__ = [
    "Page",
    "WeekPage",
    "PageV1",
    "WeekPageV1",
    "DirtySet",
    "utc",
    "utcnow",
]
