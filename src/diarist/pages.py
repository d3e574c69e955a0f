"""Conversion between editor text and page fields."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from diarist.store.models import Page

_IMAGE_PATTERN = re.compile(r"!\[(?P<alt>[^\]]*)\]\((?P<target>[^)\s]+)\)")


class PageParseError(ValueError):
    """Raised when edited text cannot become a page."""


class PageCancelled(PageParseError):
    """Raised when the editor buffer was left empty."""


class EmptyTitle(PageParseError):
    """Raised when the first line of the buffer is blank."""


@dataclass(slots=True)
class ParsedPage:
    """Fields extracted from an editor buffer.

    Attributes:
        title: Trimmed first line.
        text: Trimmed remainder with image references rewritten.
        images: Pairs of source path and stored file name to copy in.
    """

    title: str
    text: str
    images: list[tuple[Path, str]] = field(default_factory=list)


def image_prefix(created_at: datetime) -> str:
    """Return the file-name prefix shared by all images of a page."""
    return created_at.strftime("%Y-%m-%d_%H-%M-%S-%f_")


def _rewrite_images(text: str, prefix: str) -> tuple[str, list[tuple[Path, str]]]:
    images: list[tuple[Path, str]] = []

    def _replace(match: re.Match[str]) -> str:
        target = match.group("target")
        if "://" in target or target.startswith(prefix):
            return match.group(0)
        source = Path(target).expanduser()
        stored = f"{prefix}{source.name}"
        images.append((source, stored))
        return f"![{match.group('alt')}]({stored})"

    return _IMAGE_PATTERN.sub(_replace, text), images


def parse_page(raw: str, prefix: str) -> ParsedPage:
    """Split an editor buffer into title and body.

    Local image references are renamed to ``prefix`` plus their base name
    and reported so the caller can copy them into the store.

    Raises:
        PageCancelled: If the buffer is blank.
        EmptyTitle: If the first line is blank.
    """
    if not raw.strip():
        raise PageCancelled("Cancelled; the page was left empty.")

    first_line, _, rest = raw.partition("\n")
    title = first_line.strip()
    if not title:
        raise EmptyTitle("The title (first line) is empty.")

    text, images = _rewrite_images(rest.strip(), prefix)
    return ParsedPage(title=title, text=text, images=images)


def render_editable(page: Page) -> str:
    return f"{page.title}\n\n{page.text}"


__all__ = [
    "ParsedPage",
    "PageParseError",
    "PageCancelled",
    "EmptyTitle",
    "image_prefix",
    "parse_page",
    "render_editable",
]
