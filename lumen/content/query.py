"""Query options and view helpers for the content index.

- ``strip_markdown`` / ``truncate_excerpt`` build plain-text previews
- ``project`` narrows a view to a set of properties
- ``paginate`` slices a list into numbered pages
"""

import math
import re
from dataclasses import dataclass, field
from typing import Any

DEFAULT_PREVIEW_LENGTH = 300
RELATED_EXCERPT_LENGTH = 120

_CODE_FENCE = re.compile(r"```.*?```", re.S)
_INLINE_CODE = re.compile(r"`[^`\n]*`")
_IMAGE = re.compile(r"!\[([^\]]*)\]\([^)]*\)")
_LINK = re.compile(r"\[([^\]]*)\]\([^)]*\)")
_HEADING = re.compile(r"^#{1,6}\s*", re.M)
_BOLD = re.compile(r"(\*\*|__)(.*?)\1")
_ITALIC_STAR = re.compile(r"\*([^*\n]+)\*")
_ITALIC_UNDERSCORE = re.compile(r"\b_([^_\n]+)_\b")
_STRIKE = re.compile(r"~~(.*?)~~")
_BLOCKQUOTE = re.compile(r"^\s*>\s?", re.M)
_TABLE_ROW = re.compile(r"^\s*\|.*\|\s*$", re.M)
_HTML_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")


@dataclass
class QueryOptions:
    """Filters and shaping flags accepted by ``getPosts``/``getPages``."""

    status: str | None = None
    limit: int | None = None
    offset: int = 0
    tag: str | None = None
    category: str | None = None
    parent: str | None = None
    page_type: str | None = None
    summary_view: bool = False
    preview_length: int = DEFAULT_PREVIEW_LENGTH
    frontmatter_only: bool = False
    properties: list[str] | None = field(default=None)


@dataclass
class Pagination:
    current: int
    total_pages: int
    total_items: int
    per_page: int

    @property
    def has_prev(self) -> bool:
        return self.current > 1

    @property
    def has_next(self) -> bool:
        return self.current < self.total_pages

    def to_dict(self, base_url: str) -> dict[str, Any]:
        """Template-facing dict with prev/next URLs under ``base_url``."""
        base = base_url.rstrip("/")

        def url_for(page: int) -> str:
            return (base or "/") if page == 1 else f"{base}/page/{page}"

        return {
            "current": self.current,
            "totalPages": self.total_pages,
            "totalItems": self.total_items,
            "perPage": self.per_page,
            "prevUrl": url_for(self.current - 1) if self.has_prev else None,
            "nextUrl": url_for(self.current + 1) if self.has_next else None,
        }


def strip_markdown(text: str) -> str:
    """Reduce markdown to plain text.

    Headings and blockquote markers are dropped, emphasis is unwrapped,
    links keep their text, code blocks and inline code are removed entirely.
    """
    text = _CODE_FENCE.sub("", text or "")
    text = _INLINE_CODE.sub("", text)
    text = _IMAGE.sub("", text)
    text = _LINK.sub(r"\1", text)
    text = _HEADING.sub("", text)
    text = _BOLD.sub(r"\2", text)
    text = _ITALIC_STAR.sub(r"\1", text)
    text = _STRIKE.sub(r"\1", text)
    text = _ITALIC_UNDERSCORE.sub(r"\1", text)
    text = _BLOCKQUOTE.sub("", text)
    text = _TABLE_ROW.sub("", text)
    text = _HTML_TAG.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def truncate_excerpt(text: str, limit: int) -> str:
    """Truncate to ``limit`` chars, backing up to a word boundary.

    The cut moves back to the last space only when that space lies within the
    final 20% of the limit; an ellipsis is appended whenever text was cut.
    """
    if limit <= 0 or len(text) <= limit:
        return text
    cut = text[:limit]
    last_space = cut.rfind(" ")
    if last_space > limit * 0.8:
        cut = cut[:last_space]
    return cut.rstrip() + "..."


def summarize(body: str, limit: int = DEFAULT_PREVIEW_LENGTH) -> str:
    return truncate_excerpt(strip_markdown(body), limit)


def project(view: dict[str, Any], properties: list[str] | None) -> dict[str, Any]:
    """Keep only the named keys of a view (all keys when ``properties`` is empty)."""
    if not properties:
        return view
    return {key: view[key] for key in properties if key in view}


def paginate(items: list, page: int, per_page: int) -> tuple[list, Pagination]:
    """Slice ``items`` for 1-based ``page``.

    Raises:
        ValueError: If ``page`` is out of range.
    """
    per_page = max(1, per_page)
    total_pages = max(1, math.ceil(len(items) / per_page))
    if page < 1 or page > total_pages:
        raise ValueError(f"Page {page} out of range (1-{total_pages})")
    start = (page - 1) * per_page
    return items[start:start + per_page], Pagination(page, total_pages, len(items), per_page)
