"""Slug helpers."""

import re

_WHITESPACE = re.compile(r"\s+")
_NON_WORD = re.compile(r"[^\w-]+")
_DASHES = re.compile(r"-{2,}")


def slugify(text: str) -> str:
    """Turn a title into a URL-safe slug.

    >>> slugify("Hello World & Friends!")
    'hello-world-and-friends'
    """
    slug = str(text or "").lower().strip()
    slug = _WHITESPACE.sub("-", slug)
    slug = slug.replace("&", "-and-")
    slug = _NON_WORD.sub("", slug)
    slug = _DASHES.sub("-", slug)
    return slug.strip("-")
