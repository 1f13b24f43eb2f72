"""Markdown-with-frontmatter codec.

Reading goes through python-frontmatter and stays permissive. Writing uses a
dedicated YAML dumper so that:
- ``id`` and purely numeric strings are always double-quoted,
- lists of scalars are written inline (``tags: [a, b]``),
- lists of mappings are written as block sequences,
- keys keep their declared order.
"""

import logging
import re
from pathlib import Path
from typing import Any

import frontmatter
import yaml

from lumen.content.models import ContentItem, Kind
from lumen.errors import ValidationFailed

logger = logging.getLogger(__name__)

_NUMERIC = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")


class FrontmatterError(ValueError):
    """A markdown file could not be parsed into a content item."""


class QuotedString(str):
    """String that is always emitted double-quoted."""


class FrontmatterDumper(yaml.SafeDumper):
    pass


def _represent_str(dumper: yaml.SafeDumper, value: str) -> yaml.Node:
    if _NUMERIC.match(value):
        return dumper.represent_scalar("tag:yaml.org,2002:str", value, style='"')
    if "\n" in value:
        return dumper.represent_scalar("tag:yaml.org,2002:str", value, style="|")
    return dumper.represent_str(value)


def _represent_quoted(dumper: yaml.SafeDumper, value: QuotedString) -> yaml.Node:
    return dumper.represent_scalar("tag:yaml.org,2002:str", str(value), style='"')


def _represent_list(dumper: yaml.SafeDumper, value: list) -> yaml.Node:
    inline = all(not isinstance(v, (dict, list)) for v in value)
    return dumper.represent_sequence("tag:yaml.org,2002:seq", value, flow_style=inline)


FrontmatterDumper.add_representer(str, _represent_str)
FrontmatterDumper.add_representer(QuotedString, _represent_quoted)
FrontmatterDumper.add_representer(list, _represent_list)


def dump_metadata(meta: dict[str, Any]) -> str:
    """Serialize a frontmatter mapping to YAML text."""
    data = dict(meta)
    if "id" in data:
        data["id"] = QuotedString(data["id"])
    return yaml.dump(
        data,
        Dumper=FrontmatterDumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=1000,
    )


def serialize(item: ContentItem) -> str:
    """Render an item as a complete markdown file."""
    text = f"---\n{dump_metadata(item.frontmatter())}---\n"
    if item.body:
        text += f"\n{item.body}\n"
    return text


def parse(text: str, kind: Kind | str, fallback_slug: str | None = None) -> ContentItem:
    """Parse markdown file text into a content item.

    Args:
        text: Full file contents.
        kind: Kind of the directory the file was read from.
        fallback_slug: Slug to use when the frontmatter has none (the file stem).

    Raises:
        FrontmatterError: If the YAML is malformed or the item has no id.
    """
    try:
        post = frontmatter.loads(text)
    except yaml.YAMLError as e:
        raise FrontmatterError(f"Malformed frontmatter: {e}") from e

    meta = dict(post.metadata)
    if not meta.get("id"):
        raise FrontmatterError("Frontmatter has no id")
    if not meta.get("slug") and fallback_slug:
        meta["slug"] = fallback_slug
    if not meta.get("slug"):
        raise FrontmatterError("Frontmatter has no slug")

    try:
        return ContentItem.from_fields(kind, meta, body=post.content)
    except ValidationFailed as e:
        raise FrontmatterError(f"{e.message}: {e.errors}") from e


def read_file(path: Path, kind: Kind | str) -> ContentItem:
    """Read and parse a single ``.md`` file."""
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise FrontmatterError(f"Unreadable file: {e}") from e
    return parse(text, kind, fallback_slug=path.stem)
