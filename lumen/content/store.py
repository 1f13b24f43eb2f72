"""Frontmatter store: content items persisted as ``<slug>.md`` files.

Layout under the data root:
- ``posts/<slug>.md``
- ``pages/<slug>.md`` (normal pages)
- ``custom/<slug>.md`` (custom pages)

Writers of one kind are serialized with an ``asyncio.Lock``. Every mutation
writes through a temp file and ``os.replace``; a move (slug or pageType
change) writes the new file before removing the old one. Listeners (the
content index) are notified synchronously right after the write completes.
The store assumes it is the only process writing to the data directory.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Callable

from pydantic.alias_generators import to_camel

from lumen.content.frontmatter import FrontmatterError, read_file, serialize
from lumen.content.models import (
    DEFAULT_TITLES,
    MAX_RELATED_POSTS,
    ContentItem,
    Kind,
    PageType,
    Status,
    field_alias,
    now_iso,
)
from lumen.content.slugs import slugify
from lumen.errors import DuplicateSlug, NotFound, ValidationFailed
from lumen.hooks import HookBus
from lumen.storage import write_text_atomic

logger = logging.getLogger(__name__)

KIND_DIRS = {
    Kind.POST: ("posts",),
    Kind.PAGE: ("pages", "custom"),
}

# Fields the server owns; patches cannot set them directly.
READ_ONLY_FIELDS = {"id", "createdAt", "created_at", "updatedAt", "updated_at", "kind", "type"}


class FrontmatterStore:
    """Reads and writes content items of both kinds."""

    def __init__(self, data_dir: Path, hooks: HookBus | None = None):
        self.data_dir = Path(data_dir)
        self.hooks = hooks
        self._locks = {kind: asyncio.Lock() for kind in Kind}
        self._listeners: list[Callable[[], None]] = []
        self._last_id = 0

    def ensure_dirs(self) -> None:
        for dirs in KIND_DIRS.values():
            for name in dirs:
                (self.data_dir / name).mkdir(parents=True, exist_ok=True)

    def add_listener(self, callback: Callable[[], None]) -> None:
        """Register a callback run after every successful mutation."""
        self._listeners.append(callback)

    # --- Reads ---

    def files(self, kind: Kind | str) -> list[Path]:
        kind = Kind(kind)
        paths = []
        for name in KIND_DIRS[kind]:
            directory = self.data_dir / name
            if directory.is_dir():
                paths.extend(sorted(directory.glob("*.md")))
        return paths

    def list(self, kind: Kind | str) -> list[ContentItem]:
        """Parse every file of ``kind``; unreadable files are skipped with a warning."""
        items = []
        for path in self.files(kind):
            try:
                items.append(read_file(path, kind))
            except FrontmatterError as e:
                logger.warning(f"Skipping {path}: {e}")
        return items

    def get(self, kind: Kind | str, item_id: str) -> ContentItem | None:
        found = self._locate(Kind(kind), item_id)
        return found[1] if found else None

    def get_by_property(self, kind: Kind | str, key: str, value: Any) -> ContentItem | None:
        """First item whose ``key`` (typed field or extra) equals ``value``."""
        attr = field_alias(key)
        for item in self.list(kind):
            current = getattr(item, attr) if attr else item.extra.get(key)
            if current == value:
                return item
        return None

    # --- Writes ---

    async def create(self, kind: Kind | str, fields: dict[str, Any], overwrite: bool = False) -> ContentItem:
        """Create a new item.

        Args:
            kind: post or page.
            fields: Frontmatter fields plus optional ``body``/``content``.
            overwrite: Replace an existing item with the same slug instead of failing.

        Raises:
            DuplicateSlug: If the slug is taken and ``overwrite`` is false.
            ValidationFailed: If a field is invalid or the parent chain is cyclic.
        """
        kind = Kind(kind)
        async with self._locks[kind]:
            data = normalize_fields(fields)
            now = now_iso()
            data["title"] = data.get("title") or DEFAULT_TITLES[kind.value]
            data["slug"] = slugify(data.get("slug") or data["title"])
            if not data["slug"]:
                raise ValidationFailed("Slug cannot be empty", errors={"slug": "Slug cannot be empty"})
            data.setdefault("status", Status.DRAFT.value)
            data.setdefault("author", "admin")
            data.setdefault("subtitle", "")
            data.setdefault("seoDescription", "")
            if kind == Kind.PAGE:
                data["pageType"] = data.get("pageType") or PageType.NORMAL.value
            data.update(id=self._new_id(), createdAt=now, updatedAt=now)

            item = self._build(kind, data)
            self._validate(item)
            target = self._path_for(item)
            self._claim_slug(item, target, overwrite)
            write_text_atomic(target, serialize(item))
            self._notify()

        logger.info(f"Created {kind.value} {item.id} ({item.slug})")
        await self._fire(item, "create")
        return item

    async def update(
        self, kind: Kind | str, item_id: str, patch: dict[str, Any], overwrite: bool = False
    ) -> ContentItem:
        """Merge ``patch`` into an existing item, moving its file if needed.

        Raises:
            NotFound: If no item of ``kind`` has ``item_id``.
            DuplicateSlug: If the new slug is taken and ``overwrite`` is false.
            ValidationFailed: If a field is invalid or the parent chain is cyclic.
        """
        kind = Kind(kind)
        async with self._locks[kind]:
            found = self._locate(kind, item_id)
            if not found:
                raise NotFound(f"{kind.value.capitalize()} not found")
            old_path, current = found

            changes = normalize_fields(patch)
            data = {**current.frontmatter(), "body": current.body, **changes}

            if changes.get("slug"):
                data["slug"] = slugify(changes["slug"])
            elif changes.get("title") and changes["title"] != current.title:
                data["slug"] = slugify(changes["title"])
            else:
                data["slug"] = current.slug
            if not data.get("slug"):
                raise ValidationFailed("Slug cannot be empty", errors={"slug": "Slug cannot be empty"})
            data["updatedAt"] = now_iso()

            item = self._build(kind, data)
            self._validate(item)
            target = self._path_for(item)
            if target != old_path:
                self._claim_slug(item, target, overwrite)
            write_text_atomic(target, serialize(item))
            if target != old_path:
                old_path.unlink(missing_ok=True)
                logger.info(f"Moved {kind.value} {item.id}: {old_path.name} -> {target.relative_to(self.data_dir)}")
            self._notify()

        await self._fire(item, "update")
        return item

    async def delete(self, kind: Kind | str, item_id: str) -> bool:
        """Remove an item's file. Returns False if it does not exist."""
        kind = Kind(kind)
        found = self._locate(kind, item_id)
        if not found:
            return False
        if self.hooks:
            await self.hooks.do_action(f"pre_{kind.value}_delete", found[1])

        async with self._locks[kind]:
            found = self._locate(kind, item_id)
            if not found:
                return False
            path, item = found
            path.unlink(missing_ok=True)
            self._notify()

        logger.info(f"Deleted {kind.value} {item_id} ({item.slug})")
        await self._fire(item, "delete")
        return True

    # --- Internals ---

    def _new_id(self) -> str:
        """Millisecond timestamp id, strictly increasing within this process."""
        candidate = int(time.time() * 1000)
        self._last_id = max(candidate, self._last_id + 1)
        return str(self._last_id)

    def _build(self, kind: Kind, data: dict[str, Any]) -> ContentItem:
        body = data.pop("body", None)
        if body is None:
            body = data.pop("content", "")
        return ContentItem.from_fields(kind, data, body=str(body or "").strip())

    def _locate(self, kind: Kind, item_id: str) -> tuple[Path, ContentItem] | None:
        for path in self.files(kind):
            try:
                item = read_file(path, kind)
            except FrontmatterError:
                continue
            if item.id == str(item_id):
                return path, item
        return None

    def _path_for(self, item: ContentItem) -> Path:
        if item.kind == Kind.POST:
            directory = "posts"
        else:
            directory = "custom" if item.is_custom else "pages"
        return self.data_dir / directory / f"{item.slug}.md"

    def _claim_slug(self, item: ContentItem, target: Path, overwrite: bool) -> None:
        """Make sure no other item of this kind owns ``item.slug``."""
        kind = Kind(item.kind)
        conflicting = []
        for path in self.files(kind):
            try:
                other = read_file(path, kind)
            except FrontmatterError:
                if path == target:
                    conflicting.append(path)
                continue
            if other.id != item.id and (path.stem == item.slug or other.slug == item.slug):
                conflicting.append(path)
        if not conflicting:
            return
        if not overwrite:
            raise DuplicateSlug(item.slug)
        for path in conflicting:
            logger.info(f"Overwriting {path.relative_to(self.data_dir)} with {kind.value} {item.id}")
            if path != target:
                path.unlink(missing_ok=True)

    def _validate(self, item: ContentItem) -> None:
        errors = {}
        if len(item.related_posts) > MAX_RELATED_POSTS:
            errors["relatedPosts"] = f"At most {MAX_RELATED_POSTS} related posts are allowed"
        if item.kind == Kind.PAGE and item.parent_page:
            error = self._parent_chain_error(item)
            if error:
                errors["parentPage"] = error
        if errors:
            raise ValidationFailed("Invalid content fields", errors=errors)

    def _parent_chain_error(self, item: ContentItem) -> str | None:
        """Walk the ancestor chain of a page; return an error message or None."""
        if not item.is_custom:
            return "Only custom pages can have a parent page"
        pages = {p.slug: p for p in self.list(Kind.PAGE) if p.id != item.id}
        pages[item.slug] = item
        chain = [item.slug]
        current = item.parent_page
        while current:
            if current in chain:
                return f"Parent chain is cyclic: {' -> '.join(chain + [current])}"
            parent = pages.get(current)
            if parent is None:
                return f"Parent page '{current}' does not exist"
            if not parent.is_custom:
                return f"Parent page '{current}' is not a custom page"
            chain.append(current)
            current = parent.parent_page
        return None

    def _notify(self) -> None:
        for callback in self._listeners:
            callback()

    async def _fire(self, item: ContentItem, op: str) -> None:
        if not self.hooks:
            return
        kind = Kind(item.kind).value
        await self.hooks.do_action("contentUpdated", kind, item.id, op)
        await self.hooks.do_action(f"{kind}_{op}d", item)


def normalize_fields(fields: dict[str, Any]) -> dict[str, Any]:
    """Drop server-owned keys and rename known snake_case keys to camelCase."""
    data = {}
    for key, value in fields.items():
        if key in READ_ONLY_FIELDS:
            continue
        attr = field_alias(key)
        if attr is not None:
            key = "body" if attr == "body" else to_camel(attr)
        data[key] = value
    return data
