"""Navigation menu: a flat list of items forming an ordered forest.

Stored as ``menu.json`` (``{"menu": [...]}``). Every save checks that ids are
unique, parents exist, and no parent chain loops back on itself.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Literal

from markupsafe import escape
from pydantic import BaseModel, Field, ValidationError

from lumen.content.models import validation_errors
from lumen.content.slugs import slugify
from lumen.errors import NotFound, ValidationFailed
from lumen.storage import read_json, write_json_atomic

logger = logging.getLogger(__name__)

EMPTY_MENU_HTML = "<!-- No menu items defined -->"


class MenuItem(BaseModel):
    id: str
    title: str
    url: str
    parent: str | None = None
    order: int = 0
    target: Literal["_self", "_blank"] = "_self"
    css_class: str | None = Field(default=None, alias="class")

    model_config = {"populate_by_name": True}

    def to_dict(self) -> dict[str, Any]:
        data = self.model_dump(by_alias=True)
        if not data.get("class"):
            data.pop("class", None)
        return data


DEFAULT_MENU = [MenuItem(id="home", title="Home", url="/", order=1)]


class MenuStore:
    def __init__(self, data_dir: Path):
        self.path = Path(data_dir) / "menu.json"
        self._items: list[MenuItem] | None = None
        self._lock = asyncio.Lock()

    def load(self) -> list[MenuItem]:
        raw = read_json(self.path)
        if raw is None:
            if self.path.exists():
                logger.warning(f"Unparseable {self.path}, using default menu")
            items = [item.model_copy() for item in DEFAULT_MENU]
            if not self.path.exists():
                write_json_atomic(self.path, {"menu": [i.to_dict() for i in items]})
        else:
            try:
                items = _parse_items(raw.get("menu", []) if isinstance(raw, dict) else raw)
                validate_menu(items)
            except ValidationFailed as e:
                logger.warning(f"Invalid menu in {self.path}, using default menu: {e.errors}")
                items = [item.model_copy() for item in DEFAULT_MENU]
        self._items = items
        return self.list()

    def list(self) -> list[MenuItem]:
        """All items sorted by ``order``."""
        if self._items is None:
            self.load()
        return sorted((i.model_copy() for i in self._items), key=lambda i: i.order)

    def get(self, item_id: str) -> MenuItem:
        for item in self.list():
            if item.id == item_id:
                return item
        raise NotFound("Menu item not found")

    async def save(self, items: list[dict[str, Any]]) -> list[MenuItem]:
        """Replace the whole menu. Accepts a flat list or a nested ``children`` tree."""
        if any(item.get("children") for item in items):
            items = flatten_hierarchy(items)
        parsed = _parse_items(items)
        return await self._write(parsed)

    async def create(self, data: dict[str, Any]) -> MenuItem:
        items = self.list()
        item_id = str(data.get("id") or slugify(data.get("title", "")) or f"item-{len(items) + 1}")
        if any(i.id == item_id for i in items):
            raise ValidationFailed("Duplicate menu item", errors={"id": f"Menu item '{item_id}' already exists"})
        order = max((i.order for i in items), default=0) + 1
        new_item = _parse_items([{"order": order, **data, "id": item_id}])[0]
        await self._write(items + [new_item])
        return new_item

    async def update(self, item_id: str, patch: dict[str, Any]) -> MenuItem:
        items = self.list()
        current = self.get(item_id)
        updated = _parse_items([{**current.to_dict(), **patch, "id": item_id}])[0]
        await self._write([updated if i.id == item_id else i for i in items])
        return updated

    async def delete(self, item_id: str) -> MenuItem:
        """Remove an item; its children become top-level items."""
        items = self.list()
        removed = self.get(item_id)
        kept = []
        for item in items:
            if item.id == item_id:
                continue
            if item.parent == item_id:
                item.parent = None
            kept.append(item)
        await self._write(kept)
        return removed

    async def reorder(self, ordered_ids: list[str]) -> list[MenuItem]:
        """Assign ``order`` by position; items not listed keep their relative order after them."""
        items = {i.id: i for i in self.list()}
        unknown = [i for i in ordered_ids if i not in items]
        if unknown:
            raise ValidationFailed("Unknown menu items", errors={"orderedIds": f"Unknown ids: {', '.join(unknown)}"})
        sequence = list(dict.fromkeys(ordered_ids)) + [i for i in items if i not in ordered_ids]
        for position, item_id in enumerate(sequence, start=1):
            items[item_id].order = position
        return await self._write(list(items.values()))

    async def _write(self, items: list[MenuItem]) -> list[MenuItem]:
        validate_menu(items)
        async with self._lock:
            write_json_atomic(self.path, {"menu": [i.to_dict() for i in items]})
            self._items = items
        return self.list()


def _parse_items(raw: list[dict[str, Any]]) -> list[MenuItem]:
    items = []
    for position, entry in enumerate(raw):
        entry = {k: v for k, v in entry.items() if k != "children"}
        if entry.get("parent") in ("", 0):
            entry["parent"] = None
        try:
            items.append(MenuItem.model_validate(entry))
        except ValidationError as e:
            errors = {f"menu.{position}.{k}": v for k, v in validation_errors(e).items()}
            raise ValidationFailed("Invalid menu item", errors=errors) from e
    return items


def validate_menu(items: list[MenuItem]) -> None:
    """Check id uniqueness, parent references and acyclicity.

    Raises:
        ValidationFailed: With one entry per offending item.
    """
    errors: dict[str, str] = {}
    by_id: dict[str, MenuItem] = {}
    for item in items:
        if item.id in by_id:
            errors[item.id] = "Duplicate menu item id"
        by_id[item.id] = item

    for item in items:
        if item.parent is None:
            continue
        if item.parent not in by_id:
            errors[item.id] = f"Parent '{item.parent}' does not exist"
            continue
        chain = [item.id]
        current = item.parent
        while current is not None:
            if current in chain:
                errors[item.id] = f"Parent chain is cyclic: {' -> '.join(chain + [current])}"
                break
            chain.append(current)
            current = by_id[current].parent if current in by_id else None
    if errors:
        raise ValidationFailed("Invalid menu", errors=errors)


def build_hierarchy(items: list[MenuItem]) -> list[dict[str, Any]]:
    """Nest items under their parents; siblings sorted by ``order``."""
    nodes = {i.id: {**i.to_dict(), "children": []} for i in items}
    roots = []
    for item in sorted(items, key=lambda i: i.order):
        node = nodes[item.id]
        if item.parent and item.parent in nodes:
            nodes[item.parent]["children"].append(node)
        else:
            roots.append(node)
    return roots


def flatten_hierarchy(tree: list[dict[str, Any]], parent: str | None = None) -> list[dict[str, Any]]:
    """Inverse of ``build_hierarchy``; missing ``order`` values follow position."""
    flat = []
    for position, node in enumerate(tree, start=1):
        entry = {k: v for k, v in node.items() if k != "children"}
        entry["parent"] = parent
        entry.setdefault("order", position)
        flat.append(entry)
        flat.extend(flatten_hierarchy(node.get("children") or [], entry.get("id")))
    return flat


def render_menu_html(items: list[MenuItem]) -> str:
    """Navigation markup for themes."""
    tree = build_hierarchy(items)
    if not tree:
        return EMPTY_MENU_HTML
    return f'<nav class="site-navigation"><ul class="nav-menu">{_render_nodes(tree)}</ul></nav>'


def _render_nodes(nodes: list[dict[str, Any]]) -> str:
    parts = []
    for node in nodes:
        classes = ["menu-item"]
        if node["children"]:
            classes.append("menu-item-has-children")
        if node.get("class"):
            classes.append(str(node["class"]))
        target = ' target="_blank" rel="noopener"' if node.get("target") == "_blank" else ""
        html = (
            f'<li id="menu-item-{escape(node["id"])}" class="{escape(" ".join(classes))}">'
            f'<a href="{escape(node["url"])}"{target}>{escape(node["title"])}</a>'
        )
        if node["children"]:
            html += f'<ul class="sub-menu">{_render_nodes(node["children"])}</ul>'
        parts.append(html + "</li>")
    return "".join(parts)
