"""Tests for the menu store and navigation markup."""

import typing
from typing import Any

import pytest

from lumen.auth.users import User, UserStore
from lumen.errors import NotFound, ValidationFailed
from lumen.site.menu import EMPTY_MENU_HTML, MenuItem, MenuStore, build_hierarchy, render_menu_html
from lumen.themes.registry import ThemeRegistry


@pytest.fixture
def menu(tmp_path):
    store = MenuStore(tmp_path)
    store.load()
    return store


class TestMenuStore:
    def test_default_menu(self, menu):
        assert [(i.id, i.url) for i in menu.list()] == [("home", "/")]

    @pytest.mark.asyncio
    async def test_create_appends(self, menu):
        item = await menu.create({"title": "Blog", "url": "/blog"})
        assert item.id == "blog"
        assert item.order == 2
        assert [i.id for i in MenuStore(menu.path.parent).load()] == ["home", "blog"]

    @pytest.mark.asyncio
    async def test_duplicate_id(self, menu):
        with pytest.raises(ValidationFailed):
            await menu.create({"id": "home", "title": "Again", "url": "/"})

    @pytest.mark.asyncio
    async def test_save_flattens_nested_tree(self, menu):
        await menu.save([
            {"id": "docs", "title": "Docs", "url": "/docs", "children": [
                {"id": "api", "title": "API", "url": "/docs/api"},
            ]},
        ])
        assert menu.get("api").parent == "docs"
        assert build_hierarchy(menu.list())[0]["children"][0]["id"] == "api"

    @pytest.mark.asyncio
    async def test_missing_parent(self, menu):
        with pytest.raises(ValidationFailed) as exc:
            await menu.save([{"id": "a", "title": "A", "url": "/a", "parent": "ghost"}])
        assert "a" in exc.value.errors

    @pytest.mark.asyncio
    async def test_cycle_is_rejected(self, menu):
        with pytest.raises(ValidationFailed) as exc:
            await menu.save([
                {"id": "a", "title": "A", "url": "/a", "parent": "b"},
                {"id": "b", "title": "B", "url": "/b", "parent": "a"},
            ])
        assert "cyclic" in exc.value.errors["a"]
        assert [i.id for i in menu.list()] == ["home"]

    @pytest.mark.asyncio
    async def test_delete_promotes_children(self, menu):
        await menu.create({"id": "docs", "title": "Docs", "url": "/docs"})
        await menu.create({"id": "api", "title": "API", "url": "/docs/api", "parent": "docs"})

        await menu.delete("docs")

        assert menu.get("api").parent is None
        with pytest.raises(NotFound):
            menu.get("docs")

    @pytest.mark.asyncio
    async def test_reorder(self, menu):
        await menu.create({"id": "blog", "title": "Blog", "url": "/blog"})
        await menu.create({"id": "about", "title": "About", "url": "/about"})

        items = await menu.reorder(["about", "home"])

        assert [i.id for i in items] == ["about", "home", "blog"]

    @pytest.mark.asyncio
    async def test_reorder_unknown_id(self, menu):
        with pytest.raises(ValidationFailed):
            await menu.reorder(["ghost"])


class TestRenderMenuHtml:
    def test_nested_markup(self):
        items = [
            MenuItem(id="docs", title="Docs", url="/docs", order=1),
            MenuItem(id="api", title="API & SDK", url="/docs/api", parent="docs", order=1, target="_blank"),
        ]
        html = render_menu_html(items)

        assert html.startswith('<nav class="site-navigation"><ul class="nav-menu">')
        assert '<li id="menu-item-docs" class="menu-item menu-item-has-children">' in html
        assert '<ul class="sub-menu">' in html
        assert 'target="_blank" rel="noopener"' in html
        assert "API &amp; SDK" in html

    def test_css_class(self):
        html = render_menu_html([MenuItem.model_validate({"id": "x", "title": "X", "url": "/x", "class": "cta"})])
        assert 'class="menu-item cta"' in html

    def test_empty(self):
        assert render_menu_html([]) == EMPTY_MENU_HTML


class TestStoreAnnotations:
    """Stores expose a ``list`` method; annotations after it must still mean the builtin."""

    def test_annotations_resolve_to_builtin_list(self):
        assert typing.get_type_hints(MenuStore.save)["items"] == list[dict[str, Any]]
        assert typing.get_type_hints(MenuStore.reorder)["ordered_ids"] == list[str]
        assert typing.get_type_hints(ThemeRegistry.resolve_template)["candidates"] == list[str]
        assert typing.get_type_hints(UserStore._save)["users"] == list[User]
