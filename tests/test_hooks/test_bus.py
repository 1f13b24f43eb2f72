"""Tests for the hook bus."""

import pytest

from lumen.hooks import HookBus, HookKind


class TestRegistration:
    def test_unknown_hook(self):
        with pytest.raises(KeyError):
            HookBus().add_action("noSuchHook", lambda: None)

    def test_wrong_register(self):
        with pytest.raises(ValueError):
            HookBus().add_filter("contentUpdated", lambda value, kind, item_id, op: value)

    def test_signature_must_accept_declared_args(self):
        with pytest.raises(TypeError):
            HookBus().add_filter("templateData", lambda value: value)

    def test_varargs_callbacks_are_accepted(self):
        bus = HookBus()
        bus.add_action("contentUpdated", lambda *args: None)
        assert bus.has("contentUpdated")

    def test_remove(self):
        bus = HookBus()

        def callback(item):
            pass

        bus.add_action("post_created", callback)
        assert bus.remove_action("post_created", callback) is True
        assert not bus.has("post_created")
        assert bus.remove_action("post_created", callback) is False

    def test_declare_custom_hook(self):
        bus = HookBus()
        spec = bus.declare("themeSwitched", HookKind.ACTION, ("name",))
        assert spec.args == ("name",)
        with pytest.raises(ValueError):
            bus.declare("themeSwitched", HookKind.FILTER, ("name",))


class TestActions:
    @pytest.mark.asyncio
    async def test_run_in_priority_order(self):
        bus = HookBus()
        calls = []
        bus.add_action("contentUpdated", lambda kind, item_id, op: calls.append("late"), priority=20)
        bus.add_action("contentUpdated", lambda kind, item_id, op: calls.append("early"), priority=5)
        bus.add_action("contentUpdated", lambda kind, item_id, op: calls.append("default"))

        await bus.do_action("contentUpdated", "post", "1", "create")

        assert calls == ["early", "default", "late"]

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_stop_others(self):
        bus = HookBus()
        calls = []

        def broken(kind, item_id, op):
            raise RuntimeError("boom")

        bus.add_action("contentUpdated", broken, priority=1)
        bus.add_action("contentUpdated", lambda kind, item_id, op: calls.append(op))

        await bus.do_action("contentUpdated", "post", "1", "delete")

        assert calls == ["delete"]

    @pytest.mark.asyncio
    async def test_async_callbacks_are_awaited(self):
        bus = HookBus()
        calls = []

        async def record(item):
            calls.append(item)

        bus.add_action("page_updated", record)
        await bus.do_action("page_updated", "page-1")
        assert calls == ["page-1"]

    @pytest.mark.asyncio
    async def test_wrong_argument_count(self):
        with pytest.raises(TypeError):
            await HookBus().do_action("contentUpdated", "post")


class TestFilters:
    @pytest.mark.asyncio
    async def test_value_is_threaded_through(self):
        bus = HookBus()
        bus.add_filter("menuHtml", lambda html, items: html + "<b>")
        bus.add_filter("menuHtml", lambda html, items: html.upper(), priority=20)

        assert await bus.apply_filters("menuHtml", "<nav>", []) == "<NAV><B>"

    @pytest.mark.asyncio
    async def test_failing_filter_keeps_previous_value(self):
        bus = HookBus()

        def broken(data, template):
            raise ValueError("bad filter")

        bus.add_filter("templateData", lambda data, template: {**data, "a": 1}, priority=1)
        bus.add_filter("templateData", broken, priority=2)
        bus.add_filter("templateData", lambda data, template: {**data, "b": template}, priority=3)

        result = await bus.apply_filters("templateData", {}, "templates/post.html")

        assert result == {"a": 1, "b": "templates/post.html"}

    @pytest.mark.asyncio
    async def test_no_callbacks_returns_value(self):
        assert await HookBus().apply_filters("api_posts", [1, 2], None) == [1, 2]
