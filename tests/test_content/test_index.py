"""Tests for the content index."""

import pytest

from lumen.content.index import IndexSnapshot
from lumen.content.models import ContentItem
from lumen.content.query import QueryOptions


async def _published(store, title, **fields):
    return await store.create("post", {"title": title, "status": "published", **fields})


class TestInvalidation:
    @pytest.mark.asyncio
    async def test_writes_mark_index_dirty(self, store, index):
        assert index.posts() == []
        assert not index.is_dirty

        await store.create("post", {"title": "Fresh"})

        assert index.is_dirty
        assert [p.slug for p in index.posts()] == ["fresh"]

    @pytest.mark.asyncio
    async def test_renamed_slug_is_reindexed(self, store, index):
        post = await store.create("post", {"title": "Old Name"})
        index.snapshot()
        await store.update("post", post.id, {"slug": "new-name"})

        assert index.get_by_slug("post", "old-name") is None
        assert index.get_by_slug("post", "new-name").id == post.id


class TestSnapshot:
    def test_duplicate_ids_keep_latest_update(self):
        older = ContentItem.from_fields("post", {"id": "1", "slug": "a", "updatedAt": "2024-01-01T00:00:00.000Z"})
        newer = ContentItem.from_fields("post", {"id": "1", "slug": "b", "updatedAt": "2024-02-01T00:00:00.000Z"})
        snap = IndexSnapshot.build([older, newer], [])
        assert [p.slug for p in snap.posts] == ["b"]

    def test_posts_sorted_newest_first(self):
        first = ContentItem.from_fields("post", {"id": "1", "slug": "first", "createdAt": "2024-01-01T00:00:00.000Z"})
        second = ContentItem.from_fields("post", {"id": "2", "slug": "second", "createdAt": "2024-03-01T00:00:00.000Z"})
        snap = IndexSnapshot.build([first, second], [])
        assert [p.slug for p in snap.posts] == ["second", "first"]


class TestQueries:
    @pytest.mark.asyncio
    async def test_status_filter_and_count(self, store, index):
        await _published(store, "Live")
        await store.create("post", {"title": "Draft"})

        options = QueryOptions(status="published")
        assert [p["slug"] for p in index.get_posts(options)] == ["live"]
        assert index.count("post") == 2
        assert index.count("post", QueryOptions(limit=1)) == 2

    @pytest.mark.asyncio
    async def test_limit_and_offset(self, store, index):
        for title in ("One", "Two", "Three"):
            await _published(store, title)
        views = index.get_posts(QueryOptions(limit=1, offset=1))
        assert [v["slug"] for v in views] == ["two"]

    @pytest.mark.asyncio
    async def test_tag_and_category_match_slugified(self, store, index):
        await _published(store, "Tagged", tags=["Web Dev"], category="How To")
        await _published(store, "Other", tags=["misc"])

        assert [p.slug for p in index.posts(QueryOptions(tag="web-dev"))] == ["tagged"]
        assert [p.slug for p in index.posts(QueryOptions(category="How To"))] == ["tagged"]

    @pytest.mark.asyncio
    async def test_summary_view_strips_markdown(self, store, index):
        post = await _published(store, "Long", body="# Heading\n\n**Bold** " + "word " * 200)
        view = index.view(post, QueryOptions(summary_view=True, preview_length=50))
        assert not view["content"].startswith("#")
        assert view["content"].endswith("...")
        assert len(view["content"]) <= 53

    @pytest.mark.asyncio
    async def test_frontmatter_only_and_properties(self, store, index):
        post = await _published(store, "Shape", body="Body")
        assert "content" not in index.view(post, QueryOptions(frontmatter_only=True))
        assert index.view(post, QueryOptions(properties=["title", "url"])) == {"title": "Shape", "url": "/post/shape"}

    @pytest.mark.asyncio
    async def test_page_type_filter(self, store, index):
        await store.create("page", {"title": "Normal"})
        await store.create("page", {"title": "Custom", "pageType": "custom"})
        assert [p.slug for p in index.pages(QueryOptions(page_type="custom"))] == ["custom"]


class TestNeighbors:
    @pytest.mark.asyncio
    async def test_prev_is_older_and_next_is_newer(self, store, index):
        older = await _published(store, "Older")
        newer = await _published(store, "Newer")

        prev_post, next_post = index.neighbors(newer)
        assert prev_post["slug"] == "older"
        assert next_post is None

        prev_post, next_post = index.neighbors(older)
        assert prev_post is None
        assert next_post["slug"] == "newer"

    @pytest.mark.asyncio
    async def test_drafts_are_skipped(self, store, index):
        first = await _published(store, "First")
        await store.create("post", {"title": "Draft"})
        third = await _published(store, "Third")

        assert index.neighbors(third)[0]["slug"] == "first"
        assert index.neighbors(first)[1]["slug"] == "third"


class TestRelated:
    @pytest.mark.asyncio
    async def test_resolves_in_declared_order(self, store, index):
        a = await _published(store, "Alpha", body="Alpha body")
        b = await _published(store, "Beta", excerpt="Beta excerpt")
        draft = await store.create("post", {"title": "Hidden"})
        post = await _published(store, "Main", relatedPosts=[b.id, "missing", draft.id, a.id])

        related = index.related(post)
        assert [r["slug"] for r in related] == ["beta", "alpha"]
        assert related[0]["excerpt"] == "Beta excerpt"
        assert related[1]["excerpt"] == "Alpha body"


class TestHierarchy:
    @pytest.mark.asyncio
    async def test_custom_paths(self, store, index):
        await store.create("page", {"title": "Docs", "pageType": "custom", "status": "published"})
        guide = await store.create(
            "page", {"title": "Guide", "pageType": "custom", "parentPage": "docs", "status": "published"}
        )

        assert index.custom_path(guide) == "/docs/guide"
        assert index.public_url(guide) == "/docs/guide"
        assert index.find_custom_page(["docs", "guide"]).id == guide.id
        assert index.find_custom_page(["guide"]) is None
        assert [c.slug for c in index.children("docs")] == ["guide"]

    @pytest.mark.asyncio
    async def test_normal_page_url(self, store, index):
        page = await store.create("page", {"title": "About"})
        assert index.public_url(page) == "/page/about"
        assert index.find_custom_page(["about"]) is None


class TestTaxonomy:
    @pytest.mark.asyncio
    async def test_counts_only_published(self, store, index):
        await _published(store, "One", tags=["Python"])
        await _published(store, "Two", tags=["Python", "Web"])
        await store.create("post", {"title": "Draft", "tags": ["Draft Only"]})

        counts = index.taxonomy_counts("tag")
        assert counts == {"python": {"name": "Python", "count": 2}, "web": {"name": "Web", "count": 1}}
        assert index.taxonomy_name("tag", "python") == "Python"

    @pytest.mark.asyncio
    async def test_content_by_field_value(self, store, index):
        await _published(store, "Match", tags=["news"], audience="Devs")
        await _published(store, "Miss", tags=["other"])

        assert [p.slug for p in index.content_by_field_value("post", "tag", "News")] == ["match"]
        assert [p.slug for p in index.content_by_field_value("post", "audience", "devs")] == ["match"]
