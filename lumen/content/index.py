"""Content index: derived in-memory lookups over every post and page.

The index subscribes to the frontmatter store and is marked dirty in the
same synchronous run as each write. The next read rebuilds a fresh
``IndexSnapshot`` from disk; snapshots are never mutated after they are
built, so a reader always sees either the pre-write or the post-write state.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any

from lumen.content.models import ContentItem, Kind, parse_timestamp
from lumen.content.query import RELATED_EXCERPT_LENGTH, QueryOptions, project, summarize, truncate_excerpt
from lumen.content.slugs import slugify
from lumen.content.store import FrontmatterStore

logger = logging.getLogger(__name__)


def _newest_first(items: list[ContentItem]) -> list[ContentItem]:
    return sorted(items, key=lambda i: (parse_timestamp(i.created_at), i.id), reverse=True)


@dataclass
class IndexSnapshot:
    """One consistent build of every lookup table."""

    posts: list[ContentItem] = field(default_factory=list)
    pages: list[ContentItem] = field(default_factory=list)
    by_id: dict[str, ContentItem] = field(default_factory=dict)
    by_slug: dict[tuple[str, str], ContentItem] = field(default_factory=dict)
    by_tag: dict[str, list[str]] = field(default_factory=dict)
    by_category: dict[str, list[str]] = field(default_factory=dict)
    by_parent: dict[str, list[ContentItem]] = field(default_factory=dict)
    tag_names: dict[str, str] = field(default_factory=dict)
    category_names: dict[str, str] = field(default_factory=dict)
    chronological: list[ContentItem] = field(default_factory=list)

    @classmethod
    def build(cls, posts: list[ContentItem], pages: list[ContentItem]) -> "IndexSnapshot":
        snap = cls()
        snap.posts = _newest_first(_dedupe(posts))
        snap.pages = _newest_first(_dedupe(pages))

        for item in snap.posts + snap.pages:
            snap.by_id[item.id] = item
            key = (Kind(item.kind).value, item.slug)
            if key in snap.by_slug:
                logger.warning(f"Duplicate {item.kind} slug '{item.slug}' (ids {snap.by_slug[key].id}, {item.id})")
                continue
            snap.by_slug[key] = item

        for post in snap.posts:
            for tag in post.tags:
                tag_slug = slugify(tag)
                snap.tag_names.setdefault(tag_slug, tag)
                snap.by_tag.setdefault(tag_slug, []).append(post.id)
            if post.category:
                cat_slug = slugify(post.category)
                snap.category_names.setdefault(cat_slug, post.category)
                snap.by_category.setdefault(cat_slug, []).append(post.id)

        for page in snap.pages:
            if page.parent_page:
                snap.by_parent.setdefault(page.parent_page, []).append(page)

        snap.chronological = [p for p in snap.posts if p.is_published]
        return snap


def _dedupe(items: list[ContentItem]) -> list[ContentItem]:
    """Keep one item per id (the most recently updated)."""
    latest: dict[str, ContentItem] = {}
    for item in items:
        seen = latest.get(item.id)
        if seen is None or parse_timestamp(item.updated_at) > parse_timestamp(seen.updated_at):
            latest[item.id] = item
    return list(latest.values())


class ContentIndex:
    """Query surface over the current snapshot."""

    def __init__(self, store: FrontmatterStore):
        self.store = store
        self._snapshot: IndexSnapshot | None = None
        store.add_listener(self.invalidate)

    def invalidate(self) -> None:
        self._snapshot = None

    @property
    def is_dirty(self) -> bool:
        return self._snapshot is None

    def snapshot(self) -> IndexSnapshot:
        if self._snapshot is None:
            self._snapshot = IndexSnapshot.build(self.store.list(Kind.POST), self.store.list(Kind.PAGE))
            logger.debug(f"Rebuilt content index: {len(self._snapshot.posts)} posts, {len(self._snapshot.pages)} pages")
        return self._snapshot

    # --- Lookups ---

    def get_by_id(self, item_id: str) -> ContentItem | None:
        return self.snapshot().by_id.get(str(item_id))

    def get_by_slug(self, kind: Kind | str, slug: str) -> ContentItem | None:
        return self.snapshot().by_slug.get((Kind(kind).value, slug))

    def children(self, parent_slug: str) -> list[ContentItem]:
        return list(self.snapshot().by_parent.get(parent_slug, []))

    def parent(self, page: ContentItem) -> ContentItem | None:
        if not page.parent_page:
            return None
        return self.get_by_slug(Kind.PAGE, page.parent_page)

    def ancestors(self, page: ContentItem) -> list[ContentItem]:
        """Ancestors of a page, root first. Stops at a missing or repeated link."""
        chain: list[ContentItem] = []
        seen = {page.slug}
        current = self.parent(page)
        while current is not None and current.slug not in seen:
            chain.insert(0, current)
            seen.add(current.slug)
            current = self.parent(current)
        return chain

    def custom_path(self, page: ContentItem) -> str:
        """Public URL path of a custom page, including its ancestors."""
        return "/" + "/".join([a.slug for a in self.ancestors(page)] + [page.slug])

    def find_custom_page(self, segments: list[str]) -> ContentItem | None:
        """Resolve ``/a/b/c`` to the custom page ``c`` whose ancestors are ``a``, ``b``."""
        if not segments:
            return None
        page = self.get_by_slug(Kind.PAGE, segments[-1])
        if page is None or not page.is_custom:
            return None
        if [a.slug for a in self.ancestors(page)] != segments[:-1]:
            return None
        return page

    def public_url(self, item: ContentItem) -> str:
        if item.kind == Kind.POST:
            return f"/post/{item.slug}"
        if item.is_custom:
            return self.custom_path(item)
        return f"/page/{item.slug}"

    # --- Queries ---

    def posts(self, options: QueryOptions | None = None) -> list[ContentItem]:
        return self._filter(self.snapshot().posts, options or QueryOptions())

    def pages(self, options: QueryOptions | None = None) -> list[ContentItem]:
        return self._filter(self.snapshot().pages, options or QueryOptions())

    def get_posts(self, options: QueryOptions | None = None) -> list[dict[str, Any]]:
        """Post views, newest first, shaped by ``options``."""
        options = options or QueryOptions()
        return [self.view(item, options) for item in self.posts(options)]

    def get_pages(self, options: QueryOptions | None = None) -> list[dict[str, Any]]:
        options = options or QueryOptions()
        return [self.view(item, options) for item in self.pages(options)]

    def view(self, item: ContentItem, options: QueryOptions | None = None) -> dict[str, Any]:
        """JSON-ready view of one item."""
        options = options or QueryOptions()
        view = item.to_view()
        view["url"] = self.public_url(item)
        if options.frontmatter_only:
            view.pop("content", None)
        elif options.summary_view:
            view["content"] = summarize(item.body, options.preview_length)
        return project(view, options.properties)

    def count(self, kind: Kind | str, options: QueryOptions | None = None) -> int:
        options = replace(options or QueryOptions(), limit=None, offset=0)
        items = self.posts(options) if Kind(kind) == Kind.POST else self.pages(options)
        return len(items)

    def _filter(self, items: list[ContentItem], options: QueryOptions) -> list[ContentItem]:
        snap = self.snapshot()
        result = items
        if options.status:
            result = [i for i in result if i.status == options.status]
        if options.tag:
            ids = set(snap.by_tag.get(slugify(options.tag), ()))
            result = [i for i in result if i.id in ids]
        if options.category:
            ids = set(snap.by_category.get(slugify(options.category), ()))
            result = [i for i in result if i.id in ids]
        if options.parent:
            result = [i for i in result if i.parent_page == options.parent]
        if options.page_type:
            result = [i for i in result if i.kind == Kind.PAGE and i.effective_page_type == options.page_type]
        start = max(0, options.offset or 0)
        end = start + options.limit if options.limit is not None else None
        return result[start:end]

    # --- Cross references ---

    def neighbors(self, post: ContentItem) -> tuple[dict | None, dict | None]:
        """``(prev, next)`` around a published post: prev is older, next is newer."""
        chronological = self.snapshot().chronological
        ids = [p.id for p in chronological]
        if post.id not in ids:
            return None, None
        index = ids.index(post.id)
        prev_post = chronological[index + 1] if index + 1 < len(chronological) else None
        next_post = chronological[index - 1] if index > 0 else None
        return _link(prev_post), _link(next_post)

    def related(self, post: ContentItem, published_only: bool = True) -> list[dict[str, Any]]:
        """Resolved ``relatedPosts`` in declared order; unresolved ids are dropped."""
        result = []
        for related_id in post.related_posts:
            item = self.get_by_id(related_id)
            if item is None or item.kind != Kind.POST:
                continue
            if published_only and not item.is_published:
                continue
            result.append({
                "id": item.id,
                "title": item.title,
                "subtitle": item.subtitle,
                "slug": item.slug,
                "featuredImage": item.featured_image,
                "excerpt": truncate_excerpt(item.excerpt or summarize(item.body, RELATED_EXCERPT_LENGTH), RELATED_EXCERPT_LENGTH),
            })
        return result

    def content_by_field_value(self, kind: Kind | str, field_name: str, value: str) -> list[ContentItem]:
        """Published items whose field (singular or plural form) contains ``value``."""
        wanted = str(value).strip().lower()
        names = {field_name, field_name.rstrip("s"), f"{field_name.rstrip('s')}s"}
        items = self.posts() if Kind(kind) == Kind.POST else self.pages()
        matches = []
        for item in items:
            if not item.is_published:
                continue
            fm = item.frontmatter()
            for name in names:
                if _contains(fm.get(name), wanted):
                    matches.append(item)
                    break
        return matches

    def taxonomy_posts(self, taxonomy: str, slug: str) -> list[ContentItem]:
        """Published posts under a tag or category slug, newest first."""
        snap = self.snapshot()
        table = snap.by_tag if taxonomy == "tag" else snap.by_category
        ids = table.get(slug, [])
        return [snap.by_id[i] for i in ids if i in snap.by_id and snap.by_id[i].is_published]

    def taxonomy_name(self, taxonomy: str, slug: str) -> str:
        snap = self.snapshot()
        names = snap.tag_names if taxonomy == "tag" else snap.category_names
        return names.get(slug, slug)

    def taxonomy_counts(self, taxonomy: str) -> dict[str, dict[str, Any]]:
        """``{slug: {name, count}}`` over published posts."""
        snap = self.snapshot()
        table = snap.by_tag if taxonomy == "tag" else snap.by_category
        counts = {}
        for slug in sorted(table):
            posts = self.taxonomy_posts(taxonomy, slug)
            if posts:
                counts[slug] = {"name": self.taxonomy_name(taxonomy, slug), "count": len(posts)}
        return counts


def _link(item: ContentItem | None) -> dict | None:
    if item is None:
        return None
    return {"id": item.id, "title": item.title, "slug": item.slug}


def _contains(field_value: Any, wanted: str) -> bool:
    if field_value is None:
        return False
    if isinstance(field_value, str):
        values = field_value.split(",")
    elif isinstance(field_value, (list, tuple)):
        values = field_value
    else:
        values = [field_value]
    return any(str(v).strip().lower() == wanted for v in values)
