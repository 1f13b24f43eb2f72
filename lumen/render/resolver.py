"""Resolver & renderer: public URL to rendered response.

Route shapes:
- ``/``                              home
- ``/post/<slug>``                   post
- ``/page/<slug>``                   normal page (custom pages redirect 301 to their own URL)
- ``/category/<slug>[/page/<n>]``    category listing
- ``/tag/<slug>[/page/<n>]``         tag listing
- ``/rss.xml``, ``/sitemap.xml``, ``/robots.txt``
- ``/<a>[/<b>[/<c>]]``               custom page, nested through ``parentPage``
- anything else                      404

Live requests and the static exporter both go through ``Resolver.resolve``.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from markupsafe import Markup

from lumen.auth.context import ANONYMOUS, RequestContext
from lumen.content.index import ContentIndex
from lumen.content.models import ContentItem, Kind
from lumen.content.query import QueryOptions, paginate
from lumen.errors import NotFound, TemplateMissing
from lumen.hooks import HookBus
from lumen.render.markdown import render_markdown
from lumen.render.seo import build_robots, build_rss, build_sitemap
from lumen.render.templates import TemplateEngine
from lumen.site.menu import MenuStore, build_hierarchy, render_menu_html
from lumen.site.settings import SettingsStore
from lumen.themes.registry import Theme, ThemeRegistry

logger = logging.getLogger(__name__)

HTML = "text/html; charset=utf-8"
MAX_CUSTOM_DEPTH = 3
TAXONOMIES = ("category", "tag")
RESERVED_PREFIXES = {"api", "post", "page", "category", "tag", "assets", "content", "health"}
SEO_FILES = {
    "rss.xml": "application/rss+xml; charset=utf-8",
    "sitemap.xml": "application/xml; charset=utf-8",
    "robots.txt": "text/plain; charset=utf-8",
}


@dataclass
class RenderResult:
    status: int
    body: str = ""
    media_type: str = HTML
    location: str | None = None
    template: str | None = None
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def is_html(self) -> bool:
        return self.media_type.startswith("text/html")


class Resolver:
    def __init__(
        self,
        index: ContentIndex,
        settings: SettingsStore,
        menu: MenuStore,
        registry: ThemeRegistry,
        engine: TemplateEngine,
        hooks: HookBus,
    ):
        self.index = index
        self.settings = settings
        self.menu = menu
        self.registry = registry
        self.engine = engine
        self.hooks = hooks

    async def resolve(self, path: str, ctx: RequestContext = ANONYMOUS) -> RenderResult:
        """Render the response for a GET of ``path``."""
        segments = [s for s in path.split("?", 1)[0].strip("/").split("/") if s]
        try:
            return await self._dispatch(segments, ctx)
        except NotFound:
            return await self.render_not_found(ctx)

    async def _dispatch(self, segments: list[str], ctx: RequestContext) -> RenderResult:
        if not segments:
            return await self.render_home(ctx)

        head = segments[0]
        if len(segments) == 1 and head in SEO_FILES:
            return self._render_seo(head)
        if head == "post" and len(segments) == 2:
            return await self.render_item(self._published(Kind.POST, segments[1]), ctx)
        if head == "page" and len(segments) == 2:
            page = self._published(Kind.PAGE, segments[1])
            if page.is_custom:
                return RenderResult(status=301, location=self.index.custom_path(page))
            return await self.render_item(page, ctx)
        if head in TAXONOMIES:
            if len(segments) == 2:
                return await self.render_taxonomy(head, segments[1], 1, ctx)
            if len(segments) == 4 and segments[2] == "page" and segments[3].isdigit():
                return await self.render_taxonomy(head, segments[1], int(segments[3]), ctx)
        if head not in RESERVED_PREFIXES and len(segments) <= MAX_CUSTOM_DEPTH:
            page = self.index.find_custom_page(segments)
            if page is not None and page.is_published:
                return await self.render_item(page, ctx)
        raise NotFound()

    def _published(self, kind: Kind, slug: str) -> ContentItem:
        item = self.index.get_by_slug(kind, slug)
        if item is None or not item.is_published:
            raise NotFound()
        return item

    # --- Template data ---

    async def base_data(self, ctx: RequestContext, theme: Theme) -> dict[str, Any]:
        """Data shared by every template: site, theme, menu, user."""
        settings = self.settings.get()
        items = self.menu.list()
        hierarchy = build_hierarchy(items)
        menu_html = await self.hooks.apply_filters("menuHtml", render_menu_html(items), hierarchy)
        return {
            "site": settings.public(),
            "theme": {"name": theme.name, **theme.manifest.to_dict()},
            "menuHtml": Markup(menu_html),
            "menuItems": hierarchy,
            "currentUser": ctx.current_user,
            "isEditable": ctx.is_editable,
            "year": datetime.now(timezone.utc).year,
            "contentRoute": False,
            "homeRoute": False,
            "notFoundRoute": False,
            "metadata": {},
            "content": Markup(""),
        }

    async def _render(
        self, theme: Theme, template: str, data: dict[str, Any], status: int = 200
    ) -> RenderResult:
        data = await self.hooks.apply_filters("templateData", data, template)
        html = self.engine.render(theme, template, data)
        return RenderResult(status=status, body=html, template=template)

    # --- Routes ---

    async def render_item(self, item: ContentItem, ctx: RequestContext) -> RenderResult:
        """Render a published post or page."""
        theme = self.registry.active
        template = self._item_template(theme, item)

        data = await self.base_data(ctx, theme)
        metadata = item.frontmatter()
        data.update(
            content=Markup(render_markdown(item.body)),
            metadata=metadata,
            contentRoute=True,
            contentId=item.id,
            fileType=Kind(item.kind).value,
            isCustomPage=item.is_custom,
            url=self.index.public_url(item),
        )
        if item.kind == Kind.POST:
            prev_post, next_post = self.index.neighbors(item)
            data.update(prevPost=prev_post, nextPost=next_post, relatedPosts=self.index.related(item))
        else:
            crumbs = self.index.ancestors(item) + [item]
            data["breadcrumbs"] = [{"title": p.title, "url": self.index.public_url(p)} for p in crumbs]
            data["childPages"] = [
                {"title": c.title, "slug": c.slug, "url": self.index.public_url(c)}
                for c in self.index.children(item.slug)
                if c.is_published
            ]
        return await self._render(theme, template, data)

    def _item_template(self, theme: Theme, item: ContentItem) -> str:
        if item.kind == Kind.POST:
            return self.registry.resolve_template(["templates/post.html", "templates/layout.html"], theme)
        if not item.is_custom:
            return self.registry.resolve_template(["templates/page.html", "templates/layout.html"], theme)

        # Custom pages: their own template, then the nearest ancestor's.
        slugs = [a.slug for a in self.index.ancestors(item)] + [item.slug]
        candidates = []
        for depth in range(len(slugs), 0, -1):
            candidates.append(f"custom/{'-'.join(slugs[:depth])}.html")
            candidates.append(f"custom/{slugs[depth - 1]}.html")
        try:
            return self.registry.resolve_template(list(dict.fromkeys(candidates)), theme)
        except TemplateMissing:
            logger.warning(f"No custom template for page '{item.slug}' in theme '{theme.name}'")
            raise NotFound() from None

    async def render_home(self, ctx: RequestContext) -> RenderResult:
        theme = self.registry.active
        settings = self.settings.get()
        data = await self.base_data(ctx, theme)
        data.update(
            homeRoute=True,
            fileType="home",
            posts=self.index.get_posts(
                QueryOptions(status="published", limit=settings.posts_per_page, summary_view=True)
            ),
            metadata={"title": settings.site_title, "description": settings.site_description},
        )

        if theme.has_template("custom/homepage.html"):
            template = "custom/homepage.html"
            # The custom homepage template takes its metadata and body from the page named after it.
            home_page = self.index.get_by_slug(Kind.PAGE, "homepage")
            if home_page is not None and home_page.is_published:
                data["metadata"] = {**data["metadata"], **home_page.frontmatter()}
                data["content"] = Markup(render_markdown(home_page.body))
                data["contentId"] = home_page.id
        else:
            declared = theme.manifest.model_extra.get("index") if theme.manifest.model_extra else None
            candidates = [f"templates/{declared}"] if declared else []
            template = self.registry.resolve_template(candidates + ["templates/layout.html"], theme)
        return await self._render(theme, template, data)

    async def render_taxonomy(self, taxonomy: str, slug: str, page: int, ctx: RequestContext) -> RenderResult:
        posts = self.index.taxonomy_posts(taxonomy, slug)
        if not posts:
            raise NotFound()
        settings = self.settings.get()
        try:
            current, pagination = paginate(posts, page, settings.posts_per_page)
        except ValueError:
            raise NotFound() from None

        theme = self.registry.active
        template = self.registry.resolve_template(
            [
                f"custom/{taxonomy}-{slug}.html",
                f"custom/{taxonomy}.html",
                "templates/taxonomy.html",
                f"templates/{taxonomy}.html",
                "templates/layout.html",
            ],
            theme,
        )
        name = self.index.taxonomy_name(taxonomy, slug)
        summary = QueryOptions(summary_view=True)
        data = await self.base_data(ctx, theme)
        data.update(
            fileType=taxonomy,
            taxonomy={"type": taxonomy, "slug": slug, "name": name, "count": len(posts)},
            posts=[self.index.view(p, summary) for p in current],
            pagination=pagination.to_dict(f"/{taxonomy}/{slug}"),
            metadata={"title": f"{taxonomy.capitalize()}: {name}"},
        )
        return await self._render(theme, template, data)

    async def render_not_found(self, ctx: RequestContext = ANONYMOUS) -> RenderResult:
        theme = self.registry.active
        template = self.registry.resolve_template(["templates/404.html", "templates/layout.html"], theme)
        data = await self.base_data(ctx, theme)
        data.update(notFoundRoute=True, fileType="404", metadata={"title": "Page Not Found"})
        return await self._render(theme, template, data, status=404)

    def _render_seo(self, name: str) -> RenderResult:
        settings = self.settings.get()
        if name == "rss.xml":
            body = build_rss(settings, self.index)
        elif name == "sitemap.xml":
            body = build_sitemap(settings, self.index)
        else:
            body = build_robots(settings)
        return RenderResult(status=200, body=body, media_type=SEO_FILES[name])
