"""RSS feed, sitemap and robots.txt."""

from email.utils import format_datetime

from markupsafe import escape

from lumen.content.index import ContentIndex
from lumen.content.models import parse_timestamp
from lumen.content.query import QueryOptions, summarize
from lumen.site.settings import SiteSettings

RSS_ITEM_LIMIT = 20


def _absolute(site_url: str, path: str) -> str:
    return f"{site_url.rstrip('/')}{path}"


def build_rss(settings: SiteSettings, index: ContentIndex) -> str:
    posts = index.posts(QueryOptions(status="published", limit=RSS_ITEM_LIMIT))
    items = []
    for post in posts:
        link = _absolute(settings.site_url, index.public_url(post))
        description = post.excerpt or post.seo_description or summarize(post.body)
        items.append(
            "<item>"
            f"<title>{escape(post.title)}</title>"
            f"<link>{escape(link)}</link>"
            f'<guid isPermaLink="false">{escape(post.id)}</guid>'
            f"<pubDate>{format_datetime(parse_timestamp(post.publish_date or post.created_at))}</pubDate>"
            f"<description>{escape(description)}</description>"
            "</item>"
        )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<rss version="2.0"><channel>'
        f"<title>{escape(settings.site_title)}</title>"
        f"<link>{escape(_absolute(settings.site_url, '/'))}</link>"
        f"<description>{escape(settings.site_description)}</description>"
        f"{''.join(items)}"
        "</channel></rss>\n"
    )


def build_sitemap(settings: SiteSettings, index: ContentIndex) -> str:
    entries = [(_absolute(settings.site_url, "/"), None)]
    published = QueryOptions(status="published")
    for item in index.posts(published) + index.pages(published):
        entries.append((_absolute(settings.site_url, index.public_url(item)), item.updated_at))
    for taxonomy in ("category", "tag"):
        for slug in index.taxonomy_counts(taxonomy):
            entries.append((_absolute(settings.site_url, f"/{taxonomy}/{slug}"), None))

    urls = []
    for loc, updated in entries:
        lastmod = f"<lastmod>{parse_timestamp(updated).date().isoformat()}</lastmod>" if updated else ""
        urls.append(f"<url><loc>{escape(loc)}</loc>{lastmod}</url>")
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
        f"{''.join(urls)}"
        "</urlset>\n"
    )


def build_robots(settings: SiteSettings) -> str:
    return (
        "User-agent: *\n"
        "Allow: /\n"
        "Disallow: /api/\n"
        f"Sitemap: {_absolute(settings.site_url, '/sitemap.xml')}\n"
    )
