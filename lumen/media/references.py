"""Which content items use a media asset, and cascading edits.

A content item references an asset through:
- ``featuredImage``: the asset id, its URL, or an object with ``id``/``url``
- ``gallery``: entries of the same shapes
- the body: markdown images or ``<img>`` tags pointing at the asset URL
"""

import logging
import re
from typing import Any

from markupsafe import escape

from lumen.content.index import ContentIndex
from lumen.content.models import ContentItem, Kind
from lumen.content.store import FrontmatterStore
from lumen.media.registry import MediaAsset

logger = logging.getLogger(__name__)


def _matches(ref: Any, asset: MediaAsset) -> bool:
    if isinstance(ref, dict):
        return ref.get("id") == asset.id or ref.get("url") == asset.url
    return ref in (asset.id, asset.url)


def _markdown_image(url: str) -> re.Pattern:
    return re.compile(r"!\[([^\]]*)\]\(\s*" + re.escape(url) + r'(\s+"[^"]*")?\s*\)')


def _img_tag(url: str) -> re.Pattern:
    return re.compile(r"<img\b[^>]*\bsrc=[\"']" + re.escape(url) + r"[\"'][^>]*>", re.I)


def _figure(url: str) -> re.Pattern:
    return re.compile(
        r"<figure\b[^>]*>(?:(?!</figure>).)*?\bsrc=[\"']" + re.escape(url) + r"[\"'](?:(?!</figure>).)*?</figure>",
        re.I | re.S,
    )


def _set_alt(tag: str, alt: str) -> str:
    escaped = str(escape(alt))
    if re.search(r"\balt=[\"'][^\"']*[\"']", tag, re.I):
        return re.sub(r"\balt=[\"'][^\"']*[\"']", f'alt="{escaped}"', tag, count=1, flags=re.I)
    return re.sub(r"<img\b", f'<img alt="{escaped}"', tag, count=1, flags=re.I)


def _set_caption(figure: str, caption: str) -> str:
    escaped = str(escape(caption))
    if re.search(r"<figcaption\b", figure, re.I):
        return re.sub(r"(<figcaption\b[^>]*>).*?(</figcaption>)", rf"\g<1>{escaped}\g<2>", figure, count=1, flags=re.I | re.S)
    return re.sub(r"</figure>", f"<figcaption>{escaped}</figcaption></figure>", figure, count=1, flags=re.I)


class MediaReferences:
    def __init__(self, index: ContentIndex, store: FrontmatterStore):
        self.index = index
        self.store = store

    def _items(self) -> list[ContentItem]:
        return self.index.posts() + self.index.pages()

    def reference_types(self, item: ContentItem, asset: MediaAsset) -> list[str]:
        types = []
        if item.featured_image is not None and _matches(item.featured_image, asset):
            types.append("featuredImage")
        if any(_matches(entry, asset) for entry in item.gallery):
            types.append("gallery")
        if asset.url in item.body:
            types.append("embedded")
        return types

    def find(self, asset: MediaAsset) -> dict[str, Any]:
        """``{referenced, references: [{type, id, title, slug, referenceType}]}``."""
        references = []
        for item in self._items():
            for ref_type in self.reference_types(item, asset):
                references.append({
                    "type": Kind(item.kind).value,
                    "id": item.id,
                    "title": item.title,
                    "slug": item.slug,
                    "referenceType": ref_type,
                })
        return {"referenced": bool(references), "references": references}

    async def clean(self, asset: MediaAsset) -> list[str]:
        """Strip every reference to a deleted asset. Returns the ids of updated items."""
        updated = []
        for item in self._items():
            if not self.reference_types(item, asset):
                continue
            patch: dict[str, Any] = {}
            if item.featured_image is not None and _matches(item.featured_image, asset):
                patch["featuredImage"] = None
            if any(_matches(entry, asset) for entry in item.gallery):
                patch["gallery"] = [entry for entry in item.gallery if not _matches(entry, asset)]
            if asset.url in item.body:
                body = _figure(asset.url).sub("", item.body)
                body = _img_tag(asset.url).sub("", body)
                body = _markdown_image(asset.url).sub("", body)
                patch["body"] = body
            await self.store.update(item.kind, item.id, patch)
            updated.append(item.id)
        if updated:
            logger.info(f"Removed references to {asset.filename} from {len(updated)} item(s)")
        return updated

    async def propagate(self, asset: MediaAsset) -> list[str]:
        """Push the asset's alt text and caption into the items that embed it."""
        updated = []
        for item in self._items():
            patch: dict[str, Any] = {}
            if isinstance(item.featured_image, dict) and _matches(item.featured_image, asset):
                featured = {**item.featured_image, "alt": asset.alt}
                if asset.caption:
                    featured["caption"] = asset.caption
                if featured != item.featured_image:
                    patch["featuredImage"] = featured

            if asset.url in item.body:
                body = _markdown_image(asset.url).sub(
                    lambda m: f"![{asset.alt}]({asset.url}{m.group(2) or ''})", item.body
                )
                body = _img_tag(asset.url).sub(lambda m: _set_alt(m.group(0), asset.alt), body)
                if asset.caption:
                    body = _figure(asset.url).sub(lambda m: _set_caption(m.group(0), asset.caption), body)
                if body != item.body:
                    patch["body"] = body

            if patch:
                await self.store.update(item.kind, item.id, patch)
                updated.append(item.id)
        if updated:
            logger.info(f"Propagated metadata of {asset.filename} to {len(updated)} item(s)")
        return updated
