"""Theme marketplace client.

The marketplace is a static CDN with three JSON documents under a base URL:
- ``themes.json``: theme entries (``name``, ``version``, ``downloadUrl`` or
  ``sourceRepo``/``sourcePath``, ``category``, ``tags``, ``changelog``, ...)
- ``categories.json``: category list
- ``metadata.json``: marketplace info

Responses are cached in memory for ``cache_seconds``.
"""

import io
import logging
import time
import zipfile
from typing import Any

import httpx

from lumen.errors import MarketplaceUnavailable, NotFound
from lumen.themes.manifest import parse_version

logger = logging.getLogger(__name__)

GITHUB_ARCHIVE_URL = "https://github.com/{repo}/archive/refs/heads/{branch}.zip"

SORT_KEYS = {
    "name": lambda t: str(t.get("title") or t.get("name", "")).lower(),
    "updated": lambda t: str(t.get("updatedAt", "")),
    "version": lambda t: parse_version(str(t.get("version", "0.0.0"))),
}


class MarketplaceClient:
    def __init__(self, base_url: str, cache_seconds: int = 300, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.cache_seconds = cache_seconds
        self.timeout = timeout
        self._cache: dict[str, tuple[float, Any]] = {}

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def clear_cache(self) -> None:
        self._cache.clear()

    async def _fetch_json(self, name: str) -> Any:
        """GET ``<base>/<name>`` with caching.

        Raises:
            MarketplaceUnavailable: If the marketplace is disabled or the request fails.
        """
        if not self.enabled:
            raise MarketplaceUnavailable("Theme marketplace is not configured")
        cached = self._cache.get(name)
        if cached and time.monotonic() - cached[0] < self.cache_seconds:
            return cached[1]

        url = f"{self.base_url}/{name}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Marketplace request failed for {url}: {e}")
            raise MarketplaceUnavailable(f"Could not fetch {name} from the marketplace") from e

        self._cache[name] = (time.monotonic(), data)
        return data

    async def themes(self) -> list[dict[str, Any]]:
        data = await self._fetch_json("themes.json")
        themes = data.get("themes", []) if isinstance(data, dict) else data
        return [t for t in themes if isinstance(t, dict) and t.get("name")]

    async def categories(self) -> list[Any]:
        data = await self._fetch_json("categories.json")
        return data.get("categories", []) if isinstance(data, dict) else data

    async def metadata(self) -> dict[str, Any]:
        data = await self._fetch_json("metadata.json")
        return data if isinstance(data, dict) else {}

    async def get_theme(self, name: str) -> dict[str, Any]:
        for entry in await self.themes():
            if entry["name"] == name:
                return entry
        raise NotFound(f"Theme '{name}' not found in marketplace")

    async def browse(
        self,
        query: str | None = None,
        category: str | None = None,
        tag: str | None = None,
        sort: str = "name",
    ) -> list[dict[str, Any]]:
        themes = await self.themes()
        if query:
            themes = search_themes(themes, query)
        if category:
            themes = [t for t in themes if str(t.get("category", "")).lower() == category.lower()]
        if tag:
            themes = [t for t in themes if tag.lower() in [str(x).lower() for x in t.get("tags", [])]]
        return sort_themes(themes, sort)

    async def download(self, name: str) -> bytes:
        """Fetch an installable zip package for ``name``.

        Entries with ``downloadUrl`` are fetched as-is. Entries with
        ``sourceRepo`` are fetched as a GitHub branch archive and the theme
        subdirectory (``sourcePath``) is repackaged as a one-directory zip.
        """
        entry = await self.get_theme(name)
        if entry.get("downloadUrl"):
            return await self._fetch_bytes(entry["downloadUrl"])
        if entry.get("sourceRepo"):
            url = GITHUB_ARCHIVE_URL.format(repo=entry["sourceRepo"], branch=entry.get("sourceBranch", "main"))
            archive = await self._fetch_bytes(url)
            return repackage(archive, entry.get("sourcePath") or name, name)
        raise MarketplaceUnavailable(f"Marketplace entry '{name}' has no download source")

    async def _fetch_bytes(self, url: str) -> bytes:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.content
        except httpx.HTTPError as e:
            logger.error(f"Theme download failed for {url}: {e}")
            raise MarketplaceUnavailable("Theme download failed") from e


def search_themes(themes: list[dict[str, Any]], query: str) -> list[dict[str, Any]]:
    """Case-insensitive match against name, title, description, author and tags."""
    needle = query.lower().strip()
    matches = []
    for theme in themes:
        haystack = " ".join(
            str(theme.get(key, "")) for key in ("name", "title", "description", "author")
        ) + " " + " ".join(str(t) for t in theme.get("tags", []))
        if needle in haystack.lower():
            matches.append(theme)
    return matches


def sort_themes(themes: list[dict[str, Any]], sort: str = "name") -> list[dict[str, Any]]:
    key = SORT_KEYS.get(sort, SORT_KEYS["name"])
    return sorted(themes, key=key, reverse=sort in ("updated", "version"))


def repackage(archive: bytes, source_path: str, name: str) -> bytes:
    """Pull ``source_path`` out of a repository archive into a zip rooted at ``name/``."""
    source_path = source_path.strip("/")
    out = io.BytesIO()
    found = False
    with zipfile.ZipFile(io.BytesIO(archive)) as src, zipfile.ZipFile(out, "w", zipfile.ZIP_DEFLATED) as dst:
        for member in src.infolist():
            # Repository archives nest everything under "<repo>-<branch>/".
            parts = member.filename.split("/", 1)
            if len(parts) < 2:
                continue
            inner = parts[1]
            if member.is_dir() or not inner.startswith(f"{source_path}/"):
                continue
            found = True
            dst.writestr(f"{name}/{inner[len(source_path) + 1:]}", src.read(member))
    if not found:
        raise NotFound(f"Theme directory '{source_path}' not found in repository archive")
    return out.getvalue()
