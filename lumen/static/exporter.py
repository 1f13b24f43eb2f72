"""Static exporter: crawl the public site and write it to disk.

Seeds are ``/``, every published post and page, each tag and category
listing, and the SEO files. Every URL is rendered through the same
``Resolver`` a live request uses, with an anonymous context. Internal links
found in the rendered HTML are followed, so pagination pages and anything a
theme links to are exported too.

``base_url`` empty or ``/`` keeps links root-relative; any other value is
prefixed to every internal absolute link in the written HTML.

The output directory is never removed. Files are overwritten in place and
every written path is recorded in ``.lumen-export.json``; the next export
deletes only the files listed there, so anything else in the directory is
left alone.
"""

import asyncio
import logging
import re
import shutil
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any

from bs4 import BeautifulSoup

from lumen.content.index import ContentIndex
from lumen.content.models import now_iso
from lumen.content.query import QueryOptions
from lumen.errors import Conflict, ValidationFailed
from lumen.render.resolver import SEO_FILES, Resolver
from lumen.site.settings import SettingsStore
from lumen.storage import read_json, write_json_atomic
from lumen.themes.registry import ThemeRegistry

logger = logging.getLogger(__name__)

EXPORT_MANIFEST = ".lumen-export.json"
SKIPPED_LINK_PREFIXES = ("/assets/", "/content/uploads/", "/api/")
_INTERNAL_LINK = re.compile(r"""(\s(?:href|src|action)=)(["'])/(?!/)""")


class GenerationStatus(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    READY = "ready"


@dataclass
class ExportOptions:
    output_dir: Path
    base_url: str = "/"
    clean_urls: bool = True


@dataclass
class ExportReport:
    output_dir: str
    pages: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    files_written: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "outputDir": self.output_dir,
            "pages": self.pages,
            "skipped": self.skipped,
            "filesWritten": self.files_written,
        }


class StaticExporter:
    def __init__(
        self,
        resolver: Resolver,
        index: ContentIndex,
        registry: ThemeRegistry,
        settings: SettingsStore,
        data_dir: Path,
    ):
        self.resolver = resolver
        self.index = index
        self.registry = registry
        self.settings = settings
        self.data_dir = Path(data_dir)
        self.status = GenerationStatus.IDLE
        self.last_generated: str | None = None
        self.last_report: ExportReport | None = None
        self.last_error: str | None = None

    def status_payload(self) -> dict[str, Any]:
        settings = self.settings.get()
        payload = {
            "status": self.status.value,
            "lastGenerated": self.last_generated,
            "settings": {
                "staticOutputDir": settings.static_output_dir,
                "siteUrl": settings.site_url,
                "staticCleanUrls": settings.static_clean_urls,
            },
        }
        if self.last_report:
            payload["report"] = self.last_report.to_dict()
        if self.last_error:
            payload["error"] = self.last_error
        return payload

    def options(self, overrides: dict[str, Any] | None = None) -> ExportOptions:
        """Export options from settings, with request overrides."""
        overrides = overrides or {}
        settings = self.settings.get()
        clean = overrides.get("cleanUrls")
        return ExportOptions(
            output_dir=Path(overrides.get("outputDir") or settings.static_output_dir or "_site"),
            base_url=overrides.get("baseUrl") if overrides.get("baseUrl") is not None else "/",
            clean_urls=settings.static_clean_urls if clean is None else bool(clean),
        )

    def begin(self) -> None:
        """Mark a generation as started.

        Raises:
            Conflict: If one is already running.
        """
        if self.status == GenerationStatus.GENERATING:
            raise Conflict("Static generation is already running")
        self.status = GenerationStatus.GENERATING
        self.last_error = None

    async def run(self, options: ExportOptions) -> ExportReport | None:
        """Background entry point: generate and record the outcome in ``status``."""
        if self.status != GenerationStatus.GENERATING:
            self.begin()
        try:
            report = await self.generate(options)
        except Exception as e:
            logger.exception("Static generation failed")
            self.last_error = str(e)
            self.status = GenerationStatus.IDLE
            return None
        self.last_report = report
        self.last_generated = now_iso()
        self.status = GenerationStatus.READY
        return report

    async def generate(self, options: ExportOptions) -> ExportReport:
        out = await asyncio.to_thread(self._prepare_output, options.output_dir)
        report = ExportReport(output_dir=out.as_posix())
        written: list[Path] = []
        logger.info(f"Generating static site into {out}")

        queue = deque(self.seed_urls())
        seen = set(queue)
        while queue:
            url = queue.popleft()
            result = await self.resolver.resolve(url)
            if result.status != 200:
                report.skipped.append(url)
                continue

            body = result.body
            if result.is_html:
                for link in discover_links(body):
                    if link not in seen:
                        seen.add(link)
                        queue.append(link)
                body = rewrite_links(body, options.base_url)
            target = out / output_path(url, options.clean_urls)
            await asyncio.to_thread(self._write, target, body)
            written.append(target)
            report.pages.append(url)

        not_found = await self.resolver.render_not_found()
        await asyncio.to_thread(self._write, out / "404.html", rewrite_links(not_found.body, options.base_url))
        written.append(out / "404.html")

        written += await asyncio.to_thread(self._copy_assets, out)
        report.files_written = len(written)
        write_json_atomic(out / EXPORT_MANIFEST, {"files": sorted({p.relative_to(out).as_posix() for p in written})})
        logger.info(f"Static site ready: {len(report.pages)} pages, {report.files_written} files")
        return report

    def seed_urls(self) -> list[str]:
        published = QueryOptions(status="published")
        urls = ["/"]
        urls += [self.index.public_url(p) for p in self.index.posts(published)]
        urls += [self.index.public_url(p) for p in self.index.pages(published)]
        for taxonomy in ("category", "tag"):
            urls += [f"/{taxonomy}/{slug}" for slug in self.index.taxonomy_counts(taxonomy)]
        urls += [f"/{name}" for name in SEO_FILES]
        return list(dict.fromkeys(urls))

    def _prepare_output(self, output_dir: Path) -> Path:
        out = output_dir.resolve()
        protected = (self.data_dir.resolve(), self.registry.themes_dir.resolve())
        if out == Path.cwd().resolve() or any(p.is_relative_to(out) for p in protected):
            raise ValidationFailed(
                "Invalid output directory",
                errors={"outputDir": f"Refusing to write static output into {out}"},
            )
        out.mkdir(parents=True, exist_ok=True)
        self._remove_previous_export(out)
        return out

    @staticmethod
    def _remove_previous_export(out: Path) -> None:
        """Delete the files listed by the last export's manifest, and nothing else."""
        manifest = read_json(out / EXPORT_MANIFEST, {})
        files = manifest.get("files", []) if isinstance(manifest, dict) else []
        removed = 0
        for relative in files:
            path = (out / str(relative)).resolve()
            if not path.is_relative_to(out) or not path.is_file():
                continue
            path.unlink()
            removed += 1
            parent = path.parent
            while parent != out and not any(parent.iterdir()):
                parent.rmdir()
                parent = parent.parent
        if removed:
            logger.info(f"Removed {removed} file(s) left by the previous export in {out}")

    def _copy_assets(self, out: Path) -> list[Path]:
        copied: list[Path] = []

        def copy(src, dst):
            copied.append(Path(dst))
            return shutil.copy2(src, dst)

        assets = self.registry.active.assets_dir
        if assets.is_dir():
            shutil.copytree(assets, out / "assets", copy_function=copy, dirs_exist_ok=True)
        uploads = self.data_dir / "uploads"
        if uploads.is_dir():
            shutil.copytree(
                uploads,
                out / "content" / "uploads",
                ignore=shutil.ignore_patterns("*.metadata.json"),
                copy_function=copy,
                dirs_exist_ok=True,
            )
        return copied

    @staticmethod
    def _write(path: Path, body: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(body, encoding="utf-8")


def output_path(url: str, clean_urls: bool = True) -> PurePosixPath:
    """File path (relative to the output root) for a site URL.

    >>> output_path("/post/hello")
    PurePosixPath('post/hello/index.html')
    >>> output_path("/post/hello", clean_urls=False)
    PurePosixPath('post/hello.html')
    """
    path = url.split("?", 1)[0].split("#", 1)[0].strip("/")
    if not path:
        return PurePosixPath("index.html")
    if "." in path.rsplit("/", 1)[-1]:
        return PurePosixPath(path)
    if clean_urls:
        return PurePosixPath(path) / "index.html"
    return PurePosixPath(f"{path}.html")


def discover_links(html: str) -> list[str]:
    """Internal page links in rendered HTML, normalized to paths."""
    soup = BeautifulSoup(html, "lxml")
    links = []
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].split("#", 1)[0].split("?", 1)[0]
        if not href.startswith("/") or href.startswith("//"):
            continue
        if href.startswith(SKIPPED_LINK_PREFIXES):
            continue
        normalized = "/" + href.strip("/") if href != "/" else "/"
        if normalized not in links:
            links.append(normalized)
    return links


def rewrite_links(html: str, base_url: str) -> str:
    """Prefix internal absolute links with ``base_url`` unless it is empty or ``/``."""
    base = (base_url or "").rstrip("/")
    if not base:
        return html
    return _INTERNAL_LINK.sub(lambda m: f"{m.group(1)}{m.group(2)}{base}/", html)
