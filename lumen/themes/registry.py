"""Theme registry: discovery, active-theme tracking and template lookup.

Themes live in subdirectories of ``themes_dir``. Directories whose names start
with ``_temp`` belong to the installer and are ignored. A theme whose
manifest does not validate is skipped with a warning.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from lumen.errors import Conflict, InvalidPackage, NotFound, TemplateMissing
from lumen.site.settings import SettingsStore
from lumen.themes.manifest import ThemeManifest, load_manifest

logger = logging.getLogger(__name__)

TEMP_PREFIX = "_temp"
DEFAULT_THEME = "default"
BUNDLED_THEME_DIR = Path(__file__).resolve().parent.parent / "default_theme"


@dataclass
class Theme:
    name: str
    root: Path
    manifest: ThemeManifest

    @property
    def templates_dir(self) -> Path:
        return self.root / "templates"

    @property
    def partials_dir(self) -> Path:
        return self.root / "partials"

    @property
    def assets_dir(self) -> Path:
        return self.root / "assets"

    @property
    def custom_dir(self) -> Path | None:
        path = self.root / "custom"
        return path if path.is_dir() else None

    @property
    def version(self) -> str:
        return self.manifest.version

    def has_template(self, relative: str) -> bool:
        return (self.root / relative).is_file()

    def to_dict(self, active: bool = False) -> dict[str, Any]:
        """OS-independent description for the API."""
        return {
            "name": self.name,
            "path": self.root.as_posix(),
            "templatesDir": self.templates_dir.as_posix(),
            "partialsDir": self.partials_dir.as_posix(),
            "assetsDir": self.assets_dir.as_posix(),
            "customDir": self.custom_dir.as_posix() if self.custom_dir else None,
            "active": active,
            **self.manifest.to_dict(),
        }


class ThemeRegistry:
    """Installed themes plus the active one."""

    def __init__(self, themes_dir: Path, settings: SettingsStore):
        self.themes_dir = Path(themes_dir)
        self.settings = settings
        self._themes: dict[str, Theme] = {}
        self._active: str | None = None
        self._listeners = []

    def add_listener(self, callback) -> None:
        """Register a callback run whenever themes are rediscovered or switched."""
        self._listeners.append(callback)

    def seed_default(self) -> None:
        """Copy the bundled default theme into an empty themes directory."""
        self.themes_dir.mkdir(parents=True, exist_ok=True)
        if any(p.is_dir() and not p.name.startswith(TEMP_PREFIX) for p in self.themes_dir.iterdir()):
            return
        shutil.copytree(BUNDLED_THEME_DIR, self.themes_dir / DEFAULT_THEME)
        logger.info(f"Installed bundled theme into {self.themes_dir / DEFAULT_THEME}")

    def discover(self) -> dict[str, Theme]:
        themes = {}
        if self.themes_dir.is_dir():
            for path in sorted(self.themes_dir.iterdir()):
                if not path.is_dir() or path.name.startswith(TEMP_PREFIX) or path.name.startswith("."):
                    continue
                try:
                    manifest = load_manifest(path)
                except InvalidPackage as e:
                    logger.warning(f"Skipping theme '{path.name}': {'; '.join(e.errors)}")
                    continue
                themes[path.name] = Theme(name=path.name, root=path, manifest=manifest)
        self._themes = themes
        self._notify()
        return dict(themes)

    def list(self) -> list[Theme]:
        return list(self._themes.values())

    def exists(self, name: str) -> bool:
        return name in self._themes

    def get(self, name: str) -> Theme:
        try:
            return self._themes[name]
        except KeyError:
            raise NotFound(f"Theme '{name}' not found") from None

    @property
    def active(self) -> Theme:
        if self._active is None or self._active not in self._themes:
            return self.initialize()
        return self._themes[self._active]

    def initialize(self) -> Theme:
        """Discover themes and pick the active one.

        Order: ``settings.activeTheme``, then ``default``, then the first
        discovered theme. A fallback choice is written back to settings.

        Raises:
            NotFound: If no valid theme is installed.
        """
        self.discover()
        configured = self.settings.get().active_theme
        if configured in self._themes:
            chosen = configured
        elif DEFAULT_THEME in self._themes:
            chosen = DEFAULT_THEME
        elif self._themes:
            chosen = next(iter(self._themes))
        else:
            raise NotFound(f"No valid themes installed in {self.themes_dir}")

        if chosen != configured:
            logger.warning(f"Active theme '{configured}' not available, falling back to '{chosen}'")
            self.settings.replace_active_theme(chosen)
        self._active = chosen
        return self._themes[chosen]

    async def switch_theme(self, name: str) -> Theme:
        """Make ``name`` the active theme and persist the choice."""
        self.discover()
        theme = self.get(name)
        await self.settings.update({"activeTheme": name})
        self._active = name
        self._notify()
        logger.info(f"Switched active theme to '{name}'")
        return theme

    def delete(self, name: str) -> None:
        """Remove an installed theme.

        Raises:
            Conflict: If ``name`` is the active theme.
            NotFound: If it is not installed.
        """
        theme = self.get(name)
        if name == self.active.name:
            raise Conflict(f"Cannot delete the active theme '{name}'")
        shutil.rmtree(theme.root)
        logger.info(f"Deleted theme '{name}'")
        self.discover()

    def resolve_template(self, candidates: list[str], theme: Theme | None = None) -> str:
        """First existing template among ``candidates`` (paths relative to the theme root).

        Raises:
            TemplateMissing: If none exist.
        """
        theme = theme or self.active
        for candidate in candidates:
            if theme.has_template(candidate):
                return candidate
        raise TemplateMissing(candidates[0] if candidates else "(none)")

    def asset_path(self, relative: str) -> Path:
        """Absolute path of an asset of the active theme.

        Raises:
            NotFound: If the file is missing or escapes the assets directory.
        """
        return safe_join(self.active.assets_dir, relative)

    def _notify(self) -> None:
        for callback in self._listeners:
            callback()


def safe_join(base: Path, relative: str) -> Path:
    """Join ``relative`` under ``base``, refusing traversal outside it."""
    base = base.resolve()
    path = (base / relative).resolve()
    if not path.is_relative_to(base) or not path.is_file():
        raise NotFound("File not found")
    return path
