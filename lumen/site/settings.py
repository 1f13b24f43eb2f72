"""Site settings: one JSON document of site-level knobs (``settings.json``)."""

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable

from pydantic import BaseModel, Field, ValidationError
from pydantic.alias_generators import to_camel

from lumen.content.models import validation_errors
from lumen.errors import ValidationFailed
from lumen.storage import read_json, write_json_atomic

logger = logging.getLogger(__name__)


class SiteSettings(BaseModel):
    site_title: str = "My Lumen Site"
    site_description: str = "A site powered by Lumen CMS"
    site_url: str = "http://localhost:8080"
    site_logo: str | None = None
    site_icon: str | None = None
    active_theme: str = "default"
    posts_per_page: int = Field(default=10, ge=1)
    enable_comments: bool = False
    enable_caching: bool = False
    cache_duration: int = Field(default=3600, ge=0)
    comment_moderation: bool = True
    static_output_dir: str = "_site"
    static_clean_urls: bool = True
    footer_code: str = ""

    model_config = {"alias_generator": to_camel, "populate_by_name": True, "extra": "allow"}

    def public(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class SettingsStore:
    """Loads, validates and persists ``SiteSettings``."""

    def __init__(self, data_dir: Path):
        self.path = Path(data_dir) / "settings.json"
        self._settings: SiteSettings | None = None
        self._lock = asyncio.Lock()
        self.theme_exists: Callable[[str], bool] | None = None

    def load(self) -> SiteSettings:
        """Read settings from disk, falling back to defaults when missing or invalid."""
        raw = read_json(self.path)
        if raw is None:
            if self.path.exists():
                logger.warning(f"Unparseable {self.path}, using default settings")
            settings = SiteSettings()
            if not self.path.exists():
                write_json_atomic(self.path, settings.public())
        else:
            try:
                settings = SiteSettings.model_validate(raw)
            except ValidationError as e:
                logger.warning(f"Invalid settings in {self.path}, using defaults: {e}")
                settings = SiteSettings()
        self._settings = settings
        return settings

    def get(self) -> SiteSettings:
        if self._settings is None:
            self.load()
        return self._settings.model_copy(deep=True)

    async def update(self, patch: dict[str, Any]) -> SiteSettings:
        """Merge and validate ``patch``, then persist.

        Raises:
            ValidationFailed: If a field is invalid or ``activeTheme`` is not installed.
        """
        async with self._lock:
            merged = {**self.get().public(), **patch}
            try:
                settings = SiteSettings.model_validate(merged)
            except ValidationError as e:
                raise ValidationFailed("Invalid settings", errors=validation_errors(e)) from e
            if self.theme_exists and not self.theme_exists(settings.active_theme):
                raise ValidationFailed(
                    "Invalid settings",
                    errors={"activeTheme": f"Theme '{settings.active_theme}' is not installed"},
                )
            write_json_atomic(self.path, settings.public())
            self._settings = settings
        logger.info(f"Settings updated: {', '.join(sorted(patch))}")
        return settings.model_copy(deep=True)

    def replace_active_theme(self, name: str) -> SiteSettings:
        """Persist a fallback active theme chosen at startup (no install check)."""
        settings = self.get()
        settings.active_theme = name
        write_json_atomic(self.path, settings.public())
        self._settings = settings
        return settings.model_copy(deep=True)
