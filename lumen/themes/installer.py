"""Theme installer: zip package to installed theme.

Each attempt moves through:

    Idle -> Receiving -> Extracting -> Validating -> Staged -> Committed
                                                           \\-> Rejected

The upload is written to ``themes_dir/_temp_uploads/<nonce>.zip`` and
extracted into ``themes_dir/_temp_extract/<nonce>``. Both are removed when
the attempt ends, whatever the outcome.
"""

import asyncio
import json
import logging
import os
import secrets
import shutil
import zipfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable

from lumen.content.slugs import slugify
from lumen.errors import AlreadyInstalled, CMSError, Conflict, InvalidPackage
from lumen.themes.manifest import MANIFEST_FILENAME, compare_versions, validate_manifest
from lumen.themes.registry import Theme, ThemeRegistry

logger = logging.getLogger(__name__)

UPLOADS_DIR = "_temp_uploads"
EXTRACT_DIR = "_temp_extract"
BACKUP_PREFIX = "_temp_backup_"
REQUIRED_TEMPLATE = "templates/layout.html"
IGNORED_ROOT_ENTRIES = {"__MACOSX"}


class InstallState(str, Enum):
    IDLE = "idle"
    RECEIVING = "receiving"
    EXTRACTING = "extracting"
    VALIDATING = "validating"
    STAGED = "staged"
    COMMITTED = "committed"
    REJECTED = "rejected"


TRANSITIONS = {
    InstallState.IDLE: {InstallState.RECEIVING},
    InstallState.RECEIVING: {InstallState.EXTRACTING, InstallState.REJECTED},
    InstallState.EXTRACTING: {InstallState.VALIDATING, InstallState.REJECTED},
    InstallState.VALIDATING: {InstallState.STAGED, InstallState.REJECTED},
    InstallState.STAGED: {InstallState.COMMITTED, InstallState.REJECTED},
    InstallState.COMMITTED: set(),
    InstallState.REJECTED: set(),
}


@dataclass
class InstallAttempt:
    nonce: str
    state: InstallState = InstallState.IDLE
    errors: list[str] = field(default_factory=list)
    theme_name: str | None = None
    history: list[InstallState] = field(default_factory=lambda: [InstallState.IDLE])

    def advance(self, state: InstallState) -> None:
        if state not in TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal install transition {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def to_dict(self) -> dict:
        return {
            "nonce": self.nonce,
            "state": self.state.value,
            "errors": self.errors,
            "theme": self.theme_name,
            "history": [s.value for s in self.history],
        }


class ThemeInstaller:
    def __init__(self, registry: ThemeRegistry):
        self.registry = registry
        self.last_attempt: InstallAttempt | None = None

    @property
    def themes_dir(self) -> Path:
        return self.registry.themes_dir

    async def install(self, package: bytes, update: bool = False) -> Theme:
        """Install a zipped theme package.

        Args:
            package: Raw zip bytes.
            update: Allow replacing an installed theme with the same or a lower version.

        Returns:
            The installed theme.

        Raises:
            InvalidPackage: If the package fails validation.
            AlreadyInstalled: If the theme exists and ``update`` was not requested.
        """
        attempt = InstallAttempt(nonce=secrets.token_hex(8))
        self.last_attempt = attempt
        upload = self.themes_dir / UPLOADS_DIR / f"{attempt.nonce}.zip"
        staging = self.themes_dir / EXTRACT_DIR / attempt.nonce

        try:
            attempt.advance(InstallState.RECEIVING)
            await asyncio.to_thread(_write_bytes, upload, package)

            attempt.advance(InstallState.EXTRACTING)
            await asyncio.to_thread(_extract, upload, staging)

            attempt.advance(InstallState.VALIDATING)
            theme_dir, manifest = _validate_staging(staging)
            name = slugify(theme_dir.name)
            if not name:
                raise InvalidPackage([f"Theme directory name '{theme_dir.name}' is not usable"])
            attempt.theme_name = name

            attempt.advance(InstallState.STAGED)
            self._commit(theme_dir, name, manifest["version"], update, attempt.nonce)
            attempt.advance(InstallState.COMMITTED)
        except CMSError as e:
            attempt.errors = getattr(e, "errors", None) or [e.message]
            attempt.advance(InstallState.REJECTED)
            logger.warning(f"Theme install {attempt.nonce} rejected: {'; '.join(attempt.errors)}")
            raise
        finally:
            shutil.rmtree(staging, ignore_errors=True)
            upload.unlink(missing_ok=True)

        self.registry.discover()
        logger.info(f"Installed theme '{name}' version {manifest['version']}")
        return self.registry.get(name)

    def _commit(self, theme_dir: Path, name: str, version: str, update: bool, nonce: str) -> None:
        target = self.themes_dir / name
        if not target.exists():
            os.replace(theme_dir, target)
            return

        installed = self.registry.discover().get(name)
        installed_version = installed.version if installed else "0.0.0"
        if compare_versions(version, installed_version) <= 0 and not update:
            raise AlreadyInstalled(f"Theme '{name}' version {installed_version} is already installed")

        backup = self.themes_dir / f"{BACKUP_PREFIX}{nonce}"
        os.replace(target, backup)
        try:
            os.replace(theme_dir, target)
        except OSError:
            os.replace(backup, target)
            raise
        shutil.rmtree(backup, ignore_errors=True)
        logger.info(f"Replaced theme '{name}' {installed_version} -> {version}")

    async def install_from_marketplace(
        self, name: str, download: Callable[[str], Awaitable[bytes]], update: bool = False
    ) -> Theme:
        """Download a marketplace package and run it through ``install``."""
        package = await download(name)
        return await self.install(package, update=update)

    async def check_updates(self, marketplace) -> list[dict]:
        """Installed themes with a newer marketplace version."""
        available = {entry.get("name"): entry for entry in await marketplace.themes()}
        updates = []
        for theme in self.registry.list():
            entry = available.get(theme.name)
            if entry and compare_versions(str(entry.get("version", "0.0.0")), theme.version) > 0:
                updates.append({
                    "name": theme.name,
                    "currentVersion": theme.version,
                    "latestVersion": entry["version"],
                    "changelog": list(entry.get("changelog") or []),
                })
        return updates

    async def update_from_marketplace(self, name: str, marketplace) -> Theme:
        """Replace an installed theme with its newer marketplace version.

        Raises:
            NotFound: If the theme is not installed.
            Conflict: If the marketplace has no newer version.
        """
        installed = self.registry.get(name)
        entry = await marketplace.get_theme(name)
        latest = str(entry.get("version", "0.0.0"))
        if compare_versions(latest, installed.version) <= 0:
            raise Conflict(f"Theme '{name}' is already at the latest version ({installed.version})")
        return await self.install_from_marketplace(name, marketplace.download, update=True)


def _write_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


def _extract(archive: Path, staging: Path) -> None:
    """Extract ``archive`` into ``staging``, refusing entries that escape it."""
    staging.mkdir(parents=True, exist_ok=True)
    root = staging.resolve()
    try:
        with zipfile.ZipFile(archive) as zf:
            for member in zf.infolist():
                destination = (root / member.filename).resolve()
                if not destination.is_relative_to(root):
                    raise InvalidPackage([f"Unsafe path in package: {member.filename}"])
            zf.extractall(root)
    except zipfile.BadZipFile as e:
        raise InvalidPackage(["Package is not a valid zip archive"]) from e


def _validate_staging(staging: Path) -> tuple[Path, dict]:
    """Check the extracted tree; returns the theme directory and its manifest."""
    entries = [
        p for p in staging.iterdir()
        if p.name not in IGNORED_ROOT_ENTRIES and not p.name.startswith(".")
    ]
    directories = [p for p in entries if p.is_dir()]
    if len(entries) != 1 or len(directories) != 1:
        raise InvalidPackage(["Theme package must contain exactly one top-level directory"])
    theme_dir = directories[0]

    manifest_path = theme_dir / MANIFEST_FILENAME
    if not manifest_path.is_file():
        raise InvalidPackage([f"{MANIFEST_FILENAME} not found in {theme_dir.name}/"])
    try:
        manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidPackage([f"{MANIFEST_FILENAME} is not valid JSON: {e}"]) from e

    errors = validate_manifest(manifest)
    if not (theme_dir / "templates").is_dir():
        errors.append("templates/ directory is missing")
    elif not (theme_dir / REQUIRED_TEMPLATE).is_file():
        errors.append(f"{REQUIRED_TEMPLATE} is missing")
    if errors:
        raise InvalidPackage(errors)
    return theme_dir, manifest

