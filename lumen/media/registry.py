"""Media registry: uploaded files plus a JSON sidecar per file.

Files live in ``uploads/images/`` and ``uploads/documents/``. Each file
``<base>-<id><ext>`` has a ``<file>.metadata.json`` sidecar; the 16-hex-char
``id`` suffix is the stable media id.
"""

import asyncio
import logging
import mimetypes
import re
import secrets
from enum import Enum
from io import BytesIO
from pathlib import Path
from typing import Any

from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_camel

from lumen.content.models import now_iso, parse_timestamp
from lumen.errors import NotFound, ValidationFailed
from lumen.storage import read_json, write_json_atomic

logger = logging.getLogger(__name__)

SIDECAR_SUFFIX = ".metadata.json"
UPLOADS_URL = "/content/uploads"
IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".avif", ".svg"}
_UNSAFE_CHARS = re.compile(r"[^a-z0-9-]+")


class MediaKind(str, Enum):
    IMAGE = "image"
    DOCUMENT = "document"

    @property
    def directory(self) -> str:
        return f"{self.value}s"


class MediaAsset(BaseModel):
    id: str
    filename: str
    original_filename: str = ""
    kind: MediaKind
    mime_type: str = "application/octet-stream"
    url: str
    size: int = 0
    width: int | None = None
    height: int | None = None
    alt: str = ""
    caption: str = ""
    created_at: str
    updated_at: str | None = None

    model_config = {"alias_generator": to_camel, "populate_by_name": True, "use_enum_values": True}

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def normalize_filename(filename: str) -> tuple[str, str]:
    """Split an upload name into a safe lowercase base and extension."""
    path = Path(filename or "file")
    ext = path.suffix.lower()
    base = _UNSAFE_CHARS.sub("-", path.stem.lower()).strip("-") or "file"
    return base[:80], ext


def infer_kind(filename: str, content_type: str | None = None) -> MediaKind:
    if content_type and content_type.startswith("image/"):
        return MediaKind.IMAGE
    if Path(filename or "").suffix.lower() in IMAGE_EXTENSIONS:
        return MediaKind.IMAGE
    return MediaKind.DOCUMENT


def image_dimensions(data: bytes) -> tuple[int | None, int | None]:
    try:
        with Image.open(BytesIO(data)) as image:
            return image.size
    except (UnidentifiedImageError, OSError):
        return None, None


class MediaRegistry:
    def __init__(self, data_dir: Path):
        self.uploads_dir = Path(data_dir) / "uploads"

    def ensure_dirs(self) -> None:
        for kind in MediaKind:
            (self.uploads_dir / kind.directory).mkdir(parents=True, exist_ok=True)

    def file_path(self, asset: MediaAsset) -> Path:
        return self.uploads_dir / MediaKind(asset.kind).directory / asset.filename

    def _sidecar(self, kind: MediaKind, filename: str) -> Path:
        return self.uploads_dir / kind.directory / f"{filename}{SIDECAR_SUFFIX}"

    async def save(
        self,
        data: bytes,
        filename: str,
        kind: MediaKind | str | None = None,
        content_type: str | None = None,
        alt: str = "",
        caption: str = "",
    ) -> MediaAsset:
        """Persist an upload and its sidecar."""
        if not data:
            raise ValidationFailed("Empty upload", errors={"file": "Uploaded file is empty"})
        kind = MediaKind(kind) if kind else infer_kind(filename, content_type)
        base, ext = normalize_filename(filename)
        directory = self.uploads_dir / kind.directory
        directory.mkdir(parents=True, exist_ok=True)

        media_id = secrets.token_hex(8)
        stored = f"{base}-{media_id}{ext}"
        while (directory / stored).exists():
            media_id = secrets.token_hex(8)
            stored = f"{base}-{media_id}{ext}"

        width = height = None
        if kind == MediaKind.IMAGE and ext != ".svg":
            width, height = await asyncio.to_thread(image_dimensions, data)

        now = now_iso()
        asset = MediaAsset(
            id=media_id,
            filename=stored,
            original_filename=filename or stored,
            kind=kind,
            mime_type=content_type or mimetypes.guess_type(stored)[0] or "application/octet-stream",
            url=f"{UPLOADS_URL}/{kind.directory}/{stored}",
            size=len(data),
            width=width,
            height=height,
            alt=alt,
            caption=caption,
            created_at=now,
            updated_at=now,
        )
        await asyncio.to_thread((directory / stored).write_bytes, data)
        write_json_atomic(self._sidecar(kind, stored), asset.to_dict())
        logger.info(f"Stored {kind.value} {stored} ({len(data)} bytes)")
        return asset

    def list(self, kind: MediaKind | str | None = None) -> list[MediaAsset]:
        """Assets newest first, optionally limited to one kind."""
        kinds = [MediaKind(kind)] if kind else list(MediaKind)
        assets = []
        for k in kinds:
            directory = self.uploads_dir / k.directory
            if not directory.is_dir():
                continue
            for sidecar in directory.glob(f"*{SIDECAR_SUFFIX}"):
                raw = read_json(sidecar)
                if raw is None:
                    continue
                try:
                    assets.append(MediaAsset.model_validate(raw))
                except ValidationError as e:
                    logger.warning(f"Skipping malformed media sidecar {sidecar}: {e}")
        return sorted(assets, key=lambda a: parse_timestamp(a.created_at), reverse=True)

    def get(self, media_id: str) -> MediaAsset:
        for asset in self.list():
            if asset.id == media_id:
                return asset
        raise NotFound("Media not found")

    def upload_path(self, relative: str) -> Path:
        """File under ``uploads/`` for a public ``/content/uploads/*`` request.

        Raises:
            NotFound: For sidecars, missing files and traversal attempts.
        """
        root = self.uploads_dir.resolve()
        path = (root / relative).resolve()
        if not path.is_relative_to(root) or path.name.endswith(SIDECAR_SUFFIX) or not path.is_file():
            raise NotFound("File not found")
        return path

    async def update(self, media_id: str, alt: str | None = None, caption: str | None = None) -> MediaAsset:
        asset = self.get(media_id)
        changes: dict[str, Any] = {"updated_at": now_iso()}
        if alt is not None:
            changes["alt"] = alt
        if caption is not None:
            changes["caption"] = caption
        updated = asset.model_copy(update=changes)
        write_json_atomic(self._sidecar(MediaKind(asset.kind), asset.filename), updated.to_dict())
        return updated

    async def delete(self, media_id: str) -> MediaAsset:
        asset = self.get(media_id)
        self.file_path(asset).unlink(missing_ok=True)
        self._sidecar(MediaKind(asset.kind), asset.filename).unlink(missing_ok=True)
        logger.info(f"Deleted media {asset.filename}")
        return asset
