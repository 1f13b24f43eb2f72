"""Media API routes: uploads, metadata, references and cascades."""

import logging
from typing import Literal

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import FileResponse
from pydantic import BaseModel

from lumen.api.deps import get_services, ok, require_editor, require_user
from lumen.services import Services

logger = logging.getLogger(__name__)

router = APIRouter()


class MediaUpdateRequest(BaseModel):
    alt: str | None = None
    caption: str | None = None
    propagate: bool = False


@router.get("")
async def list_media(
    type: Literal["image", "document"] | None = None,
    services: Services = Depends(get_services),
    _=Depends(require_user),
):
    return ok([a.to_dict() for a in services.media.list(type)])


@router.post("/upload", status_code=201)
async def upload_media(
    file: UploadFile = File(...),
    type: Literal["image", "document"] | None = Form(default=None),
    alt: str = Form(default=""),
    caption: str = Form(default=""),
    services: Services = Depends(get_services),
    _=Depends(require_editor),
):
    data = await file.read()
    asset = await services.media.save(
        data, file.filename or "upload", kind=type, content_type=file.content_type, alt=alt, caption=caption
    )
    return ok(asset.to_dict())


@router.get("/{media_id}")
async def get_media(media_id: str, services: Services = Depends(get_services), _=Depends(require_user)):
    return ok(services.media.get(media_id).to_dict())


@router.get("/{media_id}/file")
async def download_media(media_id: str, services: Services = Depends(get_services), _=Depends(require_user)):
    asset = services.media.get(media_id)
    return FileResponse(services.media.file_path(asset), media_type=asset.mime_type, filename=asset.original_filename)


@router.put("/{media_id}")
async def update_media(
    media_id: str,
    request: MediaUpdateRequest,
    services: Services = Depends(get_services),
    _=Depends(require_editor),
):
    asset = await services.media.update(media_id, alt=request.alt, caption=request.caption)
    updated = await services.references.propagate(asset) if request.propagate else []
    return ok(asset.to_dict(), updatedItems=updated)


@router.delete("/{media_id}")
async def delete_media(
    media_id: str,
    clean: bool = False,
    services: Services = Depends(get_services),
    _=Depends(require_editor),
):
    """Delete an asset. With ``clean=true`` references in content are stripped first."""
    asset = services.media.get(media_id)
    updated = await services.references.clean(asset) if clean else []
    await services.media.delete(media_id)
    return ok(asset.to_dict(), updatedItems=updated)


@router.get("/{media_id}/references")
async def media_references(media_id: str, services: Services = Depends(get_services), _=Depends(require_user)):
    return ok(services.references.find(services.media.get(media_id)))


@router.post("/{media_id}/propagate-metadata")
async def propagate_metadata(
    media_id: str,
    services: Services = Depends(get_services),
    _=Depends(require_editor),
):
    asset = services.media.get(media_id)
    return ok({"updatedItems": await services.references.propagate(asset)})
