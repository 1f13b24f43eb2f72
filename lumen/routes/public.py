"""Public site routes: theme assets, uploads and every rendered page."""

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse, RedirectResponse, Response

from lumen.api.deps import get_request_context, get_services
from lumen.auth.context import RequestContext
from lumen.errors import NotFound
from lumen.services import Services

router = APIRouter()


def is_api_path(path: str) -> bool:
    """True for ``/api`` and anything below it."""
    path = "/" + path.lstrip("/")
    return path == "/api" or path.startswith("/api/")


@router.get("/assets/{path:path}", include_in_schema=False)
async def theme_asset(path: str, services: Services = Depends(get_services)):
    return FileResponse(services.registry.asset_path(path))


@router.get("/content/uploads/{path:path}", include_in_schema=False)
async def uploaded_file(path: str, services: Services = Depends(get_services)):
    return FileResponse(services.media.upload_path(path))


@router.get("/{path:path}", include_in_schema=False)
async def site_page(
    path: str,
    services: Services = Depends(get_services),
    ctx: RequestContext = Depends(get_request_context),
):
    # Unknown API endpoints get the JSON error envelope, not the themed 404 page.
    if is_api_path(path):
        raise NotFound()
    result = await services.resolver.resolve(f"/{path}", ctx)
    if result.location:
        return RedirectResponse(result.location, status_code=result.status)
    return Response(content=result.body, status_code=result.status, media_type=result.media_type)
