"""Theme API routes: listing, activation, upload, deletion and marketplace."""

import logging

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import FileResponse
from pydantic import BaseModel

from lumen.api.deps import get_services, ok, require_admin, require_editor, require_user
from lumen.services import Services
from lumen.themes.registry import safe_join

logger = logging.getLogger(__name__)

router = APIRouter()


class ThemeNameRequest(BaseModel):
    name: str


def _theme_list(services: Services) -> list[dict]:
    active = services.registry.active.name
    return [t.to_dict(active=t.name == active) for t in services.registry.list()]


@router.get("")
async def list_themes(services: Services = Depends(get_services), _=Depends(require_user)):
    return ok(_theme_list(services))


@router.get("/active")
async def active_theme(services: Services = Depends(get_services), _=Depends(require_user)):
    return ok(services.registry.active.to_dict(active=True))


@router.post("/activate")
async def activate_theme(
    request: ThemeNameRequest,
    services: Services = Depends(get_services),
    _=Depends(require_admin),
):
    theme = await services.registry.switch_theme(request.name)
    return ok(theme.to_dict(active=True))


@router.post("/upload", status_code=201)
async def upload_theme(
    file: UploadFile = File(...),
    update: bool = Form(default=False),
    services: Services = Depends(get_services),
    _=Depends(require_admin),
):
    theme = await services.installer.install(await file.read(), update=update)
    return ok(theme.to_dict(active=theme.name == services.registry.active.name))


@router.get("/install-status")
async def install_status(services: Services = Depends(get_services), _=Depends(require_admin)):
    attempt = services.installer.last_attempt
    return ok(attempt.to_dict() if attempt else None)


# --- Marketplace ---


@router.get("/marketplace/themes")
async def marketplace_themes(
    q: str | None = None,
    category: str | None = None,
    tag: str | None = None,
    sort: str = "name",
    services: Services = Depends(get_services),
    _=Depends(require_editor),
):
    installed = {t.name: t.version for t in services.registry.list()}
    themes = await services.marketplace.browse(query=q, category=category, tag=tag, sort=sort)
    return ok([{**t, "installed": t["name"] in installed, "installedVersion": installed.get(t["name"])} for t in themes])


@router.get("/marketplace/categories")
async def marketplace_categories(services: Services = Depends(get_services), _=Depends(require_editor)):
    return ok(await services.marketplace.categories())


@router.get("/marketplace/metadata")
async def marketplace_metadata(services: Services = Depends(get_services), _=Depends(require_editor)):
    return ok(await services.marketplace.metadata())


@router.get("/marketplace/updates")
async def marketplace_updates(services: Services = Depends(get_services), _=Depends(require_admin)):
    return ok(await services.installer.check_updates(services.marketplace))


@router.get("/marketplace/themes/{name}")
async def marketplace_theme(name: str, services: Services = Depends(get_services), _=Depends(require_editor)):
    return ok(await services.marketplace.get_theme(name))


@router.post("/marketplace/install", status_code=201)
async def marketplace_install(
    request: ThemeNameRequest,
    services: Services = Depends(get_services),
    _=Depends(require_admin),
):
    theme = await services.installer.install_from_marketplace(request.name, services.marketplace.download)
    return ok(theme.to_dict(active=theme.name == services.registry.active.name))


@router.post("/marketplace/update")
async def marketplace_update(
    request: ThemeNameRequest,
    services: Services = Depends(get_services),
    _=Depends(require_admin),
):
    theme = await services.installer.update_from_marketplace(request.name, services.marketplace)
    return ok(theme.to_dict(active=theme.name == services.registry.active.name))


# --- Single theme ---


@router.get("/{name}/screenshot")
async def theme_screenshot(name: str, services: Services = Depends(get_services)):
    theme = services.registry.get(name)
    return FileResponse(safe_join(theme.root, theme.manifest.screenshot))


@router.delete("/{name}")
async def delete_theme(name: str, services: Services = Depends(get_services), _=Depends(require_admin)):
    services.registry.delete(name)
    return ok({"name": name, "deleted": True})
