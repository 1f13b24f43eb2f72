"""Site settings API routes."""

from typing import Any

from fastapi import APIRouter, Body, Depends

from lumen.api.deps import get_services, ok, require_admin, require_user
from lumen.services import Services

router = APIRouter()


@router.get("")
async def get_settings(services: Services = Depends(get_services), _=Depends(require_user)):
    return ok(services.settings.get().public())


@router.put("")
async def update_settings(
    patch: dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
    _=Depends(require_admin),
):
    """Admin only. Changing ``activeTheme`` goes through the theme registry."""
    theme = patch.pop("activeTheme", None)
    if theme and theme != services.registry.active.name:
        await services.registry.switch_theme(theme)
    settings = await services.settings.update(patch) if patch else services.settings.get()
    return ok(settings.public())
