"""Menu API routes."""

from typing import Any

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel

from lumen.api.deps import get_services, ok, require_editor, require_user
from lumen.errors import ValidationFailed
from lumen.services import Services
from lumen.site.menu import build_hierarchy

router = APIRouter()


class ReorderRequest(BaseModel):
    orderedIds: list[str]


def _payload(items) -> dict[str, Any]:
    return {"items": [i.to_dict() for i in items], "hierarchy": build_hierarchy(items)}


@router.get("")
async def get_menu(services: Services = Depends(get_services), _=Depends(require_user)):
    return ok(_payload(services.menu.list()))


@router.put("")
async def replace_menu(
    body: Any = Body(...),
    services: Services = Depends(get_services),
    _=Depends(require_editor),
):
    """Replace the whole menu. Accepts ``[...]`` or ``{"menu": [...]}``."""
    items = body.get("menu") if isinstance(body, dict) else body
    if not isinstance(items, list):
        raise ValidationFailed("Invalid menu", errors={"menu": "Expected a list of menu items"})
    return ok(_payload(await services.menu.save(items)))


@router.post("", status_code=201)
async def create_menu_item(
    body: dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
    _=Depends(require_editor),
):
    item = await services.menu.create(body)
    return ok(item.to_dict())


@router.put("/reorder")
async def reorder_menu(
    request: ReorderRequest,
    services: Services = Depends(get_services),
    _=Depends(require_editor),
):
    return ok(_payload(await services.menu.reorder(request.orderedIds)))


@router.put("/{item_id}")
async def update_menu_item(
    item_id: str,
    body: dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
    _=Depends(require_editor),
):
    item = await services.menu.update(item_id, body)
    return ok(item.to_dict())


@router.delete("/{item_id}")
async def delete_menu_item(item_id: str, services: Services = Depends(get_services), _=Depends(require_editor)):
    removed = await services.menu.delete(item_id)
    return ok(removed.to_dict())
