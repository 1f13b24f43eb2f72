"""User management routes (admin only, except ``/me``)."""

from typing import Any

from fastapi import APIRouter, Body, Depends

from lumen.api.deps import get_services, ok, require_admin, require_user
from lumen.auth.context import RequestContext
from lumen.services import Services

router = APIRouter()


@router.get("/me")
async def current_user(ctx: RequestContext = Depends(require_user)):
    return ok({**ctx.current_user, "isEditable": ctx.is_editable})


@router.get("")
async def list_users(services: Services = Depends(get_services), _=Depends(require_admin)):
    return ok([u.public() for u in services.users.list()])


@router.post("", status_code=201)
async def create_user(
    body: dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
    _=Depends(require_admin),
):
    user = await services.auth.create_user(body)
    return ok(user.public())


@router.get("/{user_id}")
async def get_user(user_id: str, services: Services = Depends(get_services), _=Depends(require_admin)):
    return ok(services.users.get(user_id).public())


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    body: dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
    _=Depends(require_admin),
):
    user = await services.auth.update_user(user_id, body)
    return ok(user.public())


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    services: Services = Depends(get_services),
    ctx: RequestContext = Depends(require_admin),
):
    user = await services.auth.delete_user(user_id, ctx.current_user["id"])
    return ok({"id": user.id, "deleted": True})
