"""Login and logout."""

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from lumen.api.deps import get_services, ok, require_user
from lumen.auth.context import RequestContext
from lumen.auth.cookies import sign
from lumen.errors import Unauthenticated
from lumen.services import Services

router = APIRouter()


class LoginRequest(BaseModel):
    username: str
    password: str


@router.post("/login")
async def login(request: LoginRequest, response: Response, services: Services = Depends(get_services)):
    result = await services.auth.authenticate(request.username, request.password)
    if result is None:
        raise Unauthenticated("Invalid username or password")
    config = services.config
    response.set_cookie(
        config.cookie_name,
        sign(result.token, config.cookie_secret),
        max_age=config.session_ttl_seconds,
        httponly=True,
        samesite="lax",
    )
    return ok(result.to_dict())


@router.post("/logout")
async def logout(
    response: Response,
    ctx: RequestContext = Depends(require_user),
    services: Services = Depends(get_services),
):
    await services.auth.logout(ctx.token)
    response.delete_cookie(services.config.cookie_name)
    return ok({"loggedOut": True})
