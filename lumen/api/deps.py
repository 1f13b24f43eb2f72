"""Shared FastAPI dependencies and the JSON envelope."""

from typing import Any

from fastapi import Depends, Request

from lumen.auth.context import RequestContext
from lumen.auth.cookies import unsign
from lumen.errors import Unauthenticated, Unauthorized
from lumen.services import Services


def ok(data: Any = None, **extra: Any) -> dict[str, Any]:
    """Success envelope: ``{success: true, data, ...}``."""
    return {"success": True, "data": data, **extra}


def get_services(request: Request) -> Services:
    return request.app.state.services


def request_token(request: Request, services: Services) -> str | None:
    """Bearer token from the Authorization header, else from the signed cookie."""
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return unsign(request.cookies.get(services.config.cookie_name), services.config.cookie_secret)


def get_request_context(request: Request, services: Services = Depends(get_services)) -> RequestContext:
    """Attach the current user, if any. Never rejects on its own."""
    token = request_token(request, services)
    user = services.auth.get_user_from_token(token)
    if user is None:
        return RequestContext()
    return RequestContext(current_user=user.public(), token=token)


def require_user(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
    if not ctx.is_authenticated:
        raise Unauthenticated()
    return ctx


def require_editor(ctx: RequestContext = Depends(require_user)) -> RequestContext:
    if not ctx.is_editable:
        raise Unauthorized()
    return ctx


def require_admin(ctx: RequestContext = Depends(require_user)) -> RequestContext:
    if not ctx.is_admin:
        raise Unauthorized("Admin access required")
    return ctx
