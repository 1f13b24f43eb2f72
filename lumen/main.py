"""Lumen CMS application factory and process entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from lumen.api import auth, content, media, menu, static, themes, users
from lumen.api import settings as settings_api
from lumen.config import Settings, settings
from lumen.content.models import Kind
from lumen.errors import CMSError, NotFound, RateLimited
from lumen.routes import public
from lumen.routes.public import is_api_path
from lumen.services import build_services, startup

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


def _error_response(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message, **extra})


def create_app(config: Settings | None = None) -> FastAPI:
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services = build_services(config)
        await startup(services)
        app.state.services = services
        logger.info(f"Lumen CMS ready (data: {config.data_dir}, themes: {config.themes_dir})")
        yield

    app = FastAPI(
        title="Lumen CMS",
        description="Markdown content engine with themes, static export and an admin API",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.exception_handler(CMSError)
    async def cms_error_handler(request: Request, exc: CMSError):
        if isinstance(exc, NotFound) and not is_api_path(request.url.path):
            result = await request.app.state.services.resolver.render_not_found()
            return Response(content=result.body, status_code=404, media_type=result.media_type)
        if exc.status_code >= 500:
            logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
        response = _error_response(exc.status_code, exc.message, **exc.payload())
        if isinstance(exc, RateLimited):
            response.headers["Retry-After"] = str(exc.retry_after)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = {
            ".".join(str(p) for p in err["loc"] if p != "body") or "body": err["msg"] for err in exc.errors()
        }
        return _error_response(400, "Validation failed", errors=errors)

    @app.exception_handler(Exception)
    async def internal_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return _error_response(500, "Internal server error")

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
    app.include_router(users.router, prefix="/api/users", tags=["users"])
    app.include_router(content.build_router(Kind.POST), prefix="/api/posts", tags=["posts"])
    app.include_router(content.build_router(Kind.PAGE), prefix="/api/pages", tags=["pages"])
    app.include_router(content.bulk_router, prefix="/api/bulk", tags=["content"])
    app.include_router(menu.router, prefix="/api/menu", tags=["menu"])
    app.include_router(settings_api.router, prefix="/api/settings", tags=["settings"])
    app.include_router(media.router, prefix="/api/media", tags=["media"])
    app.include_router(themes.router, prefix="/api/themes", tags=["themes"])
    app.include_router(static.router, prefix="/api/static", tags=["static"])
    app.include_router(public.router)
    return app


app = create_app()


def run():
    """Console entry point: serve on ``PORT`` (default 8080) with data from ``DATA_DIR``."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("lumen.main:app", host=settings.host, port=settings.port)
