"""Static export API routes."""

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Body, Depends

from lumen.api.deps import get_services, ok, require_admin
from lumen.services import Services

router = APIRouter()


@router.post("/generate", status_code=202)
async def generate_static_site(
    background_tasks: BackgroundTasks,
    options: dict[str, Any] | None = Body(default=None),
    services: Services = Depends(get_services),
    _=Depends(require_admin),
):
    """Start a generation in the background; poll ``/status`` for the outcome."""
    exporter = services.exporter
    export_options = exporter.options(options)
    exporter.begin()
    background_tasks.add_task(exporter.run, export_options)
    return ok(exporter.status_payload())


@router.get("/status")
async def static_status(services: Services = Depends(get_services), _=Depends(require_admin)):
    return ok(services.exporter.status_payload())
