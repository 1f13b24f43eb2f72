"""Content API routes: posts and pages CRUD plus bulk actions.

``build_router(kind)`` produces the same five routes for ``/api/posts`` and
``/api/pages``. Request bodies are open frontmatter maps; ``content`` is
accepted as an alias for ``body``.
"""

import logging
from typing import Any, Literal

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel

from lumen.api.deps import get_services, ok, require_editor, require_user
from lumen.content.models import Kind
from lumen.content.query import DEFAULT_PREVIEW_LENGTH, QueryOptions
from lumen.errors import NotFound
from lumen.services import Services

logger = logging.getLogger(__name__)

COLLECTIONS = {"posts": Kind.POST, "pages": Kind.PAGE}


def _query_options(
    status: str | None = None,
    limit: int | None = Query(default=None, ge=0),
    offset: int = Query(default=0, ge=0),
    tag: str | None = None,
    category: str | None = None,
    parent: str | None = None,
    page_type: str | None = Query(default=None, alias="pageType"),
    summary_view: bool = Query(default=False, alias="summaryView"),
    preview_length: int = Query(default=DEFAULT_PREVIEW_LENGTH, alias="previewLength", ge=1),
    frontmatter_only: bool = Query(default=False, alias="frontmatterOnly"),
    properties: str | None = None,
) -> QueryOptions:
    return QueryOptions(
        status=status,
        limit=limit,
        offset=offset,
        tag=tag,
        category=category,
        parent=parent,
        page_type=page_type,
        summary_view=summary_view,
        preview_length=preview_length,
        frontmatter_only=frontmatter_only,
        properties=[p.strip() for p in properties.split(",") if p.strip()] if properties else None,
    )


def build_router(kind: Kind) -> APIRouter:
    router = APIRouter()
    label = kind.value.capitalize()
    filter_name = f"api_{kind.value}s"

    @router.get("")
    async def list_items(
        options: QueryOptions = Depends(_query_options),
        services: Services = Depends(get_services),
        _=Depends(require_user),
    ):
        index = services.index
        views = index.get_posts(options) if kind == Kind.POST else index.get_pages(options)
        views = await services.hooks.apply_filters(filter_name, views, options)
        return ok(views, total=index.count(kind, options))

    @router.post("", status_code=201)
    async def create_item(
        payload: dict[str, Any] = Body(...),
        overwrite: bool = False,
        services: Services = Depends(get_services),
        _=Depends(require_editor),
    ):
        item = await services.store.create(kind, payload, overwrite=overwrite)
        return ok(services.index.view(item))

    @router.get("/{item_id}")
    async def get_item(item_id: str, services: Services = Depends(get_services), _=Depends(require_user)):
        item = services.store.get(kind, item_id)
        if item is None:
            raise NotFound(f"{label} not found")
        return ok(services.index.view(item))

    @router.put("/{item_id}")
    async def update_item(
        item_id: str,
        payload: dict[str, Any] = Body(...),
        overwrite: bool = False,
        services: Services = Depends(get_services),
        _=Depends(require_editor),
    ):
        item = await services.store.update(kind, item_id, payload, overwrite=overwrite)
        return ok(services.index.view(item))

    @router.delete("/{item_id}")
    async def delete_item(item_id: str, services: Services = Depends(get_services), _=Depends(require_editor)):
        if not await services.store.delete(kind, item_id):
            raise NotFound(f"{label} not found")
        return ok({"id": item_id, "deleted": True})

    return router


bulk_router = APIRouter()


class BulkRequest(BaseModel):
    action: Literal["publish", "draft", "delete"]
    ids: list[str]


@bulk_router.post("/{collection}")
async def bulk_action(
    collection: Literal["posts", "pages"],
    request: BulkRequest,
    services: Services = Depends(get_services),
    _=Depends(require_editor),
):
    """Publish, unpublish or delete several items; reports the outcome per id."""
    kind = COLLECTIONS[collection]
    results = []
    for item_id in request.ids:
        try:
            if request.action == "delete":
                success = await services.store.delete(kind, item_id)
            else:
                status = "published" if request.action == "publish" else "draft"
                await services.store.update(kind, item_id, {"status": status})
                success = True
        except NotFound:
            success = False
        results.append({"id": item_id, "success": success})
    done = sum(1 for r in results if r["success"])
    logger.info(f"Bulk {request.action} on {collection}: {done}/{len(results)} succeeded")
    return ok(results)
