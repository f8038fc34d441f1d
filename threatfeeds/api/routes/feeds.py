"""Custom threat feed routes: CRUD, on-demand ingestion and run history."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...auth.rbac import PERM_MANAGE_FEEDS, PERM_VIEW_FEEDS, require_permission
from ...dependencies import (
    get_feed_registry,
    get_feed_scheduler,
    get_ingestion_engine,
)
from ...intel.errors import FeedNotFoundError
from ...intel.schemas import FeedCreate, FeedUpdate
from ...utils.logging import get_logger

logger = get_logger("api.feeds")

router = APIRouter(prefix="/feeds", tags=["feeds"])


def _not_found(feed_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"Feed not found: {feed_id}")


# ---------------------------------------------------------------------------
# Collection endpoints
# ---------------------------------------------------------------------------
@router.get("")
async def list_feeds(
    registry=Depends(get_feed_registry),
    current_user: dict = Depends(require_permission(PERM_VIEW_FEEDS)),
):
    """List all configured feeds (credentials masked)."""
    feeds = await registry.list_feeds()
    return [registry.feed_to_dict(f) for f in feeds]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_feed(
    body: FeedCreate,
    registry=Depends(get_feed_registry),
    current_user: dict = Depends(require_permission(PERM_MANAGE_FEEDS)),
):
    """Create a feed. ``name``, ``url`` and ``fields.indicator_field`` are required."""
    feed = await registry.create_feed(body, created_by=current_user.get("sub", "unknown"))
    return registry.feed_to_dict(feed)


@router.get("/results")
async def list_ingestion_results(
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    engine=Depends(get_ingestion_engine),
    current_user: dict = Depends(require_permission(PERM_VIEW_FEEDS)),
):
    """Recent ingestion results across all feeds, newest first."""
    results = await engine.list_results(limit=limit)
    return [r.model_dump(mode="json") for r in results]


@router.get("/scheduler/status")
async def scheduler_status(
    scheduler=Depends(get_feed_scheduler),
    current_user: dict = Depends(require_permission(PERM_VIEW_FEEDS)),
):
    return scheduler.status()


# ---------------------------------------------------------------------------
# Single-feed endpoints
# ---------------------------------------------------------------------------
@router.get("/{feed_id}")
async def get_feed(
    feed_id: str,
    registry=Depends(get_feed_registry),
    current_user: dict = Depends(require_permission(PERM_VIEW_FEEDS)),
):
    feed = await registry.find_feed(feed_id)
    if feed is None:
        raise _not_found(feed_id)
    return registry.feed_to_dict(feed)


@router.put("/{feed_id}")
async def update_feed(
    feed_id: str,
    body: FeedUpdate,
    registry=Depends(get_feed_registry),
    current_user: dict = Depends(require_permission(PERM_MANAGE_FEEDS)),
):
    """Partially update a feed; changes take effect on the next ingestion."""
    try:
        feed = await registry.update_feed(feed_id, body)
    except FeedNotFoundError:
        raise _not_found(feed_id)
    return registry.feed_to_dict(feed)


@router.delete("/{feed_id}")
async def delete_feed(
    feed_id: str,
    registry=Depends(get_feed_registry),
    engine=Depends(get_ingestion_engine),
    current_user: dict = Depends(require_permission(PERM_MANAGE_FEEDS)),
):
    """Delete a feed together with every indicator it ingested."""
    try:
        purged = await registry.delete_feed(feed_id)
    except FeedNotFoundError:
        raise _not_found(feed_id)
    engine.forget(feed_id)
    return {"deleted": feed_id, "indicators_purged": purged}


@router.post("/{feed_id}/ingest")
async def ingest_feed(
    feed_id: str,
    engine=Depends(get_ingestion_engine),
    current_user: dict = Depends(require_permission(PERM_MANAGE_FEEDS)),
):
    """Run one ingestion synchronously and return its result.

    A failed run is still a 200: the failure is reported in the result body.
    """
    logger.info("feed_ingest_requested", feed_id=feed_id, user=current_user.get("sub"))
    try:
        result = await engine.ingest(feed_id)
    except FeedNotFoundError:
        raise _not_found(feed_id)
    return result.model_dump(mode="json")


@router.get("/{feed_id}/results")
async def list_feed_results(
    feed_id: str,
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    engine=Depends(get_ingestion_engine),
    current_user: dict = Depends(require_permission(PERM_VIEW_FEEDS)),
):
    results = await engine.list_results(feed_id=feed_id, limit=limit)
    return [r.model_dump(mode="json") for r in results]
