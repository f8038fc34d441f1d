"""Indicator routes: read access to ingested feed indicators."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...auth.rbac import PERM_VIEW_FEEDS, require_permission
from ...dependencies import get_indicator_store
from ...intel.indicator_store import indicator_to_dict
from ...intel.schemas import IndicatorType

router = APIRouter(prefix="/indicators", tags=["indicators"])


@router.get("")
async def list_indicators(
    feed_id: Optional[str] = None,
    limit: Optional[int] = Query(default=None, ge=1, le=10000),
    store=Depends(get_indicator_store),
    current_user: dict = Depends(require_permission(PERM_VIEW_FEEDS)),
):
    rows = await store.query(source_feed=feed_id, limit=limit)
    return [indicator_to_dict(r) for r in rows]


@router.get("/search")
async def search_indicators(
    q: str = Query(min_length=1),
    type: Optional[IndicatorType] = None,
    store=Depends(get_indicator_store),
    current_user: dict = Depends(require_permission(PERM_VIEW_FEEDS)),
):
    """Case-insensitive match on indicator value or tags."""
    rows = await store.search(q, indicator_type=type)
    return [indicator_to_dict(r) for r in rows]
