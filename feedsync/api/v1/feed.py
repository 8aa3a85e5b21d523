"""
Feed sync control endpoints.
"""

import logging
from fastapi import APIRouter, Depends, Query

from feedsync.deps import get_product_sync
from feedsync.core.feed.sync import ProductSync
from feedsync.schemas.feed import FeedActionResponse, FeedStatusResponse

router = APIRouter()

logger = logging.getLogger(__name__)


@router.get("/status", response_model=FeedStatusResponse)
async def get_feed_status(sync: ProductSync = Depends(get_product_sync)):
    """Current feed job state, registered feed id and dirty flag."""
    data = await sync.status()
    return FeedStatusResponse(**data)


@router.post("/reschedule", response_model=FeedActionResponse)
async def reschedule_feed(
    force: bool = Query(False, description="Reschedule even while a generation is running"),
    sync: ProductSync = Depends(get_product_sync)
):
    """Schedule the regeneration of the feed."""
    state = await sync.feed_reschedule(force=force)
    return FeedActionResponse(status=state.status.value)


@router.post("/reset", response_model=FeedActionResponse)
async def reset_feed(sync: ProductSync = Depends(get_product_sync)):
    """Delete feed files and job data."""
    state = await sync.feed_reset()
    return FeedActionResponse(status=state.status.value, message="Product feed reset and file deleted.")


@router.post("/sync", response_model=FeedActionResponse)
async def run_sync(sync: ProductSync = Depends(get_product_sync)):
    """Run the control step now."""
    ok = await sync.handle_sync()
    state = await sync.state.read()
    return FeedActionResponse(ok=ok, status=state.status.value)


@router.post("/cancel", response_model=FeedActionResponse)
async def cancel_sync(sync: ProductSync = Depends(get_product_sync)):
    """Unschedule all feed sync actions."""
    await sync.cancel_jobs()
    state = await sync.state.read()
    return FeedActionResponse(status=state.status.value, message="Product sync actions unscheduled.")
