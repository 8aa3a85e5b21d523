"""
Main API router for v1.
"""

from fastapi import APIRouter
from feedsync.api.v1 import feed, webhooks
from feedsync.schemas.common import ErrorResponse

router = APIRouter()

# Store credentials missing
CONFIG_ERROR = {400: {"model": ErrorResponse, "description": "Feed sync is not configured"}}

router.include_router(feed.router, prefix="/feed", tags=["feed"], responses=CONFIG_ERROR)
router.include_router(
    webhooks.router,
    prefix="/webhooks",
    tags=["webhooks"],
    responses={**CONFIG_ERROR, 401: {"model": ErrorResponse, "description": "Invalid webhook signature"}}
)
