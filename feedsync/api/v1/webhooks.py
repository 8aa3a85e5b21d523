"""
WooCommerce webhook receiver.

Product webhooks only mark the feed dirty; the regeneration is scheduled
once the running generation finishes.
"""

import json
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from feedsync.config import Settings, get_settings
from feedsync.deps import get_product_sync
from feedsync.core.feed.sync import ProductSync
from feedsync.core.security import verify_woo_webhook_signature
from feedsync.schemas.feed import WebhookResponse

router = APIRouter()

logger = logging.getLogger(__name__)


@router.post("/woocommerce", response_model=WebhookResponse)
async def woocommerce_webhook(
    request: Request,
    x_wc_webhook_topic: Optional[str] = Header(None, alias="X-WC-Webhook-Topic"),
    x_wc_webhook_signature: Optional[str] = Header(None, alias="X-WC-Webhook-Signature"),
    settings: Settings = Depends(get_settings),
    sync: ProductSync = Depends(get_product_sync)
):
    """Receive a WooCommerce webhook delivery."""
    body = await request.body()

    if settings.woo_webhook_secret:
        if not x_wc_webhook_signature or not verify_woo_webhook_signature(
            body, x_wc_webhook_signature, settings.woo_webhook_secret
        ):
            logger.warning(f"Rejected webhook with invalid signature (topic={x_wc_webhook_topic})")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid webhook signature"
            )

    # WooCommerce pings new webhooks with a form-encoded webhook_id
    if not x_wc_webhook_topic or not x_wc_webhook_topic.startswith("product."):
        return WebhookResponse(marked_dirty=False)

    product_id = None
    try:
        payload = json.loads(body or b"{}")
        if isinstance(payload, dict) and payload.get("id") is not None:
            product_id = int(payload["id"])
    except (ValueError, TypeError):
        logger.debug(f"Webhook body is not a product payload (topic={x_wc_webhook_topic})")

    await sync.mark_feed_dirty(product_id)
    return WebhookResponse(marked_dirty=True)
