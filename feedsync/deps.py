"""
Dependency injection for FastAPI.
"""

import logging
from typing import Optional
import redis.asyncio as aioredis
from fastapi import HTTPException, status

from feedsync.config import get_settings
from feedsync.core.feed.catalog import WooCatalog
from feedsync.core.feed.reconciler import RegistrationReconciler
from feedsync.core.feed.sync import ProductSync
from feedsync.core.pinterest_client import PinterestClient
from feedsync.core.scheduler import RedisScheduler
from feedsync.core.store import RedisStateStore
from feedsync.core.woo_client import WooClient

logger = logging.getLogger(__name__)

_redis_client: Optional[aioredis.Redis] = None
_woo_client: Optional[WooClient] = None
_pinterest_client: Optional[PinterestClient] = None
_product_sync: Optional[ProductSync] = None


async def get_redis() -> aioredis.Redis:
    """Get Redis client (singleton) with lazy connection."""
    global _redis_client
    if _redis_client is None:
        settings = get_settings()
        _redis_client = aioredis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=1.0,
            socket_timeout=3.0,
            retry_on_timeout=True,
            health_check_interval=30
        )
    return _redis_client


async def close_redis():
    """Close Redis connection."""
    global _redis_client
    if _redis_client:
        await _redis_client.close()
        _redis_client = None


async def build_product_sync() -> ProductSync:
    """
    Create the feed sync engine (singleton) from settings.

    Raises:
        ValueError: If WooCommerce credentials are not configured
    """
    global _woo_client, _pinterest_client, _product_sync
    if _product_sync is None:
        settings = get_settings()
        redis = await get_redis()

        _woo_client = WooClient(
            store_url=settings.store_url,
            consumer_key=settings.consumer_key,
            consumer_secret=settings.consumer_secret
        )
        _pinterest_client = PinterestClient(
            base_url=settings.pinterest_api_url,
            access_token=settings.pinterest_access_token or ""
        )

        store = RedisStateStore(redis, prefix=settings.key_prefix)
        catalog = WooCatalog(
            _woo_client,
            store_name=settings.store_name,
            currency=settings.currency,
            hide_out_of_stock=settings.hide_out_of_stock_items
        )
        reconciler = RegistrationReconciler(_pinterest_client, store, display_name=settings.store_name)

        _product_sync = ProductSync(
            settings=settings,
            store=store,
            scheduler=RedisScheduler(redis, prefix=settings.key_prefix),
            catalog=catalog,
            reconciler=reconciler
        )
    return _product_sync


async def get_product_sync() -> ProductSync:
    """
    FastAPI dependency for the feed sync engine.

    Raises:
        HTTPException: If store credentials are missing
    """
    try:
        return await build_product_sync()
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Store credentials not configured: {e}"
        )


async def close_clients():
    """Close HTTP clients of the sync engine."""
    global _woo_client, _pinterest_client, _product_sync
    if _woo_client:
        await _woo_client.close()
        _woo_client = None
    if _pinterest_client:
        await _pinterest_client.aclose()
        _pinterest_client = None
    _product_sync = None
