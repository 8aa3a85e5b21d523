"""
Read-only WooCommerce REST v3 client used to build the product feed.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional, Tuple

import httpx

from feedsync.core.utils import retry_with_backoff_async

API_PREFIX = "/wp-json/wc/v3"


class WooCommerceError(Exception):
    """Request to the store failed. `status_code` is None for transport errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class WooClient:
    """
    Async WooCommerce client authenticated with a consumer key/secret pair.

    Requests are spaced to `rate_limit_rps` and transient failures (429, 5xx,
    connection errors) are retried with exponential backoff.
    """

    def __init__(
        self,
        store_url: str,
        consumer_key: Optional[str],
        consumer_secret: Optional[str],
        rate_limit_rps: float = 5.0,
        timeout: float = 30.0,
        max_retries: int = 4,
        initial_delay: float = 2.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        if not consumer_key or not consumer_secret:
            raise ValueError("WooCommerce consumer_key and consumer_secret are required")

        self.store_url = store_url.rstrip('/')
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self._min_interval = 1.0 / rate_limit_rps if rate_limit_rps > 0 else 0.0
        self._next_slot = 0.0

        self.client = httpx.AsyncClient(
            base_url=f"{self.store_url}{API_PREFIX}",
            auth=httpx.BasicAuth(consumer_key, consumer_secret),
            timeout=timeout,
            follow_redirects=True,
            transport=transport
        )

    async def _throttle(self) -> None:
        if not self._min_interval:
            return
        wait = self._next_slot - time.monotonic()
        if wait > 0:
            await asyncio.sleep(wait)
        self._next_slot = time.monotonic() + self._min_interval

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        async def send() -> Tuple[bool, Any, Optional[int]]:
            await self._throttle()
            response = await self.client.get(path, params=params)
            return response.is_success, response, response.status_code

        ok, result, status_code = await retry_with_backoff_async(
            send,
            max_retries=self.max_retries,
            initial_delay=self.initial_delay
        )
        if ok:
            return result
        if isinstance(result, httpx.Response):
            raise WooCommerceError(f"GET {path}: HTTP {status_code}: {result.text[:200]}", status_code=status_code)
        raise WooCommerceError(f"GET {path}: {result}")

    async def get_products(
        self,
        page: int = 1,
        per_page: int = 100,
        status: str = "publish",
        stock_status: Optional[str] = None
    ) -> Tuple[List[Dict[str, Any]], int]:
        """
        One page of products, oldest id first.

        Returns:
            (products, total_pages)
        """
        params: Dict[str, Any] = {
            "page": page,
            "per_page": per_page,
            "status": status,
            "orderby": "id",
            "order": "asc"
        }
        if stock_status:
            params["stock_status"] = stock_status

        response = await self._get("/products", params=params)
        items = response.json()
        return (items if isinstance(items, list) else []), int(response.headers.get("X-WP-TotalPages", 1))

    async def get_all_products(
        self,
        status: str = "publish",
        stock_status: Optional[str] = None,
        per_page: int = 100
    ) -> List[Dict[str, Any]]:
        """Every product matching the filters. API errors propagate."""
        products: List[Dict[str, Any]] = []
        page = 1
        while True:
            items, total_pages = await self.get_products(
                page=page, per_page=per_page, status=status, stock_status=stock_status
            )
            products.extend(items)
            if not items or page >= total_pages or len(items) < per_page:
                return products
            page += 1

    async def get_product(self, product_id: int) -> Dict[str, Any]:
        """Product or variation by id (variations resolve through /products too)."""
        response = await self._get(f"/products/{product_id}")
        return response.json()

    async def get_product_variations(self, product_id: int, per_page: int = 100) -> List[Dict[str, Any]]:
        variations: List[Dict[str, Any]] = []
        page = 1
        while True:
            response = await self._get(
                f"/products/{product_id}/variations", params={"page": page, "per_page": per_page}
            )
            items = response.json() or []
            variations.extend(items)
            if len(items) < per_page:
                return variations
            page += 1

    async def close(self):
        await self.client.aclose()
