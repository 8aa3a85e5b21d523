"""
Pinterest API client for merchant and feed profile registration.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import httpx

from feedsync.core.feed.models import FeedArgs
from feedsync.core.security import sanitize_dict_for_logging
from feedsync.core.utils import retry_with_backoff_async

logger = logging.getLogger(__name__)


@dataclass
class ApiResult:
    """Tagged result of one API call."""
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    status_code: Optional[int] = None


class PinterestClient:
    """
    Client for the Pinterest merchant/catalog endpoints.
    Uses a bearer access token.
    """

    def __init__(
        self,
        base_url: str,
        access_token: str,
        timeout: float = 20.0,
        max_retries: int = 3,
        initial_delay: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.timeout = timeout
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create shared httpx.AsyncClient"""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def aclose(self):
        """Close the shared httpx.AsyncClient"""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        **kwargs
    ) -> Tuple[bool, Any, Optional[int]]:
        """
        Make request with retry logic for transient errors
        Returns: (success, response_data, status_code)
        """
        url = f"{self.base_url}/{path.lstrip('/')}"

        async def make_request():
            logger.debug(f"{method} Request: {url} {sanitize_dict_for_logging(kwargs.get('json') or {})}")
            try:
                response = await self._get_client().request(
                    method,
                    url,
                    headers={
                        "Authorization": f"Bearer {self.access_token}",
                        "Accept": "application/json"
                    },
                    **kwargs
                )
            except httpx.RequestError as e:
                logger.debug(f"Response error: {e}")
                return False, str(e), None

            status_code = response.status_code
            logger.debug(f"Response: HTTP {status_code} {response.text[:500]}")

            if status_code not in (200, 201, 204):
                return False, response.text[:500], status_code

            try:
                body = response.json() if response.content else {}
            except ValueError:
                return False, "Invalid JSON response", status_code

            if isinstance(body, dict) and body.get("status", "success") != "success":
                return False, body.get("message") or str(body)[:500], status_code

            data = body.get("data", body) if isinstance(body, dict) else body
            return True, data, status_code

        return await retry_with_backoff_async(
            make_request,
            max_retries=self.max_retries,
            initial_delay=self.initial_delay,
            backoff_factor=2.0
        )

    async def _call(self, method: str, path: str, what: str, **kwargs) -> ApiResult:
        success, data, status_code = await self._request_with_retry(method, path, **kwargs)

        if status_code in (401, 403):
            return ApiResult(False, None, f"Authentication failed (HTTP {status_code}). Check the access token.", status_code)

        if not success:
            error_msg = f"Failed to {what}: HTTP {status_code}"
            if isinstance(data, str) and data:
                error_msg += f" - {data[:200]}"
            return ApiResult(False, None, error_msg, status_code)

        return ApiResult(True, data if isinstance(data, dict) else {}, None, status_code)

    async def get_merchant(self, merchant_id: str) -> ApiResult:
        """Merchant with its approval status and current feed profile."""
        return await self._call("GET", f"commerce/product_pin_merchants/{merchant_id}/", "get merchant")

    async def create_merchant(self, feed_args: FeedArgs, display_name: str) -> ApiResult:
        """Create the merchant for this store; returns the existing one if there is one."""
        payload = {
            "display_name": display_name,
            "return_merchant_if_exists": True,
            **feed_args.to_payload(),
        }
        return await self._call("POST", "commerce/product_pin_merchants/", "create merchant", json=payload)

    async def add_merchant_feed(self, merchant_id: str, feed_args: FeedArgs) -> ApiResult:
        return await self._call(
            "POST", f"catalogs/{merchant_id}/feed_profiles/", "add merchant feed",
            json=feed_args.to_payload()
        )

    async def update_merchant_feed(self, merchant_id: str, feed_profile_id: str, feed_args: FeedArgs) -> ApiResult:
        """Update a feed profile's location; country and locale are left out of the payload."""
        return await self._call(
            "PUT", f"catalogs/{merchant_id}/feed_profiles/{feed_profile_id}/", "update merchant feed",
            json=feed_args.to_payload(include_country_locale=False)
        )

    async def get_merchant_feed(self, merchant_id: str, feed_id: str) -> ApiResult:
        return await self._call("GET", f"catalogs/{merchant_id}/feeds/{feed_id}/", "get merchant feed")
