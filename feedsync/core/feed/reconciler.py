"""
Keep the Pinterest feed profile pointing at the current feed file.

The registration service cannot be queried by our own identity, so whether an
existing feed profile belongs to this store is inferred, in order, from:

1. the profile location already matching the feed URL,
2. the feed profile behind our cached registered feed id,
3. a heuristic: same URL directory, country and locale means same site.

The heuristic can mistake two sites served from the same path layout
(for example behind one reverse proxy) for one another.
"""

import logging
from typing import Any, Dict, Optional

from feedsync.core.pinterest_client import ApiResult, PinterestClient
from feedsync.core.store import StateStore
from feedsync.core.utils import url_dirname
from .models import FeedArgs, RegistrationError
from .state import FEED_REGISTERED_KEY, MERCHANT_ID_KEY

logger = logging.getLogger(__name__)


def _feed_location(data: Optional[Dict[str, Any]]) -> Optional[str]:
    """full_feed_fetch_location of a feed profile payload, if present."""
    if not isinstance(data, dict):
        return None
    location_config = data.get("location_config") or {}
    return location_config.get("full_feed_fetch_location")


class RegistrationReconciler:
    """Create, update or leave alone the merchant's feed profile."""

    def __init__(self, client: PinterestClient, store: StateStore, display_name: str = ""):
        self.client = client
        self.store = store
        self.display_name = display_name

    async def get_registered_feed_id(self) -> Optional[str]:
        return await self.store.get(FEED_REGISTERED_KEY) or None

    async def _resolve_merchant(self, feed_args: FeedArgs) -> Dict[str, Any]:
        """
        Cached merchant if it can still be fetched, otherwise create (or
        recover) it and cache its id.

        Raises:
            RegistrationError: If no merchant can be obtained
        """
        merchant_id = await self.store.get(MERCHANT_ID_KEY)
        if merchant_id:
            result = await self.client.get_merchant(merchant_id)
            if result.success and result.data.get("id"):
                return result.data
            logger.warning(f"Could not fetch cached merchant {merchant_id}: {result.error}")

        result = await self.client.create_merchant(feed_args, self.display_name)
        if not result.success or not result.data.get("id"):
            raise RegistrationError(result.error or "Could not create merchant.")

        await self.store.put(MERCHANT_ID_KEY, result.data["id"])
        logger.info(f"Using merchant {result.data['id']}")
        return result.data

    async def _add_feed(self, merchant_id: str, feed_args: FeedArgs) -> Optional[str]:
        result = await self.client.add_merchant_feed(merchant_id, feed_args)
        self._raise_on_failure(result)
        if _feed_location(result.data):
            logger.info(f"Added merchant feed: {feed_args.feed_location}")
            return result.data.get("id")
        return None

    @staticmethod
    def _raise_on_failure(result: ApiResult) -> None:
        if not result.success:
            raise RegistrationError(result.error or "Registration request failed.")

    async def _lookup_previous_profile_id(self, merchant_id: str) -> Optional[str]:
        """Feed profile id behind our cached registered feed id, None if unknown."""
        prev_registered = await self.get_registered_feed_id()
        if not prev_registered:
            return None
        try:
            result = await self.client.get_merchant_feed(merchant_id, prev_registered)
        except Exception as e:
            logger.debug(f"Lookup of feed {prev_registered} failed: {e}")
            return None
        if not result.success:
            logger.debug(f"Lookup of feed {prev_registered} failed: {result.error}")
            return None
        return result.data.get("feed_profile_id")

    async def reconcile(self, feed_args: FeedArgs) -> Optional[str]:
        """
        Register the feed described by feed_args.

        Args:
            feed_args: Desired feed location and configuration

        Returns:
            The feed profile id now in effect, None if not registered

        Raises:
            RegistrationError: If the registration service fails. The cached
            registered id is left untouched in that case.
        """
        merchant = await self._resolve_merchant(feed_args)
        merchant_id = merchant["id"]
        profile = merchant.get("product_pin_feed_profile")
        registered: Optional[str] = None

        if merchant.get("product_pin_approval_status") == "declined":
            logger.warning("Pinterest returned a Declined status for product_pin_approval_status")

        elif not profile:
            # Merchant without a feed profile
            registered = await self._add_feed(merchant_id, feed_args)

        elif _feed_location(profile) == feed_args.feed_location:
            registered = profile.get("id")
            logger.debug(f"Feed registered for merchant: {feed_args.feed_location}")

        else:
            profile_id = await self._lookup_previous_profile_id(merchant_id)

            if profile_id is None:
                same_dir = url_dirname(_feed_location(profile)) == url_dirname(feed_args.feed_location)
                same_market = (
                    feed_args.country == profile.get("country")
                    and feed_args.locale == profile.get("locale")
                )
                if same_dir and same_market:
                    # Same site, the location only changed with the job token
                    profile_id = profile.get("id")

            if profile_id is not None:
                result = await self.client.update_merchant_feed(
                    profile.get("merchant_id") or merchant_id, profile_id, feed_args
                )
                self._raise_on_failure(result)
                if _feed_location(result.data):
                    registered = result.data.get("id")
                    logger.info(f"Merchant's feed updated to current location: {feed_args.feed_location}")
            else:
                # Profile belongs to another feed, create our own
                registered = await self._add_feed(merchant_id, feed_args)

        await self.store.put(FEED_REGISTERED_KEY, registered)
        return registered
