"""
Dirty flag: set when the catalog changes after the current feed was started.
"""

import logging
from typing import Awaitable, Callable, Optional

from feedsync.core.store import StateStore
from .state import FEED_DIRTY_KEY

logger = logging.getLogger(__name__)


class DirtyTracker:
    """Marks the feed dirty on catalog changes and reschedules once generation finishes."""

    def __init__(self, store: StateStore, reschedule: Callable[..., Awaitable[object]]):
        """
        Args:
            store: Store holding the flag
            reschedule: Called as reschedule(force=True) when a finished feed is dirty
        """
        self.store = store
        self.reschedule = reschedule

    async def mark_dirty(self, product_id: Optional[int] = None) -> None:
        """Flag the feed as outdated. Does not read the job state."""
        await self.store.put(FEED_DIRTY_KEY, True)
        if product_id is not None:
            logger.debug(f"Feed marked dirty by product {product_id}")

    async def is_dirty(self) -> bool:
        return bool(await self.store.get(FEED_DIRTY_KEY))

    async def reschedule_if_dirty(self) -> bool:
        """
        Clear the flag and force a reschedule if it was set.

        Returns:
            True if a reschedule was issued
        """
        if not await self.is_dirty():
            return False

        await self.store.put(FEED_DIRTY_KEY, False)
        logger.info("Feed is dirty.")
        await self.reschedule(force=True)
        return True
