"""
Feed sync engine: scheduler entry points, rescheduling, reset and registration.

Two actions are driven by the scheduler:

- handle-sync (recurring): keeps generation scheduled according to the job
  status and registers the generated feed.
- feed-generation (one-off): runs one slice; re-enqueued by the slice itself
  until the feed is complete.
"""

import logging
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

from feedsync.config import Settings
from feedsync.core.scheduler import ACTION_FEED_GENERATION, ACTION_HANDLE_SYNC, Scheduler
from feedsync.core.store import StateStore
from .dataset import CatalogSource, get_product_ids_for_feed
from .dirty import DirtyTracker
from .executor import StepExecutor
from .models import (
    FeedArgs,
    FeedJobEvent,
    FeedJobState,
    FeedStatus,
    RegistrationError,
    StepOutcome,
    StepResult,
)
from .reconciler import RegistrationReconciler
from .state import FEED_REGISTERED_KEY, FeedJobStateManager, generate_job_id

logger = logging.getLogger(__name__)


class ProductSync:
    """Generation and registration of the product feed."""

    def __init__(
        self,
        settings: Settings,
        store: StateStore,
        scheduler: Scheduler,
        catalog: CatalogSource,
        reconciler: RegistrationReconciler,
        clock: Callable[[], float] = time.time,
        job_id_factory: Callable[[], str] = generate_job_id
    ):
        self.settings = settings
        self.store = store
        self.scheduler = scheduler
        self.catalog = catalog
        self.reconciler = reconciler

        self.state = FeedJobStateManager(store, settings, clock=clock, job_id_factory=job_id_factory)
        self.dirty = DirtyTracker(store, self.feed_reschedule)
        self.executor = StepExecutor(self.state, catalog, scheduler, settings, self.get_product_ids_for_feed)

        # Called after every completed generation
        self.generated_listeners: List[Callable[[], Awaitable[Any]]] = [
            self.dirty.reschedule_if_dirty,
            self.trigger_async_feed_registration_asap,
        ]

    def is_product_sync_enabled(self) -> bool:
        return self.settings.is_product_sync_enabled()

    async def get_product_ids_for_feed(self) -> List[int]:
        return await get_product_ids_for_feed(
            self.catalog,
            excluded_types=self.settings.excluded_types,
            hide_out_of_stock=self.settings.hide_out_of_stock_items
        )

    async def get_registered_feed_id(self) -> Optional[str]:
        return await self.reconciler.get_registered_feed_id()

    async def feed_file_exists(self) -> bool:
        """True if the public feed file of the current job exists."""
        state = await self.state.read()
        return bool(state.output_path) and Path(state.output_path).exists()

    async def maybe_init(self) -> bool:
        """
        Make sure the recurring control action is scheduled.

        Returns:
            False if sync is disabled and no feed is registered
        """
        if not self.is_product_sync_enabled() and not await self.get_registered_feed_id():
            return False

        # A queued one-off run does not replace the recurring entry
        if not await self.scheduler.is_recurring(ACTION_HANDLE_SYNC):
            await self.scheduler.schedule_recurring(
                ACTION_HANDLE_SYNC, self.settings.sync_interval_seconds, first_run_in=10
            )
        return True

    # === Scheduler entry points ===

    async def handle_sync(self) -> bool:
        """
        Recurring control step.

        Schedules generation when the job status calls for it, then checks
        the feed registration.
        """
        try:
            if self.is_product_sync_enabled():
                state = await self.state.read()
                if state.status in (FeedStatus.STARTING, FeedStatus.IN_PROGRESS, FeedStatus.ERROR):
                    await self.trigger_async_feed_generation()
                elif state.status in (
                    FeedStatus.UNCONFIGURED,
                    FeedStatus.SCHEDULED_FOR_GENERATION,
                    FeedStatus.PENDING_CONFIG,
                ):
                    await self.feed_reschedule()

            return await self.handle_feed_registration()
        except Exception as e:
            logger.exception(f"Feed sync control step failed: {e}")
            return False

    async def handle_feed_generation(self) -> StepResult:
        """
        Run one generation slice.

        A failed slice moves the job to error. If the job already was in
        error, the attempt is abandoned and restarted with a new job id.
        """
        try:
            if not self.is_product_sync_enabled():
                return StepResult(StepOutcome.SKIPPED)

            state = await self.state.read()
            if state.status == FeedStatus.GENERATED:
                return StepResult(StepOutcome.SKIPPED)

            result = await self.executor.run(state)

            if result.failed:
                await self._handle_failure(state, result)
            elif result.outcome == StepOutcome.GENERATED:
                await self._notify_generated()

            return result
        except Exception as e:
            logger.exception(f"Feed generation step failed: {e}")
            return StepResult.failure(e)

    async def _handle_failure(self, previous: FeedJobState, result: StepResult) -> None:
        if previous.status == FeedStatus.ERROR:
            # Already errored once. Restart job.
            await self.feed_reschedule(force=True, restart=True)
            logger.error(result.message)
            logger.error("Restarting Feed generation.")
            return

        await self.state.transition(FeedJobEvent.ERROR, progress=result.message)
        logger.error(f"Feed generation failed ({result.error_category}): {result.message}")

    async def _notify_generated(self) -> None:
        for listener in self.generated_listeners:
            try:
                await listener()
            except Exception as e:
                logger.exception(f"Feed generated listener failed: {e}")

    # === Scheduling ===

    async def feed_reschedule(self, force: bool = False, restart: bool = False) -> FeedJobState:
        """
        Schedule the regeneration of the feed.

        Args:
            force: Reschedule even while a generation is running, and bypass
                the scheduler's already-queued check
            restart: Abandon the current attempt and assign a new job id

        Returns:
            The job state after rescheduling
        """
        state = await self.state.read()

        if not force and state.status in (FeedStatus.IN_PROGRESS, FeedStatus.STARTING):
            return state

        event = FeedJobEvent.RESTART if restart else FeedJobEvent.RESCHEDULE
        state = await self.state.transition(event)
        await self.trigger_async_feed_generation(force)

        logger.info("Feed generation (re)scheduled.")
        return state

    async def trigger_async_feed_generation(self, force: bool = False) -> bool:
        return await self.scheduler.enqueue(ACTION_FEED_GENERATION, force=force)

    async def trigger_async_feed_registration_asap(self) -> None:
        """Run the control step right away if the feed is not registered yet."""
        if await self.get_registered_feed_id():
            return
        logger.debug("Feed generated but not registered, running registration now")
        await self.scheduler.enqueue(ACTION_HANDLE_SYNC, force=True)

    async def cancel_jobs(self) -> None:
        """Unschedule every pending control and generation action."""
        await self.scheduler.unschedule_all(ACTION_HANDLE_SYNC)
        await self.scheduler.unschedule_all(ACTION_FEED_GENERATION)
        logger.info("Product sync actions unscheduled.")

    # === Dirty tracking ===

    async def mark_feed_dirty(self, product_id: Optional[int] = None) -> None:
        await self.dirty.mark_dirty(product_id)

    async def reschedule_if_dirty(self) -> bool:
        return await self.dirty.reschedule_if_dirty()

    # === Reset and registration ===

    async def feed_reset(self) -> FeedJobState:
        """Delete the feed files and job data; status becomes pending_config."""
        return await self.state.reset()

    async def handle_feed_deregistration(self) -> None:
        await self.store.put(FEED_REGISTERED_KEY, None)
        await self.feed_reset()

    def build_feed_args(self, feed_url: str) -> FeedArgs:
        return FeedArgs(
            feed_location=feed_url,
            feed_format="XML",
            feed_default_currency=self.settings.currency,
            default_availability_type="IN_STOCK",
            country=self.settings.base_country or "US",
            locale=self.settings.feed_locale,
        )

    async def handle_feed_registration(self) -> bool:
        """
        Register the generated feed, or deregister when sync was switched off.

        Returns:
            True when registered or when registration has to wait for the feed
        """
        if not self.is_product_sync_enabled():
            if await self.get_registered_feed_id():
                await self.handle_feed_deregistration()
            return False

        if not await self.feed_file_exists():
            logger.debug("Feed didn't fully generate yet. Retrying later.")
            return True

        state = await self.state.transition(FeedJobEvent.CHECK_REGISTRATION)
        feed_args = self.build_feed_args(state.public_url)

        try:
            registered = await self.reconciler.reconcile(feed_args)
            if not registered:
                raise RegistrationError("Could not register feed.")
        except RegistrationError as e:
            logger.error(str(e))
            return False

        await self.state.forget_previous_output()
        return True

    async def status(self) -> Dict[str, Any]:
        """Job state plus registration and dirty flag, for display."""
        state = await self.state.read()
        data = state.to_dict()
        data["registered_feed_id"] = await self.get_registered_feed_id()
        data["dirty"] = await self.dirty.is_dirty()
        return data
