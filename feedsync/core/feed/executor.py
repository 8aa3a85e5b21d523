"""
One bounded slice of feed generation.

A slice serializes at most products_per_step products, flushing the buffer
to the temporary file every products_per_write products. If products are
left it enqueues the next slice; otherwise it closes the feed and promotes
the file.
"""

import logging
import time
from typing import Awaitable, Callable, List, Optional, Tuple

from feedsync.config import Settings
from feedsync.core.scheduler import ACTION_FEED_GENERATION, Scheduler
from .dataset import CatalogSource
from .models import (
    FeedGenerationError,
    FeedJobEvent,
    FeedJobState,
    FeedStatus,
    SliceContext,
    StepOutcome,
    StepResult,
)
from .state import FeedJobStateManager
from .writer import FeedFileWriter, promote_feed_file

logger = logging.getLogger(__name__)

# Statuses a slice acts on; anything else is a no-op
RUNNABLE_STATUSES = (
    FeedStatus.UNCONFIGURED,
    FeedStatus.SCHEDULED_FOR_GENERATION,
    FeedStatus.STARTING,
    FeedStatus.IN_PROGRESS,
    FeedStatus.ERROR,
)

FRESH_START_STATUSES = (FeedStatus.UNCONFIGURED, FeedStatus.SCHEDULED_FOR_GENERATION)


def progress_message(written: int, total: int, feed_url: Optional[str]) -> str:
    return (
        f'Wrote {written} out of {total} products to '
        f'<a href="{feed_url or ""}" target="_blank">feed file</a>.'
    )


class StepExecutor:
    """Runs one slice of the current generation attempt."""

    def __init__(
        self,
        state_manager: FeedJobStateManager,
        catalog: CatalogSource,
        scheduler: Scheduler,
        settings: Settings,
        dataset_provider: Callable[[], Awaitable[List[int]]]
    ):
        self.state_manager = state_manager
        self.catalog = catalog
        self.scheduler = scheduler
        self.products_per_step = max(1, settings.products_per_step)
        self.products_per_write = max(1, settings.products_per_write)
        self.dataset_provider = dataset_provider

    async def run(self, state: FeedJobState) -> StepResult:
        """
        Run one slice starting from the given state.

        Never raises: failures come back as a FAILED StepResult.
        """
        if state.status not in RUNNABLE_STATUSES:
            return StepResult(StepOutcome.SKIPPED)

        ctx = SliceContext()
        start = time.monotonic()

        try:
            if await self._is_fresh_start(state):
                product_ids = await self.dataset_provider()
                if not product_ids:
                    logger.info("No products found for feed generation.")
                    return StepResult(StepOutcome.EMPTY, ctx)

                state = await self.state_manager.transition(FeedJobEvent.START, dataset=product_ids)
                writer = FeedFileWriter(state.temp_path, replace=True)
            else:
                product_ids, ctx.current_index, resume_size = await self._resume_point(state)
                writer = FeedFileWriter(
                    state.temp_path,
                    replace=resume_size is None,
                    resume_size=resume_size
                )

            return await self._write_slice(state, product_ids, writer, ctx, start)

        except Exception as e:
            return StepResult.failure(e, ctx)

    async def _is_fresh_start(self, state: FeedJobState) -> bool:
        if state.status in FRESH_START_STATUSES:
            return True
        # An attempt that failed before building its dataset has nothing to resume
        if state.status == FeedStatus.ERROR:
            return not state.job_id or not await self.state_manager.get_dataset(state.job_id)
        return False

    async def _resume_point(self, state: FeedJobState) -> Tuple[List[int], int, Optional[int]]:
        """
        Dataset, next index and temp file size to resume from.

        resume_size is None when no chunk of the attempt was written yet, in
        which case the temp file must be started over.

        Raises:
            FeedGenerationError: If the persisted dataset or cursor is unusable
        """
        if not state.job_id or not state.temp_path:
            raise FeedGenerationError(
                "Something went wrong while attempting to generate the feed: no job id.",
                FeedGenerationError.INCONSISTENT_STATE
            )

        product_ids = await self.state_manager.get_dataset(state.job_id)
        if not product_ids:
            raise FeedGenerationError(
                "Something went wrong while attempting to generate the feed: dataset is missing.",
                FeedGenerationError.INCONSISTENT_STATE
            )

        cursor = await self.state_manager.get_cursor(state.job_id)
        if cursor is None:
            if state.status == FeedStatus.IN_PROGRESS or state.written > 0:
                raise FeedGenerationError(
                    "Something went wrong while attempting to generate the feed: cursor is missing.",
                    FeedGenerationError.INCONSISTENT_STATE
                )
            return product_ids, 0, None

        index = int(cursor["cursor"])
        if index > len(product_ids):
            raise FeedGenerationError(
                f"Feed cursor {index} is past the end of the dataset ({len(product_ids)}).",
                FeedGenerationError.INCONSISTENT_STATE
            )

        return product_ids, index, int(cursor.get("bytes_written", 0))

    async def _flush(
        self,
        writer: FeedFileWriter,
        state: FeedJobState,
        ctx: SliceContext,
        products_count: int
    ) -> FeedJobState:
        ctx.bytes_written = writer.write(''.join(ctx.buffer))
        ctx.buffer.clear()

        return await self.state_manager.transition(
            FeedJobEvent.PROGRESS,
            cursor=ctx.current_index,
            bytes_written=ctx.bytes_written,
            progress=progress_message(ctx.current_index, products_count, state.public_url)
        )

    async def _write_slice(
        self,
        state: FeedJobState,
        product_ids: List[int],
        writer: FeedFileWriter,
        ctx: SliceContext,
        start: float
    ) -> StepResult:
        products_count = len(product_ids)
        logger.debug(f"Generating feed for {products_count} products")

        with writer:
            if writer.replace:
                writer.write(self.catalog.get_header())

            while ctx.current_index < products_count:
                ctx.buffer.append(await self.catalog.serialize_product(product_ids[ctx.current_index], ctx.parents))
                ctx.current_index += 1
                ctx.step_index += 1

                if ctx.buffer_size >= self.products_per_write:
                    state = await self._flush(writer, state, ctx, products_count)

                if ctx.step_index >= self.products_per_step:
                    break

            if ctx.buffer:
                state = await self._flush(writer, state, ctx, products_count)

            done = ctx.current_index >= products_count
            if done:
                writer.write(self.catalog.get_footer())

        elapsed_ms = round((time.monotonic() - start) * 1000)
        logger.debug(
            f"Feed step generation completed in {elapsed_ms}ms. "
            f"Current Index: {ctx.current_index} / {products_count}"
        )

        if done:
            promote_feed_file(state.temp_path, state.output_path)
            await self.state_manager.transition(FeedJobEvent.GENERATED)
            logger.info(f"Wrote {ctx.step_index} products to file: {state.output_path}")
            return StepResult(StepOutcome.GENERATED, ctx)

        # More products left
        await self.scheduler.enqueue(ACTION_FEED_GENERATION, force=True)
        logger.debug(f"Wrote {ctx.step_index} products to file: {state.temp_path}")
        return StepResult(StepOutcome.CONTINUED, ctx)
