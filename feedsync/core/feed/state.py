"""
Persisted state of the feed generation job.

Status values:

- unconfigured              No job has ever run.
- pending_config            The feed was reset.
- scheduled_for_generation  The next generation slice starts a new attempt.
- starting                  Dataset built, job id and file paths assigned.
- in_progress               Between slices; at least one chunk was written.
- generated                 Public feed file complete. Turns back into
                            scheduled_for_generation once older than
                            stale_after_seconds.
- error                     The last slice failed.
"""

import logging
import secrets
import string
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from feedsync.config import Settings
from feedsync.core.store import StateStore
from .models import FeedJobEvent, FeedJobState, FeedStatus
from .writer import remove_feed_file

logger = logging.getLogger(__name__)

FEED_JOB_KEY = "feed_job"
FEED_REGISTERED_KEY = "feed_registered"
FEED_DIRTY_KEY = "feed_dirty"
MERCHANT_ID_KEY = "merchant_id"


def dataset_key(job_id: str) -> str:
    return f"feed_dataset_{job_id}"


def cursor_key(job_id: str) -> str:
    return f"feed_cursor_{job_id}"


def generate_job_id(length: int = 6) -> str:
    """Short random token used in feed file names."""
    alphabet = string.ascii_letters + string.digits
    return ''.join(secrets.choice(alphabet) for _ in range(length))


class FeedJobStateManager:
    """Single source of truth for the feed job status, cursor and file paths."""

    def __init__(
        self,
        store: StateStore,
        settings: Settings,
        clock: Callable[[], float] = time.time,
        job_id_factory: Callable[[], str] = generate_job_id
    ):
        """
        Initialize state manager.

        Args:
            store: Key-value store holding the job record and its blobs
            settings: Feed paths, TTLs and staleness threshold
            clock: Returns the current unix time
            job_id_factory: Returns a fresh job token
        """
        self.store = store
        self.settings = settings
        self.clock = clock
        self.job_id_factory = job_id_factory

    def _assign_paths(self, state: FeedJobState) -> None:
        name = f"{self.settings.feed_file_prefix}-{state.job_id}"
        feed_dir = Path(self.settings.feed_dir)
        state.output_path = str(feed_dir / f"{name}.xml")
        state.temp_path = str(feed_dir / f"{name}-tmp.xml")
        state.public_url = f"{self.settings.feed_base_url.rstrip('/')}/{name}.xml"

    def _ensure_job_id(self, state: FeedJobState) -> None:
        if not state.job_id:
            state.job_id = self.job_id_factory()
        self._assign_paths(state)

    async def _load(self) -> FeedJobState:
        data = await self.store.get(FEED_JOB_KEY)
        if not data:
            return FeedJobState()
        return FeedJobState.from_dict(data)

    async def _save(self, state: FeedJobState) -> None:
        await self.store.put(FEED_JOB_KEY, state.to_dict())

    def is_stale(self, state: FeedJobState) -> bool:
        return (
            state.status == FeedStatus.GENERATED
            and state.finished_at is not None
            and state.finished_at < self.clock() - self.settings.stale_after_seconds
        )

    async def read(self) -> FeedJobState:
        """
        Current job state.

        A generated feed older than the staleness threshold is rewritten to
        scheduled_for_generation before being returned.

        Returns:
            FeedJobState (status unconfigured if no job was ever recorded)
        """
        state = await self._load()

        if self.is_stale(state):
            state.status = FeedStatus.SCHEDULED_FOR_GENERATION
            state.finished_at = None
            await self._save(state)
            logger.info("Generated feed is stale. Feed status set to: scheduled_for_generation")

        return state

    async def transition(self, event: FeedJobEvent, **payload: Any) -> FeedJobState:
        """
        Apply an event, persist and return the new state.

        Every event is accepted from every status.

        Args:
            event: FeedJobEvent
            payload: Event data
                START: dataset (list of product ids)
                PROGRESS: cursor, bytes_written, progress
                ERROR: progress (error message)

        Returns:
            The persisted FeedJobState
        """
        state = await self.read()
        initial_status = state.status
        now = self.clock()

        if event == FeedJobEvent.START:
            dataset: List[int] = payload.get("dataset") or []
            self._ensure_job_id(state)
            state.status = FeedStatus.STARTING
            state.started_at = now
            state.finished_at = None
            state.last_activity_at = now
            state.dataset_cursor = 0
            state.written = 0
            state.bytes_written = 0
            state.products_count = len(dataset)
            state.progress = ""
            await self.store.put(dataset_key(state.job_id), dataset, ttl=self.settings.dataset_ttl_seconds)
            await self.store.delete(cursor_key(state.job_id))

        elif event == FeedJobEvent.CHECK_REGISTRATION:
            if state.job_id:
                return state
            self._ensure_job_id(state)

        elif event == FeedJobEvent.PROGRESS:
            cursor = int(payload["cursor"])
            state.status = FeedStatus.IN_PROGRESS
            state.finished_at = None
            state.last_activity_at = now
            state.dataset_cursor = cursor
            state.written = cursor
            state.bytes_written = int(payload.get("bytes_written", 0))
            state.progress = payload.get("progress", "")
            await self.store.put(
                cursor_key(state.job_id),
                {"cursor": cursor, "bytes_written": state.bytes_written},
                ttl=self.settings.dataset_ttl_seconds
            )

        elif event == FeedJobEvent.GENERATED:
            state.status = FeedStatus.GENERATED
            state.finished_at = now
            state.last_activity_at = now
            state.dataset_cursor = None
            state.bytes_written = 0
            if state.job_id:
                await self._delete_blobs(state.job_id)

        elif event == FeedJobEvent.ERROR:
            state.status = FeedStatus.ERROR
            state.last_activity_at = now
            state.progress = str(payload.get("progress", ""))

        elif event == FeedJobEvent.RESCHEDULE:
            state.status = FeedStatus.SCHEDULED_FOR_GENERATION
            state.finished_at = None

        elif event == FeedJobEvent.RESTART:
            # Abandon the current attempt entirely
            if state.job_id:
                await self._delete_blobs(state.job_id)
            remove_feed_file(state.temp_path)
            if state.output_path and Path(state.output_path).exists():
                state.previous_output_path = state.output_path
            state.job_id = self.job_id_factory()
            self._assign_paths(state)
            state.status = FeedStatus.SCHEDULED_FOR_GENERATION
            state.dataset_cursor = None
            state.finished_at = None
            state.written = 0
            state.bytes_written = 0
            state.products_count = None

        else:
            raise ValueError(f"Unknown feed job event: {event}")

        await self._save(state)

        if initial_status != state.status:
            logger.debug(f"Feed status set to: {state.status.value} (was {initial_status.value})")

        return state

    async def _delete_blobs(self, job_id: str) -> None:
        await self.store.delete(dataset_key(job_id))
        await self.store.delete(cursor_key(job_id))

    async def get_dataset(self, job_id: str) -> Optional[List[int]]:
        return await self.store.get(dataset_key(job_id))

    async def get_cursor(self, job_id: str) -> Optional[Dict[str, int]]:
        return await self.store.get(cursor_key(job_id))

    async def reset(self) -> FeedJobState:
        """
        Delete the feed files, the job's blobs, the registration cache and
        the dirty flag. The job record is replaced by a pending_config one.
        """
        state = await self._load()

        for path in (state.output_path, state.temp_path, state.previous_output_path):
            remove_feed_file(path)
        if state.job_id:
            await self._delete_blobs(state.job_id)

        await self.store.delete(FEED_REGISTERED_KEY)
        await self.store.delete(FEED_DIRTY_KEY)

        new_state = FeedJobState(status=FeedStatus.PENDING_CONFIG)
        await self._save(new_state)

        logger.info("Product feed reset and file deleted.")
        return new_state

    async def forget_previous_output(self) -> None:
        """Delete the public file of an abandoned attempt once the new feed is registered."""
        state = await self._load()
        if not state.previous_output_path:
            return
        if state.previous_output_path != state.output_path:
            remove_feed_file(state.previous_output_path)
        state.previous_output_path = None
        await self._save(state)
