"""Tests for the feed job state machine."""

import logging
from pathlib import Path

import pytest

from feedsync.core.feed.models import FeedJobEvent, FeedStatus
from feedsync.core.feed.state import (
    FEED_DIRTY_KEY,
    FEED_JOB_KEY,
    FEED_REGISTERED_KEY,
    FeedJobStateManager,
    cursor_key,
    dataset_key,
)


@pytest.fixture
def manager(store, settings, clock) -> FeedJobStateManager:
    ids = iter(["abc123", "def456", "ghi789"])
    return FeedJobStateManager(store, settings, clock=clock, job_id_factory=lambda: next(ids))


class TestRead:
    """Tests for reading the job state."""

    @pytest.mark.asyncio
    async def test_defaults_to_unconfigured(self, manager) -> None:
        state = await manager.read()
        assert state.status == FeedStatus.UNCONFIGURED
        assert state.job_id is None

    @pytest.mark.asyncio
    async def test_generated_feed_older_than_a_day_is_rescheduled(self, manager, store, clock) -> None:
        await manager.transition(FeedJobEvent.START, dataset=[1])
        await manager.transition(FeedJobEvent.GENERATED)
        clock.advance(25 * 3600)

        state = await manager.read()

        assert state.status == FeedStatus.SCHEDULED_FOR_GENERATION
        assert (await store.get(FEED_JOB_KEY))["status"] == "scheduled_for_generation"

    @pytest.mark.asyncio
    async def test_generated_feed_younger_than_a_day_is_kept(self, manager, clock) -> None:
        await manager.transition(FeedJobEvent.START, dataset=[1])
        await manager.transition(FeedJobEvent.GENERATED)
        clock.advance(23 * 3600)

        state = await manager.read()

        assert state.status == FeedStatus.GENERATED


class TestTransition:
    """Tests for applying job events."""

    @pytest.mark.asyncio
    async def test_start_assigns_job_id_paths_and_dataset(self, manager, store, settings) -> None:
        state = await manager.transition(FeedJobEvent.START, dataset=[4, 5, 6])

        assert state.status == FeedStatus.STARTING
        assert state.job_id == "abc123"
        assert state.output_path == str(Path(settings.feed_dir) / "pinterest-for-woocommerce-abc123.xml")
        assert state.temp_path == str(Path(settings.feed_dir) / "pinterest-for-woocommerce-abc123-tmp.xml")
        assert state.public_url == "https://shop.test/feeds/pinterest-for-woocommerce-abc123.xml"
        assert state.products_count == 3
        assert await store.get(dataset_key("abc123")) == [4, 5, 6]
        assert store.ttls[dataset_key("abc123")] == settings.dataset_ttl_seconds

    @pytest.mark.asyncio
    async def test_job_id_kept_across_attempts_of_same_job(self, manager) -> None:
        first = await manager.transition(FeedJobEvent.START, dataset=[1])
        await manager.transition(FeedJobEvent.GENERATED)
        await manager.transition(FeedJobEvent.RESCHEDULE)
        second = await manager.transition(FeedJobEvent.START, dataset=[1, 2])

        assert second.job_id == first.job_id

    @pytest.mark.asyncio
    async def test_check_registration_assigns_paths_without_status_change(self, manager) -> None:
        state = await manager.transition(FeedJobEvent.CHECK_REGISTRATION)

        assert state.status == FeedStatus.UNCONFIGURED
        assert state.job_id == "abc123"
        assert state.public_url.endswith("pinterest-for-woocommerce-abc123.xml")

    @pytest.mark.asyncio
    async def test_check_registration_with_job_id_does_not_write(self, manager, store) -> None:
        await manager.transition(FeedJobEvent.START, dataset=[1])
        before = dict(store.data)

        await manager.transition(FeedJobEvent.CHECK_REGISTRATION)

        assert store.data == before

    @pytest.mark.asyncio
    async def test_progress_persists_cursor_and_size(self, manager, store) -> None:
        await manager.transition(FeedJobEvent.START, dataset=[1, 2, 3])
        state = await manager.transition(
            FeedJobEvent.PROGRESS, cursor=2, bytes_written=512, progress="Wrote 2 out of 3 products"
        )

        assert state.status == FeedStatus.IN_PROGRESS
        assert state.dataset_cursor == 2
        assert state.written == 2
        assert await store.get(cursor_key("abc123")) == {"cursor": 2, "bytes_written": 512}

    @pytest.mark.asyncio
    async def test_generated_drops_dataset_and_cursor(self, manager, store, clock) -> None:
        await manager.transition(FeedJobEvent.START, dataset=[1])
        await manager.transition(FeedJobEvent.PROGRESS, cursor=1, bytes_written=10)
        state = await manager.transition(FeedJobEvent.GENERATED)

        assert state.status == FeedStatus.GENERATED
        assert state.finished_at == clock.now
        assert await store.get(dataset_key("abc123")) is None
        assert await store.get(cursor_key("abc123")) is None

    @pytest.mark.asyncio
    async def test_error_keeps_job_id_and_dataset(self, manager, store) -> None:
        await manager.transition(FeedJobEvent.START, dataset=[1, 2])
        state = await manager.transition(FeedJobEvent.ERROR, progress="disk full")

        assert state.status == FeedStatus.ERROR
        assert state.job_id == "abc123"
        assert state.progress == "disk full"
        assert await store.get(dataset_key("abc123")) == [1, 2]

    @pytest.mark.asyncio
    async def test_restart_abandons_attempt(self, manager, store) -> None:
        state = await manager.transition(FeedJobEvent.START, dataset=[1, 2])
        Path(state.temp_path).parent.mkdir(parents=True, exist_ok=True)
        Path(state.temp_path).write_text("<rss>")
        Path(state.output_path).write_text("<rss></rss>")

        restarted = await manager.transition(FeedJobEvent.RESTART)

        assert restarted.status == FeedStatus.SCHEDULED_FOR_GENERATION
        assert restarted.job_id == "def456"
        assert restarted.temp_path.endswith("def456-tmp.xml")
        assert restarted.previous_output_path == state.output_path
        assert not Path(state.temp_path).exists()
        assert Path(state.output_path).exists()
        assert await store.get(dataset_key("abc123")) is None

    @pytest.mark.asyncio
    async def test_status_change_is_logged(self, manager, caplog) -> None:
        with caplog.at_level(logging.DEBUG, logger="feedsync.core.feed.state"):
            await manager.transition(FeedJobEvent.RESCHEDULE)

        assert "Feed status set to: scheduled_for_generation (was unconfigured)" in caplog.text


class TestReset:
    """Tests for resetting the feed."""

    @pytest.mark.asyncio
    async def test_reset_deletes_files_and_data(self, manager, store) -> None:
        state = await manager.transition(FeedJobEvent.START, dataset=[1])
        Path(state.output_path).parent.mkdir(parents=True, exist_ok=True)
        Path(state.output_path).write_text("<rss></rss>")
        Path(state.temp_path).write_text("<rss>")
        await store.put(FEED_REGISTERED_KEY, "profile-1")
        await store.put(FEED_DIRTY_KEY, True)

        new_state = await manager.reset()

        assert new_state.status == FeedStatus.PENDING_CONFIG
        assert new_state.job_id is None
        assert not Path(state.output_path).exists()
        assert not Path(state.temp_path).exists()
        assert await store.get(dataset_key("abc123")) is None
        assert await store.get(FEED_REGISTERED_KEY) is None
        assert await store.get(FEED_DIRTY_KEY) is None
        assert (await manager.read()).status == FeedStatus.PENDING_CONFIG


@pytest.mark.asyncio
async def test_forget_previous_output_removes_old_file(manager) -> None:
    state = await manager.transition(FeedJobEvent.START, dataset=[1])
    Path(state.output_path).parent.mkdir(parents=True, exist_ok=True)
    Path(state.output_path).write_text("<rss></rss>")
    await manager.transition(FeedJobEvent.RESTART)

    await manager.forget_previous_output()

    assert not Path(state.output_path).exists()
    assert (await manager.read()).previous_output_path is None
