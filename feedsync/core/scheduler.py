"""
Action scheduling for the feed sync engine.

The engine only knows the Scheduler protocol. RedisScheduler keeps one-off
actions in a Redis list and recurring actions in a hash of next run times;
SchedulerWorker polls it and dispatches due actions to their handlers.
"""

import asyncio
import json
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional, Protocol

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

ACTION_HANDLE_SYNC = "handle-sync"
ACTION_FEED_GENERATION = "feed-generation"

ActionHandler = Callable[[], Awaitable[object]]


class Scheduler(Protocol):
    """Contract between the feed engine and whatever runs its actions."""

    async def is_scheduled(self, action: str) -> bool:
        ...

    async def is_recurring(self, action: str) -> bool:
        ...

    async def enqueue(self, action: str, force: bool = False) -> bool:
        """Queue a one-off run. Without force, nothing happens if one is already pending."""
        ...

    async def schedule_recurring(self, action: str, interval: int, first_run_in: int = 10) -> None:
        ...

    async def unschedule_all(self, action: str) -> None:
        ...


class RedisScheduler:
    """Scheduler state stored in Redis so any worker process can pick actions up."""

    def __init__(self, redis_client: aioredis.Redis, prefix: str = "feedsync", clock: Callable[[], float] = time.time):
        self.redis = redis_client
        self.queue_key = f"{prefix}:scheduler:queue"
        self.recurring_key = f"{prefix}:scheduler:recurring"
        self.clock = clock

    async def is_scheduled(self, action: str) -> bool:
        """True if a one-off or recurring run of the action is pending."""
        if await self.redis.hexists(self.recurring_key, action):
            return True
        queued = await self.redis.lrange(self.queue_key, 0, -1)
        return action in queued

    async def is_recurring(self, action: str) -> bool:
        return bool(await self.redis.hexists(self.recurring_key, action))

    async def enqueue(self, action: str, force: bool = False) -> bool:
        """
        Queue a one-off run of an action.

        Args:
            action: Action name
            force: Queue even if a run is already pending

        Returns:
            True if queued
        """
        if not force and await self.is_scheduled(action):
            return False
        await self.redis.rpush(self.queue_key, action)
        return True

    async def schedule_recurring(self, action: str, interval: int, first_run_in: int = 10) -> None:
        """Run the action every interval seconds, first after first_run_in seconds."""
        entry = {"interval": interval, "next_run": self.clock() + first_run_in}
        await self.redis.hset(self.recurring_key, action, json.dumps(entry))

    async def unschedule_all(self, action: str) -> None:
        """Remove every pending one-off and recurring run of the action."""
        await self.redis.lrem(self.queue_key, 0, action)
        await self.redis.hdel(self.recurring_key, action)

    async def pop_due(self) -> List[str]:
        """
        Collect the actions due now.

        Recurring actions get their next run moved forward. Only one-offs
        queued before this call are popped; anything enqueued by their
        handlers waits for the next tick.
        """
        due = []
        now = self.clock()

        recurring = await self.redis.hgetall(self.recurring_key)
        for action, raw in recurring.items():
            entry = json.loads(raw)
            if entry["next_run"] <= now:
                entry["next_run"] = now + entry["interval"]
                await self.redis.hset(self.recurring_key, action, json.dumps(entry))
                due.append(action)

        pending = await self.redis.llen(self.queue_key)
        for _ in range(pending):
            action = await self.redis.lpop(self.queue_key)
            if action is None:
                break
            due.append(action)

        return due


class SchedulerWorker:
    """
    Polls a RedisScheduler and runs due actions one at a time.

    A Redis lock per action (SET NX EX) keeps two processes from running the
    same action concurrently.
    """

    def __init__(
        self,
        scheduler: RedisScheduler,
        handlers: Dict[str, ActionHandler],
        poll_interval: float = 5.0,
        lock_ttl: int = 900,
        prefix: str = "feedsync"
    ):
        self.scheduler = scheduler
        self.handlers = handlers
        self.poll_interval = poll_interval
        self.lock_ttl = lock_ttl
        self.lock_prefix = f"{prefix}:lock"
        self._task: Optional[asyncio.Task] = None
        self._running = False

    async def _dispatch(self, action: str) -> None:
        handler = self.handlers.get(action)
        if handler is None:
            logger.warning(f"No handler registered for action {action}")
            return

        redis = self.scheduler.redis
        lock_key = f"{self.lock_prefix}:{action}"
        acquired = await redis.set(lock_key, "1", nx=True, ex=self.lock_ttl)
        if not acquired:
            # Put it back so a continuation queued by the running handler is not lost
            logger.debug(f"Action {action} is already running elsewhere, requeued")
            await self.scheduler.enqueue(action, force=True)
            return

        try:
            await handler()
        except Exception as e:
            logger.exception(f"Action {action} failed: {e}")
        finally:
            await redis.delete(lock_key)

    async def tick(self) -> int:
        """
        Run every action currently due.

        Returns:
            Number of actions dispatched
        """
        due = await self.scheduler.pop_due()
        for action in due:
            await self._dispatch(action)
        return len(due)

    async def run_forever(self) -> None:
        self._running = True
        logger.info(f"Scheduler worker started (poll interval {self.poll_interval}s)")
        while self._running:
            try:
                await self.tick()
            except Exception as e:
                logger.exception(f"Scheduler tick failed: {e}")
            await asyncio.sleep(self.poll_interval)

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self.run_forever())

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Scheduler worker stopped")
