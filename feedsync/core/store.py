"""
Key-value persistence for the feed sync engine.

Everything the engine persists between invocations (job state, dataset,
cursor, registration cache, dirty flag) goes through a StateStore, so the
engine never talks to Redis directly.
"""

import json
from typing import Any, Optional, Protocol
import redis.asyncio as aioredis


class StateStore(Protocol):
    """Minimal async key-value store contract."""

    async def get(self, key: str) -> Optional[Any]:
        ...

    async def put(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class RedisStateStore:
    """StateStore backed by Redis, values stored as JSON strings."""

    def __init__(self, redis_client: aioredis.Redis, prefix: str = "feedsync"):
        """
        Initialize store.

        Args:
            redis_client: Redis async client (decode_responses=True)
            prefix: Namespace prepended to every key
        """
        self.redis = redis_client
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        """
        Get a value.

        Args:
            key: Store key

        Returns:
            Decoded value or None if missing/expired
        """
        value = await self.redis.get(self._key(key))
        if value is None:
            return None
        return json.loads(value)

    async def put(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """
        Set a value.

        Args:
            key: Store key
            value: JSON-serialisable value
            ttl: Optional expiry in seconds
        """
        await self.redis.set(self._key(key), json.dumps(value), ex=ttl)

    async def delete(self, key: str) -> None:
        """Delete a value (no-op if missing)."""
        await self.redis.delete(self._key(key))
