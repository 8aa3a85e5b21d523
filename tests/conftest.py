"""Shared fixtures and in-memory doubles for the feed sync tests."""

import itertools
import json
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional

import pytest

from feedsync.config import Settings
from feedsync.core.feed.models import CatalogEntry, FeedArgs, FeedGenerationError, FeedItem
from feedsync.core.feed.state import FEED_REGISTERED_KEY
from feedsync.core.feed.sync import ProductSync
from feedsync.core.feed.xml_writer import get_xml_footer, get_xml_header, get_xml_item


class MemoryStateStore:
    """StateStore keeping JSON-encoded values in a dict."""

    def __init__(self) -> None:
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, Optional[int]] = {}

    async def get(self, key: str) -> Optional[Any]:
        raw = self.data.get(key)
        return None if raw is None else json.loads(raw)

    async def put(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        self.data[key] = json.dumps(value)
        self.ttls[key] = ttl

    async def delete(self, key: str) -> None:
        self.data.pop(key, None)
        self.ttls.pop(key, None)


class RecordingScheduler:
    """Scheduler that records every call and keeps a plain queue."""

    def __init__(self) -> None:
        self.queue: List[str] = []
        self.recurring: Dict[str, int] = {}
        self.calls: List[tuple] = []

    async def is_scheduled(self, action: str) -> bool:
        return action in self.recurring or action in self.queue

    async def is_recurring(self, action: str) -> bool:
        return action in self.recurring

    async def enqueue(self, action: str, force: bool = False) -> bool:
        self.calls.append(("enqueue", action, force))
        if not force and await self.is_scheduled(action):
            return False
        self.queue.append(action)
        return True

    async def schedule_recurring(self, action: str, interval: int, first_run_in: int = 10) -> None:
        self.calls.append(("schedule_recurring", action, interval))
        self.recurring[action] = interval

    async def unschedule_all(self, action: str) -> None:
        self.calls.append(("unschedule_all", action))
        self.queue = [a for a in self.queue if a != action]
        self.recurring.pop(action, None)

    def enqueued(self, action: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == "enqueue" and c[1] == action]

    def reset(self) -> None:
        self.queue.clear()
        self.calls.clear()


class FakeCatalog:
    """
    Catalog serving fixed entries.

    Each occurrence of a product id in fail_on makes one serialization of it
    fail; list_error is raised by every listing.
    """

    def __init__(
        self,
        entries: Iterable[CatalogEntry] = (),
        fail_on: Iterable[int] = (),
        list_error: Optional[Exception] = None,
    ) -> None:
        self.entries = list(entries)
        self.failures = Counter(fail_on)
        self.list_error = list_error
        self.serialized: List[int] = []
        self.list_calls = 0

    @classmethod
    def simple(cls, count: int, **kwargs) -> "FakeCatalog":
        return cls([CatalogEntry(id=i) for i in range(1, count + 1)], **kwargs)

    async def list_eligible_products(self) -> List[CatalogEntry]:
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        return list(self.entries)

    async def serialize_product(self, product_id: int, parents: Optional[Dict[int, Dict[str, Any]]] = None) -> str:
        if self.failures[product_id] > 0:
            self.failures[product_id] -= 1
            raise FeedGenerationError(f"Could not load product {product_id}", FeedGenerationError.CATALOG)
        self.serialized.append(product_id)
        return get_xml_item(FeedItem(id=str(product_id), title=f"Product {product_id}", price=10.0))

    def get_header(self) -> str:
        return get_xml_header("Test Store", "https://shop.test")

    def get_footer(self) -> str:
        return get_xml_footer()


class FakeReconciler:
    """Reconciler that records the requested feed args and caches a fixed id."""

    def __init__(self, store: MemoryStateStore, result: Any = "profile-1") -> None:
        self.store = store
        self.result = result
        self.calls: List[FeedArgs] = []

    async def get_registered_feed_id(self) -> Optional[str]:
        return await self.store.get(FEED_REGISTERED_KEY) or None

    async def reconcile(self, feed_args: FeedArgs) -> Optional[str]:
        self.calls.append(feed_args)
        if isinstance(self.result, Exception):
            raise self.result
        await self.store.put(FEED_REGISTERED_KEY, self.result)
        return self.result


class FakeClock:
    """Controllable unix clock."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def store() -> MemoryStateStore:
    return MemoryStateStore()


@pytest.fixture
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        feed_dir=str(tmp_path / "feeds"),
        feed_base_url="https://shop.test/feeds",
        products_per_step=5,
        products_per_write=2,
        store_url="https://shop.test",
        store_name="Test Store",
        consumer_key="ck_test",
        consumer_secret="cs_test",
        pinterest_access_token="pin-token",
        currency="USD",
        base_country="US",
        locale="en_US",
    )


@pytest.fixture
def make_sync(settings, store, scheduler, clock):
    """Build a ProductSync over the in-memory doubles with predictable job ids."""
    counter = itertools.count(1)

    def _make(catalog: FakeCatalog, reconciler: Optional[FakeReconciler] = None, **overrides) -> ProductSync:
        sync_settings = settings.model_copy(update=overrides) if overrides else settings
        return ProductSync(
            sync_settings,
            store,
            scheduler,
            catalog,
            reconciler or FakeReconciler(store),
            clock=clock,
            job_id_factory=lambda: f"job{next(counter)}",
        )

    return _make
