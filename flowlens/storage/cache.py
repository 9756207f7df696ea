"""
Bounded read cache for order repositories.

Dashboard users tend to re-run the same analysis window several times in a
row. ``CachedOrderRepository`` keeps the most recent range reads in a
``BoundedTTLCache`` (least recently used eviction plus expiry) and drops the
whole cache on any write so a backfill is visible immediately. A read that
raced with a write is returned to its caller but not cached.
"""

import threading
import time
from collections import OrderedDict
from datetime import datetime
from typing import Any, Callable, Hashable, Iterator, Optional

import structlog

from flowlens.models.orders import Order

from .base import OrderRepository

logger = structlog.get_logger(__name__)


class BoundedTTLCache:
    """
    Thread-safe LRU cache with a maximum size and per-entry time to live.

    Attributes:
        max_entries: Entries kept before the least recently used is evicted
            (0 disables caching)
        ttl_seconds: Seconds an entry stays valid
    """

    def __init__(
        self,
        max_entries: int = 32,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 0:
            raise ValueError("max_entries must be non-negative")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[Hashable, tuple[float, Any]] = OrderedDict()
        self._lock = threading.Lock()
        self._generation = 0

    @property
    def generation(self) -> int:
        """Incremented by every ``clear``."""
        return self._generation

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            item = self._entries.get(key)
            if item is None:
                return None
            stored_at, value = item
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    def set(self, key: Hashable, value: Any, generation: Optional[int] = None) -> None:
        """
        Store ``value`` under ``key``.

        When ``generation`` is given and the cache was cleared since it was
        read, the value is stale and is not stored.
        """
        if self.max_entries == 0:
            return
        with self._lock:
            if generation is not None and generation != self._generation:
                return
            self._entries[key] = (self._clock(), value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._generation += 1

    def __len__(self) -> int:
        return len(self._entries)


class CachedOrderRepository(OrderRepository):
    """Caches ``list_orders`` results of a wrapped repository."""

    def __init__(self, repository: OrderRepository, cache: BoundedTTLCache):
        self.repository = repository
        self.cache = cache

    def list_orders(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Order]:
        key = ("list_orders", start, end)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("order_cache_hit", start=start, end=end, orders=len(cached))
            return list(cached)

        generation = self.cache.generation
        orders = self.repository.list_orders(start, end)
        self.cache.set(key, tuple(orders), generation=generation)
        return orders

    def iter_order_batches(self, batch_size: int) -> Iterator[list[Order]]:
        return self.repository.iter_order_batches(batch_size)

    def save_orders(self, orders: list[Order]) -> int:
        try:
            return self.repository.save_orders(orders)
        finally:
            self.cache.clear()

    def save_status_histories(self, orders: list[Order]) -> int:
        try:
            return self.repository.save_status_histories(orders)
        finally:
            self.cache.clear()

    def count_orders(self) -> int:
        return self.repository.count_orders()

    def clear_for_testing(self) -> None:
        self.cache.clear()
        clear = getattr(self.repository, "clear_for_testing", None)
        if clear is not None:
            clear()
