"""
Order storage layer.

The analytics engine reads through ``OrderReader``; the process-wide
repository is DuckDB-backed and wrapped in a bounded, time-limited read cache
whose size and TTL come from settings.
"""

from functools import lru_cache

from flowlens.config import get_settings

from .base import OrderReader, OrderRepository, StorageError
from .cache import BoundedTTLCache, CachedOrderRepository
from .duckdb_storage import DuckDBOrderRepository


@lru_cache
def get_order_repository() -> OrderRepository:
    """
    Get cached order repository instance (singleton).

    Returns:
        DuckDB repository wrapped in a bounded read cache
    """
    settings = get_settings()
    cache = BoundedTTLCache(
        max_entries=settings.order_cache_max_entries,
        ttl_seconds=settings.order_cache_ttl_seconds,
    )
    return CachedOrderRepository(DuckDBOrderRepository(db_path=settings.db_path), cache)


__all__ = [
    "BoundedTTLCache",
    "CachedOrderRepository",
    "DuckDBOrderRepository",
    "OrderReader",
    "OrderRepository",
    "StorageError",
    "get_order_repository",
]
