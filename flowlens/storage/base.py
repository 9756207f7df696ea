"""
Abstract order storage interface.

The analytics engine depends only on ``OrderReader``, a read-only "list
orders in range" capability. Maintenance jobs and seeding scripts use the
wider ``OrderRepository`` contract, which adds batched reads and writes.
Swapping the DuckDB backend for another store (or wrapping it in a cache)
requires no change to the engine.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterator, Optional

from flowlens.models.orders import Order


class StorageError(Exception):
    """Base exception for all storage operation failures."""

    pass


class OrderReader(ABC):
    """Read-only access to orders, as needed by the analysis pipeline."""

    @abstractmethod
    def list_orders(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Order]:
        """
        List orders created within ``[start, end]`` with their status history.

        Orders without a creation timestamp are never returned when a bound
        is given.

        Args:
            start: Inclusive lower bound on ``created_at`` (None = unbounded)
            end: Inclusive upper bound on ``created_at`` (None = unbounded)

        Returns:
            Orders sorted by creation time

        Raises:
            StorageError: If the read fails
        """
        pass


class OrderRepository(OrderReader):
    """
    Full order store contract.

    Implementations must make every write call atomic: either all orders
    passed to one call are persisted or none are.
    """

    @abstractmethod
    def iter_order_batches(self, batch_size: int) -> Iterator[list[Order]]:
        """
        Iterate over all orders in sequential batches of at most ``batch_size``.

        Raises:
            StorageError: If a batch read fails
        """
        pass

    @abstractmethod
    def save_orders(self, orders: list[Order]) -> int:
        """
        Insert or replace orders together with their status history.

        Returns:
            Number of orders written

        Raises:
            StorageError: If the write fails (nothing is persisted)
        """
        pass

    @abstractmethod
    def save_status_histories(self, orders: list[Order]) -> int:
        """
        Replace the status history of each given order.

        Returns:
            Number of status events written

        Raises:
            StorageError: If the write fails (nothing is persisted)
        """
        pass

    @abstractmethod
    def count_orders(self) -> int:
        """Total number of stored orders."""
        pass
