"""
Pytest configuration and shared fixtures for the FlowLens test suite.

Provides order factories, an in-memory order repository, environment
isolation for the DuckDB-backed integration tests, and authenticated request
headers minted with the real JWT helper.
"""

import os
import tempfile
import uuid as _uuid
from datetime import datetime, timedelta
from typing import Iterator, Optional
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

# Set testing environment BEFORE importing the app (settings are cached).
# Use a temp path that does not exist yet - DuckDB creates the file.
_test_db_path = os.path.join(tempfile.gettempdir(), f"flowlens_test_{_uuid.uuid4().hex[:8]}.duckdb")
os.environ["TESTING"] = "true"
os.environ["DB_PATH"] = _test_db_path
os.environ["ORDER_CACHE_MAX_ENTRIES"] = "0"


from flowlens.models.orders import Order, StatusEvent
from flowlens.storage.base import OrderRepository, StorageError

# Monday
T0 = datetime(2024, 1, 15, 9, 0)


# ---------------------------------------------------------------------------
# Pydantic model factories
# ---------------------------------------------------------------------------


def make_event(status: str, created_at, **overrides) -> StatusEvent:
    """Factory function for creating test StatusEvent objects."""
    return StatusEvent(status=status, created_at=created_at, **overrides)


def make_order(
    order_id: str = "ORD-000001",
    events: Optional[list] = None,
    created_at: Optional[datetime] = T0,
    status: Optional[str] = None,
    **overrides,
) -> Order:
    """
    Factory function for creating test Order objects.

    ``events`` holds ``(stage, timestamp)`` tuples or StatusEvent objects.
    """
    history = []
    for event in events or []:
        if isinstance(event, StatusEvent):
            history.append(event)
        else:
            history.append(make_event(*event))

    defaults = dict(
        order_id=order_id,
        status=status if status is not None else (history[-1].status if history else "Initiated"),
        created_at=created_at,
        status_history=history,
    )
    defaults.update(overrides)
    return Order(**defaults)


def make_lifecycle_order(
    order_id: str,
    created_at: datetime,
    hours: list[float],
    stages: Optional[list[str]] = None,
) -> Order:
    """Order whose consecutive stages last ``hours[i]`` hours each."""
    stages = stages or [
        "Initiated", "Requests Sent", "Quoted", "Accepted", "Paid",
        "In Progress", "In Transit", "Delivered", "Completed",
    ]
    events = [(stages[0], created_at)]
    moment = created_at
    for stage, duration in zip(stages[1:], hours):
        moment = moment + timedelta(hours=duration)
        events.append((stage, moment))
    return make_order(order_id=order_id, events=events, created_at=created_at)


class MockOrderRepository(OrderRepository):
    """
    In-memory OrderRepository for unit tests.

    Args:
        orders: Initial orders
        fail_reads: Raise StorageError from every read
        fail_on_write: 1-based index of the ``save_status_histories`` call that fails
    """

    def __init__(
        self,
        orders: Optional[list[Order]] = None,
        fail_reads: bool = False,
        fail_on_write: Optional[int] = None,
    ):
        self._orders: dict[str, Order] = {}
        self.fail_reads = fail_reads
        self.fail_on_write = fail_on_write
        self.write_calls = 0
        self.list_calls = 0
        for order in orders or []:
            self._orders[order.order_id] = order

    def list_orders(self, start=None, end=None) -> list[Order]:
        self.list_calls += 1
        if self.fail_reads:
            raise StorageError("Simulated read failure")
        results = []
        for order in self._orders.values():
            if start is not None or end is not None:
                if order.created_at is None:
                    continue
                if start is not None and order.created_at < start:
                    continue
                if end is not None and order.created_at > end:
                    continue
            results.append(order)
        return sorted(results, key=lambda o: (o.created_at or datetime.min, o.order_id))

    def iter_order_batches(self, batch_size: int) -> Iterator[list[Order]]:
        if self.fail_reads:
            raise StorageError("Simulated read failure")
        ordered = [self._orders[k] for k in sorted(self._orders)]
        for offset in range(0, len(ordered), batch_size):
            yield ordered[offset:offset + batch_size]

    def save_orders(self, orders: list[Order]) -> int:
        for order in orders:
            self._orders[order.order_id] = order
        return len(orders)

    def save_status_histories(self, orders: list[Order]) -> int:
        self.write_calls += 1
        if self.fail_on_write == self.write_calls:
            raise StorageError("Simulated write failure")
        written = 0
        for order in orders:
            stored = self._orders[order.order_id]
            self._orders[order.order_id] = stored.model_copy(
                update={"status_history": list(order.status_history)}
            )
            written += len(order.status_history)
        return written

    def count_orders(self) -> int:
        return len(self._orders)

    def get(self, order_id: str) -> Order:
        return self._orders[order_id]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_repository():
    """Fresh empty MockOrderRepository for each test."""
    return MockOrderRepository()


@pytest.fixture
def sample_orders():
    """Orders with a slow Quoted stage and one legacy order without history."""
    orders = [
        make_lifecycle_order(f"ORD-{i:06d}", T0 + timedelta(days=i), [10, 30, 150, 20, 10, 8, 20, 12])
        for i in range(1, 6)
    ]
    orders.append(
        make_order(
            order_id="ORD-LEGACY",
            events=[],
            created_at=T0 + timedelta(days=2),
            status="Completed",
            payment_date=T0 + timedelta(days=4),
            delivery_date=T0 + timedelta(days=6),
            completed_at=T0 + timedelta(days=7),
        )
    )
    return orders


@pytest.fixture
def client():
    """FastAPI test client for integration tests."""
    from flowlens.main import app

    with TestClient(app) as c:
        yield c


def _bearer(role: str, subject: str) -> dict:
    from flowlens.auth.jwt import create_access_token

    token = create_access_token({"sub": subject, "role": role})
    return {"Authorization": f"Bearer {token}", "X-Request-ID": str(uuid4())}


@pytest.fixture
def auth_headers():
    """Admin request headers for integration tests."""
    return _bearer("admin", "admin@example.com")


@pytest.fixture
def manager_headers():
    return _bearer("manager", "manager@example.com")


@pytest.fixture
def vendor_headers():
    return _bearer("vendor", "vendor@example.com")
