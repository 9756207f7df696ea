"""
DuckDB storage implementation of the order repository.

Orders and their status history live in two tables:

- ``orders``: one row per order with the auxiliary lifecycle timestamps
- ``order_status_history``: one row per status event, ordered by ``position``

Every write runs in an explicit transaction, so one ``save_*`` call is the
unit of atomicity the backfill job relies on.
"""

import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

import duckdb
import structlog

from flowlens.config import get_settings
from flowlens.models.orders import Order, StatusEvent

from .base import OrderRepository, StorageError

logger = structlog.get_logger(__name__)

ORDER_COLUMNS = (
    "order_id, status, created_at, updated_at, payment_date, delivery_date, completed_at"
)
HISTORY_COLUMNS = "order_id, position, status, created_at, comment, synthetic"


class DuckDBOrderRepository(OrderRepository):
    """
    DuckDB implementation of the order repository.

    Uses one connection per thread (FastAPI runs sync work in a threadpool)
    and creates its schema on first use.

    Attributes:
        db_path: Path to the DuckDB database file
        _local: Thread-local storage for per-thread connections
        _lock: Thread lock for schema operations
        _initialized: Flag tracking whether schema is initialized
    """

    def __init__(self, db_path: str = "./data/flowlens.duckdb"):
        """
        Initialize DuckDB storage backend.

        Args:
            db_path: Path to DuckDB database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._local = threading.local()
        self._lock = threading.Lock()
        self._initialized = False

        logger.info("duckdb_storage_initialized", db_path=str(self.db_path))

        self._initialize_schema()

    @contextmanager
    def _get_connection(self):
        """
        Get a thread-local DuckDB connection.

        Yields:
            DuckDB connection instance

        Raises:
            StorageError: If connection cannot be established
        """
        if not hasattr(self._local, "connection"):
            try:
                self._local.connection = duckdb.connect(str(self.db_path))
                logger.debug("duckdb_connection_created", thread_id=threading.get_ident())
            except Exception as e:
                logger.error("duckdb_connection_failed", error=str(e))
                raise StorageError(f"Failed to connect to DuckDB: {e}") from e

        yield self._local.connection

    @contextmanager
    def _transaction(self):
        """Connection inside an explicit transaction, rolled back on any error."""
        with self._get_connection() as conn:
            conn.begin()
            try:
                yield conn
            except Exception:
                conn.rollback()
                raise
            conn.commit()

    def _initialize_schema(self):
        """
        Create tables and indexes. Idempotent.

        Raises:
            StorageError: If schema creation fails
        """
        if self._initialized:
            return

        with self._lock:
            if self._initialized:
                return

            try:
                with self._get_connection() as conn:
                    conn.execute("""
                        CREATE TABLE IF NOT EXISTS orders (
                            order_id VARCHAR PRIMARY KEY,
                            status VARCHAR,
                            created_at TIMESTAMP,
                            updated_at TIMESTAMP,
                            payment_date TIMESTAMP,
                            delivery_date TIMESTAMP,
                            completed_at TIMESTAMP
                        )
                    """)

                    conn.execute("""
                        CREATE TABLE IF NOT EXISTS order_status_history (
                            order_id VARCHAR NOT NULL,
                            position INTEGER NOT NULL,
                            status VARCHAR,
                            created_at TIMESTAMP,
                            comment VARCHAR,
                            synthetic BOOLEAN NOT NULL DEFAULT FALSE
                        )
                    """)

                    conn.execute("""
                        CREATE INDEX IF NOT EXISTS idx_status_history_order_id
                        ON order_status_history(order_id)
                    """)

                    logger.info("duckdb_schema_initialized", table_count=2)
                    self._initialized = True

            except Exception as e:
                logger.error("duckdb_schema_initialization_failed", error=str(e))
                raise StorageError(f"Failed to initialize schema: {e}") from e

    def clear_for_testing(self) -> None:
        """
        Truncate all tables. No-op unless the ``testing`` setting is on.
        """
        if not get_settings().testing:
            return
        with self._transaction() as conn:
            conn.execute("DELETE FROM order_status_history")
            conn.execute("DELETE FROM orders")

    # =========================================================================
    # Reads
    # =========================================================================

    def list_orders(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Order]:
        """List orders created within ``[start, end]`` with their history."""
        where = "WHERE 1=1"
        params: list = []
        if start is not None:
            where += " AND o.created_at >= ?"
            params.append(start)
        if end is not None:
            where += " AND o.created_at <= ?"
            params.append(end)

        try:
            with self._get_connection() as conn:
                order_rows = conn.execute(
                    f"SELECT {ORDER_COLUMNS} FROM orders o {where} ORDER BY o.created_at, o.order_id",
                    params,
                ).fetchall()
                history_rows = conn.execute(
                    f"""
                    SELECT h.order_id, h.status, h.created_at, h.comment, h.synthetic
                    FROM order_status_history h
                    JOIN orders o ON o.order_id = h.order_id
                    {where}
                    ORDER BY h.order_id, h.position
                    """,
                    params,
                ).fetchall()
        except duckdb.Error as e:
            logger.error("list_orders_failed", start=start, end=end, error=str(e))
            raise StorageError(f"Failed to list orders: {e}") from e

        orders = self._assemble(order_rows, history_rows)
        logger.debug("orders_read", count=len(orders), start=start, end=end)
        return orders

    def iter_order_batches(self, batch_size: int) -> Iterator[list[Order]]:
        """Keyset-paginated iteration over all orders, ordered by id."""
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        last_id: Optional[str] = None
        while True:
            batch = self._read_batch(last_id, batch_size)
            if not batch:
                return
            yield batch
            if len(batch) < batch_size:
                return
            last_id = batch[-1].order_id

    def _read_batch(self, after_id: Optional[str], batch_size: int) -> list[Order]:
        try:
            with self._get_connection() as conn:
                if after_id is None:
                    order_rows = conn.execute(
                        f"SELECT {ORDER_COLUMNS} FROM orders ORDER BY order_id LIMIT ?",
                        [batch_size],
                    ).fetchall()
                else:
                    order_rows = conn.execute(
                        f"SELECT {ORDER_COLUMNS} FROM orders WHERE order_id > ? ORDER BY order_id LIMIT ?",
                        [after_id, batch_size],
                    ).fetchall()

                if not order_rows:
                    return []

                ids = [row[0] for row in order_rows]
                placeholders = ", ".join("?" for _ in ids)
                history_rows = conn.execute(
                    f"""
                    SELECT order_id, status, created_at, comment, synthetic
                    FROM order_status_history
                    WHERE order_id IN ({placeholders})
                    ORDER BY order_id, position
                    """,
                    ids,
                ).fetchall()
        except duckdb.Error as e:
            logger.error("read_order_batch_failed", after_id=after_id, error=str(e))
            raise StorageError(f"Failed to read order batch: {e}") from e

        return self._assemble(order_rows, history_rows)

    def count_orders(self) -> int:
        try:
            with self._get_connection() as conn:
                return conn.execute("SELECT COUNT(*) FROM orders").fetchone()[0]
        except duckdb.Error as e:
            raise StorageError(f"Failed to count orders: {e}") from e

    @staticmethod
    def _assemble(order_rows: list, history_rows: list) -> list[Order]:
        histories: dict[str, list[StatusEvent]] = {}
        for order_id, status, created_at, comment, synthetic in history_rows:
            histories.setdefault(order_id, []).append(
                StatusEvent(
                    status=status,
                    created_at=created_at,
                    comment=comment,
                    synthetic=bool(synthetic),
                )
            )

        return [
            Order(
                order_id=row[0],
                status=row[1],
                created_at=row[2],
                updated_at=row[3],
                payment_date=row[4],
                delivery_date=row[5],
                completed_at=row[6],
                status_history=histories.get(row[0], []),
            )
            for row in order_rows
        ]

    # =========================================================================
    # Writes
    # =========================================================================

    def save_orders(self, orders: list[Order]) -> int:
        """Insert or replace orders and their history in one transaction."""
        if not orders:
            return 0

        try:
            with self._transaction() as conn:
                for order in orders:
                    conn.execute(
                        f"INSERT OR REPLACE INTO orders ({ORDER_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                        [
                            order.order_id,
                            order.status,
                            order.created_at,
                            order.updated_at,
                            order.payment_date,
                            order.delivery_date,
                            order.completed_at,
                        ],
                    )
                    self._replace_history(conn, order)
        except duckdb.Error as e:
            logger.error("save_orders_failed", count=len(orders), error=str(e))
            raise StorageError(f"Failed to save orders: {e}") from e

        logger.info("orders_written", count=len(orders))
        return len(orders)

    def save_status_histories(self, orders: list[Order]) -> int:
        """Replace status histories of the given orders in one transaction."""
        if not orders:
            return 0

        try:
            with self._transaction() as conn:
                written = sum(self._replace_history(conn, order) for order in orders)
        except duckdb.Error as e:
            logger.error("save_status_histories_failed", count=len(orders), error=str(e))
            raise StorageError(f"Failed to save status histories: {e}") from e

        logger.info("status_histories_written", orders=len(orders), events=written)
        return written

    @staticmethod
    def _replace_history(conn, order: Order) -> int:
        conn.execute("DELETE FROM order_status_history WHERE order_id = ?", [order.order_id])
        rows = [
            [order.order_id, position, event.status, event.created_at, event.comment, event.synthetic]
            for position, event in enumerate(order.status_history)
        ]
        if rows:
            conn.executemany(
                f"INSERT INTO order_status_history ({HISTORY_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
                rows,
            )
        return len(rows)
