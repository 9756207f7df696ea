"""
Status History Backfill — usable event timelines for incomplete orders.

Legacy orders were created before status history tracking existed, or carry
partial histories with malformed entries. Bottleneck analysis needs at least
two timestamped stage events per order, so this module:

1. Cleans a history (drops entries without a stage name or a parseable
   timestamp, sorts ascending).
2. Prepends a synthetic initial-stage event at the order's creation time when
   a valid history starts later than the order itself.
3. Synthesizes a history from the auxiliary order timestamps (created,
   payment, delivery, completion, last update) when fewer than two valid
   entries exist. The stage assigned to each timestamp is a best-effort guess
   and every synthesized entry is flagged ``synthetic``.

``backfill_order`` is pure and idempotent. ``StatusHistoryBackfillJob`` is the
maintenance operation that persists backfilled histories in bounded batches.
"""

from datetime import datetime
from typing import Optional

import structlog

from flowlens.engine.stages import StagePolicy
from flowlens.models.enums import OrderStage
from flowlens.models.maintenance import BackfillOrderDetail, BackfillReport
from flowlens.models.orders import Order, StatusEvent
from flowlens.storage.base import OrderRepository, StorageError

logger = structlog.get_logger()

DEFAULT_BATCH_SIZE = 100


def _timestamp_candidates(order: Order, policy: StagePolicy) -> list[tuple[Optional[datetime], str, str]]:
    """(timestamp, stage guess, source field) for every auxiliary timestamp."""
    return [
        (order.created_at, policy.initial_stage, "created_at"),
        (order.payment_date, OrderStage.PAID.value, "payment_date"),
        (order.delivery_date, OrderStage.DELIVERED.value, "delivery_date"),
        (order.completed_at, OrderStage.COMPLETED.value, "completed_at"),
        (order.updated_at, order.status, "updated_at"),
    ]


def _synthesize_history(order: Order, valid: list[StatusEvent], policy: StagePolicy) -> list[StatusEvent]:
    history = list(valid)
    seen_stages = {e.status for e in history}
    seen_times = {e.created_at for e in history}

    for timestamp, stage, source in _timestamp_candidates(order, policy):
        if timestamp is None or not stage:
            continue
        if stage in seen_stages or timestamp in seen_times:
            continue
        history.append(
            StatusEvent(
                status=stage,
                created_at=timestamp,
                comment=f"Synthesized from {source}",
                synthetic=True,
            )
        )
        seen_stages.add(stage)
        seen_times.add(timestamp)

    return sorted(history, key=lambda e: e.created_at)


def backfill_order(order: Order, policy: Optional[StagePolicy] = None) -> Order:
    """
    Return an order whose status history is usable for transition extraction.

    The input is never mutated. When nothing needs to change the same object
    is returned, so callers can detect changes with an identity check.

    Args:
        order: Order as read from the store
        policy: Stage policy (default table when omitted)

    Returns:
        Order with a cleaned, sorted and possibly synthesized history
    """
    policy = policy or StagePolicy()
    valid = order.valid_history

    if len(valid) >= 2:
        history = valid
    else:
        history = _synthesize_history(order, valid, policy)

    # No usable timestamps at all: leave the record as it is
    if not history:
        return order

    first = history[0]
    if (
        order.created_at is not None
        and first.created_at > order.created_at
        and first.status != policy.initial_stage
    ):
        history = [
            StatusEvent(
                status=policy.initial_stage,
                created_at=order.created_at,
                comment="Synthesized from created_at",
                synthetic=True,
            ),
            *history,
        ]

    if history == order.status_history:
        return order

    return order.model_copy(update={"status_history": history})


class StatusHistoryBackfillJob:
    """
    Persists backfilled status histories onto the order store.

    Orders are read and written in sequential batches to bound memory. Each
    batch write is atomic and independent: a failing batch stops the run,
    batches committed before it stay committed, and the report is marked
    unsuccessful. Re-running the job is safe because the backfill is
    idempotent; only orders whose history actually changes are written.
    """

    def __init__(
        self,
        repository: OrderRepository,
        policy: Optional[StagePolicy] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.repository = repository
        self.policy = policy or StagePolicy()
        self.batch_size = batch_size
        self.logger = structlog.get_logger()

    def run(self) -> BackfillReport:
        """
        Backfill every order in the store.

        Returns:
            BackfillReport describing what was committed
        """
        report = BackfillReport(batch_size=self.batch_size)
        self.logger.info("status_history_backfill_started", batch_size=self.batch_size)

        try:
            for batch_number, batch in enumerate(
                self.repository.iter_order_batches(self.batch_size), start=1
            ):
                report.total_orders += len(batch)
                if not self._process_batch(batch_number, batch, report):
                    break
        except StorageError as e:
            report.success = False
            report.error = f"Failed to read orders: {e}"
            self.logger.error("status_history_backfill_read_failed", error=str(e))

        report.finished_at = datetime.utcnow()
        log = self.logger.info if report.success else self.logger.error
        log(
            "status_history_backfill_finished",
            success=report.success,
            total_orders=report.total_orders,
            orders_enhanced=report.orders_enhanced,
            status_entries_added=report.status_entries_added,
            batches_committed=report.batches_committed,
            batches_failed=report.batches_failed,
        )
        return report

    def _process_batch(self, batch_number: int, batch: list[Order], report: BackfillReport) -> bool:
        changed: list[Order] = []
        details: list[BackfillOrderDetail] = []
        added = 0
        dropped = 0

        for order in batch:
            enhanced = backfill_order(order, self.policy)
            if enhanced is order:
                continue

            valid_count = len(order.valid_history)
            changed.append(enhanced)
            added += sum(1 for e in enhanced.status_history if e.synthetic) - sum(
                1 for e in order.valid_history if e.synthetic
            )
            dropped += len(order.status_history) - valid_count
            details.append(
                BackfillOrderDetail(
                    order_id=order.order_id,
                    original_history_count=len(order.status_history),
                    enhanced_history_count=len(enhanced.status_history),
                    entries_added=len(enhanced.status_history) - len(order.status_history),
                )
            )

        if not changed:
            self.logger.debug("status_history_batch_unchanged", batch=batch_number, orders=len(batch))
            return True

        try:
            self.repository.save_status_histories(changed)
        except StorageError as e:
            report.batches_failed += 1
            report.success = False
            report.error = f"Batch {batch_number} failed: {e}"
            self.logger.error(
                "status_history_batch_failed",
                batch=batch_number,
                orders=len(changed),
                error=str(e),
            )
            return False

        report.batches_committed += 1
        report.orders_enhanced += len(changed)
        report.status_entries_added += added
        report.status_entries_dropped += dropped
        report.details.extend(details)
        self.logger.info(
            "status_history_batch_committed",
            batch=batch_number,
            orders=len(batch),
            orders_enhanced=len(changed),
            entries_added=added,
        )
        return True


def enhance_orders_with_status_history(
    repository: OrderRepository,
    batch_size: int = DEFAULT_BATCH_SIZE,
    policy: Optional[StagePolicy] = None,
) -> bool:
    """
    Backfill and persist status histories for all stored orders.

    Returns:
        True when every batch was committed
    """
    job = StatusHistoryBackfillJob(repository, policy=policy, batch_size=batch_size)
    return job.run().success
