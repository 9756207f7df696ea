"""
Status history maintenance models.
"""

from datetime import datetime
from typing import Optional

from pydantic import Field

from .analysis import CamelModel


class BackfillOrderDetail(CamelModel):
    """Per-order change made by one backfill run."""

    order_id: str
    original_history_count: int = Field(ge=0)
    enhanced_history_count: int = Field(ge=0)
    entries_added: int


class BackfillReport(CamelModel):
    """
    Outcome of one status history backfill run.

    Batches are committed independently: when ``success`` is False the counts
    still describe what was durably written before the failing batch.

    Attributes:
        started_at: Run start time
        finished_at: Run end time
        batch_size: Orders per batch
        total_orders: Orders read from the store
        orders_enhanced: Orders whose history was rewritten
        status_entries_added: Synthetic entries persisted
        status_entries_dropped: Malformed entries removed
        batches_committed: Batches written successfully
        batches_failed: Batches whose write failed
        success: False when any read or write failed
        error: Failure description
        details: Per-order changes
    """

    started_at: datetime = Field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None
    batch_size: int = Field(ge=1)
    total_orders: int = 0
    orders_enhanced: int = 0
    status_entries_added: int = 0
    status_entries_dropped: int = 0
    batches_committed: int = 0
    batches_failed: int = 0
    success: bool = True
    error: Optional[str] = None
    details: list[BackfillOrderDetail] = Field(default_factory=list)
