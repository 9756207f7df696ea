"""
Order data models.

Orders and their status history are owned by the order management system and
are read-only to the analytics engine. Legacy records are frequently
incomplete, so timestamp fields are parsed leniently: anything that cannot be
parsed becomes ``None`` instead of failing validation.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from flowlens.utils.timestamps import parse_timestamp


class StatusEvent(BaseModel):
    """
    One entry of an order's status history.

    Attributes:
        status: Stage name the order moved into (free-form, validated downstream)
        created_at: When the order entered the stage, None when malformed
        comment: Optional free text recorded with the change
        synthetic: True when the entry was synthesized by the backfill
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    status: str = Field(default="", description="Stage name the order moved into")
    created_at: Optional[datetime] = Field(
        default=None, description="Timestamp of the status change"
    )
    comment: Optional[str] = Field(default=None, description="Optional comment")
    synthetic: bool = Field(
        default=False, description="Entry synthesized from auxiliary order timestamps"
    )

    @field_validator("status", mode="before")
    @classmethod
    def coerce_status(cls, v: Any) -> str:
        """Missing stage names become empty strings (dropped downstream)."""
        if v is None:
            return ""
        return str(v).strip()

    @field_validator("created_at", mode="before")
    @classmethod
    def coerce_timestamp(cls, v: Any) -> Optional[datetime]:
        return parse_timestamp(v)

    @property
    def is_valid(self) -> bool:
        """Usable for transition extraction: named stage and parseable timestamp."""
        return bool(self.status) and self.created_at is not None


class Order(BaseModel):
    """
    Order record as exposed by the order store.

    Attributes:
        order_id: Unique order identifier
        status: Current stage of the order
        created_at: Order creation timestamp
        updated_at: Last modification timestamp
        payment_date: When payment was captured
        delivery_date: When the goods were delivered
        completed_at: When the order was closed
        status_history: Ordered status events (may be empty or incomplete)
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    order_id: str = Field(description="Unique order identifier")
    status: str = Field(default="", description="Current stage of the order")
    created_at: Optional[datetime] = Field(default=None, description="Creation timestamp")
    updated_at: Optional[datetime] = Field(default=None, description="Last update timestamp")
    payment_date: Optional[datetime] = Field(default=None, description="Payment timestamp")
    delivery_date: Optional[datetime] = Field(default=None, description="Delivery timestamp")
    completed_at: Optional[datetime] = Field(default=None, description="Completion timestamp")
    status_history: list[StatusEvent] = Field(
        default_factory=list, description="Ordered status history"
    )

    @field_validator("status", mode="before")
    @classmethod
    def coerce_status(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v).strip()

    @field_validator(
        "created_at", "updated_at", "payment_date", "delivery_date", "completed_at",
        mode="before",
    )
    @classmethod
    def coerce_timestamps(cls, v: Any) -> Optional[datetime]:
        return parse_timestamp(v)

    @field_validator("status_history", mode="before")
    @classmethod
    def coerce_history(cls, v: Any) -> list:
        """Non-list histories are treated as empty; non-mapping entries are dropped."""
        if not isinstance(v, (list, tuple)):
            return []
        return [e for e in v if isinstance(e, (dict, StatusEvent))]

    @property
    def valid_history(self) -> list[StatusEvent]:
        """Valid status events sorted ascending by timestamp."""
        return sorted(
            (e for e in self.status_history if e.is_valid),
            key=lambda e: e.created_at,
        )
