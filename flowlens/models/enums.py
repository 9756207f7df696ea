"""
Enumeration types for the FlowLens analytics engine.

All enums inherit from str to ensure JSON serialization compatibility.
"""

from enum import Enum


class OrderStage(str, Enum):
    """
    Canonical lifecycle stages of a move / delivery order.

    Stage names on stored status events are free-form strings; these values are
    the names the default stage policy knows about and the names used when a
    status history has to be synthesized.
    """

    INITIATED = "Initiated"
    REQUESTS_SENT = "Requests Sent"
    QUOTED = "Quoted"
    ACCEPTED = "Accepted"
    PAID = "Paid"
    IN_PROGRESS = "In Progress"
    IN_TRANSIT = "In Transit"
    DELIVERED = "Delivered"
    COMPLETED = "Completed"


class Resolution(str, Enum):
    """Time resolution of heat map buckets."""

    HOUR = "hour"
    DAY = "day"
    WEEK = "week"


class UserRole(str, Enum):
    """Roles carried in the ``role`` claim of access tokens."""

    ADMIN = "admin"
    MANAGER = "manager"
    VENDOR = "vendor"
    CUSTOMER = "customer"
