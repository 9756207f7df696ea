"""
Pydantic v2 data models for the FlowLens analytics engine.

Model Organization:
    - enums: Stage, resolution and role enumerations
    - orders: Order and status history records read from the order store
    - analysis: Ephemeral bottleneck analysis artefacts and the response model
    - maintenance: Status history backfill reports
"""

from .analysis import (
    AnalysisMetadata,
    AnalysisResult,
    AnalysisWindow,
    DelayEntry,
    HeatMapCell,
    StageDefinition,
    StageScore,
    StageTransition,
    TimeBucket,
    TimeSeriesData,
)
from .enums import OrderStage, Resolution, UserRole
from .maintenance import BackfillOrderDetail, BackfillReport
from .orders import Order, StatusEvent

__all__ = [
    "AnalysisMetadata",
    "AnalysisResult",
    "AnalysisWindow",
    "BackfillOrderDetail",
    "BackfillReport",
    "DelayEntry",
    "HeatMapCell",
    "Order",
    "OrderStage",
    "Resolution",
    "StageDefinition",
    "StageScore",
    "StageTransition",
    "StatusEvent",
    "TimeBucket",
    "TimeSeriesData",
    "UserRole",
]
