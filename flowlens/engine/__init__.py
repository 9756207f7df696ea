"""
Operational bottleneck analytics engine.

Components (leaves first):

- Stage policy: scored stages and their expected durations
- Status history backfill: usable timelines for incomplete legacy orders,
  plus the batch maintenance job persisting them
- Transition extraction: stage-to-stage durations per order
- Bottleneck scoring: normalized per-stage delay severity
- Time bucketing: count-bounded heat map columns
- Heat map aggregation: per-stage normalized delay intensity
- Bottleneck analyzer: request validation and result assembly

Example:
    >>> from flowlens.engine import BottleneckAnalyzer
    >>> analyzer = BottleneckAnalyzer(reader=repository)
    >>> result = analyzer.identify_bottlenecks("2024-01-01", "2024-01-31", "day")
    >>> result.sorted_bottlenecks[0].stage
"""

from flowlens.engine.backfill import (
    StatusHistoryBackfillJob,
    backfill_order,
    enhance_orders_with_status_history,
)
from flowlens.engine.bottleneck_analyzer import BottleneckAnalyzer, normalize_request
from flowlens.engine.heatmap import HeatMapAggregator
from flowlens.engine.scoring import BottleneckScorer, StageScoring
from flowlens.engine.stages import DEFAULT_STAGE_DEFINITIONS, StagePolicy, load_stage_policy
from flowlens.engine.time_buckets import BucketPlan, TimeBucketer, bucket_key
from flowlens.engine.transitions import extract_transitions

__all__ = [
    "BottleneckAnalyzer",
    "BottleneckScorer",
    "BucketPlan",
    "DEFAULT_STAGE_DEFINITIONS",
    "HeatMapAggregator",
    "StagePolicy",
    "StageScoring",
    "StatusHistoryBackfillJob",
    "TimeBucketer",
    "backfill_order",
    "bucket_key",
    "enhance_orders_with_status_history",
    "extract_transitions",
    "load_stage_policy",
    "normalize_request",
]
