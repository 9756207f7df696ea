"""
Bottleneck Analyzer — operational bottleneck analysis pipeline.

Single pass per request:

    normalize_request → read orders → backfill (in memory) → extract
    transitions → score stages → plan time buckets → aggregate heat map →
    assemble AnalysisResult

Request parameters are validated once, at the entry point, into an
AnalysisWindow; every later stage assumes a valid window. The analyzer never
raises: any failure while reading or computing is logged and turned into the
canonical empty result with ``metadata.error`` set.
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Optional

import structlog

from flowlens.config import Settings
from flowlens.engine.backfill import backfill_order
from flowlens.engine.heatmap import HeatMapAggregator
from flowlens.engine.scoring import BottleneckScorer
from flowlens.engine.stages import StagePolicy, load_stage_policy
from flowlens.engine.time_buckets import MAX_TIME_BUCKETS, TimeBucketer
from flowlens.engine.transitions import extract_transitions
from flowlens.models.analysis import (
    AnalysisMetadata,
    AnalysisResult,
    AnalysisWindow,
    StageTransition,
    TimeSeriesData,
)
from flowlens.models.enums import Resolution
from flowlens.storage.base import OrderReader
from flowlens.utils.timestamps import is_date_only, parse_timestamp

logger = structlog.get_logger()

DEFAULT_WINDOW_DAYS = 90
EMPTY_RESULT_MESSAGE = "Failed to generate bottleneck analysis"


def normalize_resolution(resolution: Any) -> Resolution:
    """Supported resolution, or ``day`` for anything else."""
    if isinstance(resolution, Resolution):
        return resolution
    if isinstance(resolution, str):
        try:
            return Resolution(resolution.strip().lower())
        except ValueError:
            pass
    if resolution is not None:
        logger.warning("invalid_resolution_defaulted", resolution=str(resolution), default="day")
    return Resolution.DAY


def window_start(end: datetime, window: timedelta) -> datetime:
    """``window`` before ``end``, clamped to the earliest representable datetime."""
    if end - datetime.min < window:
        return datetime.min
    return end - window


def normalize_request(
    start_date: Any = None,
    end_date: Any = None,
    resolution: Any = None,
    now: Optional[datetime] = None,
    default_window_days: int = DEFAULT_WINDOW_DAYS,
) -> AnalysisWindow:
    """
    Turn raw caller parameters into a valid analysis window.

    - missing or unparseable end: ``now``
    - date-only end (``YYYY-MM-DD``): the end of that day
    - missing or unparseable start: ``default_window_days`` before the end
    - start after end: ``default_window_days`` before the end
    - unsupported resolution: ``day``

    Args:
        start_date: ISO date/datetime string, datetime, or None
        end_date: ISO date/datetime string, datetime, or None
        resolution: "hour", "day" or "week"
        now: Reference time (defaults to the current UTC time)
        default_window_days: Fallback window length

    Returns:
        AnalysisWindow with ``start <= end``
    """
    now = now or datetime.utcnow()
    window = timedelta(days=default_window_days)

    end = parse_timestamp(end_date)
    if end is None:
        if end_date not in (None, ""):
            logger.warning("invalid_end_date_defaulted", end_date=str(end_date))
        end = now
    elif is_date_only(end_date):
        end = end.replace(hour=23, minute=59, second=59, microsecond=999999)

    start = parse_timestamp(start_date)
    if start is None:
        if start_date not in (None, ""):
            logger.warning("invalid_start_date_defaulted", start_date=str(start_date))
        start = window_start(end, window)
    elif start > end:
        logger.warning(
            "inverted_date_range_defaulted",
            start_date=start.isoformat(),
            end_date=end.isoformat(),
        )
        start = window_start(end, window)

    return AnalysisWindow(start=start, end=end, resolution=normalize_resolution(resolution))


class BottleneckAnalyzer:
    """
    Identifies operational bottlenecks across orders.

    Attributes:
        reader: Read-only order source
        policy: Stage policy with expected durations
        inline_backfill: Backfill incomplete histories in memory before
            extraction (the store is never written by the analyzer)
        default_window_days: Fallback window for invalid date parameters
    """

    def __init__(
        self,
        reader: OrderReader,
        policy: Optional[StagePolicy] = None,
        max_buckets: int = MAX_TIME_BUCKETS,
        default_window_days: int = DEFAULT_WINDOW_DAYS,
        inline_backfill: bool = True,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.reader = reader
        self.policy = policy or StagePolicy()
        self.inline_backfill = inline_backfill
        self.default_window_days = default_window_days
        self.clock = clock
        self.scorer = BottleneckScorer(self.policy)
        self.bucketer = TimeBucketer(max_buckets=max_buckets)
        self.aggregator = HeatMapAggregator()
        self.logger = structlog.get_logger()

    @classmethod
    def from_settings(
        cls,
        reader: OrderReader,
        settings: Settings,
        policy: Optional[StagePolicy] = None,
    ) -> "BottleneckAnalyzer":
        return cls(
            reader,
            policy=policy or load_stage_policy(settings.stage_policy_path),
            max_buckets=settings.analysis_max_time_buckets,
            default_window_days=settings.analysis_default_window_days,
            inline_backfill=settings.analysis_inline_backfill,
        )

    def identify_bottlenecks(
        self,
        start_date: Any = None,
        end_date: Any = None,
        resolution: Any = None,
    ) -> AnalysisResult:
        """
        Run the bottleneck analysis for a date range.

        Args:
            start_date: Analysis start (ISO string); invalid values fall back
            end_date: Analysis end (ISO string); invalid values fall back
            resolution: Heat map resolution ("hour", "day", "week")

        Returns:
            AnalysisResult; on failure the canonical empty result with
            ``metadata.error`` set
        """
        window: Optional[AnalysisWindow] = None
        try:
            window = normalize_request(
                start_date,
                end_date,
                resolution,
                now=self.clock(),
                default_window_days=self.default_window_days,
            )
            return self._analyze(window)
        except Exception as e:
            self.logger.error(
                "bottleneck_analysis_failed",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return self.empty_result(window)

    def _analyze(self, window: AnalysisWindow) -> AnalysisResult:
        orders = self.reader.list_orders(window.start, window.end)

        transitions: list[StageTransition] = []
        contributing: set[str] = set()
        for order in orders:
            if self.inline_backfill:
                order = backfill_order(order, self.policy)
            order_transitions = extract_transitions(order, self.policy)
            if order_transitions:
                contributing.add(order.order_id)
                transitions.extend(order_transitions)

        scoring = self.scorer.score(transitions)
        plan = self.bucketer.plan(window.start, window.end, window.resolution)
        time_series = self.aggregator.aggregate(scoring.stage_delays, plan)

        self.logger.info(
            "bottleneck_analysis_completed",
            start=window.start.isoformat(),
            end=window.end.isoformat(),
            resolution=window.resolution.value,
            effective_resolution=plan.resolution.value,
            orders=len(orders),
            orders_with_transitions=len(contributing),
            transitions=len(transitions),
            buckets=len(plan.buckets),
        )

        return AnalysisResult(
            bottleneck_scores=scoring.bottleneck_scores,
            sorted_bottlenecks=scoring.sorted_bottlenecks,
            average_delays=scoring.average_delays,
            stage_transitions=transitions,
            time_series_data=time_series,
            metadata=AnalysisMetadata(
                analysis_start_date=window.start,
                analysis_end_date=window.end,
                resolution=window.resolution,
                effective_resolution=plan.resolution,
                heat_map_start_date=plan.start,
                total_orders_analyzed=len(orders),
                orders_with_transitions=len(contributing),
            ),
        )

    @staticmethod
    def empty_result(
        window: Optional[AnalysisWindow] = None,
        message: str = EMPTY_RESULT_MESSAGE,
    ) -> AnalysisResult:
        """Canonical empty result returned when an analysis fails."""
        metadata = AnalysisMetadata(error=True, message=message)
        if window is not None:
            metadata.analysis_start_date = window.start
            metadata.analysis_end_date = window.end
            metadata.resolution = window.resolution
        return AnalysisResult(
            bottleneck_scores={},
            sorted_bottlenecks=[],
            average_delays={},
            stage_transitions=[],
            time_series_data=TimeSeriesData(time_buckets=[], data={}),
            metadata=metadata,
        )
