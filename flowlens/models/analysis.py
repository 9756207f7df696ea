"""
Bottleneck analysis data models.

Everything in this module is ephemeral: computed fresh for one analysis
request and discarded once the response has been produced. Models serialise
with camelCase aliases, which is the contract of the heat map front-end.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .enums import Resolution


class CamelModel(BaseModel):
    """Base model serialising with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StageDefinition(CamelModel):
    """
    Policy entry for one operational stage.

    Attributes:
        name: Stage name as recorded on status events
        next_stage: Stage an order is expected to move into next
        expected_duration_hours: Hours an order should spend in this stage
    """

    name: str = Field(min_length=1, description="Stage name")
    next_stage: str = Field(description="Expected next stage")
    expected_duration_hours: float = Field(
        gt=0.0, description="Expected time spent in the stage, in hours"
    )


class StageTransition(CamelModel):
    """
    One observed move of an order from a stage to the next recorded stage.

    Attributes:
        order_id: Order the transition belongs to
        from_stage: Stage the order left
        to_stage: Stage the order entered
        duration: Hours spent in ``from_stage`` (never negative)
        expected_duration: Expected hours for ``from_stage``
        delay: Hours over the expectation, ``max(0, duration - expected_duration)``
        start_time: Timestamp of the ``from_stage`` event
        end_time: Timestamp of the ``to_stage`` event
        synthetic: True when either endpoint was synthesized by the backfill
    """

    order_id: str
    from_stage: str
    to_stage: str
    duration: float = Field(ge=0.0)
    expected_duration: float = Field(gt=0.0)
    delay: float = Field(ge=0.0)
    start_time: datetime
    end_time: datetime
    synthetic: bool = False


class DelayEntry(CamelModel):
    """A transition that ran over its expected duration."""

    order_id: str
    delay: float = Field(ge=0.0, description="Hours over the expected duration")
    delay_factor: float = Field(ge=0.0, description="duration / expected_duration")
    timestamp: datetime = Field(description="Start of the delayed transition")
    synthetic: bool = False


class TimeBucket(CamelModel):
    """Heat map column: canonical sortable key and display label."""

    key: str
    label: str


class HeatMapCell(CamelModel):
    """Aggregated delays of one stage within one time bucket."""

    count: int = Field(default=0, ge=0)
    total_delay: float = Field(default=0.0, ge=0.0)
    intensity: float = Field(default=0.0, ge=0.0, le=1.0)


class TimeSeriesData(CamelModel):
    """Stage x time bucket heat map grid."""

    time_buckets: list[TimeBucket] = Field(default_factory=list)
    data: dict[str, dict[str, HeatMapCell]] = Field(default_factory=dict)


class StageScore(CamelModel):
    """Ranked bottleneck entry."""

    stage: str
    score: float = Field(ge=0.0)


class AnalysisWindow(CamelModel):
    """
    Fully validated analysis request.

    Produced once at the pipeline entry point; everything downstream assumes
    ``start <= end`` and a supported resolution.
    """

    start: datetime
    end: datetime
    resolution: Resolution = Resolution.DAY

    @field_validator("end")
    @classmethod
    def validate_order(cls, v: datetime, info) -> datetime:
        start = info.data.get("start")
        if start is not None and v < start:
            raise ValueError("Analysis window end must not precede its start")
        return v


class AnalysisMetadata(CamelModel):
    """
    Run metadata reported with every analysis result.

    Attributes:
        analysis_start_date: Resolved (post-fallback) window start
        analysis_end_date: Resolved (post-fallback) window end
        resolution: Resolved requested resolution
        effective_resolution: Heat map resolution after any downgrade
        heat_map_start_date: First heat map bucket start (later than the window
            start when the heat map was truncated to the bucket cap)
        total_orders_analyzed: Orders created within the window
        orders_with_transitions: Distinct orders contributing a transition
        error: True when the analysis failed and the result is empty
        message: Failure description
    """

    analysis_start_date: Optional[datetime] = None
    analysis_end_date: Optional[datetime] = None
    resolution: Optional[Resolution] = None
    effective_resolution: Optional[Resolution] = None
    heat_map_start_date: Optional[datetime] = None
    total_orders_analyzed: int = Field(default=0, ge=0)
    orders_with_transitions: int = Field(default=0, ge=0)
    error: bool = False
    message: Optional[str] = None


class AnalysisResult(CamelModel):
    """Complete bottleneck analysis response."""

    bottleneck_scores: dict[str, float] = Field(default_factory=dict)
    sorted_bottlenecks: list[StageScore] = Field(default_factory=list)
    average_delays: dict[str, float] = Field(default_factory=dict)
    stage_transitions: list[StageTransition] = Field(default_factory=list)
    time_series_data: TimeSeriesData = Field(default_factory=TimeSeriesData)
    metadata: AnalysisMetadata = Field(default_factory=AnalysisMetadata)

    def to_response(self) -> dict:
        """JSON-ready dict using the camelCase wire names."""
        return self.model_dump(mode="json", by_alias=True)
