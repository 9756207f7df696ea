"""
Count-bounded heat map time buckets.

Partitions an analysis window into hour, day or week buckets. The number of
buckets is capped (366 by default, one year of daily data):

- an hourly request needing more than ``cap`` aligned hour buckets is
  downgraded to days, a daily request needing more than ``cap`` aligned day
  buckets is downgraded to weeks;
- when the (possibly downgraded) resolution still needs more than ``cap``
  buckets, only the most recent ``cap`` buckets ending at the window end are
  produced and older delays are left out of the heat map.

Bucket starts are aligned to their period (top of the hour, midnight, Monday
midnight), and keys are lexicographically sortable:
hour ``YYYY-MM-DD-HH``, day ``YYYY-MM-DD``, week ``YYYY-MM-DD`` of the Monday.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta

import structlog

from flowlens.models.analysis import TimeBucket
from flowlens.models.enums import Resolution

logger = structlog.get_logger()

MAX_TIME_BUCKETS = 366

BUCKET_WIDTHS = {
    Resolution.HOUR: timedelta(hours=1),
    Resolution.DAY: timedelta(days=1),
    Resolution.WEEK: timedelta(weeks=1),
}


def bucket_start(timestamp: datetime, resolution: Resolution) -> datetime:
    """Start of the bucket containing ``timestamp``."""
    if resolution == Resolution.HOUR:
        return timestamp.replace(minute=0, second=0, microsecond=0)
    midnight = timestamp.replace(hour=0, minute=0, second=0, microsecond=0)
    if resolution == Resolution.WEEK:
        return midnight - timedelta(days=midnight.weekday())
    return midnight


def bucket_key(timestamp: datetime, resolution: Resolution) -> str:
    """Canonical sortable key of the bucket containing ``timestamp``."""
    start = bucket_start(timestamp, resolution)
    # date.isoformat zero-pads the year, strftime does not on every platform
    if resolution == Resolution.HOUR:
        return f"{start.date().isoformat()}-{start.hour:02d}"
    return start.date().isoformat()


def aligned_bucket_count(start: datetime, end: datetime, resolution: Resolution) -> int:
    """Number of aligned buckets needed to cover ``[start, end]``."""
    width = BUCKET_WIDTHS[resolution]
    return (bucket_start(end, resolution) - bucket_start(start, resolution)) // width + 1


def bucket_label(start: datetime, resolution: Resolution) -> str:
    if resolution == Resolution.HOUR:
        return start.strftime("%b %d, %Y %H:00")
    if resolution == Resolution.WEEK:
        return f"Week of {start.strftime('%b %d, %Y')}"
    return start.strftime("%b %d, %Y")


@dataclass
class BucketPlan:
    """Buckets produced for one window, plus how the request was adjusted."""

    requested_resolution: Resolution
    resolution: Resolution
    start: datetime
    end: datetime
    buckets: list[TimeBucket] = field(default_factory=list)
    truncated: bool = False

    @property
    def downgraded(self) -> bool:
        return self.resolution != self.requested_resolution


class TimeBucketer:
    """Generates heat map buckets bounded by ``max_buckets``."""

    def __init__(self, max_buckets: int = MAX_TIME_BUCKETS):
        if max_buckets < 1:
            raise ValueError("max_buckets must be at least 1")
        self.max_buckets = max_buckets

    def effective_resolution(self, start: datetime, end: datetime, resolution: Resolution) -> Resolution:
        """Resolution after the single-step downgrade for windows needing too many buckets."""
        if resolution == Resolution.WEEK:
            return resolution
        if aligned_bucket_count(start, end, resolution) <= self.max_buckets:
            return resolution
        return Resolution.DAY if resolution == Resolution.HOUR else Resolution.WEEK

    def plan(self, start: datetime, end: datetime, resolution: Resolution) -> BucketPlan:
        """
        Build the bucket list for a validated window.

        Args:
            start: Window start (callers guarantee ``start <= end``)
            end: Window end
            resolution: Requested resolution

        Returns:
            BucketPlan with at most ``max_buckets`` buckets
        """
        effective = self.effective_resolution(start, end, resolution)
        width = BUCKET_WIDTHS[effective]

        first = bucket_start(start, effective)
        last = bucket_start(end, effective)
        truncated = False
        if aligned_bucket_count(start, end, effective) > self.max_buckets:
            first = last - (self.max_buckets - 1) * width
            truncated = True

        buckets = []
        current = first
        while len(buckets) < self.max_buckets:
            buckets.append(TimeBucket(key=bucket_key(current, effective), label=bucket_label(current, effective)))
            # Checked before stepping so a window ending at datetime.max cannot overflow
            if end - current < width:
                break
            current += width

        if effective != resolution or truncated:
            logger.info(
                "time_buckets_adjusted",
                requested_resolution=resolution.value,
                resolution=effective.value,
                truncated=truncated,
                heat_map_start=first.isoformat(),
                buckets=len(buckets),
            )

        return BucketPlan(
            requested_resolution=resolution,
            resolution=effective,
            start=first,
            end=end,
            buckets=buckets,
            truncated=truncated,
        )
