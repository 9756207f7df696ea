"""
Stage x time bucket heat map of delay intensity.

Delay entries are counted into the buckets of a BucketPlan. Each cell's
intensity is its average delay divided by the largest average delay of the
same stage, so every stage row uses its own colour scale even when stages have
systemically different delay magnitudes.
"""

from typing import Mapping, Sequence

import numpy as np
import structlog

from flowlens.engine.time_buckets import BucketPlan, bucket_key
from flowlens.models.analysis import DelayEntry, HeatMapCell, TimeSeriesData

logger = structlog.get_logger()


class HeatMapAggregator:
    """Projects per-stage delay entries onto time buckets."""

    def aggregate(
        self,
        stage_delays: Mapping[str, Sequence[DelayEntry]],
        plan: BucketPlan,
    ) -> TimeSeriesData:
        """
        Build the heat map grid.

        Args:
            stage_delays: Delay entries per stage (every stage gets a row,
                including stages without delays)
            plan: Buckets at the effective resolution

        Returns:
            TimeSeriesData with a cell for every (stage, bucket) pair
        """
        keys = [bucket.key for bucket in plan.buckets]
        positions = {key: i for i, key in enumerate(keys)}
        data: dict[str, dict[str, HeatMapCell]] = {}
        dropped = 0

        for stage, entries in stage_delays.items():
            counts = np.zeros(len(keys), dtype=np.int64)
            totals = np.zeros(len(keys), dtype=np.float64)

            for entry in entries:
                position = positions.get(bucket_key(entry.timestamp, plan.resolution))
                if position is None:
                    dropped += 1
                    continue
                counts[position] += 1
                totals[position] += entry.delay

            intensities = self._intensities(counts, totals)
            data[stage] = {
                key: HeatMapCell(
                    count=int(counts[i]),
                    total_delay=float(totals[i]),
                    intensity=float(intensities[i]),
                )
                for i, key in enumerate(keys)
            }

        if dropped:
            logger.debug("heat_map_entries_outside_range", dropped=dropped, buckets=len(keys))

        return TimeSeriesData(time_buckets=list(plan.buckets), data=data)

    @staticmethod
    def _intensities(counts: np.ndarray, totals: np.ndarray) -> np.ndarray:
        averages = np.divide(
            totals, counts, out=np.zeros_like(totals), where=counts > 0
        )
        max_average = averages.max() if averages.size else 0.0
        if max_average <= 0:
            return np.zeros_like(averages)
        return np.clip(averages / max_average, 0.0, 1.0)
