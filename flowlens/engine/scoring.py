"""
Bottleneck Scorer — per-stage delay severity.

A stage's score is the sum of the delay factors (duration / expected
duration) of its overrunning transitions, divided by the number of all
transitions that left the stage. Using a ratio keeps stages with different
expected durations comparable; dividing by the transition count keeps
high-traffic stages from dominating by volume alone.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional

import numpy as np
import structlog

from flowlens.engine.stages import StagePolicy
from flowlens.models.analysis import DelayEntry, StageScore, StageTransition

logger = structlog.get_logger()


@dataclass
class StageScoring:
    """Scores, ranking and raw delay entries of one analysis run."""

    bottleneck_scores: dict[str, float]
    sorted_bottlenecks: list[StageScore]
    average_delays: dict[str, float]
    stage_delays: dict[str, list[DelayEntry]]
    transition_counts: dict[str, int] = field(default_factory=dict)


class BottleneckScorer:
    """Aggregates stage transitions of all orders into bottleneck scores."""

    def __init__(self, policy: Optional[StagePolicy] = None):
        self.policy = policy or StagePolicy()

    def score(self, transitions: Iterable[StageTransition]) -> StageScoring:
        """
        Score every stage of the policy.

        Args:
            transitions: Transitions extracted from all analysed orders

        Returns:
            StageScoring with one entry per policy stage (0 for stages without
            transitions or without overruns)
        """
        stages = self.policy.stage_names
        totals = {stage: 0.0 for stage in stages}
        counts = {stage: 0 for stage in stages}
        stage_delays: dict[str, list[DelayEntry]] = {stage: [] for stage in stages}

        for transition in transitions:
            stage = transition.from_stage
            if stage not in totals:
                continue

            counts[stage] += 1
            if transition.duration > transition.expected_duration:
                delay_factor = transition.duration / transition.expected_duration
                totals[stage] += delay_factor
                stage_delays[stage].append(
                    DelayEntry(
                        order_id=transition.order_id,
                        delay=transition.duration - transition.expected_duration,
                        delay_factor=delay_factor,
                        timestamp=transition.start_time,
                        synthetic=transition.synthetic,
                    )
                )

        bottleneck_scores = {
            stage: totals[stage] / counts[stage] if counts[stage] else 0.0 for stage in stages
        }

        # sorted() is stable, so ties keep policy order
        sorted_bottlenecks = [
            StageScore(stage=stage, score=score)
            for stage, score in sorted(
                bottleneck_scores.items(), key=lambda item: item[1], reverse=True
            )
        ]

        average_delays = {
            stage: float(np.mean([e.delay for e in entries])) if entries else 0.0
            for stage, entries in stage_delays.items()
        }

        logger.debug(
            "bottleneck_scores_computed",
            transitions=sum(counts.values()),
            delayed=sum(len(v) for v in stage_delays.values()),
            top_stage=sorted_bottlenecks[0].stage if sorted_bottlenecks else None,
        )

        return StageScoring(
            bottleneck_scores=bottleneck_scores,
            sorted_bottlenecks=sorted_bottlenecks,
            average_delays=average_delays,
            stage_delays=stage_delays,
            transition_counts=counts,
        )
