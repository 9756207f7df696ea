"""
Stage Transition Extractor.

Walks one order's status history and emits a StageTransition for every
consecutive pair of events whose "from" stage is a scored stage.
"""

from typing import Optional

from flowlens.engine.stages import StagePolicy
from flowlens.models.analysis import StageTransition
from flowlens.models.orders import Order

SECONDS_PER_HOUR = 3600.0


def extract_transitions(order: Order, policy: Optional[StagePolicy] = None) -> list[StageTransition]:
    """
    Extract stage-to-stage transitions from an order's history.

    Events without a stage name or timestamp are ignored; the remaining
    events are ordered by timestamp. Pairs leaving a stage the policy does not
    know are skipped entirely.

    Args:
        order: Order whose history has already been backfilled
        policy: Stage policy (default table when omitted)

    Returns:
        Transitions in history order; empty when fewer than two valid events
    """
    policy = policy or StagePolicy()
    history = order.valid_history
    if len(history) < 2:
        return []

    transitions = []
    for current, following in zip(history, history[1:]):
        definition = policy.get(current.status)
        if definition is None:
            continue

        duration = max(
            0.0, (following.created_at - current.created_at).total_seconds() / SECONDS_PER_HOUR
        )
        expected = definition.expected_duration_hours
        transitions.append(
            StageTransition(
                order_id=order.order_id,
                from_stage=current.status,
                to_stage=following.status,
                duration=duration,
                expected_duration=expected,
                delay=max(0.0, duration - expected),
                start_time=current.created_at,
                end_time=following.created_at,
                synthetic=current.synthetic or following.synthetic,
            )
        )

    return transitions
