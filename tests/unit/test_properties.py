"""
Property-based tests using Hypothesis for the FlowLens analytics engine.

These tests verify the bounds and invariants of the bottleneck pipeline
across randomly generated windows, histories and delays.
"""

from datetime import datetime, timedelta

import hypothesis.strategies as st
from hypothesis import given, settings

from flowlens.engine.backfill import backfill_order
from flowlens.engine.bottleneck_analyzer import normalize_request
from flowlens.engine.heatmap import HeatMapAggregator
from flowlens.engine.scoring import BottleneckScorer
from flowlens.engine.stages import StagePolicy
from flowlens.engine.time_buckets import TimeBucketer
from flowlens.engine.transitions import extract_transitions
from flowlens.models.analysis import DelayEntry
from flowlens.models.enums import OrderStage, Resolution
from tests.conftest import make_lifecycle_order, make_order

BASE = datetime(2024, 1, 1)

moments = st.datetimes(min_value=datetime(2020, 1, 1), max_value=datetime(2026, 12, 31))
resolutions = st.sampled_from(list(Resolution))
stage_names = st.sampled_from([stage.value for stage in OrderStage] + ["Unknown", ""])
durations = st.floats(min_value=0.0, max_value=2000.0, allow_nan=False, allow_infinity=False)
junk_dates = st.sampled_from([None, "", "not-a-date", "2024-13-45", "yesterday", "   "])
any_day = st.datetimes().map(lambda d: d.date().isoformat())


# =============================================================================
# TimeBucketer Property Tests
# =============================================================================


@given(start=moments, span_hours=st.integers(min_value=0, max_value=3 * 365 * 24), resolution=resolutions)
@settings(max_examples=200)
def test_prop_bucket_count_bounded(start: datetime, span_hours: int, resolution: Resolution):
    """
    Every window yields between 1 and 366 buckets.

    Property: keys are unique and ascending.
    """
    plan = TimeBucketer().plan(start, start + timedelta(hours=span_hours), resolution)
    keys = [b.key for b in plan.buckets]

    assert 1 <= len(keys) <= 366
    assert keys == sorted(keys)
    assert len(set(keys)) == len(keys)


@given(
    start=st.one_of(junk_dates, any_day, moments.map(lambda d: d.isoformat()), moments.map(lambda d: d.strftime("%Y-%m-%d"))),
    end=st.one_of(junk_dates, any_day, moments.map(lambda d: d.isoformat()), moments.map(lambda d: d.strftime("%Y-%m-%d"))),
    resolution=st.one_of(st.none(), st.sampled_from(["month", "HOUR", ""]), resolutions.map(lambda r: r.value)),
)
@settings(max_examples=200)
def test_prop_normalized_window_is_valid(start, end, resolution):
    """
    Any raw request parameters normalize to a usable window.
    """
    window = normalize_request(start, end, resolution, now=datetime(2024, 6, 1))

    assert window.start <= window.end
    assert window.resolution in Resolution
    assert TimeBucketer().plan(window.start, window.end, window.resolution).buckets


# =============================================================================
# Scoring and Heat Map Property Tests
# =============================================================================


@given(hours=st.lists(durations, min_size=1, max_size=8))
@settings(max_examples=150)
def test_prop_transition_delay_formula(hours: list[float]):
    """
    Delay = max(0, duration - expected) and both are non-negative.
    """
    for transition in extract_transitions(make_lifecycle_order("ORD-P", BASE, hours)):
        assert transition.duration >= 0
        assert transition.delay >= 0
        assert abs(transition.delay - max(0.0, transition.duration - transition.expected_duration)) < 1e-9


@given(orders=st.lists(st.lists(durations, min_size=1, max_size=8), min_size=0, max_size=10))
@settings(max_examples=100)
def test_prop_scores_non_negative_and_sorted(orders: list[list[float]]):
    """
    Every policy stage is scored, scores are >= 0 and ranked descending.
    """
    transitions = [
        t
        for i, hours in enumerate(orders)
        for t in extract_transitions(make_lifecycle_order(f"ORD-{i}", BASE, hours))
    ]
    scoring = BottleneckScorer().score(transitions)

    assert set(scoring.bottleneck_scores) == set(StagePolicy().stage_names)
    assert all(score >= 0 for score in scoring.bottleneck_scores.values())
    ranked = [s.score for s in scoring.sorted_bottlenecks]
    assert ranked == sorted(ranked, reverse=True)


@given(delays=st.lists(
    st.tuples(st.floats(min_value=0.01, max_value=1e4, allow_nan=False), st.integers(min_value=0, max_value=40)),
    max_size=50,
))
@settings(max_examples=150)
def test_prop_heat_map_intensity_bounds(delays: list[tuple[float, int]]):
    """
    Intensities lie in [0, 1]; 1 is reached iff some cell has a positive delay.
    """
    plan = TimeBucketer().plan(BASE, BASE + timedelta(days=30), Resolution.DAY)
    entries = [
        DelayEntry(order_id="ORD-P", delay=delay, delay_factor=1.5, timestamp=BASE + timedelta(days=offset))
        for delay, offset in delays
    ]
    cells = HeatMapAggregator().aggregate({"Quoted": entries}, plan).data["Quoted"].values()

    intensities = [c.intensity for c in cells]
    assert all(0.0 <= i <= 1.0 for i in intensities)
    if any(c.total_delay > 0 for c in cells):
        assert max(intensities) == 1.0
    else:
        assert max(intensities) == 0.0


# =============================================================================
# Backfill Property Tests
# =============================================================================


optional_moments = st.one_of(st.none(), moments)


@given(
    events=st.lists(st.tuples(stage_names, optional_moments), max_size=6),
    created_at=optional_moments,
    payment_date=optional_moments,
    delivery_date=optional_moments,
    completed_at=optional_moments,
    updated_at=optional_moments,
    status=stage_names,
)
@settings(max_examples=200)
def test_prop_backfill_idempotent(events, created_at, payment_date, delivery_date, completed_at, updated_at, status):
    """
    Backfill(backfill(o)) == backfill(o), and the result is clean and sorted.
    """
    order = make_order(
        events=events,
        created_at=created_at,
        status=status,
        payment_date=payment_date,
        delivery_date=delivery_date,
        completed_at=completed_at,
        updated_at=updated_at,
    )
    once = backfill_order(order)
    twice = backfill_order(once)

    assert twice.status_history == once.status_history
    if once is not order:
        assert all(e.is_valid for e in once.status_history)
        stamps = [e.created_at for e in once.status_history]
        assert stamps == sorted(stamps)
