#!/usr/bin/env python3
"""
Seed demo orders for the FlowLens bottleneck dashboard.

Generates orders moving through the canonical lifecycle with randomised
stage durations. One stage ("Quoted" by default) is made systematically slow
so the heat map has a visible bottleneck, and a share of the orders are
"legacy" records carrying only auxiliary timestamps and no status history,
which exercises the status history backfill.

Usage:
    python scripts/seed_orders.py
    python scripts/seed_orders.py --orders 2000 --days 180 --slow-stage "In Transit"
"""

import argparse
import random
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

sys.path.insert(0, str(Path(__file__).parent.parent))

import structlog

from flowlens.config import get_settings
from flowlens.engine.stages import StagePolicy
from flowlens.models.enums import OrderStage
from flowlens.models.orders import Order, StatusEvent
from flowlens.storage.duckdb_storage import DuckDBOrderRepository
from flowlens.utils.logging import configure_logging

logger = structlog.get_logger()

LIFECYCLE = [stage.value for stage in OrderStage]


def generate_demo_orders(
    count: int,
    days: int = 90,
    seed: int = 42,
    slow_stage: str = OrderStage.QUOTED.value,
    legacy_share: float = 0.2,
    now: Optional[datetime] = None,
) -> list[Order]:
    """
    Generate demo orders.

    Args:
        count: Number of orders
        days: Orders are created uniformly over the last ``days`` days
        seed: Random seed for reproducibility
        slow_stage: Stage whose durations run 1.5-4x over expectation
        legacy_share: Share of orders stored without status history
        now: Reference time (defaults to the current UTC time)

    Returns:
        Orders, each stopped at a random point of its lifecycle
    """
    rng = random.Random(seed)
    policy = StagePolicy()
    now = now or datetime.utcnow()
    orders = []

    for i in range(count):
        created_at = now - timedelta(days=days) + timedelta(seconds=rng.uniform(0, days * 86400))
        reached = rng.randint(1, len(LIFECYCLE))

        history = [StatusEvent(status=LIFECYCLE[0], created_at=created_at)]
        moment = created_at
        for stage, following in zip(LIFECYCLE[: reached - 1], LIFECYCLE[1:reached]):
            expected = policy.expected_hours(stage)
            if stage == slow_stage:
                factor = rng.uniform(1.5, 4.0)
            else:
                factor = rng.lognormvariate(-0.3, 0.4)
            moment = moment + timedelta(hours=expected * factor)
            if moment > now:
                break
            history.append(StatusEvent(status=following, created_at=moment))

        by_stage = {event.status: event.created_at for event in history}
        legacy = rng.random() < legacy_share

        orders.append(
            Order(
                order_id=f"ORD-{i + 1:06d}",
                status=history[-1].status,
                created_at=created_at,
                updated_at=history[-1].created_at,
                payment_date=by_stage.get(OrderStage.PAID.value),
                delivery_date=by_stage.get(OrderStage.DELIVERED.value),
                completed_at=by_stage.get(OrderStage.COMPLETED.value),
                status_history=[] if legacy else history,
            )
        )

    return orders


def main(argv: Optional[list[str]] = None) -> int:
    settings = get_settings()

    parser = argparse.ArgumentParser(description="Seed demo orders for FlowLens")
    parser.add_argument("--orders", type=int, default=500, help="Number of orders (default: 500)")
    parser.add_argument("--days", type=int, default=90, help="Creation window in days (default: 90)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    parser.add_argument("--slow-stage", default=OrderStage.QUOTED.value, choices=LIFECYCLE[:-1])
    parser.add_argument("--legacy-share", type=float, default=0.2, help="Share of orders without history")
    parser.add_argument("--db-path", default=settings.db_path, help="DuckDB database file")
    args = parser.parse_args(argv)

    configure_logging()

    orders = generate_demo_orders(
        args.orders,
        days=args.days,
        seed=args.seed,
        slow_stage=args.slow_stage,
        legacy_share=args.legacy_share,
    )

    repository = DuckDBOrderRepository(db_path=args.db_path)
    batch_size = settings.backfill_batch_size
    for offset in range(0, len(orders), batch_size):
        repository.save_orders(orders[offset:offset + batch_size])

    logger.info(
        "demo_orders_seeded",
        orders=len(orders),
        db_path=args.db_path,
        slow_stage=args.slow_stage,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
