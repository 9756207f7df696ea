#!/usr/bin/env python3
"""
Enhance existing orders with status history for bottleneck analysis.

Creates synthetic status history entries for stored orders that lack proper
status tracking, so historical data can take part in the bottleneck analysis.

Steps:
1. Back up all orders to a timestamped JSON file (skip with --no-backup)
2. Backfill and persist status histories in bounded batches
3. Write a JSON enhancement report (skip with --no-report)

Everything is logged to stdout and to the persistent maintenance log. The
exit status is 0 when every batch was committed and 1 otherwise.

Usage:
    python scripts/enhance_status_history.py
    python scripts/enhance_status_history.py --batch-size 250 --no-backup
"""

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

sys.path.insert(0, str(Path(__file__).parent.parent))

from flowlens.config import get_settings
from flowlens.engine.backfill import StatusHistoryBackfillJob
from flowlens.engine.stages import load_stage_policy
from flowlens.models.maintenance import BackfillReport
from flowlens.storage.base import OrderRepository, StorageError
from flowlens.storage.duckdb_storage import DuckDBOrderRepository
from flowlens.utils.logging import configure_logging, get_logger

logger = get_logger("flowlens.scripts.enhance_status_history")


def _file_timestamp() -> str:
    return datetime.utcnow().isoformat().replace(":", "-")


def create_backup(repository: OrderRepository, backup_dir: str, batch_size: int) -> Path:
    """
    Stream every stored order into a timestamped JSON backup file.

    Returns:
        Path of the backup file
    """
    directory = Path(backup_dir)
    directory.mkdir(parents=True, exist_ok=True)
    backup_file = directory / f"orders_backup_{_file_timestamp()}.json"

    written = 0
    with backup_file.open("w", encoding="utf-8") as fh:
        fh.write("[\n")
        for batch in repository.iter_order_batches(batch_size):
            for order in batch:
                if written:
                    fh.write(",\n")
                fh.write(order.model_dump_json(by_alias=True))
                written += 1
        fh.write("\n]\n")

    logger.info("orders_backup_created", path=str(backup_file), orders=written)
    return backup_file


def count_orders_with_history(repository: OrderRepository, batch_size: int) -> int:
    """Orders with at least two valid status events."""
    return sum(
        1
        for batch in repository.iter_order_batches(batch_size)
        for order in batch
        if len(order.valid_history) >= 2
    )


def write_report(
    report: BackfillReport,
    report_dir: str,
    before_with_history: int,
    after_with_history: int,
) -> Path:
    """Write the enhancement report as JSON and return its path."""
    directory = Path(report_dir)
    directory.mkdir(parents=True, exist_ok=True)
    report_file = directory / f"status_history_enhancement_{_file_timestamp()}.json"

    payload = report.model_dump(mode="json", by_alias=True)
    payload["ordersWithHistoryBefore"] = before_with_history
    payload["ordersWithHistoryAfter"] = after_with_history
    report_file.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    logger.info("enhancement_report_created", path=str(report_file))
    return report_file


def run(
    repository: OrderRepository,
    batch_size: int,
    backup_dir: Optional[str] = None,
    report_dir: Optional[str] = None,
    stage_policy_path: Optional[str] = None,
) -> int:
    """
    Run the enhancement against a repository.

    Args:
        repository: Order store to enhance
        batch_size: Orders per batch
        backup_dir: Backup directory, None to skip the backup
        report_dir: Report directory, None to skip the report
        stage_policy_path: Optional stage policy JSON file

    Returns:
        Process exit status (0 on success)
    """
    logger.info("status_history_enhancement_started", batch_size=batch_size)

    try:
        total = repository.count_orders()
        before = count_orders_with_history(repository, batch_size)
    except StorageError as e:
        logger.error("status_history_enhancement_read_failed", error=str(e))
        return 1

    logger.info("orders_found", total=total, with_history=before, needing_enhancement=total - before)
    if total == 0:
        logger.info("no_orders_to_enhance")
        return 0

    if backup_dir is not None:
        try:
            create_backup(repository, backup_dir, batch_size)
        except (OSError, StorageError) as e:
            logger.warning("orders_backup_failed", error=str(e))

    job = StatusHistoryBackfillJob(
        repository,
        policy=load_stage_policy(stage_policy_path),
        batch_size=batch_size,
    )
    report = job.run()

    elapsed = (report.finished_at - report.started_at).total_seconds()
    if not report.success:
        logger.error(
            "status_history_enhancement_failed",
            error=report.error,
            batches_committed=report.batches_committed,
            elapsed_seconds=round(elapsed, 2),
        )
    else:
        logger.info(
            "status_history_enhancement_succeeded",
            orders_enhanced=report.orders_enhanced,
            status_entries_added=report.status_entries_added,
            elapsed_seconds=round(elapsed, 2),
        )

    if report_dir is not None:
        try:
            after = count_orders_with_history(repository, batch_size)
            write_report(report, report_dir, before, after)
        except (OSError, StorageError) as e:
            logger.warning("enhancement_report_failed", error=str(e))

    return 0 if report.success else 1


def main(argv: Optional[list[str]] = None) -> int:
    settings = get_settings()

    parser = argparse.ArgumentParser(description="Backfill order status history for bottleneck analysis")
    parser.add_argument("--batch-size", type=int, default=settings.backfill_batch_size, help="Orders per batch")
    parser.add_argument("--db-path", default=settings.db_path, help="DuckDB database file")
    parser.add_argument("--no-backup", action="store_true", help="Skip the JSON backup of all orders")
    parser.add_argument("--no-report", action="store_true", help="Skip the JSON enhancement report")
    parser.add_argument("--log-file", default=settings.maintenance_log_file, help="Persistent log file")
    args = parser.parse_args(argv)

    if args.batch_size < 1:
        parser.error("--batch-size must be at least 1")

    configure_logging(log_file=args.log_file)

    try:
        status = run(
            DuckDBOrderRepository(db_path=args.db_path),
            batch_size=args.batch_size,
            backup_dir=None if args.no_backup else settings.backup_dir,
            report_dir=None if args.no_report else settings.report_output_dir,
            stage_policy_path=settings.stage_policy_path,
        )
    except Exception as e:
        logger.error("status_history_enhancement_crashed", error=str(e), exc_info=True)
        status = 1

    logger.info("status_history_enhancement_finished", exit_status=status)
    return status


if __name__ == "__main__":
    sys.exit(main())
