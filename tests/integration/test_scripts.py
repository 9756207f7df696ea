"""
Integration tests for the maintenance and seeding scripts.
"""

import json
from datetime import datetime

from scripts.enhance_status_history import create_backup, count_orders_with_history, run
from scripts.seed_orders import generate_demo_orders
from tests.conftest import T0, MockOrderRepository, make_lifecycle_order, make_order

NOW = datetime(2024, 6, 1)


def legacy(order_id: str):
    return make_order(order_id, events=[], status="Paid", created_at=T0, payment_date=datetime(2024, 1, 17))


class TestEnhanceStatusHistoryScript:
    def test_run_writes_backup_and_report(self, tmp_path):
        repository = MockOrderRepository([legacy("A"), make_lifecycle_order("B", T0, [5, 5])])
        status = run(
            repository,
            batch_size=10,
            backup_dir=str(tmp_path / "backups"),
            report_dir=str(tmp_path / "reports"),
        )
        assert status == 0

        (backup,) = (tmp_path / "backups").glob("orders_backup_*.json")
        saved = json.loads(backup.read_text())
        assert {o["orderId"] for o in saved} == {"A", "B"}
        assert saved[0]["statusHistory"] == [] or saved[1]["statusHistory"] == []

        (report_file,) = (tmp_path / "reports").glob("status_history_enhancement_*.json")
        report = json.loads(report_file.read_text())
        assert report["success"] is True
        assert report["ordersEnhanced"] == 1
        assert report["ordersWithHistoryBefore"] == 1
        assert report["ordersWithHistoryAfter"] == 2

    def test_run_without_backup_or_report(self, tmp_path):
        repository = MockOrderRepository([legacy("A")])
        assert run(repository, batch_size=10) == 0
        assert len(repository.get("A").status_history) == 2

    def test_empty_store_is_a_no_op(self):
        assert run(MockOrderRepository(), batch_size=10) == 0

    def test_failed_batch_exits_non_zero(self):
        repository = MockOrderRepository([legacy("A")], fail_on_write=1)
        assert run(repository, batch_size=10) == 1

    def test_read_failure_exits_non_zero(self):
        assert run(MockOrderRepository(fail_reads=True), batch_size=10) == 1

    def test_backup_of_empty_store_is_valid_json(self, tmp_path):
        path = create_backup(MockOrderRepository(), str(tmp_path), batch_size=5)
        assert json.loads(path.read_text()) == []

    def test_count_orders_with_history(self):
        repository = MockOrderRepository([legacy("A"), make_lifecycle_order("B", T0, [5])])
        assert count_orders_with_history(repository, batch_size=1) == 1


class TestSeedOrders:
    def test_generation_is_reproducible(self):
        first = generate_demo_orders(20, seed=7, now=NOW)
        second = generate_demo_orders(20, seed=7, now=NOW)
        assert first == second
        assert [o.order_id for o in first][:2] == ["ORD-000001", "ORD-000002"]

    def test_orders_created_within_window(self):
        orders = generate_demo_orders(50, days=30, now=NOW)
        assert all((NOW - o.created_at).days <= 30 for o in orders)
        assert all(o.created_at <= NOW for o in orders)

    def test_legacy_orders_have_no_history(self):
        orders = generate_demo_orders(50, legacy_share=1.0, now=NOW)
        assert all(o.status_history == [] for o in orders)
        assert all(o.created_at is not None for o in orders)

    def test_histories_follow_lifecycle(self):
        orders = generate_demo_orders(50, legacy_share=0.0, now=NOW)
        for order in orders:
            assert order.status_history[0].status == "Initiated"
            assert order.status == order.status_history[-1].status
            stamps = [e.created_at for e in order.status_history]
            assert stamps == sorted(stamps)
