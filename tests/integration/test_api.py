"""
Integration tests for the FlowLens API.

Endpoints tested:
- System: health
- Analytics: operational bottlenecks, status history enhancement

Requests go through the real app, JWT auth and the DuckDB-backed repository;
storage failures are injected by overriding the repository dependency.
"""

import time

import pytest

from flowlens.config import get_settings
from flowlens.main import app
from flowlens.routers.analytics import get_bottleneck_analyzer
from flowlens.storage import get_order_repository
from tests.conftest import MockOrderRepository

BOTTLENECKS_URL = "/api/v1/analytics/operational-bottlenecks"
ENHANCE_URL = "/api/v1/analytics/status-history/enhance"
JANUARY = {"startDate": "2024-01-01", "endDate": "2024-01-31", "resolution": "day"}


@pytest.fixture(autouse=True)
def populate_real_storage(sample_orders):
    """
    Populate the real DuckDB storage with test orders.
    This fixture runs automatically before each test.
    """
    repository = get_order_repository()
    repository.clear_for_testing()
    repository.save_orders(sample_orders)
    yield
    app.dependency_overrides.clear()


# ============================================================================
# System Endpoints
# ============================================================================


class TestSystemEndpoints:
    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["version"]

    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "trace-123"})
        assert response.headers["X-Request-ID"] == "trace-123"


# ============================================================================
# Operational Bottlenecks Endpoint
# ============================================================================


class TestOperationalBottlenecks:
    def test_requires_authentication(self, client):
        response = client.get(BOTTLENECKS_URL, params=JANUARY)
        assert response.status_code == 401
        assert response.json()["detail"] == "Authentication required"

    def test_rejects_invalid_token(self, client):
        response = client.get(BOTTLENECKS_URL, params=JANUARY, headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_rejects_vendor_role(self, client, vendor_headers):
        response = client.get(BOTTLENECKS_URL, params=JANUARY, headers=vendor_headers)
        assert response.status_code == 403
        assert response.json()["detail"] == "Insufficient permissions to access this resource"

    @pytest.mark.parametrize("headers_fixture", ["auth_headers", "manager_headers"])
    def test_allowed_roles(self, client, request, headers_fixture):
        headers = request.getfixturevalue(headers_fixture)
        response = client.get(BOTTLENECKS_URL, params=JANUARY, headers=headers)
        assert response.status_code == 200

    def test_response_contract(self, client, auth_headers):
        response = client.get(BOTTLENECKS_URL, params=JANUARY, headers=auth_headers)
        assert response.status_code == 200
        assert response.headers["Cache-Control"] == "private, max-age=300"

        body = response.json()
        for key in (
            "bottleneckScores", "sortedBottlenecks", "averageDelays",
            "stageTransitions", "timeSeriesData", "metadata", "requestMetadata",
        ):
            assert key in body

        assert body["sortedBottlenecks"][0]["stage"] == "Quoted"
        assert body["bottleneckScores"]["Quoted"] == pytest.approx(150 / 72)
        assert len(body["timeSeriesData"]["timeBuckets"]) == 31
        assert body["timeSeriesData"]["timeBuckets"][0] == {"key": "2024-01-01", "label": "Jan 01, 2024"}

        metadata = body["metadata"]
        assert metadata["error"] is False
        assert metadata["totalOrdersAnalyzed"] == 6
        assert metadata["ordersWithTransitions"] == 6
        assert metadata["analysisStartDate"] == "2024-01-01T00:00:00"
        assert metadata["resolution"] == "day"

    def test_request_metadata(self, client, manager_headers):
        body = client.get(BOTTLENECKS_URL, params=JANUARY, headers=manager_headers).json()
        request_metadata = body["requestMetadata"]
        assert request_metadata["requestedBy"] == "manager@example.com"
        assert request_metadata["parameters"] == JANUARY
        assert request_metadata["requestedAt"]

    def test_heat_map_cell_for_slow_stage(self, client, auth_headers):
        body = client.get(BOTTLENECKS_URL, params=JANUARY, headers=auth_headers).json()
        quoted = body["timeSeriesData"]["data"]["Quoted"]
        # ORD-000001 is created Jan 16 09:00 and enters Quoted 40h later
        assert quoted["2024-01-18"]["count"] == 1
        assert quoted["2024-01-18"]["totalDelay"] == pytest.approx(78.0)
        assert max(cell["intensity"] for cell in quoted.values()) == 1.0

    def test_invalid_parameters_fall_back(self, client, auth_headers):
        params = {"startDate": "garbage", "endDate": "2024-01-31", "resolution": "month"}
        response = client.get(BOTTLENECKS_URL, params=params, headers=auth_headers)
        assert response.status_code == 200
        metadata = response.json()["metadata"]
        assert metadata["resolution"] == "day"
        assert metadata["analysisStartDate"] == "2023-11-02T23:59:59.999999"

    def test_hourly_request_over_long_range_is_downgraded(self, client, auth_headers):
        params = {"startDate": "2022-01-01", "endDate": "2023-12-31", "resolution": "hour"}
        body = client.get(BOTTLENECKS_URL, params=params, headers=auth_headers).json()
        assert len(body["timeSeriesData"]["timeBuckets"]) <= 366
        assert body["metadata"]["effectiveResolution"] == "day"

    def test_storage_failure_returns_empty_result(self, client, auth_headers):
        app.dependency_overrides[get_order_repository] = lambda: MockOrderRepository(fail_reads=True)
        response = client.get(BOTTLENECKS_URL, params=JANUARY, headers=auth_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["metadata"]["error"] is True
        assert body["metadata"]["message"] == "Failed to generate bottleneck analysis"
        assert body["bottleneckScores"] == {}
        assert body["timeSeriesData"] == {"timeBuckets": [], "data": {}}

    def test_timeout_returns_504(self, client, auth_headers, monkeypatch):
        class SlowAnalyzer:
            def identify_bottlenecks(self, *args):
                time.sleep(0.5)

        monkeypatch.setattr(get_settings(), "analysis_timeout_seconds", 0.05)
        app.dependency_overrides[get_bottleneck_analyzer] = SlowAnalyzer
        response = client.get(BOTTLENECKS_URL, params=JANUARY, headers=auth_headers)
        assert response.status_code == 504
        assert response.json()["error"] == "Analysis failed or timed out"


# ============================================================================
# Status History Enhancement Endpoint
# ============================================================================


class TestStatusHistoryEnhancement:
    def test_requires_admin(self, client, manager_headers):
        response = client.post(ENHANCE_URL, headers=manager_headers)
        assert response.status_code == 403

    def test_backfill_persisted(self, client, auth_headers):
        response = client.post(ENHANCE_URL, params={"batchSize": 2}, headers=auth_headers)
        assert response.status_code == 200

        body = response.json()
        assert body["success"] is True
        report = body["data"]
        assert report["totalOrders"] == 6
        assert report["ordersEnhanced"] == 1
        assert report["statusEntriesAdded"] == 4
        assert report["batchSize"] == 2

        legacy = [o for o in get_order_repository().list_orders() if o.order_id == "ORD-LEGACY"][0]
        assert [e.status for e in legacy.status_history] == ["Initiated", "Paid", "Delivered", "Completed"]

    def test_second_run_changes_nothing(self, client, auth_headers):
        client.post(ENHANCE_URL, headers=auth_headers)
        report = client.post(ENHANCE_URL, headers=auth_headers).json()["data"]
        assert report["ordersEnhanced"] == 0

    def test_invalid_batch_size_rejected(self, client, auth_headers):
        response = client.post(ENHANCE_URL, params={"batchSize": 0}, headers=auth_headers)
        assert response.status_code == 422

    def test_write_failure_returns_500_with_report(self, client, auth_headers, sample_orders):
        app.dependency_overrides[get_order_repository] = lambda: MockOrderRepository(sample_orders, fail_on_write=1)
        response = client.post(ENHANCE_URL, headers=auth_headers)
        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["data"]["batchesFailed"] == 1
        assert body["data"]["error"].startswith("Batch 1 failed")
