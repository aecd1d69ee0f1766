#!/usr/bin/env python3
"""
Admin API Endpoint Tests

Exercises the FastAPI routes against the in-memory store:
listing, creation, bulk, import/export, redemption and subscription
administration, plus error mapping.
"""

import json
import pytest
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from entitlements.errors import EntityStoreError
from entitlements.models import EntityKind

from tests.conftest import seed_store


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def seeded(memory_store, sample_vouchers, sample_subscriptions, sample_payments):
    """Sample records; routes evaluate status at the real current time"""
    vouchers = [dict(v) for v in sample_vouchers]
    vouchers[0]["expiresAt"] = "2099-12-31T23:59:59Z"
    seed_store(memory_store, EntityKind.VOUCHER, vouchers)
    seed_store(memory_store, EntityKind.SUBSCRIPTION, sample_subscriptions)
    seed_store(memory_store, EntityKind.PAYMENT, sample_payments)
    return memory_store


# ============================================================================
# GENERAL
# ============================================================================

class TestGeneral:
    """Root and health endpoints"""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_root(self, client):
        assert client.get("/").json()["name"] == "Eco Wifi Admin API"


# ============================================================================
# VOUCHERS
# ============================================================================

class TestVoucherEndpoints:
    """Tests for /api/v1/vouchers"""

    def test_list_with_derived_status(self, client, seeded):
        response = client.get("/api/v1/vouchers")
        assert response.status_code == 200

        data = response.json()
        assert data["total"] == 4
        statuses = {item["code"]: item["status"] for item in data["items"]}
        assert statuses["VOUCHER_BBBBBB"] == "used"
        assert statuses["VOUCHER_DDDDDD"] == "inactive"

    def test_list_filters(self, client, seeded):
        response = client.get("/api/v1/vouchers", params={"status": "used"})
        assert [item["code"] for item in response.json()["items"]] == ["VOUCHER_BBBBBB"]

        response = client.get("/api/v1/vouchers", params={"search": "promo", "sortKey": "code", "sortOrder": "asc"})
        assert [item["code"] for item in response.json()["items"]] == ["PROMO_CCCCCC"]

    def test_list_bad_sort_key(self, client, seeded):
        response = client.get("/api/v1/vouchers", params={"sortKey": "colour"})
        assert response.status_code == 422

    def test_create(self, client, memory_store):
        response = client.post("/api/v1/vouchers", json={
            "code": "NEW1", "package_key": "daily", "value": 50, "duration_seconds": 86400,
        })
        assert response.status_code == 201
        record = response.json()
        assert record["code"] == "NEW1"
        assert record["packageKey"] == "daily"
        assert record["usedCount"] == 0

    def test_create_validation_error(self, client):
        response = client.post("/api/v1/vouchers", json={
            "code": "NEW1", "package_key": "daily", "type": "bulk", "max_uses": 1,
        })
        assert response.status_code == 422
        assert "maxUses" in response.json()["detail"]["errors"]

    def test_create_duplicate_code_is_store_error(self, client, seeded):
        response = client.post("/api/v1/vouchers", json={"code": "VOUCHER_AAAAAA", "package_key": "daily"})
        assert response.status_code == 502

    def test_bulk(self, client, memory_store):
        response = client.post("/api/v1/vouchers/bulk", json={
            "package_key": "daily", "value": 50, "count": 10, "prefix": "VOUCHER",
        })
        assert response.status_code == 200

        data = response.json()
        assert len(data["codes"]) == 10
        assert data["created_count"] == 10
        assert data["error_count"] == 0

    def test_bulk_count_over_limit(self, client):
        response = client.post("/api/v1/vouchers/bulk", json={"package_key": "daily", "count": 1001})
        assert response.status_code == 422
        assert "count" in response.json()["detail"]["errors"]

    def test_import_csv(self, client, memory_store):
        content = "\n".join([
            "code,packageKey,valueKES,maxUses",
            "IMP1,daily,50,1",
            "IMP2,,50,1",
            "IMP3,weekly,250,2",
        ])
        response = client.post(
            "/api/v1/vouchers/import",
            files={"file": ("vouchers.csv", content, "text/csv")},
        )
        assert response.status_code == 200
        assert response.json() == {
            "imported_count": 2, "error_count": 0, "skipped_count": 1, "errors": [],
        }

    def test_import_json_by_extension(self, client):
        content = json.dumps([{"code": "J1", "packageKey": "daily"}])
        response = client.post(
            "/api/v1/vouchers/import",
            files={"file": ("vouchers.json", content, "application/json")},
        )
        assert response.json()["imported_count"] == 1

    def test_import_parse_error(self, client):
        response = client.post(
            "/api/v1/vouchers/import",
            files={"file": ("vouchers.csv", "code,packageKey\n", "text/csv")},
        )
        assert response.status_code == 400

    def test_export_csv(self, client, seeded):
        response = client.get("/api/v1/vouchers/export", params={"format": "csv", "sortKey": "code", "sortOrder": "asc"})
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]

        lines = response.text.splitlines()
        assert lines[0].startswith("code,packageKey,valueKES")
        assert [line.split(",")[0] for line in lines[1:]] == [
            "PROMO_CCCCCC", "VOUCHER_AAAAAA", "VOUCHER_BBBBBB", "VOUCHER_DDDDDD",
        ]

    def test_export_json(self, client, seeded):
        response = client.get("/api/v1/vouchers/export", params={"format": "json", "status": "active"})
        assert [row["code"] for row in response.json()] == ["VOUCHER_AAAAAA"]

    def test_redeem(self, client, seeded):
        response = client.post(
            "/api/v1/vouchers/VOUCHER_AAAAAA/redeem",
            json={"user_id": "u9", "duration_seconds": 3600},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["voucher"]["usedCount"] == 1
        assert data["subscription"]["userId"] == "u9"

        again = client.post("/api/v1/vouchers/VOUCHER_AAAAAA/redeem", json={"duration_seconds": 3600})
        assert again.status_code == 400

    def test_redeem_unknown(self, client):
        response = client.post("/api/v1/vouchers/NOPE/redeem", json={})
        assert response.status_code == 404

    def test_duplicate(self, client, seeded):
        response = client.post("/api/v1/vouchers/VOUCHER_BBBBBB/duplicate")
        assert response.status_code == 201
        assert response.json()["code"].startswith("VOUCHER_BBBBBB_copy_")
        assert response.json()["usedCount"] == 0

    def test_delete(self, client, seeded):
        assert client.delete("/api/v1/vouchers/v1").status_code == 204
        assert client.delete("/api/v1/vouchers/v1").status_code == 404


# ============================================================================
# SUBSCRIPTIONS AND PAYMENTS
# ============================================================================

class TestSubscriptionEndpoints:
    """Tests for /api/v1/subscriptions"""

    def test_search_by_phone(self, client, seeded):
        response = client.get("/api/v1/subscriptions", params={"search": "0712"})
        assert [item["_id"] for item in response.json()["items"]] == ["s1"]

    def test_suspend_and_activate(self, client, seeded):
        response = client.post("/api/v1/subscriptions/s1/suspend")
        assert response.status_code == 200
        assert response.json()["status"] == "suspended"
        assert response.json()["record"]["active"] is False

        response = client.post("/api/v1/subscriptions/s1/activate")
        assert response.json()["record"]["suspended"] is False

    def test_expired_detail(self, client, seeded):
        response = client.post("/api/v1/subscriptions/s3/activate")
        data = response.json()
        assert data["status"] == "expired"
        assert data["time_remaining"]["label"] == "expired"
        assert data["progress"] == 1.0

    def test_unknown_subscription(self, client):
        assert client.post("/api/v1/subscriptions/nope/suspend").status_code == 404


class TestPaymentEndpoints:
    """Tests for /api/v1/payments"""

    def test_list_filtered(self, client, seeded):
        response = client.get("/api/v1/payments", params={"type": "mpesa", "sortKey": "amountKES", "sortOrder": "asc"})
        assert response.status_code == 200
        assert [item["_id"] for item in response.json()["items"]] == ["p1", "p2"]

    def test_store_failure_is_bad_gateway(self, app, client, memory_store, monkeypatch):
        async def broken(kind):
            raise EntityStoreError("backend unreachable")

        monkeypatch.setattr(memory_store, "list_entities", broken)
        response = client.get("/api/v1/payments")
        assert response.status_code == 502
        assert response.json()["detail"] == "backend unreachable"
