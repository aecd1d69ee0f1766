#!/usr/bin/env python3
"""
Pytest Configuration and Shared Fixtures

Provides shared fixtures and configuration for all tests.
"""

import pytest
import sys
import os
import tempfile
from pathlib import Path
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from entitlements.errors import EntityStoreError
from entitlements.models import EntityKind
from entitlements.store import InMemoryEntityStore


# ============================================================================
# ASYNCIO CONFIGURATION
# ============================================================================
# Note: pytest-asyncio is configured with asyncio_mode = "auto" in pyproject.toml
# The event loop is automatically managed per-function by default


# ============================================================================
# TIME
# ============================================================================

FIXED_NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    """Fixed evaluation time so derived statuses are deterministic"""
    return FIXED_NOW


# ============================================================================
# TEMPORARY DIRECTORIES
# ============================================================================

@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# ============================================================================
# ENTITY STORES
# ============================================================================

class RecordingStore(InMemoryEntityStore):
    """
    In-memory store that records every create call and can be told to
    reject specific voucher codes (or everything).
    """

    def __init__(self, fail_codes: Optional[Set[str]] = None, fail_all: bool = False):
        super().__init__()
        self.fail_codes = set(fail_codes or ())
        self.fail_all = fail_all
        self.create_calls: List[Dict[str, Any]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def create_entity(self, kind: EntityKind, data: Dict[str, Any]) -> Dict[str, Any]:
        self.create_calls.append(dict(data))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.fail_all or data.get("code") in self.fail_codes:
                raise EntityStoreError(f"rejected {data.get('code')}", status_code=400)
            return await super().create_entity(kind, data)
        finally:
            self.in_flight -= 1


@pytest.fixture
def memory_store():
    """Empty in-memory entity store"""
    return InMemoryEntityStore()


@pytest.fixture
def recording_store():
    """In-memory store that records create calls"""
    return RecordingStore()


@pytest.fixture
def failing_store():
    """Store whose every create call fails"""
    return RecordingStore(fail_all=True)


# ============================================================================
# SAMPLE DATA FIXTURES
# ============================================================================

@pytest.fixture
def sample_vouchers():
    """Voucher records as the backend returns them"""
    return [
        {
            "_id": "v1", "code": "VOUCHER_AAAAAA", "packageKey": "daily", "value": 50,
            "type": "single", "active": True, "maxUses": 1, "usedCount": 0,
            "expiresAt": "2025-12-31T23:59:59Z", "createdAt": "2025-05-01T08:00:00Z",
        },
        {
            "_id": "v2", "code": "VOUCHER_BBBBBB", "packageKey": "weekly", "value": 250,
            "type": "bulk", "active": True, "maxUses": 5, "usedCount": 5,
            "createdAt": "2025-05-03T08:00:00Z",
        },
        {
            "_id": "v3", "code": "PROMO_CCCCCC", "packageKey": "daily", "value": 0,
            "type": "single", "active": True, "maxUses": 1, "usedCount": 0,
            "expiresAt": "2025-01-01T00:00:00Z", "createdAt": "2025-04-20T08:00:00Z",
        },
        {
            "_id": "v4", "code": "VOUCHER_DDDDDD", "packageKey": "monthly", "value": 900,
            "type": "single", "active": False, "maxUses": 1, "usedCount": 0,
            "createdAt": "2025-05-02T08:00:00Z",
        },
    ]


@pytest.fixture
def sample_subscriptions():
    """Subscription records with populated users"""
    return [
        {
            "_id": "s1", "userId": "u1", "packageKey": "daily",
            "user": {"_id": "u1", "name": "Amina Otieno", "phone": "0712345678"},
            "active": True, "suspended": False,
            "startAt": "2025-06-01T00:00:00Z", "endAt": "2025-06-02T00:00:00Z",
            "createdAt": "2025-06-01T00:00:00Z",
        },
        {
            "_id": "s2", "userId": "u2", "packageKey": "weekly",
            "user": {"_id": "u2", "name": "Brian Kamau", "phone": "0722000111"},
            "active": True, "suspended": True,
            "startAt": "2025-05-30T00:00:00Z", "endAt": "2025-06-06T00:00:00Z",
            "createdAt": "2025-05-30T00:00:00Z",
        },
        {
            "_id": "s3", "userId": "u3", "packageKey": "daily",
            "user": {"_id": "u3", "name": "Cynthia Wanjiru", "phone": "0733999888"},
            "active": True, "suspended": False,
            "startAt": "2025-05-01T00:00:00Z", "endAt": "2025-05-02T00:00:00Z",
            "createdAt": "2025-05-01T00:00:00Z",
        },
    ]


@pytest.fixture
def sample_payments():
    """Payment records as written by the gateway callback"""
    return [
        {
            "_id": "p1", "provider": "mpesa", "amountKES": 50, "status": "success",
            "transactionId": "QGH12ABC", "phone": "254712345678",
            "createdAt": "2025-05-31T10:00:00Z",
        },
        {
            "_id": "p2", "provider": "mpesa", "amountKES": 250, "status": "pending",
            "transactionId": "QGH34DEF", "phone": "254722000111",
            "createdAt": "2025-06-01T09:00:00Z",
        },
        {
            "_id": "p3", "provider": "card", "amountKES": 900, "status": "failed",
            "transactionId": "CARD-77", "phone": None,
            "createdAt": "2025-05-15T09:00:00Z",
        },
    ]


def seed_store(store, kind: EntityKind, records) -> None:
    """Load sample records (keeping their ids) into an in-memory store"""
    store.load(kind, records)


@pytest.fixture
def seeded_store(memory_store, sample_vouchers, sample_subscriptions, sample_payments):
    """In-memory store pre-populated with the sample records"""
    seed_store(memory_store, EntityKind.VOUCHER, sample_vouchers)
    seed_store(memory_store, EntityKind.SUBSCRIPTION, sample_subscriptions)
    seed_store(memory_store, EntityKind.PAYMENT, sample_payments)
    return memory_store


# ============================================================================
# FASTAPI TEST CLIENT FIXTURES
# ============================================================================

@pytest.fixture
def app(memory_store):
    """FastAPI application wired to the in-memory store"""
    from web_ui.api.main import app
    from entitlements.store import get_entity_store

    original_overrides = app.dependency_overrides.copy()
    app.dependency_overrides[get_entity_store] = lambda: memory_store

    yield app

    app.dependency_overrides = original_overrides


@pytest.fixture
def client(app):
    """Create synchronous test client"""
    from fastapi.testclient import TestClient
    return TestClient(app)


# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================

def pytest_configure(config):
    """Configure pytest markers"""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (need a running backend)"
    )
