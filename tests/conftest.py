"""
Pytest configuration and fixtures.
"""

from __future__ import annotations

import pytest

from feedesk.core.actor import ActorContext
from feedesk.features.commissions.cache import MemoryCommissionsCache
from feedesk.features.commissions.service import CommissionService
from feedesk.features.commissions.store import CachedCommissionsStore
from tests.fakes import InMemoryCommissionsPersistence, RecordingAuditLog


@pytest.fixture
def persistence() -> InMemoryCommissionsPersistence:
    return InMemoryCommissionsPersistence()


@pytest.fixture
def cache() -> MemoryCommissionsCache:
    return MemoryCommissionsCache(ttl_seconds=3600)


@pytest.fixture
def store(persistence, cache) -> CachedCommissionsStore:
    return CachedCommissionsStore(persistence, cache)


@pytest.fixture
def audit() -> RecordingAuditLog:
    return RecordingAuditLog()


@pytest.fixture
def service(store, audit) -> CommissionService:
    return CommissionService(store, audit)


@pytest.fixture
def actor() -> ActorContext:
    return ActorContext(admin_id="admin-1", admin_email="admin@example.com")
