# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.

"""
Shared test fixtures for all tenancy tests.
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple, Type

import pytest
import fakeredis.aioredis

from tenancy.core.config import TenancySettings
from tenancy.core.context import init_platform_context
from tenancy.core.errors import TenancyError
from tenancy.core.metrics import tenancy_metrics
from tenancy.core.principal import Principal
from tenancy.kernel.clock import ManualClock
from tenancy.kernel.namespace import legacy_record_path
from tenancy.kernel.redis_client import inject_redis_for_test
from tenancy.kernel.tenant_manager import TenantManager
from tenancy.storage.preferences import PreferenceStore
from tenancy.storage.store import Document, RedisDocumentStore, StoreClient, WriteOp


class FaultyStore(StoreClient):
    """
    StoreClient wrapper that raises chosen errors for chosen paths.

    fail(method, prefix, error) makes every ``method`` call whose path (or,
    for batch_write, any op path) starts with ``prefix`` raise ``error``.
    """

    def __init__(self, inner: StoreClient) -> None:
        self.inner = inner
        self._rules: List[Tuple[str, str, Type[TenancyError]]] = []
        self.calls: List[Tuple[str, str]] = []

    def fail(self, method: str, prefix: str, error: Type[TenancyError]) -> None:
        self._rules.append((method, prefix, error))

    def heal(self) -> None:
        self._rules.clear()

    def _check(self, method: str, paths: Iterable[str]) -> None:
        paths = list(paths)
        for path in paths:
            self.calls.append((method, path))
        for rule_method, prefix, error in self._rules:
            if rule_method == method and any(p.startswith(prefix) for p in paths):
                raise error(f"injected {error.__name__} on {method} {paths[0]}")

    async def get_document(self, path: str) -> Optional[Document]:
        self._check("get", [path])
        return await self.inner.get_document(path)

    async def set_document(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        self._check("write", [path])
        await self.inner.set_document(path, data, merge=merge)

    async def update_document(self, path: str, data: Dict[str, Any]) -> None:
        self._check("write", [path])
        await self.inner.update_document(path, data)

    async def delete_document(self, path: str) -> None:
        self._check("write", [path])
        await self.inner.delete_document(path)

    async def query_collection(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> List[Document]:
        self._check("query", [collection])
        return await self.inner.query_collection(collection, filters)

    async def batch_write(self, ops: Iterable[WriteOp]) -> None:
        ops = list(ops)
        self._check("write", [op.path for op in ops])
        await self.inner.batch_write(ops)

    def allocate_id(self) -> str:
        return self.inner.allocate_id()


@pytest.fixture(autouse=True)
def reset_metrics():
    tenancy_metrics.reset()
    yield
    tenancy_metrics.reset()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def test_settings() -> TenancySettings:
    return TenancySettings(
        _env_file=None,
        CONSISTENCY_MAX_ATTEMPTS=3,
        CONSISTENCY_BACKOFF_BASE=0.001,
        CONSISTENCY_MAX_BACKOFF=0.01,
    )


@pytest.fixture
def mock_redis(clock, test_settings):
    """Provide a FakeRedis async instance and initialize PlatformContext."""
    r = fakeredis.aioredis.FakeRedis(decode_responses=True)
    inject_redis_for_test(r)

    # API routes call get_platform_context()
    init_platform_context(r, clock=clock, config=test_settings)
    return r


@pytest.fixture
def store(mock_redis) -> RedisDocumentStore:
    return RedisDocumentStore(mock_redis)


@pytest.fixture
def faulty_store(store) -> FaultyStore:
    return FaultyStore(store)


@pytest.fixture
def preferences(mock_redis) -> PreferenceStore:
    return PreferenceStore(mock_redis, ttl=3600)


@pytest.fixture
def manager(store, preferences, clock, test_settings) -> TenantManager:
    return TenantManager(store, preferences, clock=clock, config=test_settings)


@pytest.fixture
def faulty_manager(faulty_store, preferences, clock, test_settings) -> TenantManager:
    return TenantManager(faulty_store, preferences, clock=clock, config=test_settings)


@pytest.fixture
def alice() -> Principal:
    return Principal("u_alice", email="alice@example.com")


@pytest.fixture
def bob() -> Principal:
    return Principal("u_bob", email="bob@example.com")


@pytest.fixture
def seed_legacy(store):
    """Write legacy records for a principal: await seed_legacy(principal, {id: data, ...})."""

    async def _seed(principal: Principal, records: Dict[str, Dict[str, Any]]) -> None:
        for legacy_id, data in records.items():
            await store.set_document(legacy_record_path(principal.principal_id, legacy_id), data)

    return _seed
