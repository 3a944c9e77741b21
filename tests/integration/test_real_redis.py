# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.
"""Integration tests with REAL Redis."""

import asyncio

import pytest

from tenancy.core.errors import NotFoundError
from tenancy.core.principal import Principal
from tenancy.kernel.namespace import legacy_record_path, records_collection, tenant_path
from tenancy.kernel.tenant_manager import TenantManager
from tenancy.storage.preferences import PreferenceStore
from tenancy.storage.store import RedisDocumentStore, WriteOp

PRINCIPAL = Principal("u_integration")


class TestRealRedisStore:
    @pytest.mark.asyncio
    async def test_batch_is_atomic(self, real_redis):
        store = RedisDocumentStore(real_redis)
        with pytest.raises(NotFoundError):
            await store.batch_write([
                WriteOp.set("tenants/int_t1", {"displayName": "X"}),
                WriteOp.update("tenants/int_missing", {"displayName": "Y"}),
            ])
        assert await store.get_document("tenants/int_t1") is None

    @pytest.mark.asyncio
    async def test_concurrent_merges_all_land(self, real_redis):
        store = RedisDocumentStore(real_redis, max_batch_retries=20)
        await store.set_document("tenants/int_t2", {"displayName": "Merge"})

        await asyncio.gather(*(
            store.set_document("tenants/int_t2", {f"field{i}": i}, merge=True)
            for i in range(10)
        ))

        data = (await store.get_document("tenants/int_t2")).data
        assert all(data[f"field{i}"] == i for i in range(10))


class TestRealRedisManager:
    @pytest.mark.asyncio
    async def test_bootstrap_migrate_delete(self, real_redis, clock, test_settings):
        store = RedisDocumentStore(real_redis)
        manager = TenantManager(store, PreferenceStore(real_redis), clock=clock, config=test_settings)
        for i in range(3):
            await store.set_document(
                legacy_record_path(PRINCIPAL.principal_id, f"e{i}"), {"amount": i + 1},
            )

        selection = await manager.resolve_and_select_tenant(PRINCIPAL)
        records = await store.query_collection(records_collection(selection.tenant_id))
        assert len(records) == 3

        after = await manager.delete_tenant(PRINCIPAL, selection.tenant_id)
        assert after.tenant_id != selection.tenant_id
        assert await store.get_document(tenant_path(selection.tenant_id)) is None
