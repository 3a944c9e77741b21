# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.
"""Unit tests for AccessGuard: access checks, self-heal, owner gate, cascade delete."""

import pytest

from tenancy.access.guard import AccessGuard
from tenancy.core.errors import DeniedError, NotFoundError, StorePermissionError, TransientStoreError
from tenancy.core.metrics import tenancy_metrics
from tenancy.kernel.namespace import (
    member_path,
    migration_state_path,
    principal_tenant_path,
    record_path,
    tenant_path,
)


async def _tenant(store, tid="t1", creator="u_alice", name="Acme"):
    await store.set_document(tenant_path(tid), {"displayName": name, "createdBy": creator})


class TestEnsureAccess:
    @pytest.mark.asyncio
    async def test_missing_tenant(self, store, clock, alice):
        with pytest.raises(NotFoundError) as exc_info:
            await AccessGuard(store, clock).ensure_access(alice, "t_missing")
        assert "no longer exists" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_grant_from_membership(self, store, clock, bob):
        await _tenant(store)
        guard = AccessGuard(store, clock)
        await guard.grant_membership("t1", "u_bob", role="manager", tier="business")
        grant = await guard.ensure_access(bob, "t1")
        assert grant.role == "manager"
        assert "marketing" in grant.capabilities
        assert not grant.self_healed

    @pytest.mark.asyncio
    async def test_stranger_denied(self, store, clock, bob):
        await _tenant(store)
        with pytest.raises(DeniedError):
            await AccessGuard(store, clock).ensure_access(bob, "t1")
        assert tenancy_metrics.get_counter("guard.denied") == 1

    @pytest.mark.asyncio
    async def test_creator_self_heals(self, store, clock, alice):
        await _tenant(store)
        grant = await AccessGuard(store, clock).ensure_access(alice, "t1")
        assert grant.is_owner
        assert grant.self_healed

        member = await store.get_document(member_path("t1", "u_alice"))
        assert member.data["role"] == "owner"
        assert member.data["tier"] == "business"
        index = await store.get_document(principal_tenant_path("u_alice", "t1"))
        assert index.data["tenantId"] == "t1"

        again = await AccessGuard(store, clock).ensure_access(alice, "t1")
        assert again.is_owner and not again.self_healed

    @pytest.mark.asyncio
    async def test_self_heal_write_failure_still_grants(self, store, faulty_store, clock, alice):
        await _tenant(store)
        faulty_store.fail("write", "tenants/t1/members", StorePermissionError)
        grant = await AccessGuard(faulty_store, clock).ensure_access(alice, "t1")
        assert grant.is_owner and grant.self_healed
        assert await store.get_document(member_path("t1", "u_alice")) is None
        assert tenancy_metrics.get_counter("guard.self_heal_failed") == 1

    @pytest.mark.asyncio
    async def test_unreadable_membership_counts_as_absent(self, store, faulty_store, clock, bob):
        await _tenant(store)
        await AccessGuard(store, clock).grant_membership("t1", "u_bob")
        faulty_store.fail("get", "tenants/t1/members", StorePermissionError)
        with pytest.raises(DeniedError):
            await AccessGuard(faulty_store, clock).ensure_access(bob, "t1")

    @pytest.mark.asyncio
    async def test_transient_tenant_read_propagates(self, store, faulty_store, clock, alice):
        await _tenant(store)
        faulty_store.fail("get", "tenants/t1", TransientStoreError)
        with pytest.raises(TransientStoreError):
            await AccessGuard(faulty_store, clock).ensure_access(alice, "t1")


class TestRequireOwner:
    @pytest.mark.asyncio
    async def test_owner_passes(self, store, clock, alice):
        await _tenant(store)
        tenant, grant = await AccessGuard(store, clock).require_owner(alice, "t1", "rename")
        assert tenant.display_name == "Acme"
        assert grant.is_owner

    @pytest.mark.asyncio
    async def test_demoted_creator_still_passes(self, store, clock, alice):
        await _tenant(store)
        guard = AccessGuard(store, clock)
        await guard.grant_membership("t1", "u_alice", role="employee")
        _, grant = await guard.require_owner(alice, "t1", "delete")
        assert grant.role == "employee"

    @pytest.mark.asyncio
    async def test_manager_denied_naming_operation(self, store, clock, bob):
        await _tenant(store)
        guard = AccessGuard(store, clock)
        await guard.grant_membership("t1", "u_bob", role="manager")
        with pytest.raises(DeniedError) as exc_info:
            await guard.require_owner(bob, "t1", "rename")
        assert exc_info.value.details["operation"] == "rename"


class TestMembershipMutations:
    @pytest.mark.asyncio
    async def test_grant_requires_tenant(self, store, clock):
        with pytest.raises(NotFoundError):
            await AccessGuard(store, clock).grant_membership("t_missing", "u_bob")

    @pytest.mark.asyncio
    async def test_revoke_removes_row_and_index(self, store, clock, bob):
        await _tenant(store)
        guard = AccessGuard(store, clock)
        await guard.grant_membership("t1", "u_bob")
        await guard.revoke_membership("t1", "u_bob")
        assert await store.get_document(member_path("t1", "u_bob")) is None
        assert await store.get_document(principal_tenant_path("u_bob", "t1")) is None
        with pytest.raises(DeniedError):
            await guard.ensure_access(bob, "t1")

    @pytest.mark.asyncio
    async def test_membership_writes_notify_listener(self, store, clock, alice):
        await _tenant(store)
        changed = []
        guard = AccessGuard(store, clock, on_membership_change=changed.append)
        await guard.grant_membership("t1", "u_bob")
        await guard.revoke_membership("t1", "u_bob")
        await guard.ensure_access(alice, "t1")  # creator self-heal
        assert changed == [["u_bob"], ["u_bob"], ["u_alice"]]

    @pytest.mark.asyncio
    async def test_member_ids(self, store, clock):
        await _tenant(store)
        guard = AccessGuard(store, clock)
        await guard.grant_membership("t1", "u_bob")
        await guard.grant_membership("t1", "u_carol")
        assert await guard.member_ids("t1") == ["u_bob", "u_carol"]

    @pytest.mark.asyncio
    async def test_member_ids_unreadable_is_empty(self, store, faulty_store, clock):
        await _tenant(store)
        faulty_store.fail("query", "tenants/t1/members", StorePermissionError)
        assert await AccessGuard(faulty_store, clock).member_ids("t1") == []


class TestDeleteCascade:
    @pytest.mark.asyncio
    async def test_everything_removed(self, store, clock):
        await _tenant(store)
        guard = AccessGuard(store, clock)
        await guard.grant_membership("t1", "u_alice", role="owner")
        await guard.grant_membership("t1", "u_bob")
        await store.set_document(record_path("t1", "r1"), {"amount": 1.0})
        await store.set_document(record_path("t1", "r2"), {"amount": 2.0})
        await store.set_document(migration_state_path("t1"), {"expensesMigrated": True})
        await _tenant(store, tid="t2")

        removed = await guard.delete_tenant_cascade("t1")

        assert removed == ["u_alice", "u_bob"]
        assert await store.get_document(tenant_path("t1")) is None
        assert await store.query_collection("tenants/t1/members") == []
        assert await store.query_collection("tenants/t1/records") == []
        assert await store.get_document(migration_state_path("t1")) is None
        assert await store.get_document(principal_tenant_path("u_bob", "t1")) is None
        assert await store.get_document(tenant_path("t2")) is not None
        assert tenancy_metrics.get_counter("tenant.deleted") == 1

    @pytest.mark.asyncio
    async def test_failed_batch_deletes_nothing(self, store, faulty_store, clock):
        await _tenant(store)
        await AccessGuard(store, clock).grant_membership("t1", "u_bob")
        faulty_store.fail("write", "tenants/t1", TransientStoreError)
        with pytest.raises(TransientStoreError):
            await AccessGuard(faulty_store, clock).delete_tenant_cascade("t1")
        assert await store.get_document(tenant_path("t1")) is not None
        assert await store.get_document(member_path("t1", "u_bob")) is not None
