# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.

"""
Access Guard — Membership verification, self-heal and owner-only operations.

ensure_access(principal, tenant_id):
  1. tenant missing               -> NotFoundError
  2. membership row present       -> grant from the row
  3. row missing, principal is the tenant's creator
                                  -> synthesize owner membership, try to
                                     persist it, grant owner regardless
  4. otherwise                    -> DeniedError

Every membership write also writes the principal's reverse index entry
(principals/{pid}/tenants/{tid}) in the same batch, so discovery never
depends on client-side hints.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Tuple

from tenancy.access.permissions import accessible_modules, role_satisfies
from tenancy.core.errors import (
    StorePermissionError,
    TransientStoreError,
    access_denied,
    tenant_not_found,
)
from tenancy.core.metrics import tenancy_metrics
from tenancy.core.principal import Principal
from tenancy.kernel.clock import Clock
from tenancy.kernel.namespace import (
    member_path,
    members_collection,
    migration_state_path,
    principal_tenant_path,
    records_collection,
    tenant_path,
)
from tenancy.protocols.schema import AccessGrant, Membership, Role, Tenant, Tier
from tenancy.storage.store import StoreClient, WriteOp

logger = logging.getLogger("tenancy.guard")

MembershipListener = Callable[[List[str]], None]

_OPERATION_PHRASES = {
    "rename": "rename",
    "delete": "delete",
    "create_additional": "create additional companies alongside",
    "migrate": "run the legacy migration for",
}


def membership_ops(tenant_id: str, membership: Membership) -> List[WriteOp]:
    """Membership row plus its reverse index entry."""
    index_entry = {
        "tenantId": tenant_id,
        "role": membership.role,
    }
    if membership.joined_at is not None:
        index_entry["joinedAt"] = membership.joined_at.isoformat()
    return [
        WriteOp.set(member_path(tenant_id, membership.principal_id), membership.to_store()),
        WriteOp.set(principal_tenant_path(membership.principal_id, tenant_id), index_entry),
    ]


def grant_from(tenant_id: str, membership: Membership, self_healed: bool = False) -> AccessGrant:
    return AccessGrant(
        tenant_id=tenant_id,
        principal_id=membership.principal_id,
        role=membership.role,
        capabilities=accessible_modules(membership.role, membership.tier, membership.granted_modules),
        tier=membership.tier,
        self_healed=self_healed,
    )


class AccessGuard:
    """
    Verifies, repairs and mutates tenant memberships.

    on_membership_change is called with the principal ids whose memberships
    were written or removed, so cached discovery results can be evicted.
    """

    def __init__(
        self,
        store: StoreClient,
        clock: Optional[Clock] = None,
        on_membership_change: Optional[MembershipListener] = None,
    ) -> None:
        self._store = store
        self._clock = clock or Clock()
        self._on_membership_change = on_membership_change

    def _notify(self, principal_ids: Iterable[str]) -> None:
        if self._on_membership_change is not None:
            self._on_membership_change(list(principal_ids))

    # ── Reads ───────────────────────────────────────────────────

    async def get_tenant(self, tenant_id: str) -> Tenant:
        doc = await self._store.get_document(tenant_path(tenant_id))
        if doc is None:
            raise tenant_not_found(tenant_id)
        return Tenant.from_document(doc)

    async def read_membership(self, tenant_id: str, principal_id: str) -> Optional[Membership]:
        """The membership row, or None if absent or unreadable for this principal."""
        try:
            doc = await self._store.get_document(member_path(tenant_id, principal_id))
        except StorePermissionError:
            logger.info("Membership %s/%s not readable, treating as absent", tenant_id, principal_id)
            return None
        if doc is None:
            return None
        return Membership.from_document(doc)

    # ── Access checks ───────────────────────────────────────────

    async def ensure_access(self, principal: Principal, tenant_id: str) -> AccessGrant:
        pid = principal.principal_id
        tenant = await self.get_tenant(tenant_id)

        membership = await self.read_membership(tenant_id, pid)
        if membership is not None:
            return grant_from(tenant_id, membership)

        if tenant.is_created_by(pid):
            return await self._self_heal(tenant_id, pid)

        tenancy_metrics.inc("guard.denied")
        logger.warning(
            "Denied %s on tenant %s: no membership and not the creator",
            pid, tenant_id,
            extra={"tenant_id": tenant_id, "principal_id": pid},
        )
        raise access_denied(tenant_id)

    async def _self_heal(self, tenant_id: str, principal_id: str) -> AccessGrant:
        membership = Membership.owner(principal_id, joined_at=self._clock.now())
        try:
            await self._store.batch_write(membership_ops(tenant_id, membership))
            self._notify([principal_id])
            tenancy_metrics.inc("guard.self_heal")
            logger.info(
                "Creator %s had no membership in %s; owner membership restored",
                principal_id, tenant_id,
                extra={"tenant_id": tenant_id, "principal_id": principal_id},
            )
        except (TransientStoreError, StorePermissionError) as exc:
            # The creator keeps owner rights even if the repair write fails.
            tenancy_metrics.inc("guard.self_heal_failed")
            logger.warning(
                "Could not persist owner membership for creator %s in %s: %s",
                principal_id, tenant_id, exc,
                extra={"tenant_id": tenant_id, "principal_id": principal_id},
            )
        return grant_from(tenant_id, membership, self_healed=True)

    async def require_owner(
        self,
        principal: Principal,
        tenant_id: str,
        operation: str,
    ) -> Tuple[Tenant, AccessGrant]:
        """ensure_access() plus the owner role (creators always qualify)."""
        grant = await self.ensure_access(principal, tenant_id)
        tenant = await self.get_tenant(tenant_id)
        if role_satisfies(grant.role, operation) or tenant.is_created_by(principal.principal_id):
            return tenant, grant

        tenancy_metrics.inc("guard.denied")
        logger.warning(
            "Denied %s for %s on tenant %s (role=%s)",
            operation, principal.principal_id, tenant_id, grant.role,
        )
        raise access_denied(tenant_id, _OPERATION_PHRASES.get(operation, operation))

    # ── Membership mutations ────────────────────────────────────

    async def grant_membership(
        self,
        tenant_id: str,
        principal_id: str,
        role: str = Role.EMPLOYEE.value,
        modules: Optional[Iterable[str]] = None,
        tier: str = Tier.LITE.value,
        joined_at: Optional[datetime] = None,
    ) -> Membership:
        """Create or replace a membership (and its reverse index entry) atomically."""
        await self.get_tenant(tenant_id)
        membership = Membership(
            principal_id=principal_id,
            role=role,
            granted_modules=list(modules or []),
            tier=tier,
            joined_at=joined_at or self._clock.now(),
        )
        await self._store.batch_write(membership_ops(tenant_id, membership))
        self._notify([principal_id])
        logger.info("Granted %s role %s in tenant %s", principal_id, role, tenant_id)
        return membership

    async def revoke_membership(self, tenant_id: str, principal_id: str) -> None:
        await self._store.batch_write([
            WriteOp.delete(member_path(tenant_id, principal_id)),
            WriteOp.delete(principal_tenant_path(principal_id, tenant_id)),
        ])
        self._notify([principal_id])
        logger.info("Revoked %s from tenant %s", principal_id, tenant_id)

    async def member_ids(self, tenant_id: str) -> List[str]:
        """Principal ids holding a membership row. Unreadable rows yield []."""
        try:
            members = await self._store.query_collection(members_collection(tenant_id))
        except (TransientStoreError, StorePermissionError) as exc:
            logger.warning("Members of %s unreadable: %s", tenant_id, exc)
            return []
        return [doc.id for doc in members]

    async def delete_tenant_cascade(self, tenant_id: str) -> List[str]:
        """
        Delete the tenant and everything scoped to it in one atomic batch.

        Returns the principal ids whose memberships were removed.
        """
        tenant = await self.get_tenant(tenant_id)
        tid = tenant.id
        members = await self._store.query_collection(members_collection(tid))
        records = await self._store.query_collection(records_collection(tid))

        member_ids = [doc.id for doc in members]
        index_owners = set(member_ids)
        if tenant.created_by:
            index_owners.add(tenant.created_by)

        ops = [WriteOp.delete(doc.path) for doc in members]
        ops += [WriteOp.delete(principal_tenant_path(pid, tid)) for pid in sorted(index_owners)]
        ops += [WriteOp.delete(doc.path) for doc in records]
        ops.append(WriteOp.delete(migration_state_path(tid)))
        ops.append(WriteOp.delete(tenant_path(tid)))

        await self._store.batch_write(ops)
        tenancy_metrics.inc("tenant.deleted")
        logger.info(
            "Deleted tenant %s (%d members, %d records) in one batch",
            tid, len(members), len(records),
            extra={"tenant_id": tid},
        )
        return member_ids
