# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.

"""
Membership Index — Discover every tenant a principal may act on.

Two sources are combined:
  1. tenants the principal created (query on ``createdBy``), always included
  2. candidate ids from the reverse index, the hint set and the stored
     preference, each verified against the principal's Membership row

Discovery is read-only (apart from the optional bootstrap) and never fails
because one source is unreadable: permission and transient errors simply
hide the affected tenant. Results are memoised per principal in a
BoundedCache that every mutation evicts.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

from tenancy.access.permissions import accessible_modules
from tenancy.core.errors import (
    InvariantViolation,
    NotFoundError,
    StorePermissionError,
    TransientStoreError,
)
from tenancy.core.metrics import tenancy_metrics
from tenancy.core.principal import Principal
from tenancy.kernel.cache import BoundedCache
from tenancy.kernel.namespace import (
    TENANTS,
    member_path,
    principal_tenants_collection,
    tenant_path,
)
from tenancy.protocols.schema import Membership, Tenant, TenantView
from tenancy.storage.preferences import PreferenceStore
from tenancy.storage.store import Document, StoreClient

logger = logging.getLogger("tenancy.discovery")

Bootstrapper = Callable[[Principal], Awaitable[Optional[TenantView]]]

_SKIPPABLE = (StorePermissionError, TransientStoreError)
_PROBE_SKIPPABLE = (NotFoundError,) + _SKIPPABLE


def build_view(tenant: Tenant, membership: Membership, is_creator: bool) -> TenantView:
    """Decorate a tenant with the principal's standing in it."""
    return TenantView(
        **tenant.model_dump(),
        role=membership.role,
        capabilities=accessible_modules(membership.role, membership.tier, membership.granted_modules),
        tier=membership.tier,
        joined_at=membership.joined_at,
        is_creator=is_creator,
    )


class MembershipIndex:
    """resolve_tenants() with per-principal memoisation."""

    def __init__(
        self,
        store: StoreClient,
        preferences: PreferenceStore,
        cache: Optional[BoundedCache] = None,
        large_count_warning: int = 10,
        bootstrapper: Optional[Bootstrapper] = None,
    ) -> None:
        self._store = store
        self._preferences = preferences
        # An empty BoundedCache is falsy, so test against None explicitly.
        self._cache: BoundedCache = cache if cache is not None else BoundedCache()
        self._large_count_warning = large_count_warning
        self._bootstrapper = bootstrapper

    def set_bootstrapper(self, bootstrapper: Optional[Bootstrapper]) -> None:
        self._bootstrapper = bootstrapper

    def invalidate(self, principal_id: str) -> None:
        if self._cache.evict(principal_id):
            logger.debug("Evicted cached tenants for %s", principal_id)

    async def resolve_tenants(
        self,
        principal: Principal,
        allow_bootstrap: bool = True,
        use_cache: bool = True,
    ) -> List[TenantView]:
        pid = principal.principal_id
        if use_cache:
            cached = self._cache.get(pid)
            if cached is not None:
                return list(cached)

        found: Dict[str, TenantView] = {}

        # 1. Created tenants
        for doc in self._dedupe(await self._created_tenant_docs(pid), "createdBy query", pid):
            tenant = Tenant.from_document(doc)
            found[tenant.id] = build_view(tenant, await self._creator_membership(tenant.id, pid), True)

        # 2. Verified candidates
        for tenant_id in await self._candidate_ids(pid):
            if tenant_id in found:
                continue
            view = await self._probe(pid, tenant_id)
            if view is not None:
                found[tenant_id] = view

        views = list(found.values())

        # 3. Bootstrap
        if not views and allow_bootstrap and self._bootstrapper is not None:
            logger.info("No tenants resolved for %s, bootstrapping default", pid)
            tenancy_metrics.inc("discovery.bootstrap")
            view = await self._bootstrapper(principal)
            if view is not None:
                views = [view]

        if len(views) > self._large_count_warning:
            tenancy_metrics.inc("discovery.large_tenant_count")
            logger.warning(
                "Principal %s resolves %d tenants (threshold %d), possible duplicate creation",
                pid, len(views), self._large_count_warning,
                extra={"principal_id": pid},
            )

        tenancy_metrics.inc("discovery.resolved")
        if views:
            self._cache.set(pid, list(views))
        return views

    # ── Sources ─────────────────────────────────────────────────

    async def _created_tenant_docs(self, pid: str) -> List[Document]:
        try:
            return await self._store.query_collection(TENANTS, {"createdBy": pid})
        except _SKIPPABLE as exc:
            logger.warning("Created-tenant query failed for %s: %s", pid, exc)
            return []

    async def _creator_membership(self, tenant_id: str, pid: str) -> Membership:
        """The creator's Membership row, or implicit owner defaults."""
        try:
            doc = await self._store.get_document(member_path(tenant_id, pid))
        except _SKIPPABLE as exc:
            logger.info("Creator membership %s/%s unreadable (%s), using owner defaults", tenant_id, pid, exc)
            doc = None
        if doc is None:
            return Membership.owner(pid)
        return Membership.from_document(doc)

    async def _candidate_ids(self, pid: str) -> List[str]:
        candidates: List[str] = []

        try:
            index_docs = await self._store.query_collection(principal_tenants_collection(pid))
            candidates.extend(doc.id for doc in self._dedupe(index_docs, "reverse index", pid))
        except _SKIPPABLE as exc:
            logger.warning("Reverse index unreadable for %s: %s", pid, exc)

        try:
            candidates.extend(await self._preferences.list_hints(pid))
            stored = await self._preferences.get_preference(pid)
            if stored:
                candidates.append(stored)
        except _SKIPPABLE as exc:
            logger.warning("Selection hints unavailable for %s: %s", pid, exc)

        return list(dict.fromkeys(candidates))

    async def _probe(self, pid: str, tenant_id: str) -> Optional[TenantView]:
        """Include a candidate only if both Membership and Tenant are readable."""
        try:
            member_doc = await self._store.get_document(member_path(tenant_id, pid))
            if member_doc is None:
                return self._excluded(pid, tenant_id, "no membership")
            tenant_doc = await self._store.get_document(tenant_path(tenant_id))
            if tenant_doc is None:
                return self._excluded(pid, tenant_id, "tenant missing")
        except _PROBE_SKIPPABLE as exc:
            return self._excluded(pid, tenant_id, exc.code)

        tenant = Tenant.from_document(tenant_doc)
        return build_view(tenant, Membership.from_document(member_doc), tenant.is_created_by(pid))

    @staticmethod
    def _excluded(pid: str, tenant_id: str, reason: str) -> None:
        tenancy_metrics.inc("discovery.excluded")
        logger.debug("Candidate %s excluded for %s: %s", tenant_id, pid, reason)
        return None

    @staticmethod
    def _dedupe(docs: Iterable[Document], source: str, pid: str) -> List[Document]:
        seen = set()
        unique = []
        for doc in docs:
            if doc.id in seen:
                violation = InvariantViolation(
                    f"Duplicate tenant id {doc.id} from {source}",
                    details={"tenant_id": doc.id, "principal_id": pid, "source": source},
                )
                tenancy_metrics.inc("invariant.violation")
                logger.error("%s", violation.message, extra={"principal_id": pid})
                continue
            seen.add(doc.id)
            unique.append(doc)
        return unique
