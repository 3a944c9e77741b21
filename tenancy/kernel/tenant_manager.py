# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.

"""
Tenant Manager — Caller-facing API over discovery, selection, access and migration.

Handles:
  - Resolving and selecting the current tenant at sign-in
  - Switching, creating, renaming and deleting tenants
  - Default-tenant bootstrap (plus its one-time legacy migration)
  - Per-principal sessions: each carries the current Selection and a
    generation. sign_out() drops the session, so an operation that started
    before it leaves the new session untouched and returns None.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Tuple

from tenancy.access.guard import AccessGuard, membership_ops
from tenancy.access.membership_index import MembershipIndex, build_view
from tenancy.access.selector import TenantSelector, rank_tenants, select_current
from tenancy.core.config import TenancySettings, settings as default_settings
from tenancy.core.errors import (
    DeniedError,
    InvariantViolation,
    NotFoundError,
    StorePermissionError,
    TenancyError,
    TransientStoreError,
    ValidationError,
)
from tenancy.core.metrics import tenancy_metrics
from tenancy.core.principal import Principal
from tenancy.kernel.cache import BoundedCache
from tenancy.kernel.clock import Clock
from tenancy.kernel.namespace import TENANTS, member_path, tenant_path
from tenancy.migration.engine import MigrationEngine
from tenancy.protocols.schema import (
    AccessGrant,
    Membership,
    MigrationResult,
    MigrationVerification,
    Selection,
    Tenant,
    TenantView,
)
from tenancy.resilience.retry import RetryPolicy, wait_until_visible
from tenancy.storage.preferences import PreferenceStore
from tenancy.storage.store import StoreClient, WriteOp

logger = logging.getLogger("tenancy.manager")


@dataclass
class PrincipalSession:
    generation: int = 0
    current: Optional[Selection] = None


class TenantManager:
    """
    One instance serves every principal of the process.

    Components are built from the store, preference store and clock; the
    remaining knobs come from TenancySettings.
    """

    def __init__(
        self,
        store: StoreClient,
        preferences: PreferenceStore,
        clock: Optional[Clock] = None,
        config: Optional[TenancySettings] = None,
        cache: Optional[BoundedCache] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._config = config or default_settings
        self._store = store
        self._preferences = preferences
        self._clock = clock or Clock()
        self._retry_policy = retry_policy or RetryPolicy(
            max_attempts=self._config.CONSISTENCY_MAX_ATTEMPTS,
            backoff_base=self._config.CONSISTENCY_BACKOFF_BASE,
            max_backoff=self._config.CONSISTENCY_MAX_BACKOFF,
        )

        if cache is None:
            cache = BoundedCache(
                maxsize=self._config.TENANT_CACHE_SIZE,
                ttl=self._config.TENANT_CACHE_TTL,
                clock=self._clock,
            )

        self.guard = AccessGuard(store, self._clock, on_membership_change=self._invalidate_principals)
        self.selector = TenantSelector(preferences)
        self.migration = MigrationEngine(store, self._clock, default_vat=self._config.DEFAULT_VAT_RATE)
        self.index = MembershipIndex(
            store,
            preferences,
            cache=cache,
            large_count_warning=self._config.LARGE_TENANT_COUNT_WARNING,
            bootstrapper=self.bootstrap_default_tenant,
        )

        self._sessions: Dict[str, PrincipalSession] = {}
        self._generations = itertools.count(1)
        # pid -> (lock, number of callers holding or awaiting it)
        self._bootstrap_locks: Dict[str, Tuple[asyncio.Lock, int]] = {}

    # ── Sessions ────────────────────────────────────────────────

    def _session(self, principal: Principal) -> PrincipalSession:
        session = self._sessions.get(principal.principal_id)
        if session is None:
            # Generations are unique per manager, so a session recreated
            # after sign_out never matches one captured before it.
            session = PrincipalSession(generation=next(self._generations))
            self._sessions[principal.principal_id] = session
        return session

    def _is_stale(self, principal: Principal, generation: int, operation: str) -> bool:
        session = self._sessions.get(principal.principal_id)
        if session is not None and session.generation == generation:
            return False
        tenancy_metrics.inc("session.discarded")
        logger.info(
            "Discarding %s result for %s: signed out while in flight",
            operation, principal.principal_id,
        )
        return True

    def current(self, principal: Principal) -> Optional[Selection]:
        session = self._sessions.get(principal.principal_id)
        return session.current if session is not None else None

    def sign_out(self, principal: Principal) -> None:
        session = self._sessions.pop(principal.principal_id, None)
        self.index.invalidate(principal.principal_id)
        logger.info(
            "Signed out %s (generation %s)",
            principal.principal_id, session.generation if session is not None else "-",
        )

    def _invalidate_principals(self, principal_ids: Iterable[str]) -> None:
        for pid in principal_ids:
            self.index.invalidate(pid)

    # ── Resolve / select ────────────────────────────────────────

    async def resolve_and_select_tenant(self, principal: Principal) -> Optional[Selection]:
        """
        Discover, select and verify the current tenant.

        Candidates that fail the access check (deleted or revoked since
        discovery) are dropped and selection re-runs; when none remain the
        default tenant is bootstrapped.
        """
        pid = principal.principal_id
        session = self._session(principal)
        generation = session.generation
        previous_id = session.current.tenant_id if session.current is not None else None
        stored = await self.selector.stored_preference(principal)

        candidates = await self.index.resolve_tenants(principal)
        bootstrapped = False
        while True:
            if not candidates:
                if bootstrapped:
                    raise InvariantViolation(
                        "Bootstrapped tenant is not accessible to its creator",
                        details={"principal_id": pid},
                    )
                candidates = [await self.bootstrap_default_tenant(principal)]
                bootstrapped = True

            chosen = select_current(candidates, stored, previous_id)
            view = next(v for v in candidates if v.id == chosen)
            try:
                grant = await self.guard.ensure_access(principal, chosen)
                break
            except (DeniedError, NotFoundError) as exc:
                logger.info("Dropping candidate %s for %s: %s", chosen, pid, exc.message)
                candidates = [v for v in candidates if v.id != chosen]
                self.index.invalidate(pid)
                await self._forget(pid, chosen)

        if grant.self_healed:
            self.index.invalidate(pid)
        if self._is_stale(principal, generation, "resolve_and_select_tenant"):
            return None

        selection = _selection(view.display_name, grant)
        self._session(principal).current = selection
        if chosen != stored:
            await self.selector.remember(principal, chosen)
        logger.info(
            "Selected tenant %s for %s (role=%s)", selection.tenant_id, pid, selection.role,
            extra={"tenant_id": selection.tenant_id, "principal_id": pid},
        )
        return selection

    async def list_tenants(self, principal: Principal) -> List[TenantView]:
        resolved = await self.index.resolve_tenants(principal, allow_bootstrap=False)
        current = self.current(principal)
        return rank_tenants(resolved, current.tenant_id if current else None)

    async def switch_tenant(self, principal: Principal, tenant_id: str) -> Optional[AccessGrant]:
        """DeniedError / NotFoundError propagate and leave the selection untouched."""
        generation = self._session(principal).generation
        grant = await self.guard.ensure_access(principal, tenant_id)
        tenant = await self.guard.get_tenant(tenant_id)
        if grant.self_healed:
            self.index.invalidate(principal.principal_id)
        if self._is_stale(principal, generation, "switch_tenant"):
            return None

        self._session(principal).current = _selection(tenant.display_name, grant)
        await self.selector.remember(principal, tenant_id)
        logger.info("Switched %s to tenant %s", principal.principal_id, tenant_id)
        return grant

    # ── Create / rename / delete ────────────────────────────────

    async def create_tenant(
        self,
        principal: Principal,
        name: str,
        settings: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        """
        Create an additional (empty) tenant owned by the principal and select it.

        Principals that already belong to a tenant must be its owner.
        Legacy records are never migrated into tenants created here.
        """
        display_name = (name or "").strip()
        if not display_name:
            raise ValidationError("Company name must not be empty", details={"field": "name"})

        generation = self._session(principal).generation
        resolved = await self.index.resolve_tenants(principal, allow_bootstrap=False)
        if resolved:
            anchor = await self._anchor_tenant(principal, resolved)
            await self.guard.require_owner(principal, anchor, "create_additional")

        view = await self._create_tenant_records(principal, display_name, settings)
        tenancy_metrics.inc("tenant.created")
        if self._is_stale(principal, generation, "create_tenant"):
            return None

        self._session(principal).current = Selection(
            tenant_id=view.id,
            display_name=view.display_name,
            role=view.role,
            capabilities=list(view.capabilities),
            tier=view.tier,
        )
        await self.selector.remember(principal, view.id)
        return view.id

    async def rename_tenant(self, principal: Principal, tenant_id: str, new_name: str) -> Optional[Tenant]:
        display_name = (new_name or "").strip()
        if not display_name:
            raise ValidationError("Company name must not be empty", details={"field": "name"})

        generation = self._session(principal).generation
        await self.guard.require_owner(principal, tenant_id, "rename")
        await self._store.update_document(
            tenant_path(tenant_id),
            {"displayName": display_name, "updatedAt": self._clock.timestamp()},
        )
        self.index.invalidate(principal.principal_id)
        self._invalidate_principals(await self.guard.member_ids(tenant_id))
        tenancy_metrics.inc("tenant.renamed")
        logger.info("Renamed tenant %s to %r", tenant_id, display_name, extra={"tenant_id": tenant_id})

        tenant = await self.guard.get_tenant(tenant_id)
        if self._is_stale(principal, generation, "rename_tenant"):
            return None
        session = self._session(principal)
        if session.current is not None and session.current.tenant_id == tenant_id:
            session.current = session.current.model_copy(update={"display_name": tenant.display_name})
        return tenant

    async def delete_tenant(self, principal: Principal, tenant_id: str) -> Optional[Selection]:
        """
        Owner-only cascade delete.

        Returns the principal's current selection afterwards; if the deleted
        tenant was current, a new one is resolved (bootstrapping if none remain).
        """
        pid = principal.principal_id
        generation = self._session(principal).generation
        await self.guard.require_owner(principal, tenant_id, "delete")
        removed = await self.guard.delete_tenant_cascade(tenant_id)

        for member_id in set(removed) | {pid}:
            self.index.invalidate(member_id)
        await self._forget(pid, tenant_id)

        if self._is_stale(principal, generation, "delete_tenant"):
            return None
        session = self._session(principal)
        if session.current is None or session.current.tenant_id == tenant_id:
            session.current = None
            return await self.resolve_and_select_tenant(principal)
        return session.current

    # ── Migration ───────────────────────────────────────────────

    async def run_legacy_migration(self, principal: Principal, tenant_id: str) -> Optional[MigrationResult]:
        generation = self._session(principal).generation
        await self.guard.require_owner(principal, tenant_id, "migrate")
        result = await self.migration.migrate_legacy(principal, tenant_id)
        if self._is_stale(principal, generation, "run_legacy_migration"):
            return None
        return result

    async def verify_migration(self, principal: Principal, tenant_id: str) -> MigrationVerification:
        await self.guard.require_owner(principal, tenant_id, "migrate")
        return await self.migration.verify_migration_state(principal, tenant_id)

    # ── Bootstrap ───────────────────────────────────────────────

    async def bootstrap_default_tenant(self, principal: Principal) -> TenantView:
        """
        Create the principal's default tenant and migrate legacy records into it.

        Serialised per principal; a tenant the principal created meanwhile is
        returned instead of creating another. Migration failures are logged
        and never block the bootstrap.
        """
        pid = principal.principal_id
        async with self._bootstrap_lock(pid):
            existing = await self._existing_created_tenant(pid)
            if existing is not None:
                logger.info("Bootstrap for %s found existing tenant %s", pid, existing.id)
                return existing

            view = await self._create_tenant_records(
                principal, self._config.DEFAULT_TENANT_NAME, self._default_tenant_settings(),
            )
            logger.info(
                "Bootstrapped default tenant %s for %s", view.id, pid,
                extra={"tenant_id": view.id, "principal_id": pid},
            )
            try:
                result = await self.migration.migrate_legacy(principal, view.id)
                if result.partial_failure:
                    logger.warning(
                        "Bootstrap migration into %s left %d of %d records behind",
                        view.id, result.error_count, result.source_count,
                    )
            except TenancyError as exc:
                logger.error(
                    "Bootstrap migration into %s failed: [%s] %s", view.id, exc.code, exc.message,
                    extra={"tenant_id": view.id, "principal_id": pid},
                )
            return view

    # ── Internals ───────────────────────────────────────────────

    @asynccontextmanager
    async def _bootstrap_lock(self, pid: str) -> AsyncIterator[None]:
        """Per-principal lock, dropped once nobody holds or awaits it."""
        lock, users = self._bootstrap_locks.get(pid, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._bootstrap_locks[pid] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._bootstrap_locks[pid]
            if users <= 1:
                del self._bootstrap_locks[pid]
            else:
                self._bootstrap_locks[pid] = (lock, users - 1)

    async def _existing_created_tenant(self, pid: str) -> Optional[TenantView]:
        try:
            docs = await self._store.query_collection(TENANTS, {"createdBy": pid})
        except StorePermissionError as exc:
            logger.warning("Cannot re-check created tenants for %s: %s", pid, exc)
            return None
        if not docs:
            return None
        tenant = Tenant.from_document(docs[0])
        membership = await self.guard.read_membership(tenant.id, pid) or Membership.owner(pid)
        return build_view(tenant, membership, is_creator=True)

    async def _create_tenant_records(
        self,
        principal: Principal,
        display_name: str,
        settings: Optional[Dict[str, Any]],
    ) -> TenantView:
        """Tenant + owner membership + reverse index in one batch, then wait until readable."""
        pid = principal.principal_id
        tenant_id = self._store.allocate_id()
        if await self._store.get_document(tenant_path(tenant_id)) is not None:
            raise InvariantViolation(
                f"Allocated tenant id {tenant_id} already exists",
                details={"tenant_id": tenant_id},
            )

        now = self._clock.now()
        tenant = Tenant(
            id=tenant_id,
            display_name=display_name,
            created_by=pid,
            created_at=now,
            updated_at=now,
            settings=settings if settings is not None else self._default_tenant_settings(),
        )
        membership = Membership.owner(pid, joined_at=now)
        await self._store.batch_write(
            [WriteOp.set(tenant_path(tenant_id), tenant.to_store())] + membership_ops(tenant_id, membership)
        )

        await wait_until_visible(
            lambda: self._store.get_document(member_path(tenant_id, pid)),
            f"Owner membership of tenant {tenant_id}",
            self._retry_policy,
        )
        self.index.invalidate(pid)
        return build_view(tenant, membership, is_creator=True)

    async def _anchor_tenant(self, principal: Principal, resolved: List[TenantView]) -> str:
        """The tenant whose owner role authorises creating another one."""
        current = self.current(principal)
        ids = {v.id for v in resolved}
        if current is not None and current.tenant_id in ids:
            return current.tenant_id
        stored = await self.selector.stored_preference(principal)
        return select_current(resolved, stored, None)

    def _default_tenant_settings(self) -> Dict[str, Any]:
        return {
            "country": self._config.DEFAULT_COUNTRY,
            "currency": self._config.DEFAULT_CURRENCY,
            "taxRules": {
                "rates": list(self._config.DEFAULT_TAX_RATES),
                "country": self._config.DEFAULT_COUNTRY,
            },
        }

    async def _forget(self, pid: str, tenant_id: str) -> None:
        try:
            await self._preferences.forget_tenant(pid, tenant_id)
        except (TransientStoreError, StorePermissionError) as exc:
            logger.warning("Could not drop tenant hint %s for %s: %s", tenant_id, pid, exc)


def _selection(display_name: str, grant: AccessGrant) -> Selection:
    return Selection(
        tenant_id=grant.tenant_id,
        display_name=display_name,
        role=grant.role,
        capabilities=list(grant.capabilities),
        tier=grant.tier,
    )
