# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.

"""
Migration Engine — One-time, resumable copy of legacy records into a tenant.

verify_migration_state() compares the tenant's MigrationState flag with what
the store actually holds:

    flag unset                                   -> not_started
    flag set, no migrated records, no legacy     -> empty_source
    flag set, no migrated records, legacy exists -> stale_flag
    flag set, records present, errorCount > 0    -> partial
    flag set, records present                    -> complete

migrate_legacy() skips complete/empty tenants, repairs a stale flag, resumes
a partial run and writes every legacy record under a derived id, so running
it any number of times never duplicates data. Per-record failures are
counted and logged, never raised.
"""

from __future__ import annotations

import logging
from typing import Optional

from tenancy.core.errors import TenancyError
from tenancy.core.metrics import tenancy_metrics
from tenancy.core.principal import Principal
from tenancy.kernel.clock import Clock
from tenancy.kernel.namespace import (
    legacy_records_collection,
    migration_state_path,
    record_path,
    records_collection,
)
from tenancy.migration.transform import (
    DEFAULT_VAT,
    derive_record_id,
    transform_legacy_record,
)
from tenancy.protocols.schema import (
    MigrationResult,
    MigrationState,
    MigrationStatus,
    MigrationVerification,
)
from tenancy.storage.store import StoreClient

logger = logging.getLogger("tenancy.migration")


class MigrationEngine:
    """Moves a principal's legacy records into one tenant."""

    def __init__(
        self,
        store: StoreClient,
        clock: Optional[Clock] = None,
        default_vat: int = DEFAULT_VAT,
    ) -> None:
        self._store = store
        self._clock = clock or Clock()
        self._default_vat = default_vat

    async def read_state(self, tenant_id: str) -> Optional[MigrationState]:
        doc = await self._store.get_document(migration_state_path(tenant_id))
        return MigrationState.from_document(doc) if doc is not None else None

    async def verify_migration_state(
        self,
        principal: Principal,
        tenant_id: str,
    ) -> MigrationVerification:
        state = await self.read_state(tenant_id)
        records = await self._store.query_collection(records_collection(tenant_id))
        migrated = sum(1 for doc in records if doc.data.get("migratedFrom"))

        if state is None or not state.expenses_migrated:
            status = MigrationStatus.NOT_STARTED
        elif migrated == 0:
            legacy = await self._store.query_collection(
                legacy_records_collection(principal.principal_id)
            )
            status = MigrationStatus.STALE_FLAG if legacy else MigrationStatus.EMPTY_SOURCE
        elif state.error_count > 0:
            status = MigrationStatus.PARTIAL
        else:
            status = MigrationStatus.COMPLETE

        logger.debug(
            "Migration state of %s: %s (%d migrated records)",
            tenant_id, status.value, migrated,
        )
        return MigrationVerification(
            tenant_id=tenant_id,
            status=status,
            state=state,
            migrated_records=migrated,
        )

    async def migrate_legacy(self, principal: Principal, tenant_id: str) -> MigrationResult:
        pid = principal.principal_id
        log_ctx = {"tenant_id": tenant_id, "principal_id": pid}

        verification = await self.verify_migration_state(principal, tenant_id)
        if verification.is_done:
            tenancy_metrics.inc("migration.skipped")
            logger.info("Migration for %s already %s", tenant_id, verification.status.value, extra=log_ctx)
            return MigrationResult(
                tenant_id=tenant_id,
                source_count=verification.state.source_count if verification.state else 0,
                already_present=verification.migrated_records,
                skipped=True,
                message=f"Migration already {verification.status.value}",
            )

        if verification.status == MigrationStatus.STALE_FLAG:
            logger.warning(
                "Tenant %s is flagged migrated but holds no migrated records; re-migrating",
                tenant_id, extra=log_ctx,
            )
            await self._store.set_document(
                migration_state_path(tenant_id),
                {
                    "expensesMigrated": False,
                    "reMigrationNeeded": True,
                    "reMigrationAt": self._clock.timestamp(),
                },
                merge=True,
            )
        elif verification.status == MigrationStatus.PARTIAL:
            logger.info("Resuming partial migration for %s", tenant_id, extra=log_ctx)

        legacy = await self._store.query_collection(legacy_records_collection(pid))
        if not legacy:
            await self._write_state(tenant_id, source=0, migrated=0, errors=0)
            return MigrationResult(tenant_id=tenant_id, message="No legacy records to migrate")

        existing = {doc.id for doc in await self._store.query_collection(records_collection(tenant_id))}
        migrated = present = errors = 0

        for doc in legacy:
            target_id = derive_record_id(pid, doc.id)
            if target_id in existing:
                present += 1
                continue

            payload = None
            try:
                payload = transform_legacy_record(pid, doc.id, doc.data, self._clock, self._default_vat)
                await self._store.set_document(record_path(tenant_id, target_id), payload)
                migrated += 1
            except TenancyError as exc:
                errors += 1
                logger.error(
                    "Failed to migrate legacy record %s into %s: [%s] %s; payload=%s",
                    doc.id, tenant_id, exc.code, exc.message, payload if payload is not None else doc.data,
                    extra=log_ctx,
                )

        await self._write_state(tenant_id, source=len(legacy), migrated=migrated + present, errors=errors)
        tenancy_metrics.inc("migration.records", migrated)
        if errors:
            tenancy_metrics.inc("migration.errors", errors)

        logger.info(
            "Migration into %s finished: %d written, %d already present, %d errors of %d",
            tenant_id, migrated, present, errors, len(legacy),
            extra=log_ctx,
        )
        return MigrationResult(
            tenant_id=tenant_id,
            migrated_count=migrated,
            error_count=errors,
            source_count=len(legacy),
            already_present=present,
            message=f"Migrated {migrated} of {len(legacy)} legacy records",
        )

    async def _write_state(self, tenant_id: str, source: int, migrated: int, errors: int) -> None:
        state = MigrationState(
            expenses_migrated=True,
            source_count=source,
            migrated_count=migrated,
            error_count=errors,
            migrated_at=self._clock.now(),
        )
        await self._store.set_document(migration_state_path(tenant_id), state.to_store())
