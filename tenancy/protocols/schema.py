# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.

"""
Tenancy Schema — Canonical models for every document the core reads or writes.

Stored documents use camelCase keys (``displayName``, ``createdBy`` ...);
Python code uses snake_case attributes. ``to_store()`` produces the stored
form, ``from_document()`` parses it back.

Design decisions:
  - Tenant ids are document ids, never duplicated inside the document body.
  - Unknown membership roles are kept as plain strings; they simply map to
    no permissions.
  - Timestamps are timezone-aware datetimes, stored as ISO-8601 strings.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from tenancy.storage.store import Document

UNNAMED_TENANT = "Unnamed Company"


class Role(str, Enum):
    OWNER = "owner"
    MANAGER = "manager"
    EMPLOYEE = "employee"
    ACCOUNTANT = "accountant"


class Tier(str, Enum):
    LITE = "lite"
    BUSINESS = "business"
    ENTERPRISE = "enterprise"


OWNER_MODULES = ["expenses", "income", "marketing", "forecasting", "settings"]


class StoredModel(BaseModel):
    """Base for models persisted as camelCase JSON documents."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_store(self, exclude: Optional[set] = None) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude=exclude, exclude_none=True)


# ── Tenant ──────────────────────────────────────────────────────


class Tenant(StoredModel):
    """One company / workspace. ``created_by`` never changes after creation."""

    id: str = Field(..., min_length=1)
    display_name: str = Field(default=UNNAMED_TENANT)
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    settings: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_document(cls, doc: Document) -> Tenant:
        return cls.model_validate({**doc.data, "id": doc.id})

    def to_store(self, exclude: Optional[set] = None) -> Dict[str, Any]:
        return super().to_store(exclude={"id"} | (exclude or set()))

    def is_created_by(self, principal_id: str) -> bool:
        return self.created_by is not None and self.created_by == principal_id


class Membership(StoredModel):
    """A principal's role and capability grant inside one tenant."""

    principal_id: str = Field(..., min_length=1)
    role: str = Field(default=Role.EMPLOYEE.value)
    granted_modules: List[str] = Field(default_factory=list)
    tier: str = Field(default=Tier.LITE.value)
    joined_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Document) -> Membership:
        return cls.model_validate({"principalId": doc.id, **doc.data})

    @classmethod
    def owner(cls, principal_id: str, joined_at: Optional[datetime] = None) -> Membership:
        """The membership every tenant creator holds."""
        return cls(
            principal_id=principal_id,
            role=Role.OWNER.value,
            granted_modules=list(OWNER_MODULES),
            tier=Tier.BUSINESS.value,
            joined_at=joined_at,
        )

    @property
    def is_owner(self) -> bool:
        return self.role == Role.OWNER.value


class TenantView(Tenant):
    """A resolved tenant decorated with the principal's standing in it."""

    role: str
    capabilities: List[str] = Field(default_factory=list)
    tier: str = Field(default=Tier.LITE.value)
    joined_at: Optional[datetime] = None
    is_creator: bool = False


# ── Access ──────────────────────────────────────────────────────


class AccessGrant(BaseModel):
    """Outcome of a successful access check."""

    tenant_id: str
    principal_id: str
    role: str
    capabilities: List[str] = Field(default_factory=list)
    tier: str = Tier.LITE.value
    self_healed: bool = False

    @property
    def is_owner(self) -> bool:
        return self.role == Role.OWNER.value


class Selection(BaseModel):
    """The current tenant chosen for a principal."""

    tenant_id: str
    display_name: str
    role: str
    capabilities: List[str] = Field(default_factory=list)
    tier: str = Tier.LITE.value


# ── Migration ───────────────────────────────────────────────────


class MigrationState(StoredModel):
    """Singleton per tenant at tenants/{tenant_id}/migrationState."""

    expenses_migrated: bool = False
    source_count: int = 0
    migrated_count: int = 0
    error_count: int = 0
    migrated_at: Optional[datetime] = None
    re_migration_needed: Optional[bool] = None
    re_migration_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Document) -> MigrationState:
        return cls.model_validate(doc.data)


class MigrationStatus(str, Enum):
    NOT_STARTED = "not_started"
    COMPLETE = "complete"
    EMPTY_SOURCE = "empty_source"
    STALE_FLAG = "stale_flag"
    PARTIAL = "partial"


class MigrationVerification(BaseModel):
    """What the tenant's store actually holds, compared with its migration flag."""

    tenant_id: str
    status: MigrationStatus
    state: Optional[MigrationState] = None
    migrated_records: int = 0

    @property
    def is_done(self) -> bool:
        return self.status in (MigrationStatus.COMPLETE, MigrationStatus.EMPTY_SOURCE)


class MigrationResult(BaseModel):
    tenant_id: str
    migrated_count: int = 0
    error_count: int = 0
    source_count: int = 0
    already_present: int = 0
    skipped: bool = False
    message: str = ""

    @property
    def partial_failure(self) -> bool:
        """Some records failed; reported as data, never raised."""
        return self.error_count > 0
