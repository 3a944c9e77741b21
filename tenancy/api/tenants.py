# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.

"""
Tenants API — Resolve, list, switch, create, rename, delete and migrate tenants.

The principal comes from the X-Principal-Id header. TenancyErrors raised by
the manager are mapped to HTTP responses by the global handler.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from tenancy.api.deps import get_current_principal
from tenancy.core.context import get_platform_context
from tenancy.core.principal import Principal
from tenancy.protocols.schema import MigrationResult

router = APIRouter(prefix="/tenants", tags=["tenants"])
session_router = APIRouter(prefix="/session", tags=["session"])


class CreateTenantRequest(BaseModel):
    name: str = Field(..., description="Display name of the new company")
    settings: Optional[Dict[str, Any]] = None


class RenameTenantRequest(BaseModel):
    name: str


def _discarded() -> Dict[str, Any]:
    return {"discarded": True, "reason": "signed out while the request was in flight"}


def _migration_body(result: MigrationResult) -> Dict[str, Any]:
    return {**result.model_dump(mode="json"), "partial_failure": result.partial_failure}


@router.post("/resolve")
async def resolve_tenant(principal: Principal = Depends(get_current_principal)):
    """Discover the principal's tenants and select the current one."""
    manager = get_platform_context().tenants
    selection = await manager.resolve_and_select_tenant(principal)
    if selection is None:
        return _discarded()
    return {"selection": selection.model_dump(mode="json")}


@router.get("")
async def list_tenants(principal: Principal = Depends(get_current_principal)):
    manager = get_platform_context().tenants
    tenants = await manager.list_tenants(principal)
    current = manager.current(principal)
    return {
        "tenants": [t.model_dump(mode="json") for t in tenants],
        "current": current.tenant_id if current else None,
        "count": len(tenants),
    }


@router.post("", status_code=201)
async def create_tenant(
    req: CreateTenantRequest,
    principal: Principal = Depends(get_current_principal),
):
    """Create an additional, empty company owned by the caller."""
    manager = get_platform_context().tenants
    tenant_id = await manager.create_tenant(principal, req.name, req.settings)
    if tenant_id is None:
        return _discarded()
    return {"tenant_id": tenant_id, "selection": manager.current(principal).model_dump(mode="json")}


@router.post("/{tenant_id}/switch")
async def switch_tenant(
    tenant_id: str,
    principal: Principal = Depends(get_current_principal),
):
    manager = get_platform_context().tenants
    grant = await manager.switch_tenant(principal, tenant_id)
    if grant is None:
        return _discarded()
    return {"grant": grant.model_dump(mode="json")}


@router.patch("/{tenant_id}")
async def rename_tenant(
    tenant_id: str,
    req: RenameTenantRequest,
    principal: Principal = Depends(get_current_principal),
):
    manager = get_platform_context().tenants
    tenant = await manager.rename_tenant(principal, tenant_id, req.name)
    if tenant is None:
        return _discarded()
    return {"tenant": tenant.model_dump(mode="json")}


@router.delete("/{tenant_id}")
async def delete_tenant(
    tenant_id: str,
    principal: Principal = Depends(get_current_principal),
):
    """Cascade-delete a company; returns the caller's selection afterwards."""
    manager = get_platform_context().tenants
    selection = await manager.delete_tenant(principal, tenant_id)
    return {
        "deleted": tenant_id,
        "selection": selection.model_dump(mode="json") if selection else None,
    }


@router.post("/{tenant_id}/migration")
async def run_migration(
    tenant_id: str,
    principal: Principal = Depends(get_current_principal),
):
    manager = get_platform_context().tenants
    result = await manager.run_legacy_migration(principal, tenant_id)
    if result is None:
        return _discarded()
    return _migration_body(result)


@router.get("/{tenant_id}/migration")
async def verify_migration(
    tenant_id: str,
    principal: Principal = Depends(get_current_principal),
):
    """Compare the migration flag with the records actually present."""
    manager = get_platform_context().tenants
    verification = await manager.verify_migration(principal, tenant_id)
    return {**verification.model_dump(mode="json"), "is_done": verification.is_done}


@session_router.post("/sign-out")
async def sign_out(principal: Principal = Depends(get_current_principal)):
    get_platform_context().tenants.sign_out(principal)
    return {"principal_id": principal.principal_id, "status": "signed_out"}
