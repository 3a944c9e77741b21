# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.

"""
Namespace Helper — Document paths and Redis key layout.

Document paths (tenant isolation is purely path scoping):
    tenants/{tenant_id}
    tenants/{tenant_id}/members/{principal_id}
    tenants/{tenant_id}/records/{record_id}
    tenants/{tenant_id}/migrationState
    principals/{principal_id}/legacyRecords/{record_id}
    principals/{principal_id}/tenants/{tenant_id}      (reverse membership index)

Redis keys:
    tenancy:doc:{path}            JSON document
    tenancy:col:{collection}      SET of document ids in a collection
    tenancy:pref:{principal_id}   last selected tenant id
    tenancy:pref:{principal_id}:seen   SET of tenant ids used before
"""

from __future__ import annotations

from typing import Tuple

TENANTS = "tenants"


def tenant_path(tenant_id: str) -> str:
    return f"{TENANTS}/{tenant_id}"


def members_collection(tenant_id: str) -> str:
    return f"{TENANTS}/{tenant_id}/members"


def member_path(tenant_id: str, principal_id: str) -> str:
    """
    Example:
        member_path("t_001", "u_001") -> "tenants/t_001/members/u_001"
    """
    return f"{members_collection(tenant_id)}/{principal_id}"


def records_collection(tenant_id: str) -> str:
    return f"{TENANTS}/{tenant_id}/records"


def record_path(tenant_id: str, record_id: str) -> str:
    return f"{records_collection(tenant_id)}/{record_id}"


def migration_state_path(tenant_id: str) -> str:
    return f"{TENANTS}/{tenant_id}/migrationState"


def legacy_records_collection(principal_id: str) -> str:
    return f"principals/{principal_id}/legacyRecords"


def legacy_record_path(principal_id: str, record_id: str) -> str:
    return f"{legacy_records_collection(principal_id)}/{record_id}"


def principal_tenants_collection(principal_id: str) -> str:
    return f"principals/{principal_id}/tenants"


def principal_tenant_path(principal_id: str, tenant_id: str) -> str:
    return f"{principal_tenants_collection(principal_id)}/{tenant_id}"


def split_path(path: str) -> Tuple[str, str]:
    """
    Split a document path into (collection, document_id).

    Example:
        split_path("tenants/t_001/members/u_001") -> ("tenants/t_001/members", "u_001")
    """
    path = path.strip("/")
    if "/" not in path:
        raise ValueError(f"Not a document path: {path!r}")
    collection, doc_id = path.rsplit("/", 1)
    if not collection or not doc_id:
        raise ValueError(f"Not a document path: {path!r}")
    return collection, doc_id


def doc_key(path: str) -> str:
    return f"tenancy:doc:{path.strip('/')}"


def collection_key(collection: str) -> str:
    return f"tenancy:col:{collection.strip('/')}"


def preference_key(principal_id: str) -> str:
    return f"tenancy:pref:{principal_id}"


def hints_key(principal_id: str) -> str:
    return f"tenancy:pref:{principal_id}:seen"
