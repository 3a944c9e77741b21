# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.

"""
Permissions — Role-based access control table.

ROLE_PERMISSIONS maps role -> module -> allowed actions. A module is a
*capability* for a principal when their role has at least one action on it
and their tier is high enough for the module.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from tenancy.protocols.schema import Role

ROLE_PERMISSIONS: Dict[str, Dict[str, List[str]]] = {
    Role.OWNER.value: {
        "expenses": ["read", "write", "delete", "export"],
        "income": ["read", "write", "delete", "export"],
        "marketing": ["read", "write", "delete"],
        "forecasting": ["read", "write", "delete"],
        "reports": ["read", "write", "export"],
        "settings": ["read", "write", "delete"],
        "team": ["read", "write", "delete"],
    },
    Role.MANAGER.value: {
        "expenses": ["read", "write", "delete"],
        "income": ["read", "write"],
        "marketing": ["read", "write"],
        "forecasting": ["read"],
        "reports": ["read", "export"],
        "settings": [],
        "team": ["read"],
    },
    Role.EMPLOYEE.value: {
        "expenses": ["read", "write"],  # own records only, enforced by the store
        "income": ["read"],
        "marketing": [],
        "forecasting": [],
        "reports": ["read"],
        "settings": [],
        "team": [],
    },
    Role.ACCOUNTANT.value: {
        "expenses": ["read", "export"],
        "income": ["read", "export"],
        "marketing": [],
        "forecasting": ["read"],
        "reports": ["read", "export"],
        "settings": [],
        "team": [],
    },
}

MODULE_TIERS: Dict[str, str] = {
    "expenses": "lite",
    "income": "lite",
    "marketing": "business",
    "forecasting": "business",
    "reports": "lite",
    "settings": "lite",
    "team": "business",
    "security": "lite",
}

TIER_LEVELS: Dict[str, int] = {
    "lite": 1,
    "business": 2,
    "enterprise": 3,
}

# Tenant-level operations and the role each one requires.
TENANT_OPERATIONS: Dict[str, str] = {
    "rename": Role.OWNER.value,
    "delete": Role.OWNER.value,
    "create_additional": Role.OWNER.value,
    "migrate": Role.OWNER.value,
}


def has_permission(role: Optional[str], module: Optional[str], action: Optional[str]) -> bool:
    """True if ``role`` may perform ``action`` on ``module``."""
    if not role or not module or not action:
        return False
    module_perms = ROLE_PERMISSIONS.get(role.lower(), {}).get(module.lower())
    if not module_perms:
        return False
    return action.lower() in module_perms


def can_access_module(role: Optional[str], tier: Optional[str], module: Optional[str]) -> bool:
    """Role grants some action on the module and the tier unlocks it."""
    if not role or not tier or not module:
        return False
    module_perms = ROLE_PERMISSIONS.get(role.lower(), {}).get(module.lower())
    if not module_perms:
        return False

    required = MODULE_TIERS.get(module.lower())
    if required is None:
        return True
    return TIER_LEVELS.get(tier.lower(), 0) >= TIER_LEVELS[required]


def accessible_modules(
    role: Optional[str],
    tier: Optional[str],
    granted: Optional[Iterable[str]] = None,
) -> List[str]:
    """
    The principal's capabilities in a tenant.

    A non-empty ``granted`` list narrows the result to those modules;
    an empty or missing one means "whatever role and tier allow".
    """
    candidates = list(granted) if granted else list(MODULE_TIERS)
    seen = set()
    result = []
    for module in candidates:
        if module in seen:
            continue
        seen.add(module)
        if can_access_module(role, tier, module):
            result.append(module)
    return result


def required_role(operation: str) -> str:
    try:
        return TENANT_OPERATIONS[operation]
    except KeyError:
        raise ValueError(f"Unknown tenant operation {operation!r}") from None


def role_satisfies(role: Optional[str], operation: str) -> bool:
    """Tenant operations are owner-only today; the table keeps that explicit."""
    return bool(role) and role.lower() == required_role(operation)
