# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.

"""
Tenant Selector — Deterministic choice of the principal's current tenant.

select_current() is a pure function of its three inputs. Tie-break order:
  1. the previously current tenant, if still resolved
  2. the stored preference, if still resolved
  3. invited (non-creator) tenants, most recently joined first
  4. display name, then id
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from tenancy.core.errors import StorePermissionError, TransientStoreError
from tenancy.core.principal import Principal
from tenancy.protocols.schema import TenantView
from tenancy.storage.preferences import PreferenceStore

logger = logging.getLogger("tenancy.selector")

_HINT_ERRORS = (TransientStoreError, StorePermissionError)


def _name_order(view: TenantView) -> tuple:
    return (view.display_name, view.id)


def _invited_order(view: TenantView) -> tuple:
    if view.joined_at is not None:
        return (0, -view.joined_at.timestamp(), view.display_name, view.id)
    return (1, 0.0, view.display_name, view.id)


def rank_tenants(
    resolved: Sequence[TenantView],
    current: Optional[str] = None,
) -> list[TenantView]:
    """Display order: current first, invited tenants next, created tenants last."""
    invited = sorted((v for v in resolved if not v.is_creator), key=_invited_order)
    created = sorted((v for v in resolved if v.is_creator), key=_name_order)
    ordered = invited + created
    if current is not None:
        ordered.sort(key=lambda v: v.id != current)
    return ordered


def select_current(
    resolved: Sequence[TenantView],
    stored_preference: Optional[str],
    previous_current: Optional[str],
) -> Optional[str]:
    """Pick the current tenant id, or None when nothing resolved."""
    if not resolved:
        return None
    ids = {v.id for v in resolved}

    if previous_current is not None and previous_current in ids:
        return previous_current
    if stored_preference is not None and stored_preference in ids:
        return stored_preference

    invited = [v for v in resolved if not v.is_creator]
    if invited:
        return min(invited, key=_invited_order).id
    return min(resolved, key=_name_order).id


class TenantSelector:
    """The persisted SelectionPreference around select_current()."""

    def __init__(self, preferences: PreferenceStore) -> None:
        self._preferences = preferences

    async def stored_preference(self, principal: Principal) -> Optional[str]:
        try:
            return await self._preferences.get_preference(principal.principal_id)
        except _HINT_ERRORS as exc:
            logger.warning("Preference unavailable for %s: %s", principal.principal_id, exc)
            return None

    async def remember(self, principal: Principal, tenant_id: str) -> None:
        """Persist the selection; a preference is a hint, so failures only warn."""
        try:
            await self._preferences.set_preference(principal.principal_id, tenant_id)
        except _HINT_ERRORS as exc:
            logger.warning(
                "Could not persist preference %s for %s: %s",
                tenant_id, principal.principal_id, exc,
            )
