# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.
"""Unit tests for tenant selection and ranking."""

from datetime import datetime, timezone

import pytest

from tenancy.access.selector import TenantSelector, rank_tenants, select_current
from tenancy.core.errors import StorePermissionError
from tenancy.protocols.schema import TenantView
from tenancy.storage.preferences import PreferenceStore


def _view(tid, name, creator=False, joined=None):
    return TenantView(
        id=tid,
        display_name=name,
        role="owner" if creator else "employee",
        is_creator=creator,
        joined_at=datetime(2026, 1, joined, tzinfo=timezone.utc) if joined else None,
    )


ACME = _view("t_acme", "Acme", creator=True, joined=1)
BETA = _view("t_beta", "Beta", creator=True, joined=2)
SOLO = _view("t_solo", "Solo", joined=3)
ZED = _view("t_zed", "Zed", joined=9)
NOJOIN = _view("t_nojoin", "Aaa")


class TestSelectCurrent:
    def test_empty(self):
        assert select_current([], "t_acme", "t_acme") is None

    def test_previous_wins(self):
        assert select_current([ACME, SOLO], "t_solo", "t_acme") == "t_acme"

    def test_stored_preference_next(self):
        assert select_current([ACME, SOLO], "t_acme", None) == "t_acme"

    def test_stale_preference_ignored(self):
        assert select_current([ACME, SOLO], "t_deleted", "t_gone") == "t_solo"

    def test_invited_most_recent_first(self):
        assert select_current([ACME, SOLO, ZED], None, None) == "t_zed"

    def test_invited_with_join_date_before_without(self):
        assert select_current([NOJOIN, SOLO], None, None) == "t_solo"

    def test_created_only_by_name(self):
        assert select_current([BETA, ACME], None, None) == "t_acme"

    def test_deterministic_over_input_order(self):
        a = select_current([ACME, SOLO, ZED, BETA], None, None)
        b = select_current([BETA, ZED, SOLO, ACME], None, None)
        assert a == b


class TestRankTenants:
    def test_current_first_then_invited_then_created(self):
        ranked = rank_tenants([ACME, BETA, SOLO, ZED], current="t_beta")
        assert [v.id for v in ranked] == ["t_beta", "t_zed", "t_solo", "t_acme"]

    def test_without_current(self):
        ranked = rank_tenants([BETA, ACME])
        assert [v.id for v in ranked] == ["t_acme", "t_beta"]


class DeniedPreferences(PreferenceStore):
    """Preference keys behind an ACL the service account cannot pass."""

    async def get_preference(self, principal_id):
        raise StorePermissionError("acl")

    async def set_preference(self, principal_id, tenant_id):
        raise StorePermissionError("acl")


class TestTenantSelector:
    @pytest.mark.asyncio
    async def test_remember_then_read_back(self, preferences, alice):
        selector = TenantSelector(preferences)
        await selector.remember(alice, "t_solo")
        assert await selector.stored_preference(alice) == "t_solo"

    @pytest.mark.asyncio
    async def test_denied_preference_reads_as_none(self, mock_redis, alice):
        selector = TenantSelector(DeniedPreferences(mock_redis))
        assert await selector.stored_preference(alice) is None

    @pytest.mark.asyncio
    async def test_denied_preference_write_only_warns(self, mock_redis, alice):
        await TenantSelector(DeniedPreferences(mock_redis)).remember(alice, "t_acme")
