# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.
"""Unit tests for PreferenceStore (selection preference + hint set)."""

import pytest

from tenancy.kernel.namespace import hints_key, preference_key


class TestPreferenceStore:
    @pytest.mark.asyncio
    async def test_no_preference(self, preferences):
        assert await preferences.get_preference("u1") is None
        assert await preferences.list_hints("u1") == []

    @pytest.mark.asyncio
    async def test_set_preference_also_hints(self, preferences):
        await preferences.set_preference("u1", "t1")
        assert await preferences.get_preference("u1") == "t1"
        assert await preferences.list_hints("u1") == ["t1"]

    @pytest.mark.asyncio
    async def test_keys_expire(self, preferences, mock_redis):
        await preferences.set_preference("u1", "t1")
        assert 0 < await mock_redis.ttl(preference_key("u1")) <= 3600
        assert 0 < await mock_redis.ttl(hints_key("u1")) <= 3600

    @pytest.mark.asyncio
    async def test_hints_accumulate_sorted(self, preferences):
        await preferences.remember_tenant("u1", "t2")
        await preferences.remember_tenant("u1", "t1")
        assert await preferences.list_hints("u1") == ["t1", "t2"]

    @pytest.mark.asyncio
    async def test_forget_current_clears_preference(self, preferences):
        await preferences.set_preference("u1", "t1")
        await preferences.forget_tenant("u1", "t1")
        assert await preferences.get_preference("u1") is None
        assert await preferences.list_hints("u1") == []

    @pytest.mark.asyncio
    async def test_forget_other_keeps_preference(self, preferences):
        await preferences.set_preference("u1", "t1")
        await preferences.remember_tenant("u1", "t2")
        await preferences.forget_tenant("u1", "t2")
        assert await preferences.get_preference("u1") == "t1"
        assert await preferences.list_hints("u1") == ["t1"]

    @pytest.mark.asyncio
    async def test_principals_isolated(self, preferences):
        await preferences.set_preference("u1", "t1")
        assert await preferences.get_preference("u2") is None
