# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.

"""
Selection Preferences — Per-principal "last used tenant" and hint set.

Lives in Redis next to, but outside of, the document namespace. Both keys
are refreshed with a TTL on every write. A preference only biases tenant
selection; it never grants access.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import redis.asyncio as aioredis

from tenancy.kernel.namespace import hints_key, preference_key
from tenancy.storage.store import translate_store_errors

logger = logging.getLogger("tenancy.preferences")

DEFAULT_PREFERENCE_TTL = 90 * 24 * 3600  # 90 days, overridden by config


class PreferenceStore:
    """Redis-backed SelectionPreference storage."""

    def __init__(self, redis: aioredis.Redis, ttl: int = DEFAULT_PREFERENCE_TTL) -> None:
        self._redis = redis
        self._ttl = ttl

    async def get_preference(self, principal_id: str) -> Optional[str]:
        with translate_store_errors("read selection preference"):
            return await self._redis.get(preference_key(principal_id))

    async def set_preference(self, principal_id: str, tenant_id: str) -> None:
        """Persist the selection and remember it in the hint set."""
        with translate_store_errors("write selection preference"):
            await self._redis.set(preference_key(principal_id), tenant_id, ex=self._ttl)
        await self.remember_tenant(principal_id, tenant_id)

    async def clear_preference(self, principal_id: str) -> None:
        with translate_store_errors("clear selection preference"):
            await self._redis.delete(preference_key(principal_id))

    async def remember_tenant(self, principal_id: str, tenant_id: str) -> None:
        key = hints_key(principal_id)
        with translate_store_errors("write tenant hint"):
            await self._redis.sadd(key, tenant_id)
            await self._redis.expire(key, self._ttl)

    async def forget_tenant(self, principal_id: str, tenant_id: str) -> None:
        """Drop a tenant from the hint set and clear the preference if it pointed there."""
        with translate_store_errors("drop tenant hint"):
            await self._redis.srem(hints_key(principal_id), tenant_id)
        if await self.get_preference(principal_id) == tenant_id:
            await self.clear_preference(principal_id)
            logger.info("Cleared stale preference %s for %s", tenant_id, principal_id)

    async def list_hints(self, principal_id: str) -> List[str]:
        with translate_store_errors("read tenant hints"):
            return sorted(await self._redis.smembers(hints_key(principal_id)))
