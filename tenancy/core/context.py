# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.

"""
Platform Context — Singleton that holds all core component references.

Initialized at startup, injected into API routes via get_platform_context().
"""

from __future__ import annotations

from typing import Optional

import redis.asyncio as aioredis

from tenancy.core.config import TenancySettings, settings as default_settings
from tenancy.kernel.clock import Clock
from tenancy.kernel.tenant_manager import TenantManager
from tenancy.storage.preferences import PreferenceStore
from tenancy.storage.store import RedisDocumentStore


class PlatformContext:
    """
    Holds all runtime references for the service.
    Created once at startup, used by all API handlers.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        clock: Optional[Clock] = None,
        config: Optional[TenancySettings] = None,
    ) -> None:
        self.redis = redis
        self.config = config or default_settings
        self.clock = clock or Clock()
        self.store = RedisDocumentStore(redis)
        self.preferences = PreferenceStore(redis, ttl=self.config.PREFERENCE_TTL)
        self.tenants = TenantManager(
            self.store,
            self.preferences,
            clock=self.clock,
            config=self.config,
        )


# ── Global singleton ────────────────────────────────────────

_ctx: Optional[PlatformContext] = None


def init_platform_context(
    redis: aioredis.Redis,
    clock: Optional[Clock] = None,
    config: Optional[TenancySettings] = None,
) -> PlatformContext:
    global _ctx
    _ctx = PlatformContext(redis, clock=clock, config=config)
    return _ctx


def get_platform_context() -> PlatformContext:
    if _ctx is None:
        raise RuntimeError("PlatformContext not initialized. Call init_platform_context() first.")
    return _ctx
