# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.

"""
Integration test fixtures — Real Redis.

These tests require a running Redis at settings.REDIS_URL and are skipped
when it cannot be reached.
"""

import pytest
import pytest_asyncio
import redis.asyncio as aioredis
from redis.exceptions import RedisError

from tenancy.core.config import settings
from tenancy.core.context import init_platform_context
from tenancy.kernel.redis_client import inject_redis_for_test


@pytest_asyncio.fixture
async def real_redis(clock, test_settings):
    """Connect to real Redis and flush tenancy keys after each test."""
    r = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        await r.ping()
    except (RedisError, OSError):
        await r.aclose()
        pytest.skip(f"Redis not reachable at {settings.REDIS_URL}")

    inject_redis_for_test(r)
    init_platform_context(r, clock=clock, config=test_settings)

    yield r

    # Cleanup: flush all tenancy:* keys
    async for key in r.scan_iter(match="tenancy:*"):
        await r.delete(key)
    await r.aclose()
