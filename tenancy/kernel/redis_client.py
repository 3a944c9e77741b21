# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.

"""
Redis Connection Factory — Shared async pool for the document store and
the selection-preference store.
"""

from __future__ import annotations

import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.backoff import ExponentialBackoff
from redis.retry import Retry
from redis.exceptions import (
    BusyLoadingError,
    ConnectionError,
    RedisError,
    TimeoutError,
)

from tenancy.core.config import settings

logger = logging.getLogger("tenancy.redis")

_pool: Optional[aioredis.Redis] = None

_RETRY = Retry(ExponentialBackoff(cap=2, base=0.1), retries=3)
_RETRY_ERRORS = [ConnectionError, TimeoutError, BusyLoadingError, OSError]


async def get_redis_pool() -> aioredis.Redis:
    """
    Return the singleton async Redis client.

    Stale pooled connections are reconnected transparently; failures that
    outlive the retry budget reach the store as ConnectionError/TimeoutError
    and are reported to callers as TransientStoreError.
    """
    global _pool
    if _pool is None:
        _pool = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            health_check_interval=15,
            retry_on_timeout=True,
            retry_on_error=_RETRY_ERRORS,
            retry=_RETRY,
            socket_connect_timeout=5,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
            socket_keepalive=True,
        )
        logger.info("Redis pool created (max_connections=%d)", settings.REDIS_MAX_CONNECTIONS)
    return _pool


async def close_redis_pool() -> None:
    """Gracefully close the Redis connection pool."""
    global _pool
    if _pool is not None:
        await _pool.aclose()
        _pool = None


async def redis_status(redis: aioredis.Redis) -> str:
    """'connected' or 'unavailable', for the health endpoint."""
    try:
        await redis.ping()
    except (RedisError, OSError) as exc:
        logger.warning("Redis ping failed: %s", exc)
        return "unavailable"
    return "connected"


def inject_redis_for_test(redis_instance: aioredis.Redis) -> None:
    """Inject a fake/mock Redis instance (for testing only)."""
    global _pool
    _pool = redis_instance
