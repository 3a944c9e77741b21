# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.

"""
Observability API — Health check and metrics.
"""

from __future__ import annotations

from fastapi import APIRouter

from tenancy.core.context import get_platform_context
from tenancy.core.metrics import tenancy_metrics
from tenancy.kernel.redis_client import redis_status

router = APIRouter(tags=["observability"])

VERSION = "0.1.0"


@router.get("/health")
async def health_check():
    """Health check with store status."""
    ctx = get_platform_context()
    redis = await redis_status(ctx.redis)
    return {
        "status": "ok" if redis == "connected" else "degraded",
        "version": VERSION,
        "env": ctx.config.TENANCY_ENV,
        "redis": redis,
        "metrics": tenancy_metrics.snapshot(),
    }


@router.get("/api/metrics")
async def get_metrics():
    """Return current tenancy metrics."""
    return tenancy_metrics.snapshot()
