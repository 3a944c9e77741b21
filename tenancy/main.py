# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.

"""
Tenancy Service Entry Point.

FastAPI app with lifespan, middleware, error handlers and API routers.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tenancy.api.errors import APIError, api_error_handler, tenancy_error_handler
from tenancy.api.middleware import TraceMiddleware
from tenancy.api.observability import VERSION, router as observability_router
from tenancy.api.tenants import router as tenants_router, session_router
from tenancy.core.config import settings
from tenancy.core.context import init_platform_context
from tenancy.core.errors import TenancyError
from tenancy.core.logging import setup_logging
from tenancy.kernel.redis_client import close_redis_pool, get_redis_pool

logger = logging.getLogger("tenancy.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup/shutdown of service resources."""
    # Startup
    setup_logging(settings.LOG_LEVEL)
    redis = await get_redis_pool()
    init_platform_context(redis)
    logger.info("[Tenancy] Service ready (env=%s)", settings.TENANCY_ENV)
    yield
    # Shutdown
    await close_redis_pool()
    logger.info("[Tenancy] Shutdown complete")


app = FastAPI(
    title="Tenancy",
    description="Multi-tenant company access resolution and legacy-data migration",
    version=VERSION,
    lifespan=lifespan,
)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(TraceMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Error Handlers ──────────────────────────────────────────
app.add_exception_handler(APIError, api_error_handler)
app.add_exception_handler(TenancyError, tenancy_error_handler)

# ── Routes ──────────────────────────────────────────────────
app.include_router(tenants_router, prefix="/api")
app.include_router(session_router, prefix="/api")
app.include_router(observability_router)
