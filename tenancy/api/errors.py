# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.

"""
API Error Handling — Unified error structure.

Every TenancyError leaves the service as
    {"code": ..., "message": ..., "trace_id": ..., "details": {...}}
with the HTTP status below.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from tenancy.core.errors import (
    DeniedError,
    EventualConsistencyTimeout,
    InvariantViolation,
    NotFoundError,
    StorePermissionError,
    TenancyError,
    TransientStoreError,
    ValidationError,
)

logger = logging.getLogger("tenancy.api")

# Most specific class first.
_STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (DeniedError, 403),
    (StorePermissionError, 403),
    (ValidationError, 422),
    (EventualConsistencyTimeout, 503),
    (TransientStoreError, 503),
    (InvariantViolation, 500),
)


class APIError(Exception):
    """Base API error with structured response."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None,
        trace_id: Optional[str] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.trace_id = trace_id or str(uuid.uuid4())
        super().__init__(message)

    @classmethod
    def from_tenancy_error(cls, exc: TenancyError, trace_id: Optional[str] = None) -> APIError:
        return cls(
            code=exc.code,
            message=exc.message,
            status_code=status_for(exc),
            details=exc.details,
            trace_id=trace_id,
        )


def status_for(exc: TenancyError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


def _error_response(exc: APIError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "code": exc.code,
            "message": exc.message,
            "trace_id": exc.trace_id,
            "details": exc.details,
        },
    )


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Global exception handler for APIError."""
    return _error_response(exc)


async def tenancy_error_handler(request: Request, exc: TenancyError) -> JSONResponse:
    """Global exception handler for errors raised by the tenancy core."""
    trace_id = getattr(request.state, "trace_id", None)
    api_error = APIError.from_tenancy_error(exc, trace_id=trace_id)
    if api_error.status_code >= 500:
        logger.error("[api] %s: %s trace=%s", exc.code, exc.message, api_error.trace_id)
    return _error_response(api_error)
