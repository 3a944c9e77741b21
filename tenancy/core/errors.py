# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.

"""
Error Taxonomy — Typed failures raised by the tenancy core.

Every error carries a stable ``code`` so the API layer can map it to an
HTTP status and the UI can tell "you don't have access" apart from
"this no longer exists".
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class TenancyError(Exception):
    """Base error with a machine-readable code."""

    code = "TENANCY_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class NotFoundError(TenancyError):
    """Tenant or document is absent."""

    code = "NOT_FOUND"


class DeniedError(TenancyError):
    """Principal lacks the membership or role required."""

    code = "DENIED"


class ValidationError(TenancyError):
    code = "INVALID_ARGUMENT"


class TransientStoreError(TenancyError):
    """Network / availability failure reported by the document store."""

    code = "STORE_UNAVAILABLE"


class EventualConsistencyTimeout(TransientStoreError):
    """A just-written document did not become readable within the backoff budget."""

    code = "CONSISTENCY_TIMEOUT"


class StorePermissionError(TenancyError):
    """The store backend rejected the call for the connection's credentials."""

    code = "STORE_PERMISSION_DENIED"


class InvariantViolation(TenancyError):
    """Should never happen (e.g. duplicate tenant id); logged as a hard bug signal."""

    code = "INVARIANT_VIOLATION"


def tenant_not_found(tenant_id: str) -> NotFoundError:
    return NotFoundError(
        f"Company '{tenant_id}' no longer exists",
        details={"tenant_id": tenant_id},
    )


def access_denied(tenant_id: str, operation: Optional[str] = None) -> DeniedError:
    if operation:
        message = f"You don't have permission to {operation} company '{tenant_id}'"
    else:
        message = f"You don't have access to company '{tenant_id}'"
    details: Dict[str, Any] = {"tenant_id": tenant_id}
    if operation:
        details["operation"] = operation
    return DeniedError(message, details=details)
