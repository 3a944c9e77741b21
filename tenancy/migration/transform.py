# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.

"""
Legacy Transform — Map a pre-tenant expense record onto the tenant record schema.

Pure function of its inputs plus the clock's date. The target id is derived
from (principal, legacy id), so re-running a migration addresses the same
documents instead of creating duplicates.
"""

from __future__ import annotations

import hashlib
import math
from typing import Any, Dict

from tenancy.core.errors import ValidationError
from tenancy.kernel.clock import Clock
from tenancy.kernel.namespace import legacy_record_path

MIGRATED_ID_PREFIX = "mig_"
DEFAULT_VAT = 21

_DROPPED_KEYS = ("id", "_decryptionError")

# field -> default when missing or empty
_DEFAULTS: Dict[str, Any] = {
    "category": "Other",
    "vendor": "Unknown",
    "invoiceNumber": "",
    "description": "",
    "vatNumber": "",
    "bankAccount": "",
    "paymentMethod": "Other",
    "notes": "",
}


def derive_record_id(principal_id: str, legacy_id: str) -> str:
    """
    Stable target id for a legacy record.

    Example:
        derive_record_id("u_001", "exp_1") -> "mig_" + 24 hex chars
    """
    digest = hashlib.sha256(f"{principal_id}/{legacy_id}".encode()).hexdigest()
    return f"{MIGRATED_ID_PREFIX}{digest[:24]}"


def _parse_amount(raw: Any, legacy_id: str) -> float:
    if raw is None or raw == "":
        return 0.0
    if isinstance(raw, bool):
        raise ValidationError(
            f"Legacy record {legacy_id} has a boolean amount",
            details={"legacy_id": legacy_id, "amount": raw},
        )
    try:
        amount = float(raw.strip().replace(",", ".")) if isinstance(raw, str) else float(raw)
    except (TypeError, ValueError):
        raise ValidationError(
            f"Legacy record {legacy_id} has an unparseable amount {raw!r}",
            details={"legacy_id": legacy_id, "amount": raw},
        ) from None
    if not math.isfinite(amount):
        raise ValidationError(
            f"Legacy record {legacy_id} has a non-finite amount",
            details={"legacy_id": legacy_id, "amount": raw},
        )
    return amount


def transform_legacy_record(
    principal_id: str,
    legacy_id: str,
    legacy: Dict[str, Any],
    clock: Clock,
    default_vat: int = DEFAULT_VAT,
) -> Dict[str, Any]:
    """Build the tenant record for one legacy record. Raises ValidationError."""
    cleaned = {
        k: v for k, v in legacy.items()
        if k not in _DROPPED_KEYS and not k.endswith("_encrypted")
    }

    record: Dict[str, Any] = {"date": cleaned.get("date") or clock.today()}
    for key, default in _DEFAULTS.items():
        record[key] = cleaned.get(key) or default
    record["amount"] = _parse_amount(cleaned.get("amount"), legacy_id)
    record["btw"] = cleaned["btw"] if cleaned.get("btw") is not None else default_vat
    record["accountId"] = cleaned.get("accountId") or None
    if cleaned.get("chamberOfCommerceNumber"):
        record["chamberOfCommerceNumber"] = cleaned["chamberOfCommerceNumber"]

    record["migratedFrom"] = legacy_record_path(principal_id, legacy_id)
    record["originalId"] = legacy_id
    record["createdBy"] = principal_id
    record["migratedAt"] = clock.timestamp()
    return record
