# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.

"""
API Dependencies — FastAPI dependency injection.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException

from tenancy.core.principal import Principal


async def get_current_principal(
    x_principal_id: Optional[str] = Header(None, alias="X-Principal-Id"),
    x_principal_email: Optional[str] = Header(None, alias="X-Principal-Email"),
) -> Principal:
    """
    Principal from headers set by the authenticating proxy.

    Headers:
      - X-Principal-Id:    verified principal id (required)
      - X-Principal-Email: informational only
    """
    if not x_principal_id or not x_principal_id.strip():
        raise HTTPException(status_code=401, detail="Missing principal identification")
    return Principal(principal_id=x_principal_id.strip(), email=x_principal_email)
