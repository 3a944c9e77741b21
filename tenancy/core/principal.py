# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.

"""
Principal — The authenticated actor.

Identity is verified upstream; the core only needs a stable id.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Principal:
    """Immutable principal identity for request-scoped operations."""

    principal_id: str
    email: Optional[str] = None

    def __post_init__(self):
        if not self.principal_id:
            raise ValueError("principal_id must not be empty")

    def __repr__(self) -> str:
        return f"Principal(id={self.principal_id!r})"
