# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.

"""
Clock — Injected time source.

Every timestamp written to the store and every cache expiry reads time
through a Clock, so tests can pin and advance it deterministically.
"""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import Optional


class Clock:
    """Wall clock (UTC) plus a monotonic counter for expiry arithmetic."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()

    def timestamp(self) -> str:
        """ISO-8601 UTC string used as the store's server timestamp."""
        return self.now().isoformat()

    def today(self) -> str:
        return self.now().date().isoformat()


SystemClock = Clock


class ManualClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self._now = start or datetime(2026, 1, 1, tzinfo=timezone.utc)
        self._elapsed = 0.0

    def now(self) -> datetime:
        return self._now

    def monotonic(self) -> float:
        return self._elapsed

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("ManualClock cannot move backwards")
        self._now += timedelta(seconds=seconds)
        self._elapsed += seconds
