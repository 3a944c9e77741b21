# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.

"""
Metrics — In-process counters for tenancy observability.

Counter names used by the core:
  discovery.resolved, discovery.excluded, discovery.bootstrap,
  discovery.large_tenant_count, invariant.violation,
  guard.denied, guard.self_heal, guard.self_heal_failed,
  migration.records, migration.errors, migration.skipped,
  tenant.created, tenant.renamed, tenant.deleted, session.discarded
"""

from __future__ import annotations

import time
from collections import Counter
from typing import Any, Dict


class TenancyMetrics:
    """Counters and last-value gauges; snapshot() is served by /api/metrics."""

    def __init__(self) -> None:
        self._counters: Counter = Counter()
        self._gauges: Dict[str, float] = {}
        self._started = time.time()

    def inc(self, name: str, amount: int = 1) -> None:
        self._counters[name] += amount

    def get_counter(self, name: str) -> int:
        return self._counters.get(name, 0)

    def set_gauge(self, name: str, value: float) -> None:
        self._gauges[name] = value

    def get_gauge(self, name: str) -> float:
        return self._gauges.get(name, 0.0)

    def reset(self) -> None:
        self._counters.clear()
        self._gauges.clear()

    def snapshot(self) -> Dict[str, Any]:
        return {
            "uptime_seconds": round(time.time() - self._started, 1),
            "counters": dict(sorted(self._counters.items())),
            "gauges": dict(sorted(self._gauges.items())),
        }


# Global singleton
tenancy_metrics = TenancyMetrics()
