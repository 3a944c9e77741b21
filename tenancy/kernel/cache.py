# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.

"""
Bounded Cache — Explicit TTL + size bounded in-memory cache.

Entries expire ``ttl`` seconds after they were set, measured on the
injected Clock's monotonic counter. When full, the least recently used
entry is evicted first.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Any, Generic, Hashable, Optional, Tuple, TypeVar

from tenancy.kernel.clock import Clock

logger = logging.getLogger("tenancy.cache")

V = TypeVar("V")


class BoundedCache(Generic[V]):
    """LRU cache with per-entry time-to-live."""

    def __init__(
        self,
        maxsize: int = 1024,
        ttl: float = 30.0,
        clock: Optional[Clock] = None,
    ) -> None:
        if maxsize <= 0:
            raise ValueError("maxsize must be positive")
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self._maxsize = maxsize
        self._ttl = ttl
        self._clock = clock or Clock()
        self._entries: "OrderedDict[Hashable, Tuple[float, Any]]" = OrderedDict()

    @property
    def ttl(self) -> float:
        return self._ttl

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: Hashable) -> Optional[V]:
        """Return the cached value, or None if missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock.monotonic() >= expires_at:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return value

    def set(self, key: Hashable, value: V) -> None:
        self._entries[key] = (self._clock.monotonic() + self._ttl, value)
        self._entries.move_to_end(key)
        while len(self._entries) > self._maxsize:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Cache full, evicted %r", evicted)

    def evict(self, key: Hashable) -> bool:
        """Drop one entry. Returns True if it was present."""
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()
