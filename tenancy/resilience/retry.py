# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.

"""
Read-after-write Consistency — Bounded exponential backoff.

When a caller must observe a document it just wrote (e.g. the owner
membership of a freshly created tenant), wait_until_visible re-reads with
exponential backoff and raises EventualConsistencyTimeout once the budget
is spent, instead of silently continuing.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from tenancy.core.errors import EventualConsistencyTimeout

logger = logging.getLogger("tenancy.retry")

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Configuration for bounded retry behavior."""
    max_attempts: int = 5
    backoff_base: float = 0.05       # seconds
    backoff_multiplier: float = 2.0  # exponential factor
    max_backoff: float = 1.0         # cap

    def next_delay(self, attempt: int) -> float:
        """Delay after a failed attempt (1-based), exponential and capped."""
        delay = self.backoff_base * (self.backoff_multiplier ** (attempt - 1))
        return min(delay, self.max_backoff)

    def total_budget(self) -> float:
        """Worst-case time spent sleeping across all attempts."""
        return sum(self.next_delay(a) for a in range(1, self.max_attempts))


DEFAULT_RETRY_POLICY = RetryPolicy()


async def wait_until_visible(
    read: Callable[[], Awaitable[Optional[T]]],
    what: str,
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Call ``read`` until it returns something other than None.

    Raises EventualConsistencyTimeout after ``policy.max_attempts`` reads.
    """
    policy = policy or DEFAULT_RETRY_POLICY
    for attempt in range(1, policy.max_attempts + 1):
        value = await read()
        if value is not None:
            if attempt > 1:
                logger.info("%s became visible after %d reads", what, attempt)
            return value
        if attempt < policy.max_attempts:
            delay = policy.next_delay(attempt)
            logger.debug("%s not visible yet, retrying in %.2fs", what, delay)
            await sleep(delay)

    logger.error("%s still not visible after %d reads", what, policy.max_attempts)
    raise EventualConsistencyTimeout(
        f"{what} was written but is not readable yet",
        details={"attempts": policy.max_attempts, "budget_seconds": policy.total_budget()},
    )
