from __future__ import annotations

import asyncio
import random
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ..cancellation import CancelToken
    from ..contracts import RetryPolicy


def compute_backoff(
    attempt: int, base: float = 2.0, initial: float = 1.0, jitter: float = 0.0
) -> float:
    """Compute exponential backoff (seconds) for the ``attempt``-th retry."""
    delay = initial * base ** max(attempt - 1, 0)
    return delay + random.uniform(0, jitter)


def policy_backoff(policy: RetryPolicy, attempt: int) -> float:
    """Backoff in seconds for a step retry under ``policy``."""
    return compute_backoff(
        attempt, base=policy.backoff_multiplier, initial=policy.initial_delay / 1000
    )


async def schedule_retry(delay: float, cancel_token: Optional[CancelToken] = None) -> None:
    """Sleep for ``delay`` seconds before retrying, waking early on cancel."""
    if delay <= 0:
        return
    if cancel_token is None:
        await asyncio.sleep(delay)
    else:
        await cancel_token.wait(delay)
