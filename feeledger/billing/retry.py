"""Bounded exponential backoff for transient external read failures."""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from feeledger.core.config import Settings
from feeledger.core.exceptions import ServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    backoff_base: float = 0.5
    backoff_max: float = 8.0
    jitter: float = 0.25

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            attempts=max(1, settings.retry_attempts),
            backoff_base=settings.retry_backoff_base,
            backoff_max=settings.retry_backoff_max,
        )

    def delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (0-based)."""
        base = min(self.backoff_max, self.backoff_base * (2 ** attempt))
        return base + random.uniform(0, self.jitter)


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    description: str = "request",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await ``operation()``; retry it while it raises a retryable ServiceError."""
    for attempt in range(policy.attempts):
        try:
            return await operation()
        except ServiceError as exc:
            if not exc.retryable or attempt + 1 >= policy.attempts:
                raise
            delay = policy.delay(attempt)
            logger.warning(
                "%s failed (%s), retry %d/%d in %.2fs",
                description, exc.message, attempt + 1, policy.attempts - 1, delay,
            )
            await sleep(delay)
    raise RuntimeError(f"{description} failed after retries")
