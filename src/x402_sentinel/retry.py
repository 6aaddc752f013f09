from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from x402_sentinel.errors import TransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for transient facilitator failures.

    Only TransportError is retried; every other failure is returned to the
    caller on the first attempt.
    """

    max_attempts: int = 3
    base_delay: float = 0.25
    max_delay: float = 2.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must be non-negative")

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    async def call(self, operation: Callable[[], Awaitable[T]], name: str = "call") -> T:
        attempt = 1
        while True:
            try:
                return await operation()
            except TransportError as e:
                if attempt >= self.max_attempts:
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    f"Facilitator {name} failed (attempt {attempt}/{self.max_attempts}): "
                    f"{e}; retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)
                attempt += 1


NO_RETRY = RetryPolicy(max_attempts=1)
