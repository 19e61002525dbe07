"""Retry classification and backoff."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Literal

from core.domain.errors import RETRYABLE_CODES, CanonicalError

Backoff = Literal["linear", "exponential"]
Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Which failures are retried and how long to wait in between.

    Only transient kinds are retried; contract and business failures end the
    call on the first attempt.
    """

    base_delay_ms: int = 1_000
    backoff: Backoff = "linear"
    retryable_codes: frozenset[str] = RETRYABLE_CODES

    def __post_init__(self) -> None:
        if self.base_delay_ms < 0:
            raise ValueError(f"base_delay_ms must be >= 0, got {self.base_delay_ms}")
        if self.backoff not in ("linear", "exponential"):
            raise ValueError(f"unknown backoff: {self.backoff!r}")

    def is_retryable(self, error: CanonicalError) -> bool:
        return error.code in self.retryable_codes

    def should_retry(self, error: CanonicalError, *, attempt: int, max_attempts: int) -> bool:
        """`attempt` is 0-based; a retry needs budget left and a retryable code."""

        return attempt + 1 < max_attempts and self.is_retryable(error)

    def delay_ms(self, attempt: int) -> int:
        """Wait before the attempt following 0-based `attempt`."""

        if self.backoff == "exponential":
            return self.base_delay_ms * (2**attempt)
        return self.base_delay_ms * (attempt + 1)


async def sleep_ms(ms: float) -> None:
    await asyncio.sleep(ms / 1000)
