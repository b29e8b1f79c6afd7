"""
Retry with exponential backoff.

Each processing step names the errors it may retry. Anything else propagates
immediately. When the attempts run out the last error propagates, and the
stream's supervisor treats it as a stream failure.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, base: float, maximum: float) -> float:
    """
    Delay before retry number `attempt` (1-based).

    Doubles from `base` and is capped at `maximum`.
    """
    return min(base * (2 ** (attempt - 1)), maximum)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bounded exponential backoff."""

    attempts: int = 5
    """Total attempts, including the first."""

    base_delay: float = 1.0
    """Delay after the first failure."""

    max_delay: float = 60.0
    """Largest delay between attempts."""

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        retry_on: tuple[type[BaseException], ...],
        description: str,
    ) -> T:
        """
        Run `operation`, retrying the listed errors.

        Args:
            operation: Zero-argument coroutine factory. Called once per attempt.
            retry_on: Exception types that trigger a retry.
            description: Short label for log lines.

        Returns:
            The operation's result.

        Raises:
            The last retryable error once attempts are exhausted, or any
            non-retryable error immediately.
        """
        attempt = 1
        while True:
            try:
                return await operation()
            except retry_on as exc:
                if attempt >= self.attempts:
                    logger.error(f"{description} failed after {attempt} attempts: {exc}")
                    raise
                delay = backoff_delay(attempt, self.base_delay, self.max_delay)
                logger.warning(
                    f"{description} failed (attempt {attempt}/{self.attempts}), "
                    f"retrying in {delay:.1f}s: {exc}"
                )
                await asyncio.sleep(delay)
                attempt += 1
