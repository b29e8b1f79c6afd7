"""
Sync engine configuration.

Operational parameters for synchronization: window sizes, delays, retries.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

DEFAULT_STEP_SIZE: Final[int] = 10_000
"""Blocks added to a window's start to get its end (windows are step + 1 wide)."""

DEFAULT_BACKFILL_DELAY: Final[float] = 10.0
"""Seconds to wait between historical window requests."""

DEFAULT_MAX_INFLIGHT_WINDOWS: Final[int] = 1
"""Historical windows fetched concurrently per stream."""

DEFAULT_CONFIRMATION_DEPTH: Final[int] = 0
"""Blocks below the head considered safe to backfill."""

DEFAULT_RETRY_ATTEMPTS: Final[int] = 5
"""Attempts for a remote or storage step before the stream fails."""

DEFAULT_RETRY_BASE_DELAY: Final[float] = 1.0
"""First backoff delay in seconds. Doubles after each failure."""

DEFAULT_RETRY_MAX_DELAY: Final[float] = 60.0
"""Upper bound on a single backoff delay."""

DEFAULT_RECONNECT_BASE_DELAY: Final[float] = 1.0
"""First delay before re-subscribing after a dropped subscription."""

DEFAULT_RECONNECT_MAX_DELAY: Final[float] = 120.0
"""Upper bound on the re-subscribe delay."""


@dataclass(frozen=True, slots=True)
class SyncSettings:
    """Tunables shared by every stream."""

    step_size: int = DEFAULT_STEP_SIZE
    """Window end is `from + step_size`."""

    backfill_delay: float = DEFAULT_BACKFILL_DELAY
    """Seconds between historical window requests."""

    max_inflight_windows: int = DEFAULT_MAX_INFLIGHT_WINDOWS
    """Concurrent historical windows per stream."""

    confirmation_depth: int = DEFAULT_CONFIRMATION_DEPTH
    """Backfill stops this many blocks below the head."""

    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    """Attempts per remote or storage step."""

    retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY
    """First retry delay."""

    retry_max_delay: float = DEFAULT_RETRY_MAX_DELAY
    """Largest retry delay."""

    reconnect_base_delay: float = DEFAULT_RECONNECT_BASE_DELAY
    """First re-subscribe delay."""

    reconnect_max_delay: float = DEFAULT_RECONNECT_MAX_DELAY
    """Largest re-subscribe delay."""

    def __post_init__(self) -> None:
        if self.step_size < 0:
            raise ValueError(f"step_size must be >= 0, got {self.step_size}")
        if self.max_inflight_windows < 1:
            raise ValueError(
                f"max_inflight_windows must be >= 1, got {self.max_inflight_windows}"
            )
        if self.confirmation_depth < 0:
            raise ValueError(
                f"confirmation_depth must be >= 0, got {self.confirmation_depth}"
            )
        if self.retry_attempts < 1:
            raise ValueError(f"retry_attempts must be >= 1, got {self.retry_attempts}")

    @property
    def gap_threshold(self) -> int:
        """Largest gap that is left to the live subscription's replay."""
        return self.step_size + 1
