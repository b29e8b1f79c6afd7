"""
Backfill window planning.

Windows tile `[last_height + 1, now_height]` without gaps or overlap::

    from_1 = last_height + 1
    to_i   = min(from_i + step_size, now_height)
    from_i+1 = to_i + 1

Each window therefore spans `step_size + 1` blocks, except the last one,
which is truncated at `now_height`.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import NamedTuple


class BlockWindow(NamedTuple):
    """Inclusive block range of one historical query."""

    start: int
    end: int

    @property
    def size(self) -> int:
        """Number of blocks in the window."""
        return self.end - self.start + 1


def needs_backfill(last_height: int, now_height: int, step_size: int) -> bool:
    """
    Decide whether the gap is wide enough to require historical windows.

    Gaps up to `step_size + 1` blocks are left to the live subscription,
    which replays them itself.
    """
    return now_height - last_height > step_size + 1


def iter_windows(last_height: int, now_height: int, step_size: int) -> Iterator[BlockWindow]:
    """
    Yield the windows covering `[last_height + 1, now_height]`.

    Args:
        last_height: Highest block already synchronized.
        now_height: Frozen backfill target.
        step_size: Window end offset from its start.

    Yields:
        Consecutive, non-overlapping windows in ascending order.
    """
    start = last_height + 1
    while start <= now_height:
        end = min(start + step_size, now_height)
        yield BlockWindow(start, end)
        start = end + 1


def plan_windows(last_height: int, now_height: int, step_size: int) -> list[BlockWindow]:
    """Return every window covering `[last_height + 1, now_height]`."""
    return list(iter_windows(last_height, now_height, step_size))
