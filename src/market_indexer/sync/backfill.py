"""
Historical backfill.

When a stream is far behind the head, it replays history in fixed-width
windows before switching to the live subscription.

How It Works
------------
1. The target height is frozen when backfill starts.
2. `[last_height + 1, target]` is cut into windows (see `windows`).
3. Windows are fetched ahead of processing, at most `max_inflight_windows`
   at a time. With the default of one, a window is fully persisted before
   the next one is requested.
4. Events are always processed in window order, then log order.
5. A fixed delay separates consecutive window requests, also when several
   windows are fetched ahead.

A window the node refuses as too wide is split in halves and retried (see
`fetch_events_splitting`).
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from market_indexer import metrics
from market_indexer.chain import ChainNodeClient, RawLogEvent, StreamKind, fetch_events_splitting
from market_indexer.types import NodeUnavailable

from .config import SyncSettings
from .retry import RetryPolicy
from .windows import BlockWindow, iter_windows

logger = logging.getLogger(__name__)

EventHandler = Callable[[RawLogEvent], Awaitable[None]]
"""Callback processing one event."""

WindowDone = Callable[[BlockWindow], None]
"""Callback invoked after every event of a window was handled."""


@dataclass(slots=True)
class BackfillSync:
    """Replays one stream's history up to a frozen target height."""

    stream: StreamKind
    """Stream being replayed."""

    client: ChainNodeClient
    """Node serving historical queries."""

    settings: SyncSettings
    """Window size, delay and concurrency."""

    retry: RetryPolicy = field(default_factory=RetryPolicy)
    """Backoff for transient query failures."""

    async def _fetch(
        self, window: BlockWindow, pacing: asyncio.Lock, wait: bool
    ) -> list[RawLogEvent]:
        # Requests leave one at a time, each `backfill_delay` after the
        # previous one, however many windows are fetched ahead.
        async with pacing:
            if wait and self.settings.backfill_delay > 0:
                await asyncio.sleep(self.settings.backfill_delay)

        events = await self.retry.run(
            lambda: fetch_events_splitting(self.client, self.stream, window.start, window.end),
            retry_on=(NodeUnavailable,),
            description=f"[{self.stream}] window [{window.start}, {window.end}]",
        )
        metrics.backfill_windows.labels(stream=str(self.stream)).inc()
        return events

    async def run(
        self,
        last_height: int,
        target_height: int,
        handle: EventHandler,
        on_window_done: WindowDone | None = None,
    ) -> int:
        """
        Replay `[last_height + 1, target_height]`.

        Args:
            last_height: Highest block already synchronized.
            target_height: Frozen backfill target.
            handle: Called for every event, in order.
            on_window_done: Called once a window is fully handled.

        Returns:
            Number of windows replayed.
        """
        pending = deque(iter_windows(last_height, target_height, self.settings.step_size))
        total = len(pending)
        logger.info(
            f"[{self.stream}] Backfilling [{last_height + 1}, {target_height}] "
            f"in {total} windows"
        )

        inflight: deque[tuple[BlockWindow, asyncio.Task[list[RawLogEvent]]]] = deque()
        pacing = asyncio.Lock()
        first = True
        done = 0

        try:
            while pending or inflight:
                # Top up the fetch pipeline.
                #
                # Every request after the very first waits the configured delay.
                while pending and len(inflight) < self.settings.max_inflight_windows:
                    window = pending.popleft()
                    fetch = self._fetch(window, pacing, wait=not first)
                    first = False
                    inflight.append((window, asyncio.create_task(fetch)))

                window, task = inflight.popleft()
                events = await task

                for event in events:
                    await handle(event)

                done += 1
                logger.debug(
                    f"[{self.stream}] Window {done}/{total} [{window.start}, {window.end}] "
                    f"handled {len(events)} events"
                )
                if on_window_done is not None:
                    on_window_done(window)
        finally:
            for _, task in inflight:
                task.cancel()
            if inflight:
                await asyncio.gather(*(task for _, task in inflight), return_exceptions=True)

        return done
