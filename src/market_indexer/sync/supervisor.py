"""
Sync supervisor.

Runs every stream's `StreamSyncService` as its own asyncio task.

- Streams start one after another, `start_stagger` seconds apart, so the
  node is not hit by eight head lookups and backfills at once.
- A failing stream is logged and left FAILED. Its siblings keep running.
- `stop()` lets in-flight events finish persisting, then cancels the tasks.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Final

from market_indexer.chain import StreamKind

from .service import StreamStatus, StreamSyncService

logger = logging.getLogger(__name__)

DEFAULT_START_STAGGER: Final[float] = 1.0
"""Seconds between consecutive stream starts."""

DEFAULT_DRAIN_TIMEOUT: Final[float] = 30.0
"""Seconds shutdown waits for in-flight events before cancelling."""


@dataclass(slots=True)
class SyncSupervisor:
    """Owns the per-stream tasks."""

    services: Mapping[StreamKind, StreamSyncService]
    """One service per followed stream, started in mapping order."""

    start_stagger: float = DEFAULT_START_STAGGER
    """Delay between consecutive stream starts."""

    drain_timeout: float = DEFAULT_DRAIN_TIMEOUT
    """Upper bound on the shutdown drain."""

    _tasks: dict[StreamKind, asyncio.Task[None]] = field(default_factory=dict)
    """Running stream tasks."""

    _stopping: asyncio.Event = field(default_factory=asyncio.Event)
    """Set once shutdown started."""

    async def run(self) -> None:
        """
        Start all streams and wait until every one of them has ended.

        Streams end by failing or by being stopped.
        """
        try:
            for index, service in enumerate(self.services.values()):
                if index > 0 and self.start_stagger > 0:
                    try:
                        await asyncio.wait_for(self._stopping.wait(), self.start_stagger)
                    except TimeoutError:
                        pass
                if self._stopping.is_set():
                    break

                logger.info(f"[{service.stream}] Starting stream")
                self._tasks[service.stream] = asyncio.create_task(
                    self._supervise(service), name=f"sync-{service.stream}"
                )

            if self._tasks:
                await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        finally:
            for task in self._tasks.values():
                task.cancel()

    async def _supervise(self, service: StreamSyncService) -> None:
        """Run one stream, containing its failure."""
        try:
            await service.run()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error(
                f"[{service.stream}] Stream failed and halted: {type(exc).__name__}: {exc}"
            )

    async def stop(self) -> None:
        """Stop accepting events, drain in-flight work, then cancel the streams."""
        self._stopping.set()
        for service in self.services.values():
            service.request_stop()

        try:
            async with asyncio.timeout(self.drain_timeout):
                for service in self.services.values():
                    await service.wait_idle()
        except TimeoutError:
            logger.warning(f"In-flight events did not drain within {self.drain_timeout}s")

        for task in self._tasks.values():
            task.cancel()

    def get_status(self) -> list[StreamStatus]:
        """Return the progress of every stream."""
        return [service.get_status() for service in self.services.values()]
