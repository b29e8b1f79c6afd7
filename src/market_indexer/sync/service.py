"""
Per-stream sync service.

One `StreamSyncService` follows one stream for the lifetime of the process.

The Sync Cycle
--------------
Every cycle starts in RESOLVING:

1. Read the head and subtract the confirmation depth: `now_height`.
2. `last_height = max(derived checkpoint - 1, synced_floor)`. The checkpoint
   block is replayed because a halt may have stored only part of it. The
   floor is the height through which backfill has completed in this process,
   so windows that contained no events are not replayed after a reconnect.
3. If the gap `now_height - last_height` is at most `step_size + 1`, start
   the live subscription right after `last_height`. The subscription replays
   the small gap itself.
4. Otherwise backfill `[last_height + 1, now_height]` (BACKFILLING), then
   start the live subscription right after `now_height`.

A dropped subscription sends the stream back to RESOLVING after an
exponential backoff. So does a node failure that exhausted its retries, once
the first head lookup has succeeded. Only a head that cannot be read at
startup, or storage that keeps failing, marks the stream FAILED and
propagates to the supervisor.

Shutdown
--------
`request_stop()` makes the service refuse new events. An event already being
processed is allowed to finish; `wait_idle()` resolves once it has.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from market_indexer import metrics
from market_indexer.chain import ChainNodeClient, RawLogEvent, StreamKind
from market_indexer.types import (
    BatchCallFailed,
    NodeUnavailable,
    PersistenceError,
    SubscriptionDropped,
)

from .backfill import BackfillSync
from .checkpoint import CheckpointResolver
from .config import SyncSettings
from .processor import EventProcessor
from .retry import RetryPolicy, backoff_delay
from .states import StreamState
from .windows import BlockWindow, needs_backfill

logger = logging.getLogger(__name__)


class _StopRequested(Exception):
    """Raised inside the cycle once shutdown was requested."""


@dataclass(slots=True)
class StreamStatus:
    """
    Snapshot of one stream's progress.

    Exposed through the operational API.
    """

    stream: StreamKind
    """Stream identity."""

    state: StreamState
    """Current state machine state."""

    last_processed_block: int | None = None
    """Block of the last event persisted in this process."""

    synced_floor: int = 0
    """Height through which backfill completed in this process."""

    events_processed: int = 0
    """Events persisted in this process."""

    events_skipped: int = 0
    """Malformed events skipped in this process."""

    reconnects: int = 0
    """Subscriptions re-established after a drop."""

    last_error: str | None = None
    """Error that failed the stream, if any."""


@dataclass(slots=True)
class StreamSyncService:
    """Backfill plus live tail for a single stream."""

    stream: StreamKind
    """Stream being followed."""

    client: ChainNodeClient
    """Node access."""

    checkpoints: CheckpointResolver
    """Derived checkpoint lookup."""

    processor: EventProcessor
    """Per-event enrichment, persistence and dispatch."""

    settings: SyncSettings = field(default_factory=SyncSettings)
    """Sync tunables."""

    _state: StreamState = field(default=StreamState.IDLE)
    """Current state."""

    _status: StreamStatus | None = field(default=None)
    """Progress counters."""

    _retry: RetryPolicy | None = field(default=None)
    """Backoff for resolving steps."""

    _drops_in_row: int = field(default=0)
    """Consecutive resyncs without a delivered event. Drives the reconnect delay."""

    _head_seen: bool = field(default=False)
    """Set once a head lookup succeeded. Node failures after that are resynced."""

    _stop_requested: bool = field(default=False)
    """Set once shutdown was requested."""

    _idle: asyncio.Event = field(default_factory=asyncio.Event)
    """Set whenever no event is being processed."""

    def __post_init__(self) -> None:
        """Initialize progress tracking."""
        self._status = StreamStatus(stream=self.stream, state=self._state)
        self._retry = RetryPolicy(
            attempts=self.settings.retry_attempts,
            base_delay=self.settings.retry_base_delay,
            max_delay=self.settings.retry_max_delay,
        )
        self._idle.set()

    @property
    def state(self) -> StreamState:
        """Current state machine state."""
        return self._state

    @property
    def synced_floor(self) -> int:
        """Height through which backfill completed in this process."""
        assert self._status is not None
        return self._status.synced_floor

    def get_status(self) -> StreamStatus:
        """Return a copy of the current progress."""
        assert self._status is not None
        status = self._status
        return StreamStatus(
            stream=status.stream,
            state=self._state,
            last_processed_block=status.last_processed_block,
            synced_floor=status.synced_floor,
            events_processed=status.events_processed,
            events_skipped=status.events_skipped,
            reconnects=status.reconnects,
            last_error=status.last_error,
        )

    def _transition_to(self, new_state: StreamState) -> None:
        """
        Transition to a new state.

        Args:
            new_state: Target state.

        Raises:
            ValueError: If transition is not allowed.
        """
        if not self._state.can_transition_to(new_state):
            raise ValueError(f"Invalid state transition: {self._state.name} -> {new_state.name}")
        logger.debug(f"[{self.stream}] {self._state.name} -> {new_state.name}")
        self._state = new_state

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def run(self) -> None:
        """
        Run sync cycles until stopped or failed.

        Raises:
            Exception: The error that failed the stream, after it was marked FAILED.
        """
        assert self._status is not None
        self._transition_to(StreamState.RESOLVING)

        try:
            while True:
                try:
                    sync_start = await self._resolve_and_backfill()
                    await self._tail(sync_start)
                except SubscriptionDropped as exc:
                    await self._resync(f"Subscription dropped ({exc.message})")
                except (NodeUnavailable, BatchCallFailed) as exc:
                    # Only a head lookup that never succeeded fails the stream.
                    if not self._head_seen:
                        raise
                    await self._resync(f"Node kept failing ({type(exc).__name__}: {exc.message})")
        except _StopRequested:
            self._stop()
            logger.info(f"[{self.stream}] Stopped")
        except asyncio.CancelledError:
            self._stop()
            raise
        except Exception as exc:
            self._status.last_error = f"{type(exc).__name__}: {exc}"
            self._transition_to(StreamState.FAILED)
            metrics.stream_failures.labels(stream=str(self.stream)).inc()
            raise

    async def _resync(self, reason: str) -> None:
        """Back off, then start a new cycle from RESOLVING."""
        assert self._status is not None
        self._drops_in_row += 1
        self._status.reconnects += 1
        metrics.subscription_reconnects.labels(stream=str(self.stream)).inc()

        delay = backoff_delay(
            self._drops_in_row,
            self.settings.reconnect_base_delay,
            self.settings.reconnect_max_delay,
        )
        logger.warning(f"[{self.stream}] {reason}, resynchronizing in {delay:.1f}s")
        if self._state is not StreamState.RESOLVING:
            self._transition_to(StreamState.RESOLVING)
        await asyncio.sleep(delay)

    def _stop(self) -> None:
        if self._state.can_transition_to(StreamState.STOPPED):
            self._transition_to(StreamState.STOPPED)

    def request_stop(self) -> None:
        """Refuse further events. The event in progress may finish."""
        self._stop_requested = True

    async def wait_idle(self) -> None:
        """Wait until no event is being processed."""
        await self._idle.wait()

    # -------------------------------------------------------------------------
    # Sync cycle
    # -------------------------------------------------------------------------

    async def _resolve_and_backfill(self) -> int:
        """
        Resolve the resume point and backfill if the gap is large.

        Returns:
            The height after which the live subscription must start.
        """
        assert self._status is not None and self._retry is not None

        head = await self._retry.run(
            self.client.current_height,
            retry_on=(NodeUnavailable,),
            description=f"[{self.stream}] head lookup",
        )
        self._head_seen = True
        metrics.chain_head.set(head)
        now_height = max(head - self.settings.confirmation_depth, 0)

        resume = await self._retry.run(
            lambda: self.checkpoints.resume_height(self.stream),
            retry_on=(PersistenceError,),
            description=f"[{self.stream}] checkpoint lookup",
        )
        last_height = max(resume, self._status.synced_floor)

        if not needs_backfill(last_height, now_height, self.settings.step_size):
            logger.info(
                f"[{self.stream}] At {last_height}, head {now_height}: gap within "
                f"{self.settings.gap_threshold} blocks, left to the live replay"
            )
            return last_height

        # Freeze the target before touching history.
        #
        # Blocks mined during backfill are picked up by the subscription.
        self._transition_to(StreamState.BACKFILLING)
        backfill = BackfillSync(
            stream=self.stream,
            client=self.client,
            settings=self.settings,
            retry=self._retry,
        )
        await backfill.run(last_height, now_height, self._handle, self._on_window_done)
        self._status.synced_floor = max(self._status.synced_floor, now_height)

        logger.info(f"[{self.stream}] Backfill complete through {now_height}")
        return now_height

    def _on_window_done(self, window: BlockWindow) -> None:
        assert self._status is not None
        self._status.synced_floor = max(self._status.synced_floor, window.end)

    async def _tail(self, sync_start: int) -> None:
        """
        Consume the live subscription until it drops.

        Raises:
            SubscriptionDropped: Always, unless stopped or failed first.
        """
        self._transition_to(StreamState.LIVE_TAILING)

        async with self.client.subscribe_live(self.stream, sync_start + 1) as subscription:
            logger.info(f"[{self.stream}] Live tailing from block {sync_start + 1}")
            async for event in subscription:
                self._drops_in_row = 0
                await self._handle(event)

        raise SubscriptionDropped(f"[{self.stream}] subscription ended")

    async def _handle(self, event: RawLogEvent) -> None:
        """Process one event, tracking progress."""
        assert self._status is not None
        if self._stop_requested:
            raise _StopRequested()

        self._idle.clear()
        try:
            processed = await self.processor.process(event)
        finally:
            self._idle.set()

        if processed:
            self._status.events_processed += 1
            self._status.last_processed_block = event.block_number
            metrics.stream_height.labels(stream=str(self.stream)).set(event.block_number)
        else:
            self._status.events_skipped += 1
