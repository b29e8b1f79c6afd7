"""
Chain event synchronization engine.

What Is Sync?
-------------
The indexer follows eight event streams emitted by a token contract and a
market contract. For each stream it must:

1. **Resume**: find where it left off, derived from persisted records
2. **Backfill**: replay history it missed, in bounded windows
3. **Tail**: follow new events live, with no gap and no duplicate at the seam
4. **Process**: enrich, persist and dispatch every event in order

Streams are independent. Each runs its own state machine under the
supervisor, and a failure in one never stops another.
"""

from __future__ import annotations

__all__ = [
    # Services
    "SyncSupervisor",
    "StreamSyncService",
    "StreamStatus",
    "BackfillSync",
    "EventProcessor",
    "CheckpointResolver",
    # States
    "StreamState",
    # Streams
    "STREAMS",
    "StreamDefinition",
    "DispatchContext",
    # Windows
    "BlockWindow",
    "iter_windows",
    "plan_windows",
    "needs_backfill",
    # Retry
    "RetryPolicy",
    "backoff_delay",
    # Processing helpers
    "compute_gas_fee",
    # Configuration
    "SyncSettings",
    "DEFAULT_STEP_SIZE",
    "DEFAULT_BACKFILL_DELAY",
    "DEFAULT_MAX_INFLIGHT_WINDOWS",
    "DEFAULT_CONFIRMATION_DEPTH",
]

from .backfill import BackfillSync
from .checkpoint import CheckpointResolver
from .config import (
    DEFAULT_BACKFILL_DELAY,
    DEFAULT_CONFIRMATION_DEPTH,
    DEFAULT_MAX_INFLIGHT_WINDOWS,
    DEFAULT_STEP_SIZE,
    SyncSettings,
)
from .processor import EventProcessor, compute_gas_fee
from .retry import RetryPolicy, backoff_delay
from .service import StreamStatus, StreamSyncService
from .states import StreamState
from .streams import STREAMS, DispatchContext, StreamDefinition
from .supervisor import SyncSupervisor
from .windows import BlockWindow, iter_windows, needs_backfill, plan_windows
