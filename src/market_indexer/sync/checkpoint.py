"""
Checkpoint resolution.

There is no separate checkpoint table. A stream's checkpoint is derived from
the data itself: the highest block among its persisted records. A stream that
has never persisted anything resumes at its contract's deployment height.

Deriving the checkpoint means a crash can never leave it ahead of the data.
Within one stream events are persisted in block order, so every block below
the derived checkpoint has been fully processed. The checkpoint block itself
may not be: a halt between two events of the same block leaves it partially
stored. Resuming therefore replays the checkpoint block, and the processor
skips the records it already holds.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from market_indexer.chain import ContractRole, StreamKind
from market_indexer.storage import EventStore

from .streams import STREAMS

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CheckpointResolver:
    """Derives where each stream left off."""

    store: EventStore
    """Store holding the records."""

    deploy_heights: Mapping[ContractRole, int]
    """Fallback height per contract when a stream has no records yet."""

    async def last_height(self, stream: StreamKind) -> int:
        """
        Return the last synchronized height of a stream.

        Args:
            stream: Stream to resolve.

        Returns:
            Highest persisted block for the stream, or the deployment height
            of its contract if nothing was persisted yet.
        """
        persisted = await self._persisted_height(stream)
        if persisted is not None:
            return persisted
        return self._deploy_height(stream)

    async def resume_height(self, stream: StreamKind) -> int:
        """
        Return the height after which a stream resumes.

        This is one below the checkpoint when records exist, so the possibly
        incomplete checkpoint block is replayed. Without records it is the
        deployment height.
        """
        persisted = await self._persisted_height(stream)
        if persisted is not None:
            return persisted - 1
        return self._deploy_height(stream)

    async def _persisted_height(self, stream: StreamKind) -> int | None:
        definition = STREAMS[stream]
        return await self.store.last_block_number(definition.collection, definition.event_type)

    def _deploy_height(self, stream: StreamKind) -> int:
        fallback = self.deploy_heights.get(STREAMS[stream].contract, 0)
        logger.debug(f"[{stream}] No records yet, starting from deployment height {fallback}")
        return fallback
