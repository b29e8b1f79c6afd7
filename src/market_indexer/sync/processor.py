"""
Per-event processing.

One event goes through four steps:

1. **Enrich**: one batched call fetches the transaction, the block, and the
   stream's contract read (if any).
2. **Normalize**: the gas fee is computed exactly and the block time attached.
3. **Persist**: the record is appended to its collection, unless a record for
   the same log is already stored.
4. **Dispatch**: the stream's domain effect is applied through the reactor.

Dispatch runs even when the record was already stored. A replayed block thus
re-applies effects that may have been lost after the append; projection
updates are idempotent field writes, so applying them twice is harmless.

Failure Policy
--------------
- `NodeUnavailable` / `BatchCallFailed`: the whole batch is retried with
  backoff. Exhausted retries propagate to the stream, which resynchronizes.
- `ChainDataNotFound`: the node does not know the transaction or block yet.
  Retried like a failed batch; once retries are exhausted the event is
  skipped and counted.
- `PersistenceError`: retried with backoff, then propagated. An event is never
  skipped because storage failed.
- `MalformedEvent`: logged, counted, and the event is skipped. The stream
  continues with the next event.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from decimal import Context, Decimal
from typing import Any, Final

from pydantic import ValidationError

from market_indexer import metrics
from market_indexer.chain import (
    BlockInfo,
    ChainNodeClient,
    ContractAddresses,
    GetBlock,
    GetTransaction,
    RawLogEvent,
    RpcCall,
    TransactionInfo,
)
from market_indexer.reactor import DomainReactor
from market_indexer.storage import EventRecord, EventStore
from market_indexer.types import (
    BatchCallFailed,
    ChainDataNotFound,
    MalformedEvent,
    NodeUnavailable,
    PersistenceError,
)

from .retry import RetryPolicy
from .streams import STREAMS, DispatchContext, StreamDefinition

logger = logging.getLogger(__name__)

NATIVE_DECIMALS: Final[int] = 18
"""Decimal places between wei and the native unit."""


def compute_gas_fee(gas: int, gas_price: int) -> Decimal:
    """
    Return `gas * gas_price / 10^18` exactly.

    The product is an integer number of wei, so the division by a power of
    ten is exact in decimal arithmetic.
    """
    wei = gas * gas_price
    exact = Context(prec=max(len(str(wei)), 1))
    return Decimal(wei).scaleb(-NATIVE_DECIMALS, exact).normalize(exact)


@dataclass(slots=True)
class EventProcessor:
    """Enriches, persists and dispatches single events."""

    client: ChainNodeClient
    """Node used for the enrichment batch."""

    store: EventStore
    """Store receiving the records."""

    reactor: DomainReactor
    """Receiver of domain effects."""

    contracts: ContractAddresses
    """Indexed contract addresses."""

    retry: RetryPolicy = field(default_factory=RetryPolicy)
    """Backoff applied to remote and storage steps."""

    async def process(self, event: RawLogEvent) -> bool:
        """
        Process one event end to end.

        Args:
            event: Decoded event of any stream.

        Returns:
            True if the event was persisted, False if it was skipped.

        Raises:
            NodeUnavailable: Enrichment kept failing.
            BatchCallFailed: Enrichment kept failing.
            PersistenceError: Storage kept failing.
        """
        definition = STREAMS[event.stream]
        started = time.perf_counter()

        try:
            record, context = await self._enrich(definition, event)
        except (MalformedEvent, ChainDataNotFound) as exc:
            logger.warning(
                f"[{event.stream}] Skipping event tx={event.transaction_hash} "
                f"block={event.block_number}: {exc.message}"
            )
            metrics.events_skipped.labels(stream=str(event.stream)).inc()
            return False

        label = f"[{event.stream}] block {event.block_number}"
        stored = await self.retry.run(
            lambda: self.store.has_record(
                record.collection, record.transaction_hash, record.log_index
            ),
            retry_on=(PersistenceError,),
            description=f"{label} lookup",
        )
        if stored:
            logger.debug(
                f"{label} log {event.transaction_hash}:{event.log_index} already stored, "
                "re-applying its effect"
            )
        else:
            await self.retry.run(
                lambda: self.store.append(record),
                retry_on=(PersistenceError,),
                description=f"{label} append",
            )
        await self.retry.run(
            lambda: definition.dispatch(self.reactor, context),
            retry_on=(PersistenceError,),
            description=f"{label} dispatch",
        )

        metrics.events_processed.labels(stream=str(event.stream)).inc()
        metrics.event_processing_time.observe(time.perf_counter() - started)
        return True

    async def _enrich(
        self, definition: StreamDefinition, event: RawLogEvent
    ) -> tuple[EventRecord, DispatchContext]:
        """Fetch enrichment data and build the record and dispatch context."""
        calls: list[RpcCall] = [
            GetTransaction(event.transaction_hash),
            GetBlock(event.block_number),
        ]
        if definition.enrichment is not None:
            calls.append(definition.enrichment(event, self.contracts))

        results = await self.retry.run(
            lambda: self.client.batch_call(calls),
            retry_on=(NodeUnavailable, BatchCallFailed),
            description=f"[{event.stream}] enrichment of {event.transaction_hash}",
        )
        if len(results) != len(calls):
            raise MalformedEvent(f"Expected {len(calls)} batch results, got {len(results)}")

        tx = results[0]
        block = results[1]
        if not isinstance(tx, TransactionInfo) or not isinstance(block, BlockInfo):
            raise MalformedEvent("Batch results are not a transaction and a block")

        read: Any = None
        if definition.read_model is not None:
            try:
                read = definition.read_model.model_validate(results[2])
            except ValidationError as exc:
                raise MalformedEvent(f"Invalid {definition.read_model.__name__}: {exc}") from exc

        record = EventRecord(
            collection=definition.collection,
            event_type=definition.event_type,
            block_number=event.block_number,
            transaction_hash=event.transaction_hash,
            log_index=event.log_index,
            gas_fee=compute_gas_fee(tx.gas, tx.gas_price),
            timestamp=block.timestamp,
            emitted=event.emitted_fields(),
        )
        context = DispatchContext(
            event=event,
            timestamp=block.timestamp,
            read=read,
            contracts=self.contracts,
        )
        return record, context
