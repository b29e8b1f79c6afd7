"""
Domain reactor.

The sync engine turns each processed event into one command on the reactor.
The reactor owns the domain projections (tokens, orders). The engine never
writes projections directly.

Concurrency
-----------
All eight streams run concurrently and several of them update the same order.
`ProjectionReactor` serializes writes per entity key with an `asyncio.Lock`.
Writes to different keys proceed in parallel.

Causal order across streams is not enforced. If an `OrderFilled` from one
stream and an `OrderBid` from another touch the same order, the write that
runs last wins for the fields they share.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from market_indexer.storage import Entity, EventStore

from .models import OrderInfo, TokenInfo

logger = logging.getLogger(__name__)


class DomainReactor(Protocol):
    """Receiver of the domain effects of processed events."""

    async def handle_new_token(self, token: TokenInfo) -> None:
        """A token was minted."""
        ...

    async def handle_new_order(self, order: OrderInfo) -> None:
        """An order was listed (sale or auction)."""
        ...

    async def update_order(self, order_id: int, fields: Mapping[str, Any]) -> None:
        """Fields of an existing order changed."""
        ...

    async def update_token_owner(self, token_id: int, owner: str) -> None:
        """A token moved to a new owner."""
        ...


@dataclass(slots=True)
class ProjectionReactor:
    """
    Applies domain commands as projection upserts on the event store.

    - New tokens are seeded with every `TokenInfo` field plus `owner`, which
      starts as the minter.
    - New orders are seeded with every `OrderInfo` field.
    - Updates only touch the fields they carry.
    """

    store: EventStore
    """Store holding the projections."""

    _locks: weakref.WeakValueDictionary[tuple[Entity, str], asyncio.Lock] = field(
        default_factory=weakref.WeakValueDictionary
    )
    """Per-key write locks. Unused locks are dropped automatically."""

    def _lock_for(self, entity: Entity, key: int) -> asyncio.Lock:
        lock_key = (entity, str(key))
        lock = self._locks.get(lock_key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[lock_key] = lock
        return lock

    async def _apply(self, entity: Entity, key: int, fields: Mapping[str, Any]) -> None:
        async with self._lock_for(entity, key):
            await self.store.apply_projection(entity, key, fields)

    async def handle_new_token(self, token: TokenInfo) -> None:
        fields = token.to_document()
        fields["owner"] = token.token_minter
        logger.debug(f"New token {token.token_id} minted by {token.token_minter}")
        await self._apply(Entity.TOKENS, token.token_id, fields)

    async def handle_new_order(self, order: OrderInfo) -> None:
        logger.debug(f"New order {order.order_id} for token {order.token_id}")
        await self._apply(Entity.ORDERS, order.order_id, order.to_document())

    async def update_order(self, order_id: int, fields: Mapping[str, Any]) -> None:
        await self._apply(Entity.ORDERS, order_id, fields)

    async def update_token_owner(self, token_id: int, owner: str) -> None:
        await self._apply(Entity.TOKENS, token_id, {"owner": owner})
