"""
Stream definitions.

Every stream is a fixed pipeline known at import time. A definition ties
together:

- the collection and `eventType` its records are stored under,
- the contract read used to enrich its events (if any),
- the domain effect dispatched after the record is persisted.

Dispatch Table
--------------
::

    TokenTransfer      tokenInfo(tokenId)  mint -> new token, else owner change
    OrderForAuction    getOrderById        new order
    OrderForSale       getOrderById        new order
    OrderBid           getOrderById        bid fields of the order
    OrderPriceChanged  -                   price, updateTime
    OrderFilled        getOrderById        fill fields of the order
    OrderCancelled     -                   orderState = Cancelled, updateTime
    OrderTakenDown     -                   orderState = TakenDown, updateTime

Token transfers into the market contract are listings held in escrow, not
ownership changes, so they are not dispatched.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Final

from market_indexer.chain import (
    ContractAddresses,
    ContractRead,
    ContractRole,
    OrderPriceChangedEvent,
    RawLogEvent,
    StreamKind,
    TransferEvent,
)
from market_indexer.chain.abi import GET_ORDER_BY_ID, TOKEN_INFO
from market_indexer.reactor import DomainReactor, OrderInfo, OrderState, TokenInfo
from market_indexer.storage import Collection
from market_indexer.types import BURN_ADDRESS, CamelModel, same_address


@dataclass(frozen=True, slots=True)
class DispatchContext:
    """Everything a dispatch rule may need about one processed event."""

    event: RawLogEvent
    """The decoded event."""

    timestamp: int
    """Block timestamp of the event."""

    read: Any
    """Validated contract read model, or None for streams without enrichment."""

    contracts: ContractAddresses
    """Indexed contract addresses."""


EnrichmentFn = Callable[[RawLogEvent, ContractAddresses], ContractRead]
DispatchFn = Callable[[DomainReactor, DispatchContext], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class StreamDefinition:
    """Static description of one stream's pipeline."""

    kind: StreamKind
    """Stream identity."""

    contract: ContractRole
    """Emitting contract. Also selects the deployment-height fallback."""

    collection: Collection
    """Collection records are appended to."""

    event_type: str | None
    """Discriminator inside a shared collection."""

    dispatch: DispatchFn
    """Domain effect applied after the record is persisted."""

    enrichment: EnrichmentFn | None = None
    """Contract read issued in the same batch as the transaction and block."""

    read_model: type[CamelModel] | None = None
    """Model validating the enrichment result."""


# -----------------------------------------------------------------------------
# Enrichment reads
# -----------------------------------------------------------------------------


def _token_info(event: RawLogEvent, contracts: ContractAddresses) -> ContractRead:
    assert isinstance(event, TransferEvent)
    return ContractRead(contracts.token, TOKEN_INFO, (event.token_id,))


def _order_by_id(event: RawLogEvent, contracts: ContractAddresses) -> ContractRead:
    order_id = event.order_id  # type: ignore[attr-defined]
    return ContractRead(contracts.market, GET_ORDER_BY_ID, (order_id,))


# -----------------------------------------------------------------------------
# Dispatch rules
# -----------------------------------------------------------------------------

BID_FIELDS: Final[tuple[str, ...]] = (
    "orderState",
    "buyerAddr",
    "buyerUri",
    "filled",
    "platformAddr",
    "platformFee",
    "updateTime",
    "bids",
    "lastBid",
    "lastBidder",
)
"""Order fields refreshed from the contract after a bid."""

FILL_FIELDS: Final[tuple[str, ...]] = (
    "orderState",
    "buyerAddr",
    "buyerUri",
    "filled",
    "platformAddr",
    "platformFee",
    "updateTime",
)
"""Order fields refreshed from the contract after a fill."""


def _pick(order: OrderInfo, names: tuple[str, ...]) -> dict[str, Any]:
    document = order.to_document()
    return {name: document[name] for name in names}


async def _on_transfer(reactor: DomainReactor, ctx: DispatchContext) -> None:
    event = ctx.event
    assert isinstance(event, TransferEvent)

    if same_address(event.sender, BURN_ADDRESS):
        await reactor.handle_new_token(ctx.read)
    elif not same_address(event.recipient, ctx.contracts.market):
        await reactor.update_token_owner(event.token_id, event.recipient)


async def _on_new_order(reactor: DomainReactor, ctx: DispatchContext) -> None:
    await reactor.handle_new_order(ctx.read)


async def _on_bid(reactor: DomainReactor, ctx: DispatchContext) -> None:
    order: OrderInfo = ctx.read
    await reactor.update_order(order.order_id, _pick(order, BID_FIELDS))


async def _on_fill(reactor: DomainReactor, ctx: DispatchContext) -> None:
    order: OrderInfo = ctx.read
    await reactor.update_order(order.order_id, _pick(order, FILL_FIELDS))


async def _on_price_changed(reactor: DomainReactor, ctx: DispatchContext) -> None:
    event = ctx.event
    assert isinstance(event, OrderPriceChangedEvent)
    await reactor.update_order(
        event.order_id, {"price": event.new_price, "updateTime": ctx.timestamp}
    )


def _set_state(state: OrderState) -> DispatchFn:
    async def dispatch(reactor: DomainReactor, ctx: DispatchContext) -> None:
        await reactor.update_order(
            ctx.event.order_id,  # type: ignore[attr-defined]
            {"orderState": int(state), "updateTime": ctx.timestamp},
        )

    return dispatch


STREAMS: Final[dict[StreamKind, StreamDefinition]] = {
    StreamKind.TOKEN_TRANSFER: StreamDefinition(
        kind=StreamKind.TOKEN_TRANSFER,
        contract=ContractRole.TOKEN,
        collection=Collection.TOKEN_EVENTS,
        event_type=None,
        dispatch=_on_transfer,
        enrichment=_token_info,
        read_model=TokenInfo,
    ),
    StreamKind.ORDER_FOR_AUCTION: StreamDefinition(
        kind=StreamKind.ORDER_FOR_AUCTION,
        contract=ContractRole.MARKET,
        collection=Collection.ORDER_EVENTS,
        event_type="OrderForAuction",
        dispatch=_on_new_order,
        enrichment=_order_by_id,
        read_model=OrderInfo,
    ),
    StreamKind.ORDER_FOR_SALE: StreamDefinition(
        kind=StreamKind.ORDER_FOR_SALE,
        contract=ContractRole.MARKET,
        collection=Collection.ORDER_EVENTS,
        event_type="OrderForSale",
        dispatch=_on_new_order,
        enrichment=_order_by_id,
        read_model=OrderInfo,
    ),
    StreamKind.ORDER_BID: StreamDefinition(
        kind=StreamKind.ORDER_BID,
        contract=ContractRole.MARKET,
        collection=Collection.BID_ORDER_EVENTS,
        event_type=None,
        dispatch=_on_bid,
        enrichment=_order_by_id,
        read_model=OrderInfo,
    ),
    StreamKind.ORDER_PRICE_CHANGED: StreamDefinition(
        kind=StreamKind.ORDER_PRICE_CHANGED,
        contract=ContractRole.MARKET,
        collection=Collection.ORDER_EVENTS,
        event_type="OrderPriceChanged",
        dispatch=_on_price_changed,
    ),
    StreamKind.ORDER_FILLED: StreamDefinition(
        kind=StreamKind.ORDER_FILLED,
        contract=ContractRole.MARKET,
        collection=Collection.ORDER_EVENTS,
        event_type="OrderFilled",
        dispatch=_on_fill,
        enrichment=_order_by_id,
        read_model=OrderInfo,
    ),
    StreamKind.ORDER_CANCELLED: StreamDefinition(
        kind=StreamKind.ORDER_CANCELLED,
        contract=ContractRole.MARKET,
        collection=Collection.ORDER_EVENTS,
        event_type="OrderCanceled",
        dispatch=_set_state(OrderState.CANCELLED),
    ),
    StreamKind.ORDER_TAKEN_DOWN: StreamDefinition(
        kind=StreamKind.ORDER_TAKEN_DOWN,
        contract=ContractRole.MARKET,
        collection=Collection.ORDER_EVENTS,
        event_type="OrderTakenDown",
        dispatch=_set_state(OrderState.TAKEN_DOWN),
    ),
}
"""Pipeline of every stream."""
