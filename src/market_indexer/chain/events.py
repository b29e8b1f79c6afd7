"""
Stream kinds and typed raw log events.

Every log returned by the node is validated into one of the variants below
before it reaches the sync engine. The variant is selected by the stream the
log was requested for, so downstream code never inspects untyped payloads.

Field names follow the contract parameter names with the leading underscore
stripped. When dumped with `by_alias=True` they become the camel case keys
of the persisted record (`tokenId`, `quoteToken`, ...).
"""

from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar, Final

from pydantic import AliasChoices, Field, ValidationError

from market_indexer.types import Address, HexHash, MalformedEvent, Quantity, StrictBaseModel

from .abi import (
    ORDER_BID,
    ORDER_CANCELED,
    ORDER_FILLED,
    ORDER_FOR_AUCTION,
    ORDER_FOR_SALE,
    ORDER_PRICE_CHANGED,
    ORDER_TAKEN_DOWN,
    TRANSFER,
    EventAbi,
)


class StreamKind(str, Enum):
    """The eight event streams the indexer follows."""

    TOKEN_TRANSFER = "TokenTransfer"
    ORDER_FOR_AUCTION = "OrderForAuction"
    ORDER_FOR_SALE = "OrderForSale"
    ORDER_BID = "OrderBid"
    ORDER_PRICE_CHANGED = "OrderPriceChanged"
    ORDER_FILLED = "OrderFilled"
    ORDER_CANCELLED = "OrderCancelled"
    ORDER_TAKEN_DOWN = "OrderTakenDown"

    def __str__(self) -> str:
        return self.value


class ContractRole(str, Enum):
    """Which of the two contracts emits a stream."""

    TOKEN = "token"
    MARKET = "market"


class RawLogEvent(StrictBaseModel):
    """
    Common envelope of every decoded log.

    Subclasses add the fields emitted by their contract event.
    """

    stream: ClassVar[StreamKind]
    """Stream this variant belongs to."""

    block_number: Quantity
    """Block the log was emitted in."""

    transaction_hash: HexHash
    """Hash of the emitting transaction."""

    log_index: Quantity = 0
    """Position of the log inside its block."""

    def emitted_fields(self) -> dict[str, Any]:
        """
        Return the contract-emitted fields keyed by their record names.

        Envelope fields are excluded. Large integers stay as Python ints.
        """
        return self.model_dump(
            by_alias=True,
            exclude={"block_number", "transaction_hash", "log_index"},
        )


class TransferEvent(RawLogEvent):
    """Token `Transfer` (mint when `from` is the burn address)."""

    stream: ClassVar[StreamKind] = StreamKind.TOKEN_TRANSFER

    sender: Address = Field(alias="from")
    recipient: Address = Field(alias="to")
    token_id: int


class OrderForAuctionEvent(RawLogEvent):
    """Market `OrderForAuction`."""

    stream: ClassVar[StreamKind] = StreamKind.ORDER_FOR_AUCTION

    seller: Address
    order_id: int
    token_id: int
    quote_token: Address
    min_price: int
    end_time: int


class OrderForSaleEvent(RawLogEvent):
    """Market `OrderForSale`."""

    stream: ClassVar[StreamKind] = StreamKind.ORDER_FOR_SALE

    seller: Address
    order_id: int
    token_id: int
    price: int


class OrderBidEvent(RawLogEvent):
    """Market `OrderBid`."""

    stream: ClassVar[StreamKind] = StreamKind.ORDER_BID

    seller: Address
    buyer: Address
    order_id: int
    price: int


class OrderPriceChangedEvent(RawLogEvent):
    """Market `OrderPriceChanged`."""

    stream: ClassVar[StreamKind] = StreamKind.ORDER_PRICE_CHANGED

    seller: Address
    order_id: int
    old_price: int
    new_price: int


class OrderFilledEvent(RawLogEvent):
    """Market `OrderFilled`."""

    stream: ClassVar[StreamKind] = StreamKind.ORDER_FILLED

    seller: Address
    buyer: Address
    order_id: int
    quote_token: Address
    price: int
    royalty_owner: Address
    royalty_fee: int
    platform_address: Address = Field(
        validation_alias=AliasChoices("platformAddr", "platformAddress", "platform_address"),
        serialization_alias="platformAddress",
    )
    platform_fee: int


class OrderCancelledEvent(RawLogEvent):
    """Market `OrderCanceled`."""

    stream: ClassVar[StreamKind] = StreamKind.ORDER_CANCELLED

    seller: Address
    order_id: int


class OrderTakenDownEvent(RawLogEvent):
    """Market `OrderTakenDown`."""

    stream: ClassVar[StreamKind] = StreamKind.ORDER_TAKEN_DOWN

    seller: Address
    order_id: int


EVENT_MODELS: Final[dict[StreamKind, type[RawLogEvent]]] = {
    StreamKind.TOKEN_TRANSFER: TransferEvent,
    StreamKind.ORDER_FOR_AUCTION: OrderForAuctionEvent,
    StreamKind.ORDER_FOR_SALE: OrderForSaleEvent,
    StreamKind.ORDER_BID: OrderBidEvent,
    StreamKind.ORDER_PRICE_CHANGED: OrderPriceChangedEvent,
    StreamKind.ORDER_FILLED: OrderFilledEvent,
    StreamKind.ORDER_CANCELLED: OrderCancelledEvent,
    StreamKind.ORDER_TAKEN_DOWN: OrderTakenDownEvent,
}
"""Typed variant per stream."""

EVENT_SOURCES: Final[dict[StreamKind, tuple[ContractRole, EventAbi]]] = {
    StreamKind.TOKEN_TRANSFER: (ContractRole.TOKEN, TRANSFER),
    StreamKind.ORDER_FOR_AUCTION: (ContractRole.MARKET, ORDER_FOR_AUCTION),
    StreamKind.ORDER_FOR_SALE: (ContractRole.MARKET, ORDER_FOR_SALE),
    StreamKind.ORDER_BID: (ContractRole.MARKET, ORDER_BID),
    StreamKind.ORDER_PRICE_CHANGED: (ContractRole.MARKET, ORDER_PRICE_CHANGED),
    StreamKind.ORDER_FILLED: (ContractRole.MARKET, ORDER_FILLED),
    StreamKind.ORDER_CANCELLED: (ContractRole.MARKET, ORDER_CANCELED),
    StreamKind.ORDER_TAKEN_DOWN: (ContractRole.MARKET, ORDER_TAKEN_DOWN),
}
"""Emitting contract and remote event fragment per stream."""


def decode_log(stream: StreamKind, log: dict[str, Any]) -> RawLogEvent:
    """
    Validate a JSON-RPC log object into the stream's typed variant.

    Args:
        stream: Stream the log was requested for.
        log: Raw log object as returned by `eth_getLogs` or a subscription.

    Returns:
        The typed event.

    Raises:
        MalformedEvent: If the log cannot be decoded or validated.
    """
    _, event_abi = EVENT_SOURCES[stream]
    values = event_abi.decode_log(log)

    payload: dict[str, Any] = {name.lstrip("_"): value for name, value in values.items()}
    payload["blockNumber"] = log.get("blockNumber")
    payload["transactionHash"] = log.get("transactionHash")
    payload["logIndex"] = log.get("logIndex") or 0

    try:
        return EVENT_MODELS[stream].model_validate(payload)
    except ValidationError as exc:
        raise MalformedEvent(f"{stream}: invalid log payload: {exc}") from exc
