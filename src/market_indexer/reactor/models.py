"""Contract read models returned by `tokenInfo` and `getOrderById`."""

from __future__ import annotations

from enum import IntEnum

from market_indexer.types import Address, CamelModel


class OrderState(IntEnum):
    """Lifecycle state of a market order, as encoded by the contract."""

    OPEN = 1
    FILLED = 2
    CANCELLED = 3
    TAKEN_DOWN = 4


class OrderType(IntEnum):
    """Kind of market order, as encoded by the contract."""

    SALE = 1
    AUCTION = 2


class TokenInfo(CamelModel):
    """On-chain metadata of a token."""

    token_id: int
    token_index: int
    token_uri: str
    royalty_owner: Address
    royalty_fee: int
    token_minter: Address
    create_time: int
    update_time: int


class OrderInfo(CamelModel):
    """
    On-chain state of a market order.

    Populated from `getOrderById` at the time the triggering event was
    processed, which may be later than the event itself.
    """

    order_id: int
    order_type: OrderType
    order_state: OrderState
    token_id: int
    quote_token: Address
    price: int
    end_time: int
    seller_addr: Address
    buyer_addr: Address
    bids: int
    last_bidder: Address
    last_bid: int
    filled: int
    royalty_owner: Address
    royalty_fee: int
    platform_addr: Address
    platform_fee: int
    create_time: int
    update_time: int
    seller_uri: str = ""
    buyer_uri: str = ""
