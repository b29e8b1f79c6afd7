"""
Remote ledger access.

Everything the indexer knows about the chain comes through this package:
block height, historical and live logs, and batched reads.
"""

from .abi import AbiParam, EventAbi, FunctionAbi, keccak256
from .calls import BlockInfo, ContractRead, GetBlock, GetTransaction, RpcCall, TransactionInfo
from .client import (
    ChainNodeClient,
    ContractAddresses,
    JsonRpcNodeClient,
    fetch_events_splitting,
)
from .events import (
    EVENT_MODELS,
    EVENT_SOURCES,
    ContractRole,
    OrderBidEvent,
    OrderCancelledEvent,
    OrderFilledEvent,
    OrderForAuctionEvent,
    OrderForSaleEvent,
    OrderPriceChangedEvent,
    OrderTakenDownEvent,
    RawLogEvent,
    StreamKind,
    TransferEvent,
    decode_log,
)
from .subscription import LogSubscription

__all__ = [
    # ABI
    "AbiParam",
    "EventAbi",
    "FunctionAbi",
    "keccak256",
    # Batched calls
    "RpcCall",
    "GetTransaction",
    "GetBlock",
    "ContractRead",
    "TransactionInfo",
    "BlockInfo",
    # Client
    "ChainNodeClient",
    "ContractAddresses",
    "JsonRpcNodeClient",
    "LogSubscription",
    "fetch_events_splitting",
    # Events
    "StreamKind",
    "ContractRole",
    "RawLogEvent",
    "TransferEvent",
    "OrderForAuctionEvent",
    "OrderForSaleEvent",
    "OrderBidEvent",
    "OrderPriceChangedEvent",
    "OrderFilledEvent",
    "OrderCancelledEvent",
    "OrderTakenDownEvent",
    "EVENT_MODELS",
    "EVENT_SOURCES",
    "decode_log",
]
