"""
Calls that can be combined into one JSON-RPC batch.

Each call knows how to render itself as a JSON-RPC request and how to decode
the node's answer into a typed result. The client only deals with transport.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from market_indexer.types import (
    CamelModel,
    ChainDataNotFound,
    HexHash,
    MalformedEvent,
    Quantity,
)

from .abi import FunctionAbi


class TransactionInfo(CamelModel):
    """Subset of `eth_getTransactionByHash` the indexer needs."""

    hash: HexHash
    gas: Quantity
    gas_price: Quantity


class BlockInfo(CamelModel):
    """Subset of `eth_getBlockByNumber` the indexer needs."""

    number: Quantity
    timestamp: Quantity


class RpcCall(Protocol):
    """A single call that can be placed in a batch."""

    def to_request(self) -> tuple[str, list[Any]]:
        """Return the JSON-RPC method and params."""
        ...

    def decode(self, result: Any) -> Any:
        """Decode the `result` member of the response."""
        ...


def _require(result: Any, what: str) -> Any:
    # Null means the node has not seen the object yet.
    if result is None:
        raise ChainDataNotFound(f"{what} not found on node")
    return result


def _validate(model: type[CamelModel], result: Any, what: str) -> Any:
    try:
        return model.model_validate(result)
    except ValueError as exc:
        raise MalformedEvent(f"{what}: unexpected response shape: {exc}") from exc


@dataclass(frozen=True, slots=True)
class GetTransaction:
    """Fetch a transaction by hash (gas and gas price for the fee)."""

    tx_hash: str

    def to_request(self) -> tuple[str, list[Any]]:
        return "eth_getTransactionByHash", [self.tx_hash]

    def decode(self, result: Any) -> TransactionInfo:
        what = f"transaction {self.tx_hash}"
        return _validate(TransactionInfo, _require(result, what), what)


@dataclass(frozen=True, slots=True)
class GetBlock:
    """Fetch a block header by number (timestamp of the event)."""

    number: int

    def to_request(self) -> tuple[str, list[Any]]:
        return "eth_getBlockByNumber", [hex(self.number), False]

    def decode(self, result: Any) -> BlockInfo:
        what = f"block {self.number}"
        return _validate(BlockInfo, _require(result, what), what)


@dataclass(frozen=True, slots=True)
class ContractRead:
    """Invoke a view function with `eth_call` at the latest block."""

    address: str
    function: FunctionAbi
    args: tuple[Any, ...] = ()

    def to_request(self) -> tuple[str, list[Any]]:
        call = {"to": self.address, "data": self.function.encode_call(self.args)}
        return "eth_call", [call, "latest"]

    def decode(self, result: Any) -> Any:
        if not isinstance(result, str):
            raise MalformedEvent(f"{self.function.name}: non-hex eth_call result {result!r}")
        return self.function.decode_result(result)
