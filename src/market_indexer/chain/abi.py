"""
Contract ABI definitions and codecs.

The indexer talks to two contracts:

- The **token** contract: an ERC-721 style collection emitting `Transfer`.
- The **market** contract: order book emitting order lifecycle events.

Only the fragments the indexer needs are declared here. Event topics and
function selectors are derived from the canonical signature with keccak-256,
exactly as the EVM does:

    topic0   = keccak256("Transfer(address,address,uint256)")
    selector = keccak256("getOrderById(uint256)")[:4]

Log payloads follow the Solidity ABI layout. Indexed parameters live in
`topics[1:]`, one 32-byte word each. Non-indexed parameters are ABI-encoded
together in `data`.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Final

from Crypto.Hash import keccak
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError

from market_indexer.types import MalformedEvent


def keccak256(data: bytes) -> bytes:
    """Return the 32-byte keccak-256 digest of `data`."""
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


def _hex_to_bytes(value: str) -> bytes:
    text = value[2:] if value.startswith(("0x", "0X")) else value
    return bytes.fromhex(text)


def _normalize_value(abi_type: str, value: Any) -> Any:
    # Addresses come back checksummed from eth_abi; the indexer stores lowercase.
    if abi_type == "address":
        return value.lower()
    return value


@dataclass(frozen=True, slots=True)
class AbiParam:
    """A single named ABI parameter."""

    name: str
    """Parameter name as declared in the contract source."""

    type: str
    """Canonical ABI type, e.g. `uint256` or `address`."""

    indexed: bool = False
    """Whether the parameter is carried in a log topic (events only)."""


@dataclass(frozen=True, slots=True)
class EventAbi:
    """
    An event fragment.

    Decodes raw logs into a mapping from parameter name to Python value.
    """

    name: str
    """Event name as emitted by the contract."""

    inputs: tuple[AbiParam, ...]
    """Event parameters in declaration order."""

    topic: str = field(init=False)
    """Hex-encoded topic0 identifying the event."""

    def __post_init__(self) -> None:
        digest = keccak256(self.signature.encode())
        object.__setattr__(self, "topic", "0x" + digest.hex())

    @property
    def signature(self) -> str:
        """Canonical signature used to derive topic0."""
        return f"{self.name}({','.join(p.type for p in self.inputs)})"

    def decode_log(self, log: Mapping[str, Any]) -> dict[str, Any]:
        """
        Decode the emitted parameters of a raw log.

        Args:
            log: JSON-RPC log object with `topics` and `data`.

        Returns:
            Parameter values keyed by declared name.

        Raises:
            MalformedEvent: If the log does not match this fragment.
        """
        try:
            topics = [_hex_to_bytes(t) for t in log["topics"]]
            data = _hex_to_bytes(log.get("data") or "0x")
        except (KeyError, TypeError, ValueError) as exc:
            raise MalformedEvent(f"{self.name}: unreadable log payload: {exc}") from exc

        if not topics or "0x" + topics[0].hex() != self.topic:
            raise MalformedEvent(f"{self.name}: topic0 does not match event signature")

        indexed = [p for p in self.inputs if p.indexed]
        plain = [p for p in self.inputs if not p.indexed]

        if len(topics) - 1 != len(indexed):
            raise MalformedEvent(
                f"{self.name}: expected {len(indexed)} indexed topics, got {len(topics) - 1}"
            )

        values: dict[str, Any] = {}
        try:
            for param, topic in zip(indexed, topics[1:], strict=True):
                (value,) = decode([param.type], topic)
                values[param.name] = _normalize_value(param.type, value)

            decoded = decode([p.type for p in plain], data) if plain else ()
            for param, value in zip(plain, decoded, strict=True):
                values[param.name] = _normalize_value(param.type, value)
        except (DecodingError, ValueError, OverflowError) as exc:
            raise MalformedEvent(f"{self.name}: ABI decoding failed: {exc}") from exc

        return values


@dataclass(frozen=True, slots=True)
class FunctionAbi:
    """
    A read-only function fragment.

    Encodes `eth_call` input data and decodes the returned bytes.
    """

    name: str
    """Function name."""

    inputs: tuple[str, ...]
    """Input ABI types."""

    outputs: tuple[AbiParam, ...]
    """Output parameters. A single tuple-shaped return is flattened into these."""

    returns_struct: bool = False
    """Whether the outputs are returned as one struct (ABI tuple)."""

    @property
    def signature(self) -> str:
        """Canonical signature used to derive the selector."""
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> bytes:
        """First four bytes of the signature hash."""
        return keccak256(self.signature.encode())[:4]

    def encode_call(self, args: Sequence[Any]) -> str:
        """Return hex-encoded call data for `args`."""
        payload = self.selector + encode(list(self.inputs), list(args))
        return "0x" + payload.hex()

    def decode_result(self, result: str) -> Any:
        """
        Decode hex-encoded return data.

        Struct returns decode to a dict keyed by component name. A single
        scalar output decodes to the bare value.

        Raises:
            MalformedEvent: If the returned bytes do not match the outputs.
        """
        try:
            data = _hex_to_bytes(result)
            types = [p.type for p in self.outputs]
            if self.returns_struct:
                (values,) = decode([f"({','.join(types)})"], data)
            else:
                values = decode(types, data)
        except (DecodingError, ValueError, OverflowError, TypeError) as exc:
            raise MalformedEvent(f"{self.name}: cannot decode return data: {exc}") from exc

        if len(self.outputs) == 1 and not self.returns_struct:
            return _normalize_value(self.outputs[0].type, values[0])

        return {
            p.name: _normalize_value(p.type, v) for p, v in zip(self.outputs, values, strict=True)
        }


# -----------------------------------------------------------------------------
# Token contract
# -----------------------------------------------------------------------------

TRANSFER: Final = EventAbi(
    name="Transfer",
    inputs=(
        AbiParam("_from", "address", indexed=True),
        AbiParam("_to", "address", indexed=True),
        AbiParam("_tokenId", "uint256", indexed=True),
    ),
)

TOKEN_INFO: Final = FunctionAbi(
    name="tokenInfo",
    inputs=("uint256",),
    outputs=(
        AbiParam("tokenId", "uint256"),
        AbiParam("tokenIndex", "uint256"),
        AbiParam("tokenUri", "string"),
        AbiParam("royaltyOwner", "address"),
        AbiParam("royaltyFee", "uint256"),
        AbiParam("tokenMinter", "address"),
        AbiParam("createTime", "uint256"),
        AbiParam("updateTime", "uint256"),
    ),
    returns_struct=True,
)

TOTAL_SUPPLY: Final = FunctionAbi(
    name="totalSupply",
    inputs=(),
    outputs=(AbiParam("supply", "uint256"),),
)

# -----------------------------------------------------------------------------
# Market contract
# -----------------------------------------------------------------------------

ORDER_FOR_AUCTION: Final = EventAbi(
    name="OrderForAuction",
    inputs=(
        AbiParam("_seller", "address", indexed=True),
        AbiParam("_orderId", "uint256", indexed=True),
        AbiParam("_tokenId", "uint256", indexed=True),
        AbiParam("_quoteToken", "address"),
        AbiParam("_minPrice", "uint256"),
        AbiParam("_endTime", "uint256"),
    ),
)

ORDER_FOR_SALE: Final = EventAbi(
    name="OrderForSale",
    inputs=(
        AbiParam("_seller", "address", indexed=True),
        AbiParam("_orderId", "uint256", indexed=True),
        AbiParam("_tokenId", "uint256", indexed=True),
        AbiParam("_price", "uint256"),
    ),
)

ORDER_BID: Final = EventAbi(
    name="OrderBid",
    inputs=(
        AbiParam("_seller", "address", indexed=True),
        AbiParam("_buyer", "address", indexed=True),
        AbiParam("_orderId", "uint256", indexed=True),
        AbiParam("_price", "uint256"),
    ),
)

ORDER_PRICE_CHANGED: Final = EventAbi(
    name="OrderPriceChanged",
    inputs=(
        AbiParam("_seller", "address", indexed=True),
        AbiParam("_orderId", "uint256", indexed=True),
        AbiParam("_oldPrice", "uint256"),
        AbiParam("_newPrice", "uint256"),
    ),
)

ORDER_FILLED: Final = EventAbi(
    name="OrderFilled",
    inputs=(
        AbiParam("_seller", "address", indexed=True),
        AbiParam("_buyer", "address", indexed=True),
        AbiParam("_orderId", "uint256", indexed=True),
        AbiParam("_quoteToken", "address"),
        AbiParam("_price", "uint256"),
        AbiParam("_royaltyOwner", "address"),
        AbiParam("_royaltyFee", "uint256"),
        AbiParam("_platformAddr", "address"),
        AbiParam("_platformFee", "uint256"),
    ),
)

ORDER_CANCELED: Final = EventAbi(
    name="OrderCanceled",
    inputs=(
        AbiParam("_seller", "address", indexed=True),
        AbiParam("_orderId", "uint256", indexed=True),
    ),
)

ORDER_TAKEN_DOWN: Final = EventAbi(
    name="OrderTakenDown",
    inputs=(
        AbiParam("_seller", "address", indexed=True),
        AbiParam("_orderId", "uint256", indexed=True),
    ),
)

GET_ORDER_BY_ID: Final = FunctionAbi(
    name="getOrderById",
    inputs=("uint256",),
    outputs=(
        AbiParam("orderId", "uint256"),
        AbiParam("orderType", "uint256"),
        AbiParam("orderState", "uint256"),
        AbiParam("tokenId", "uint256"),
        AbiParam("quoteToken", "address"),
        AbiParam("price", "uint256"),
        AbiParam("endTime", "uint256"),
        AbiParam("sellerAddr", "address"),
        AbiParam("buyerAddr", "address"),
        AbiParam("bids", "uint256"),
        AbiParam("lastBidder", "address"),
        AbiParam("lastBid", "uint256"),
        AbiParam("filled", "uint256"),
        AbiParam("royaltyOwner", "address"),
        AbiParam("royaltyFee", "uint256"),
        AbiParam("platformAddr", "address"),
        AbiParam("platformFee", "uint256"),
        AbiParam("createTime", "uint256"),
        AbiParam("updateTime", "uint256"),
        AbiParam("sellerUri", "string"),
        AbiParam("buyerUri", "string"),
    ),
    returns_struct=True,
)

GET_ORDER_COUNT: Final = FunctionAbi(
    name="getOrderCount",
    inputs=(),
    outputs=(AbiParam("count", "uint256"),),
)
