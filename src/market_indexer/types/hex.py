"""Helpers for hex-encoded quantities, hashes and addresses."""

from __future__ import annotations

from typing import Annotated, Any, Final

from pydantic import AfterValidator, BeforeValidator

BURN_ADDRESS: Final = "0x0000000000000000000000000000000000000000"
"""Sender of every mint in a token Transfer event."""


def parse_quantity(value: Any) -> int:
    """
    Parse a JSON-RPC quantity.

    Nodes return quantities as 0x-prefixed hex strings. Decoded ABI values and
    test fixtures already hold ints, and decimal strings are accepted too.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a quantity: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.startswith(("0x", "0X")):
            return int(text, 16)
        return int(text)
    raise ValueError(f"Not a quantity: {value!r}")


def normalize_address(value: str) -> str:
    """Return the lowercase 0x-prefixed form of a 20-byte address."""
    text = value.strip().lower()
    if not text.startswith("0x"):
        text = "0x" + text
    if len(text) != 42:
        raise ValueError(f"Invalid address length: {value!r}")
    int(text, 16)
    return text


def same_address(a: str, b: str) -> bool:
    """Compare two addresses case-insensitively."""
    return a.lower() == b.lower()


def _normalize_hash(value: Any) -> str:
    if isinstance(value, bytes):
        value = "0x" + value.hex()
    if not isinstance(value, str):
        raise ValueError(f"Not a hash: {value!r}")
    text = value.lower()
    if not text.startswith("0x") or len(text) != 66:
        raise ValueError(f"Invalid 32-byte hash: {value!r}")
    return text


Address = Annotated[str, AfterValidator(normalize_address)]
"""Address stored in its lowercase form."""

HexHash = Annotated[str, BeforeValidator(_normalize_hash)]
"""32-byte hash stored as a lowercase 0x-prefixed string."""

Quantity = Annotated[int, BeforeValidator(parse_quantity)]
"""Non-negative integer that may arrive hex-encoded."""
