"""Reusable type definitions shared across the indexer."""

from .base import CamelModel, StrictBaseModel
from .exceptions import (
    BatchCallFailed,
    ChainDataNotFound,
    IndexerError,
    MalformedEvent,
    NodeUnavailable,
    PersistenceError,
    RangeTooLarge,
    SubscriptionDropped,
)
from .hex import (
    BURN_ADDRESS,
    Address,
    HexHash,
    Quantity,
    normalize_address,
    parse_quantity,
    same_address,
)

__all__ = [
    # Models
    "CamelModel",
    "StrictBaseModel",
    # Hex helpers
    "Address",
    "HexHash",
    "Quantity",
    "BURN_ADDRESS",
    "normalize_address",
    "parse_quantity",
    "same_address",
    # Exceptions
    "IndexerError",
    "NodeUnavailable",
    "RangeTooLarge",
    "BatchCallFailed",
    "ChainDataNotFound",
    "PersistenceError",
    "MalformedEvent",
    "SubscriptionDropped",
]
