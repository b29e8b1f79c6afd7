"""Normalized event records as persisted by the event store."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import Field, field_serializer

from market_indexer.types import CamelModel, HexHash

from .namespaces import Collection


class EventRecord(CamelModel):
    """
    One persisted event.

    The document written to storage is the stream's emitted fields merged with
    the envelope and enrichment values. `gasFee` is kept as an exact decimal
    and serialized as a decimal string.
    """

    collection: Collection = Field(exclude=True)
    """Collection the record is appended to."""

    event_type: str | None = None
    """Discriminator inside a shared collection."""

    block_number: int
    """Block the event was emitted in."""

    transaction_hash: HexHash
    """Emitting transaction."""

    log_index: int = 0
    """Position of the log inside its block."""

    gas_fee: Decimal
    """`gas * gasPrice / 10^18` of the emitting transaction."""

    timestamp: int
    """Block timestamp in seconds."""

    emitted: dict[str, Any] = Field(default_factory=dict, exclude=True)
    """Contract-emitted fields keyed by record name."""

    @field_serializer("gas_fee")
    def _serialize_gas_fee(self, value: Decimal) -> str:
        # Positional notation, never "1E-8".
        return format(value, "f")

    def to_document(self) -> dict[str, Any]:
        """Return the flat document stored for this record."""
        document = dict(self.emitted)
        document.update(self.model_dump(mode="json", by_alias=True, exclude_none=True))
        return document
