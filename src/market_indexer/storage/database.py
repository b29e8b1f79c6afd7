"""
Abstract event store interface.

Defines the Protocol that all store implementations must follow.
Uses structural subtyping for flexibility.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from .namespaces import Collection, Entity
    from .records import EventRecord


class EventStore(Protocol):
    """
    Protocol for record and projection storage.

    Storage Organization
    --------------------
    - Records: append-only, one collection per event family, no uniqueness
    - Projections: one row per entity key, updated field by field

    Every method raises `PersistenceError` when the backing storage fails.
    """

    # -------------------------------------------------------------------------
    # Record Operations
    # -------------------------------------------------------------------------

    async def append(self, record: EventRecord) -> None:
        """
        Persist one normalized record.

        No de-duplication is performed. Appending the same record twice
        stores it twice.

        Args:
            record: Record to append to its collection.
        """
        ...

    async def last_block_number(
        self, collection: Collection, event_type: str | None = None
    ) -> int | None:
        """
        Return the highest block number persisted for a collection.

        Args:
            collection: Collection to inspect.
            event_type: Restrict to records with this discriminator.

        Returns:
            Highest block number, or None if no record matches.
        """
        ...

    async def records(
        self, collection: Collection, event_type: str | None = None
    ) -> list[dict[str, Any]]:
        """
        Return stored records ordered by block number, then insertion order.

        Args:
            collection: Collection to read.
            event_type: Restrict to records with this discriminator.
        """
        ...

    async def has_record(
        self, collection: Collection, transaction_hash: str, log_index: int
    ) -> bool:
        """
        Check whether the log at `(transaction_hash, log_index)` is stored.

        The sync engine uses this to replay a block without storing its
        events twice. `append` itself never checks.
        """
        ...

    # -------------------------------------------------------------------------
    # Projection Operations
    # -------------------------------------------------------------------------

    async def apply_projection(
        self, entity: Entity, key: int | str, fields: Mapping[str, Any]
    ) -> None:
        """
        Upsert fields of one projected entity.

        Only the given fields are written. Fields not mentioned keep their
        stored value. Applying the same update twice has no further effect.

        Args:
            entity: Projection to update.
            key: Entity id.
            fields: Field values to set.
        """
        ...

    async def get_projection(self, entity: Entity, key: int | str) -> dict[str, Any] | None:
        """
        Return the stored fields of one entity, or None if unknown.

        Args:
            entity: Projection to read.
            key: Entity id.
        """
        ...

    async def aggregate_count(self, entity: Entity) -> int:
        """
        Return the number of projected entities.

        Args:
            entity: Projection to count.
        """
        ...

    def close(self) -> None:
        """Release the underlying storage."""
        ...
