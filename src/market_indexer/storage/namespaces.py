"""
Database namespace definitions for storage tables.

Defines table names and schema constants for SQLite storage.
Each namespace represents a logical grouping of related data.

Two kinds of tables exist:

- **Record collections** are append-only logs of normalized events.
- **Projections** hold the current view of an entity, one row per key.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Collection(str, Enum):
    """Append-only record collections."""

    TOKEN_EVENTS = "token_events"
    ORDER_EVENTS = "order_events"
    BID_ORDER_EVENTS = "bid_order_events"


class Entity(str, Enum):
    """Projected entities."""

    TOKENS = "tokens"
    ORDERS = "orders"


@dataclass(frozen=True, slots=True)
class RecordNamespace:
    """
    Namespace for one record collection.

    The full record is stored as JSON in `data`. The columns the sync engine
    queries on are duplicated so they can be indexed.
    """

    TABLE_NAME: str
    """Table name for the collection."""

    @property
    def CREATE_TABLE(self) -> str:  # noqa: N802
        """SQL to create the collection table."""
        return f"""
            CREATE TABLE IF NOT EXISTS {self.TABLE_NAME} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                block_number INTEGER NOT NULL,
                transaction_hash TEXT NOT NULL,
                log_index INTEGER NOT NULL DEFAULT 0,
                event_type TEXT,
                data TEXT NOT NULL
            )
        """

    @property
    def CREATE_INDEX(self) -> str:  # noqa: N802
        """SQL to create the checkpoint index."""
        return f"""
            CREATE INDEX IF NOT EXISTS idx_{self.TABLE_NAME}_type_block
            ON {self.TABLE_NAME}(event_type, block_number DESC)
        """

    @property
    def CREATE_LOG_INDEX(self) -> str:  # noqa: N802
        """SQL to create the lookup index on a log's position."""
        return f"""
            CREATE INDEX IF NOT EXISTS idx_{self.TABLE_NAME}_log
            ON {self.TABLE_NAME}(transaction_hash, log_index)
        """


@dataclass(frozen=True, slots=True)
class ProjectionNamespace:
    """
    Namespace for one projection.

    Rows are keyed by the entity id in decimal text, since token and order
    ids are uint256 and overflow SQLite integers.
    """

    TABLE_NAME: str
    """Table name for the projection."""

    @property
    def CREATE_TABLE(self) -> str:  # noqa: N802
        """SQL to create the projection table."""
        return f"""
            CREATE TABLE IF NOT EXISTS {self.TABLE_NAME} (
                key TEXT PRIMARY KEY,
                data TEXT NOT NULL
            )
        """


# Singleton instances for convenient access
RECORDS: dict[Collection, RecordNamespace] = {c: RecordNamespace(c.value) for c in Collection}
PROJECTIONS: dict[Entity, ProjectionNamespace] = {e: ProjectionNamespace(e.value) for e in Entity}
