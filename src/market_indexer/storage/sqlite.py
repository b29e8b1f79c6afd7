"""
SQLite implementation of the event store.

This module provides persistent storage for indexed chain data:

- Normalized event records in append-only collections
- Token and order projections keyed by entity id

Records and projections are stored as JSON text. Token ids, order ids and
prices are uint256 values, which JSON carries exactly but SQLite integers
cannot, so only block numbers and log indices are stored in integer columns.

The sqlite3 module blocks. Every public method runs its statement on a worker
thread with `asyncio.to_thread`, and a lock serializes access to the single
connection.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, TypeVar

from market_indexer.types import PersistenceError

from .namespaces import PROJECTIONS, RECORDS, Collection, Entity
from .records import EventRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _projection_key(key: int | str) -> str:
    return str(int(key))


class SQLiteEventStore:
    """
    SQLite implementation of the EventStore protocol.

    Stores all collections and projections in a single SQLite file.
    """

    def __init__(self, path: Path | str) -> None:
        """
        Initialize SQLite store.

        Creates database file and tables if they don't exist.

        Args:
            path: Path to SQLite database file.
                  Use ":memory:" for in-memory database.
        """
        self._path = Path(path) if isinstance(path, str) else path
        self._lock = threading.Lock()

        # Worker threads share this connection.
        #
        # The check_same_thread=False flag allows that. The lock above makes
        # sure only one of them uses it at a time.
        try:
            self._conn = sqlite3.connect(
                str(self._path),
                check_same_thread=False,
            )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot open database {self._path}: {exc}") from exc

        # Row factory enables dict-like access: row["column_name"].
        self._conn.row_factory = sqlite3.Row

        self._init_schema()

    def _init_schema(self) -> None:
        """Create tables if they don't exist."""
        with self._lock, self._conn:
            cursor = self._conn.cursor()

            # Record collections carry an index on (event_type, block_number).
            #
            # Checkpoint resolution is a max() over that index.
            for namespace in RECORDS.values():
                cursor.execute(namespace.CREATE_TABLE)
                cursor.execute(namespace.CREATE_INDEX)
                cursor.execute(namespace.CREATE_LOG_INDEX)

            for projection in PROJECTIONS.values():
                cursor.execute(projection.CREATE_TABLE)

    async def _run(self, fn: Callable[[], T]) -> T:
        """Run a blocking statement on a worker thread under the lock."""

        def guarded() -> T:
            with self._lock:
                try:
                    return fn()
                except sqlite3.Error as exc:
                    raise PersistenceError(f"SQLite error: {exc}") from exc

        return await asyncio.to_thread(guarded)

    # -------------------------------------------------------------------------
    # Record Operations
    # -------------------------------------------------------------------------

    async def append(self, record: EventRecord) -> None:
        """Persist one normalized record."""
        table = RECORDS[record.collection].TABLE_NAME
        document = json.dumps(record.to_document())

        def insert() -> None:
            with self._conn:
                self._conn.execute(
                    f"INSERT INTO {table} "
                    "(block_number, transaction_hash, log_index, event_type, data) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (
                        record.block_number,
                        record.transaction_hash,
                        record.log_index,
                        record.event_type,
                        document,
                    ),
                )

        await self._run(insert)

    async def last_block_number(
        self, collection: Collection, event_type: str | None = None
    ) -> int | None:
        """Return the highest block number persisted for a collection."""
        table = RECORDS[collection].TABLE_NAME

        # `IS` matches NULL as well, so untyped collections use the same query.
        def query() -> int | None:
            row = self._conn.execute(
                f"SELECT MAX(block_number) AS block FROM {table} WHERE event_type IS ?",
                (event_type,),
            ).fetchone()
            return None if row is None else row["block"]

        return await self._run(query)

    async def records(
        self, collection: Collection, event_type: str | None = None
    ) -> list[dict[str, Any]]:
        """Return stored records ordered by block number, then insertion order."""
        table = RECORDS[collection].TABLE_NAME

        def query() -> list[dict[str, Any]]:
            rows = self._conn.execute(
                f"SELECT data FROM {table} WHERE event_type IS ? ORDER BY block_number, id",
                (event_type,),
            ).fetchall()
            return [json.loads(row["data"]) for row in rows]

        return await self._run(query)

    async def has_record(
        self, collection: Collection, transaction_hash: str, log_index: int
    ) -> bool:
        """Check whether the log at `(transaction_hash, log_index)` is stored."""
        table = RECORDS[collection].TABLE_NAME

        def query() -> bool:
            row = self._conn.execute(
                f"SELECT 1 FROM {table} WHERE transaction_hash = ? AND log_index = ? LIMIT 1",
                (transaction_hash, log_index),
            ).fetchone()
            return row is not None

        return await self._run(query)

    # -------------------------------------------------------------------------
    # Projection Operations
    # -------------------------------------------------------------------------

    async def apply_projection(
        self, entity: Entity, key: int | str, fields: Mapping[str, Any]
    ) -> None:
        """Upsert fields of one projected entity."""
        table = PROJECTIONS[entity].TABLE_NAME
        row_key = _projection_key(key)
        updates = dict(fields)

        # Merge in Python rather than with json_patch().
        #
        # SQLite's JSON functions read large integers as floats, which would
        # corrupt uint256 values.
        def upsert() -> None:
            with self._conn:
                row = self._conn.execute(
                    f"SELECT data FROM {table} WHERE key = ?", (row_key,)
                ).fetchone()
                current = json.loads(row["data"]) if row is not None else {}
                current.update(updates)
                self._conn.execute(
                    f"INSERT INTO {table} (key, data) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET data = excluded.data",
                    (row_key, json.dumps(current)),
                )

        await self._run(upsert)

    async def get_projection(self, entity: Entity, key: int | str) -> dict[str, Any] | None:
        """Return the stored fields of one entity, or None if unknown."""
        table = PROJECTIONS[entity].TABLE_NAME
        row_key = _projection_key(key)

        def query() -> dict[str, Any] | None:
            row = self._conn.execute(
                f"SELECT data FROM {table} WHERE key = ?", (row_key,)
            ).fetchone()
            return None if row is None else json.loads(row["data"])

        return await self._run(query)

    async def aggregate_count(self, entity: Entity) -> int:
        """Return the number of projected entities."""
        table = PROJECTIONS[entity].TABLE_NAME

        def query() -> int:
            row = self._conn.execute(f"SELECT COUNT(*) AS n FROM {table}").fetchone()
            return int(row["n"])

        return await self._run(query)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    # The context manager pattern ensures cleanup even on exceptions.

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()
        logger.debug(f"Closed event store {self._path}")

    def __enter__(self) -> SQLiteEventStore:
        """Enter context manager."""
        return self

    def __exit__(self, *args: object) -> None:
        """Exit context manager, closing connection."""
        self.close()
