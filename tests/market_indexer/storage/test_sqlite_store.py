"""Tests for the SQLite event store."""

from __future__ import annotations

import asyncio
from decimal import Decimal
from pathlib import Path

import pytest

from market_indexer.storage import Collection, Entity, EventRecord, SQLiteEventStore
from market_indexer.types import PersistenceError
from tests.market_indexer.helpers import ALICE, BOB, make_tx_hash


def make_record(
    block: int,
    collection: Collection = Collection.ORDER_EVENTS,
    event_type: str | None = "OrderForSale",
    **emitted: object,
) -> EventRecord:
    return EventRecord(
        collection=collection,
        event_type=event_type,
        block_number=block,
        transaction_hash=make_tx_hash(block),
        gas_fee=Decimal("0.00105"),
        timestamp=1_700_000_000 + block,
        emitted=emitted or {"orderId": block},
    )


class TestRecords:
    """Tests for the append-only record collections."""

    async def test_append_and_read_back(self, store: SQLiteEventStore) -> None:
        """A record reads back as its flat document."""
        await store.append(make_record(10, orderId=2**200, seller=ALICE))

        (document,) = await store.records(Collection.ORDER_EVENTS, "OrderForSale")

        assert document["orderId"] == 2**200
        assert document["seller"] == ALICE
        assert document["blockNumber"] == 10
        assert document["gasFee"] == "0.00105"
        assert document["eventType"] == "OrderForSale"

    async def test_last_block_number_per_event_type(self, store: SQLiteEventStore) -> None:
        """Streams sharing a collection have separate checkpoints."""
        await store.append(make_record(10, event_type="OrderForSale"))
        await store.append(make_record(30, event_type="OrderFilled"))
        await store.append(make_record(20, event_type="OrderForSale"))

        assert await store.last_block_number(Collection.ORDER_EVENTS, "OrderForSale") == 20
        assert await store.last_block_number(Collection.ORDER_EVENTS, "OrderFilled") == 30
        assert await store.last_block_number(Collection.ORDER_EVENTS, "OrderCanceled") is None

    async def test_last_block_number_without_event_type(self, store: SQLiteEventStore) -> None:
        """Collections owned by one stream are queried without a discriminator."""
        await store.append(make_record(5, Collection.TOKEN_EVENTS, None))
        await store.append(make_record(7, Collection.TOKEN_EVENTS, None))

        assert await store.last_block_number(Collection.TOKEN_EVENTS) == 7
        assert await store.last_block_number(Collection.BID_ORDER_EVENTS) is None

    async def test_records_ordered_by_block(self, store: SQLiteEventStore) -> None:
        """Records read back in block order."""
        for block in (3, 1, 2):
            await store.append(make_record(block, Collection.BID_ORDER_EVENTS, None))

        documents = await store.records(Collection.BID_ORDER_EVENTS)

        assert [d["blockNumber"] for d in documents] == [1, 2, 3]

    async def test_collections_are_isolated(self, store: SQLiteEventStore) -> None:
        """Appending to one collection leaves the others empty."""
        await store.append(make_record(1, Collection.TOKEN_EVENTS, None))

        assert await store.records(Collection.ORDER_EVENTS, "OrderForSale") == []

    async def test_has_record_matches_log_position(self, store: SQLiteEventStore) -> None:
        """A stored log is found by transaction hash and log index only."""
        record = make_record(12)
        await store.append(record)

        assert await store.has_record(Collection.ORDER_EVENTS, record.transaction_hash, 0)
        assert not await store.has_record(Collection.ORDER_EVENTS, record.transaction_hash, 1)
        assert not await store.has_record(Collection.ORDER_EVENTS, make_tx_hash(13), 0)
        assert not await store.has_record(Collection.TOKEN_EVENTS, record.transaction_hash, 0)


class TestProjections:
    """Tests for entity projections."""

    async def test_upsert_merges_fields(self, store: SQLiteEventStore) -> None:
        """Later updates only touch the fields they carry."""
        await store.apply_projection(Entity.TOKENS, 7, {"tokenId": 7, "owner": ALICE})
        await store.apply_projection(Entity.TOKENS, 7, {"owner": BOB})

        assert await store.get_projection(Entity.TOKENS, 7) == {"tokenId": 7, "owner": BOB}

    async def test_large_keys_and_values(self, store: SQLiteEventStore) -> None:
        """uint256 keys and values survive exactly."""
        key = 2**255 + 1
        await store.apply_projection(Entity.ORDERS, key, {"price": 2**256 - 1})
        await store.apply_projection(Entity.ORDERS, key, {"bids": 1})

        assert await store.get_projection(Entity.ORDERS, str(key)) == {
            "price": 2**256 - 1,
            "bids": 1,
        }

    async def test_unknown_entity_is_none(self, store: SQLiteEventStore) -> None:
        """Reading a missing entity returns None."""
        assert await store.get_projection(Entity.ORDERS, 1) is None

    async def test_aggregate_count(self, store: SQLiteEventStore) -> None:
        """The count is the number of distinct keys."""
        for order_id in (1, 2, 2, 3):
            await store.apply_projection(Entity.ORDERS, order_id, {"orderId": order_id})

        assert await store.aggregate_count(Entity.ORDERS) == 3
        assert await store.aggregate_count(Entity.TOKENS) == 0

    async def test_concurrent_writes_are_serialized(self, store: SQLiteEventStore) -> None:
        """Concurrent upserts on different keys all land."""
        await asyncio.gather(
            *(store.apply_projection(Entity.TOKENS, i, {"tokenId": i}) for i in range(20))
        )

        assert await store.aggregate_count(Entity.TOKENS) == 20


class TestLifecycle:
    """Tests for opening and closing the store."""

    async def test_data_survives_reopen(self, tmp_path: Path) -> None:
        """A file-backed store keeps its records across connections."""
        path = tmp_path / "indexer.db"
        with SQLiteEventStore(path) as first:
            await first.append(make_record(42, Collection.TOKEN_EVENTS, None))

        with SQLiteEventStore(path) as second:
            assert await second.last_block_number(Collection.TOKEN_EVENTS) == 42

    async def test_use_after_close_is_persistence_error(self, tmp_path: Path) -> None:
        """Storage failures surface as PersistenceError."""
        store = SQLiteEventStore(tmp_path / "closed.db")
        store.close()

        with pytest.raises(PersistenceError):
            await store.last_block_number(Collection.TOKEN_EVENTS)

    def test_unopenable_path_is_persistence_error(self, tmp_path: Path) -> None:
        """A path that cannot be opened is reported as PersistenceError."""
        with pytest.raises(PersistenceError):
            SQLiteEventStore(tmp_path / "missing" / "dir" / "indexer.db")
