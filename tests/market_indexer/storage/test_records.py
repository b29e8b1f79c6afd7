"""Tests for normalized event records."""

from __future__ import annotations

from decimal import Decimal

from market_indexer.storage import Collection, EventRecord
from tests.market_indexer.helpers import make_tx_hash


class TestEventRecordDocument:
    """Tests for the persisted document layout."""

    def test_flat_document(self) -> None:
        """Emitted fields sit next to envelope and enrichment values."""
        record = EventRecord(
            collection=Collection.ORDER_EVENTS,
            event_type="OrderFilled",
            block_number=12,
            transaction_hash=make_tx_hash(5),
            log_index=2,
            gas_fee=Decimal("0.00105"),
            timestamp=1_700_000_012,
            emitted={"orderId": 3, "platformAddress": "0x" + "ee" * 20},
        )

        assert record.to_document() == {
            "orderId": 3,
            "platformAddress": "0x" + "ee" * 20,
            "eventType": "OrderFilled",
            "blockNumber": 12,
            "transactionHash": make_tx_hash(5),
            "logIndex": 2,
            "gasFee": "0.00105",
            "timestamp": 1_700_000_012,
        }

    def test_event_type_omitted_when_unset(self) -> None:
        """Single-stream collections carry no discriminator."""
        record = EventRecord(
            collection=Collection.TOKEN_EVENTS,
            block_number=1,
            transaction_hash=make_tx_hash(1),
            gas_fee=Decimal(0),
            timestamp=0,
        )

        document = record.to_document()

        assert "eventType" not in document
        assert "collection" not in document

    def test_gas_fee_never_uses_exponent_notation(self) -> None:
        """Tiny fees are written positionally."""
        record = EventRecord(
            collection=Collection.TOKEN_EVENTS,
            block_number=1,
            transaction_hash=make_tx_hash(1),
            gas_fee=Decimal("1E-18"),
            timestamp=0,
        )

        assert record.to_document()["gasFee"] == "0.000000000000000001"
