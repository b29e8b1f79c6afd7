"""Test helpers for market indexer unit tests."""

from __future__ import annotations

from market_indexer.chain import ContractAddresses
from market_indexer.sync import SyncSettings

from .builders import (
    ALICE,
    BOB,
    CAROL,
    GWEI,
    MARKET_CONTRACT,
    PLATFORM,
    QUOTE_TOKEN,
    TOKEN_CONTRACT,
    make_event,
    make_events,
    make_log,
    make_order_info,
    make_token_info,
    make_tx_hash,
)
from .mocks import (
    BLOCK_TIME_ORIGIN,
    FakeNodeClient,
    FakeSubscription,
    FlakyStore,
    LiveScript,
    RecordingReactor,
    wait_until,
)

CONTRACTS = ContractAddresses(token=TOKEN_CONTRACT, market=MARKET_CONTRACT)
"""Contract addresses shared by every test."""

FAST_SETTINGS = SyncSettings(
    backfill_delay=0.0,
    retry_attempts=3,
    retry_base_delay=0.0,
    retry_max_delay=0.0,
    reconnect_base_delay=0.0,
    reconnect_max_delay=0.0,
)
"""Sync settings with every delay removed."""

__all__ = [
    # Addresses
    "ALICE",
    "BOB",
    "CAROL",
    "PLATFORM",
    "QUOTE_TOKEN",
    "TOKEN_CONTRACT",
    "MARKET_CONTRACT",
    "CONTRACTS",
    # Constants
    "GWEI",
    "BLOCK_TIME_ORIGIN",
    "FAST_SETTINGS",
    # Builders
    "make_event",
    "make_events",
    "make_log",
    "make_order_info",
    "make_token_info",
    "make_tx_hash",
    # Mocks
    "FakeNodeClient",
    "FakeSubscription",
    "FlakyStore",
    "LiveScript",
    "RecordingReactor",
    "wait_until",
]
