"""
Shared pytest fixtures for market indexer tests.

Import these fixtures automatically via pytest discovery.
"""

from __future__ import annotations

from collections.abc import Generator

import pytest

from market_indexer.reactor import ProjectionReactor
from market_indexer.storage import SQLiteEventStore
from market_indexer.sync import EventProcessor, RetryPolicy
from tests.market_indexer.helpers import CONTRACTS, FakeNodeClient, RecordingReactor


@pytest.fixture
def store() -> Generator[SQLiteEventStore, None, None]:
    """Create an in-memory event store for testing."""
    event_store = SQLiteEventStore(":memory:")
    yield event_store
    event_store.close()


@pytest.fixture
def node() -> FakeNodeClient:
    """Scripted node with no history."""
    return FakeNodeClient()


@pytest.fixture
def reactor() -> RecordingReactor:
    """Reactor recording every domain command."""
    return RecordingReactor()


@pytest.fixture
def fast_retry() -> RetryPolicy:
    """Retry policy without delays."""
    return RetryPolicy(attempts=3, base_delay=0.0, max_delay=0.0)


@pytest.fixture
def processor(
    node: FakeNodeClient,
    store: SQLiteEventStore,
    reactor: RecordingReactor,
    fast_retry: RetryPolicy,
) -> EventProcessor:
    """Processor wired to the scripted node, the in-memory store and the recording reactor."""
    return EventProcessor(
        client=node, store=store, reactor=reactor, contracts=CONTRACTS, retry=fast_retry
    )


@pytest.fixture
def projection_reactor(store: SQLiteEventStore) -> ProjectionReactor:
    """Reactor writing projections to the in-memory store."""
    return ProjectionReactor(store)
