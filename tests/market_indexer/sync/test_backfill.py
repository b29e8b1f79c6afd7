"""Tests for windowed historical backfill."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from unittest.mock import AsyncMock, patch

import pytest

from market_indexer.chain import RawLogEvent, StreamKind
from market_indexer.sync import BackfillSync, BlockWindow, RetryPolicy
from market_indexer.types import NodeUnavailable
from tests.market_indexer.helpers import FAST_SETTINGS, FakeNodeClient, make_events

STREAM = StreamKind.ORDER_FOR_SALE


def make_backfill(node: FakeNodeClient, **settings: object) -> BackfillSync:
    return BackfillSync(
        stream=STREAM,
        client=node,
        settings=replace(FAST_SETTINGS, **settings),  # type: ignore[arg-type]
        retry=RetryPolicy(attempts=3, base_delay=0.0, max_delay=0.0),
    )


class TestBackfillSync:
    """Tests for window iteration and ordering."""

    async def test_reference_windows(self) -> None:
        """The documented example replays ten windows in order."""
        node = FakeNodeClient()
        backfill = make_backfill(node)

        count = await backfill.run(100, 100_050, AsyncMock())

        assert count == 10
        assert [(s, e) for _, s, e in node.history_calls] == [
            (101, 10_101),
            (10_102, 20_102),
            (20_103, 30_103),
            (30_104, 40_104),
            (40_105, 50_105),
            (50_106, 60_106),
            (60_107, 70_107),
            (70_108, 80_108),
            (80_109, 90_109),
            (90_110, 100_050),
        ]

    async def test_events_are_handled_in_order(self) -> None:
        """Events reach the handler in block order across windows."""
        node = FakeNodeClient(history={STREAM: make_events(STREAM, [95_000, 150, 20_102, 5])})
        seen: list[int] = []

        async def handle(event: RawLogEvent) -> None:
            seen.append(event.block_number)

        await make_backfill(node).run(0, 100_000, handle)

        assert seen == [5, 150, 20_102, 95_000]

    async def test_window_completion_callback(self) -> None:
        """Each window is reported once all its events were handled."""
        node = FakeNodeClient(history={STREAM: make_events(STREAM, [15])})
        reported: list[BlockWindow] = []

        await make_backfill(node, step_size=9).run(0, 30, AsyncMock(), reported.append)

        assert reported == [BlockWindow(1, 10), BlockWindow(11, 20), BlockWindow(21, 30)]

    async def test_empty_gap(self) -> None:
        """Nothing is fetched when already at the target."""
        node = FakeNodeClient()

        assert await make_backfill(node).run(500, 500, AsyncMock()) == 0
        assert node.history_calls == []

    async def test_concurrent_windows_keep_order(self) -> None:
        """Fetching ahead never reorders the handled events."""
        node = FakeNodeClient(history={STREAM: make_events(STREAM, [3, 14, 25, 36, 47])})
        seen: list[int] = []

        async def handle(event: RawLogEvent) -> None:
            await asyncio.sleep(0)
            seen.append(event.block_number)

        await make_backfill(node, step_size=9, max_inflight_windows=3).run(0, 50, handle)

        assert seen == [3, 14, 25, 36, 47]


class TestBackfillFailures:
    """Tests for transient and persistent query failures."""

    async def test_transient_failure_is_retried(self) -> None:
        """A window query that fails transiently is reissued."""
        node = FakeNodeClient(history_failures=2, history={STREAM: make_events(STREAM, [7])})
        handle = AsyncMock()

        await make_backfill(node).run(0, 20, handle)

        assert len(node.history_calls) == 3
        handle.assert_awaited_once()

    async def test_persistent_failure_propagates(self) -> None:
        """A window that keeps failing aborts the backfill."""
        node = FakeNodeClient(history_failures=10)

        with pytest.raises(NodeUnavailable):
            await make_backfill(node).run(0, 20, AsyncMock())

    async def test_oversized_window_is_split(self) -> None:
        """A window the node refuses is fetched in halves."""
        node = FakeNodeClient(max_range=10, history={STREAM: make_events(STREAM, [2, 19])})
        seen: list[int] = []

        async def handle(event: RawLogEvent) -> None:
            seen.append(event.block_number)

        assert await make_backfill(node, step_size=19).run(0, 20, handle) == 1
        assert seen == [2, 19]


class TestBackfillDelay:
    """Tests for the delay between window requests."""

    async def test_delay_between_windows(self) -> None:
        """Every request but the first waits the configured delay."""
        node = FakeNodeClient()
        backfill = make_backfill(node, step_size=9, backfill_delay=10.0)

        with patch("market_indexer.sync.backfill.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await backfill.run(0, 30, AsyncMock())

        assert [c.args[0] for c in sleep.await_args_list] == [10.0, 10.0]

    async def test_fetch_ahead_keeps_requests_apart(self) -> None:
        """Windows fetched ahead still leave one delay apart."""
        node = FakeNodeClient()
        loop = asyncio.get_running_loop()
        sent: list[float] = []
        query = node.get_historical_events

        async def timed_query(stream: StreamKind, start: int, end: int) -> list[RawLogEvent]:
            sent.append(loop.time())
            return await query(stream, start, end)

        node.get_historical_events = timed_query  # type: ignore[method-assign]
        backfill = make_backfill(node, step_size=9, backfill_delay=0.05, max_inflight_windows=3)

        assert await backfill.run(0, 40, AsyncMock()) == 4

        gaps = [later - earlier for earlier, later in zip(sent, sent[1:], strict=False)]
        assert len(gaps) == 3
        assert all(gap >= 0.04 for gap in gaps)
