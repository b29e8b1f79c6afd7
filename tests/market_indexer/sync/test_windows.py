"""Tests for backfill window planning."""

from __future__ import annotations

from hypothesis import given
from hypothesis import strategies as st

from market_indexer.sync import BlockWindow, needs_backfill, plan_windows


class TestPlanWindows:
    """Tests for tiling a gap into windows."""

    def test_reference_plan(self) -> None:
        """Ten windows cover [101, 100050] with a step of 10000."""
        windows = plan_windows(100, 100_050, 10_000)

        assert len(windows) == 10
        assert windows[0] == BlockWindow(101, 10_101)
        assert windows[1] == BlockWindow(10_102, 20_102)
        assert windows[-1] == BlockWindow(90_110, 100_050)

    def test_full_windows_span_step_plus_one(self) -> None:
        """Every window but the last is step + 1 blocks wide."""
        windows = plan_windows(0, 1_000, 99)

        assert {w.size for w in windows[:-1]} == {100}

    def test_empty_gap(self) -> None:
        """Nothing to plan when already at the target."""
        assert plan_windows(500, 500, 10) == []

    def test_zero_step_is_one_block_per_window(self) -> None:
        """A step of zero yields single-block windows."""
        assert plan_windows(0, 3, 0) == [BlockWindow(1, 1), BlockWindow(2, 2), BlockWindow(3, 3)]

    @given(
        last=st.integers(min_value=0, max_value=10**7),
        gap=st.integers(min_value=0, max_value=20_000),
        step=st.integers(min_value=0, max_value=5_000),
    )
    def test_windows_tile_the_gap(self, last: int, gap: int, step: int) -> None:
        """Windows are contiguous, non-overlapping and cover exactly the gap."""
        now = last + gap
        windows = plan_windows(last, now, step)

        if gap == 0:
            assert windows == []
            return

        assert windows[0].start == last + 1
        assert windows[-1].end == now
        for previous, current in zip(windows, windows[1:], strict=False):
            assert current.start == previous.end + 1
        assert all(1 <= w.size <= step + 1 for w in windows)
        assert sum(w.size for w in windows) == gap


class TestNeedsBackfill:
    """Tests for the backfill threshold."""

    def test_gap_at_threshold_goes_live(self) -> None:
        """A gap of exactly step + 1 blocks is left to the live replay."""
        assert not needs_backfill(100, 100 + 10_001, 10_000)

    def test_gap_above_threshold_backfills(self) -> None:
        """A gap larger than step + 1 blocks is backfilled."""
        assert needs_backfill(100, 100 + 10_002, 10_000)

    def test_head_behind_checkpoint(self) -> None:
        """A head below the checkpoint never backfills."""
        assert not needs_backfill(500, 400, 10)
