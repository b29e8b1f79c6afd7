"""Tests for the per-stream state machine."""

from __future__ import annotations

import pytest

from market_indexer.sync import StreamState


class TestStreamStateValues:
    """Tests for StreamState enum values and basic properties."""

    def test_state_count(self) -> None:
        """Exactly six stream states exist."""
        assert len(StreamState) == 6

    def test_states_are_unique(self) -> None:
        """Each state has a unique value."""
        values = [state.value for state in StreamState]
        assert len(values) == len(set(values))


class TestStreamStateTransitions:
    """Tests for state transition validation."""

    @pytest.mark.parametrize(
        ("source", "target"),
        [
            (StreamState.IDLE, StreamState.RESOLVING),
            (StreamState.RESOLVING, StreamState.BACKFILLING),
            (StreamState.RESOLVING, StreamState.LIVE_TAILING),
            (StreamState.RESOLVING, StreamState.FAILED),
            (StreamState.BACKFILLING, StreamState.RESOLVING),
            (StreamState.BACKFILLING, StreamState.LIVE_TAILING),
            (StreamState.BACKFILLING, StreamState.FAILED),
            (StreamState.LIVE_TAILING, StreamState.RESOLVING),
            (StreamState.LIVE_TAILING, StreamState.FAILED),
        ],
    )
    def test_allowed(self, source: StreamState, target: StreamState) -> None:
        """The sync cycle's transitions are allowed."""
        assert source.can_transition_to(target)

    @pytest.mark.parametrize(
        ("source", "target"),
        [
            (StreamState.IDLE, StreamState.LIVE_TAILING),
            (StreamState.LIVE_TAILING, StreamState.BACKFILLING),
            (StreamState.FAILED, StreamState.RESOLVING),
            (StreamState.STOPPED, StreamState.RESOLVING),
        ],
    )
    def test_rejected(self, source: StreamState, target: StreamState) -> None:
        """Shortcuts and restarts out of terminal states are rejected."""
        assert not source.can_transition_to(target)

    def test_no_self_transitions(self) -> None:
        """No state transitions to itself."""
        for state in StreamState:
            assert not state.can_transition_to(state)

    def test_stopped_reachable_from_everywhere_else(self) -> None:
        """Shutdown can interrupt any state."""
        for state in StreamState:
            if state is not StreamState.STOPPED:
                assert state.can_transition_to(StreamState.STOPPED)


class TestStreamStateProperties:
    """Tests for the is_active and is_terminal properties."""

    def test_active_states(self) -> None:
        """Only the three working states are active."""
        active = {s for s in StreamState if s.is_active}
        assert active == {
            StreamState.RESOLVING,
            StreamState.BACKFILLING,
            StreamState.LIVE_TAILING,
        }

    def test_terminal_states(self) -> None:
        """FAILED and STOPPED are terminal."""
        terminal = {s for s in StreamState if s.is_terminal}
        assert terminal == {StreamState.FAILED, StreamState.STOPPED}
