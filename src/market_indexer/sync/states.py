"""Per-stream sync state machine."""

from __future__ import annotations

from enum import Enum, auto


class StreamState(Enum):
    """
    Lifecycle of one stream's sync task.

    State Machine Diagram
    ---------------------
    ::

        IDLE --> RESOLVING --+--> BACKFILLING --> LIVE_TAILING
                     ^       |                        ^
                     |       +------------------------+
                     |               (small gap)
                     |
                     +------ BACKFILLING, LIVE_TAILING
                             (subscription dropped, node kept failing)

        any active state --> FAILED
        any state        --> STOPPED

    The Lifecycle
    -------------
    1. **IDLE**: Task created, not started yet
    2. **RESOLVING**: Reading the head and the derived checkpoint
    3. **BACKFILLING**: Replaying historical windows (skipped on a small gap)
    4. **LIVE_TAILING**: Consuming the live subscription
    """

    IDLE = auto()
    """Task created but not started."""

    RESOLVING = auto()
    """
    Determining where to resume.

    The head height and the derived checkpoint are read and compared.
    Entered at startup, after every dropped subscription, and after node
    failures that outlasted their retries.
    """

    BACKFILLING = auto()
    """
    Replaying history in fixed-width windows.

    Only entered when the gap between checkpoint and head exceeds the
    threshold. The backfill target is frozen at entry.
    """

    LIVE_TAILING = auto()
    """Consuming the push feed, starting right after the sync start height."""

    FAILED = auto()
    """
    Halted by an unrecoverable error.

    Sibling streams keep running. A failed stream does not restart itself.
    """

    STOPPED = auto()
    """Shut down on request."""

    def can_transition_to(self, target: StreamState) -> bool:
        """
        Check if transition to target state is valid.

        Args:
            target: The proposed target state.

        Returns:
            True if the transition is allowed by the state machine rules.
        """
        if target is StreamState.STOPPED:
            return self is not StreamState.STOPPED
        return target in _VALID_TRANSITIONS.get(self, set())

    @property
    def is_active(self) -> bool:
        """Whether the stream is doing sync work."""
        return self in _ACTIVE_STATES

    @property
    def is_terminal(self) -> bool:
        """Whether the stream will never make progress again."""
        return self in {StreamState.FAILED, StreamState.STOPPED}


_ACTIVE_STATES: frozenset[StreamState] = frozenset(
    {StreamState.RESOLVING, StreamState.BACKFILLING, StreamState.LIVE_TAILING}
)

_VALID_TRANSITIONS: dict[StreamState, set[StreamState]] = {
    StreamState.IDLE: {StreamState.RESOLVING},
    StreamState.RESOLVING: {
        StreamState.BACKFILLING,
        StreamState.LIVE_TAILING,
        StreamState.FAILED,
    },
    StreamState.BACKFILLING: {
        StreamState.RESOLVING,
        StreamState.LIVE_TAILING,
        StreamState.FAILED,
    },
    StreamState.LIVE_TAILING: {StreamState.RESOLVING, StreamState.FAILED},
}
"""Valid state transitions. STOPPED is reachable from every other state."""
