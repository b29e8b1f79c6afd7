"""
Exception hierarchy for the indexer.

Each class maps to one recovery policy of the sync engine:

- NodeUnavailable: transient, retried with backoff
- RangeTooLarge: the historical query is split and retried
- BatchCallFailed: the whole batch is retried
- ChainDataNotFound: retried like a failed batch, then the event is skipped
- PersistenceError: retried, then the stream halts (never skipped)
- MalformedEvent: the single event is logged and skipped
- SubscriptionDropped: the stream resubscribes from its derived checkpoint
"""

from __future__ import annotations


class IndexerError(Exception):
    """
    Base exception for all indexer errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


class NodeUnavailable(IndexerError):
    """Raised when the remote node cannot be reached or does not answer in time."""


class RangeTooLarge(IndexerError):
    """
    Raised when the node rejects a historical log query as too wide.

    Attributes:
        from_block: First block of the rejected range.
        to_block: Last block of the rejected range.
    """

    def __init__(self, from_block: int, to_block: int, detail: str = "") -> None:
        self.from_block = from_block
        self.to_block = to_block
        msg = f"Block range [{from_block}, {to_block}] rejected by node"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class BatchCallFailed(IndexerError):
    """
    Raised when any call inside a batch fails.

    Attributes:
        index: Position of the first failing call, if known.
    """

    def __init__(self, message: str, *, index: int | None = None) -> None:
        self.index = index
        super().__init__(message)


class ChainDataNotFound(BatchCallFailed):
    """
    Raised when the node answers null for a transaction or block a log references.

    A node that serves live logs can lag the node serving reads, so the data
    usually appears on a later attempt.
    """


class PersistenceError(IndexerError):
    """Raised when the event store cannot durably write or read."""


class MalformedEvent(IndexerError):
    """Raised when a single event cannot be decoded or normalized."""


class SubscriptionDropped(IndexerError):
    """Raised when a live log subscription loses its connection."""
