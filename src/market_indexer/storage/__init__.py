"""
Storage module for indexed records and projections.

Provides the event store abstraction used by the sync engine and reactor.
Uses SQLite for simplicity and correctness.
"""

from .database import EventStore
from .namespaces import PROJECTIONS, RECORDS, Collection, Entity
from .records import EventRecord
from .sqlite import SQLiteEventStore

__all__ = [
    "EventStore",
    "SQLiteEventStore",
    "EventRecord",
    "Collection",
    "Entity",
    "RECORDS",
    "PROJECTIONS",
]
