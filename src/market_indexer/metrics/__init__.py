"""
Metrics module for observability.

Provides counters, gauges, and histograms for tracking indexer behavior.
Exposes metrics in Prometheus text format.
"""

from .registry import (
    REGISTRY,
    backfill_windows,
    chain_head,
    event_processing_time,
    events_processed,
    events_skipped,
    generate_metrics,
    local_entities,
    range_splits,
    remote_entities,
    stream_failures,
    stream_height,
    subscription_reconnects,
)

__all__ = [
    "REGISTRY",
    "backfill_windows",
    "chain_head",
    "event_processing_time",
    "events_processed",
    "events_skipped",
    "generate_metrics",
    "local_entities",
    "range_splits",
    "remote_entities",
    "stream_failures",
    "stream_height",
    "subscription_reconnects",
]
