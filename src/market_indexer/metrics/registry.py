"""
Metric registry using prometheus_client.

Provides pre-defined metrics for the indexer.
Exposes metrics in Prometheus text format via the /metrics endpoint.
"""

from __future__ import annotations

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Create a dedicated registry for indexer metrics.
#
# Using a dedicated registry avoids pollution from default Python process metrics.
REGISTRY = CollectorRegistry()

# -----------------------------------------------------------------------------
# Stream Progress
# -----------------------------------------------------------------------------

stream_height = Gauge(
    "indexer_stream_block",
    "Highest block processed per stream",
    ["stream"],
    registry=REGISTRY,
)

chain_head = Gauge(
    "indexer_chain_head",
    "Latest head reported by the node",
    registry=REGISTRY,
)

# -----------------------------------------------------------------------------
# Event Processing
# -----------------------------------------------------------------------------

events_processed = Counter(
    "indexer_events_processed_total",
    "Events persisted per stream",
    ["stream"],
    registry=REGISTRY,
)

events_skipped = Counter(
    "indexer_events_skipped_total",
    "Malformed events skipped per stream",
    ["stream"],
    registry=REGISTRY,
)

event_processing_time = Histogram(
    "indexer_event_processing_seconds",
    "Enrichment, persistence and dispatch duration of one event",
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
    registry=REGISTRY,
)

# -----------------------------------------------------------------------------
# Backfill And Live Tail
# -----------------------------------------------------------------------------

backfill_windows = Counter(
    "indexer_backfill_windows_total",
    "Historical windows fetched per stream",
    ["stream"],
    registry=REGISTRY,
)

range_splits = Counter(
    "indexer_range_splits_total",
    "Historical ranges split after the node refused them",
    ["stream"],
    registry=REGISTRY,
)

subscription_reconnects = Counter(
    "indexer_subscription_reconnects_total",
    "Live subscriptions re-established after a drop",
    ["stream"],
    registry=REGISTRY,
)

stream_failures = Counter(
    "indexer_stream_failures_total",
    "Streams halted by an unrecoverable error",
    ["stream"],
    registry=REGISTRY,
)

# -----------------------------------------------------------------------------
# Drift
# -----------------------------------------------------------------------------

local_entities = Gauge(
    "indexer_local_entities",
    "Projection rows held locally",
    ["entity"],
    registry=REGISTRY,
)

remote_entities = Gauge(
    "indexer_remote_entities",
    "Entity count reported by the contract",
    ["entity"],
    registry=REGISTRY,
)


def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics output.

    Returns:
        Prometheus text format output as bytes.
    """
    return generate_latest(REGISTRY)
