"""Consistency monitoring between local projections and the contracts."""

from .drift import DEFAULT_DRIFT_INTERVAL, DriftMonitor, DriftReport

__all__ = ["DriftMonitor", "DriftReport", "DEFAULT_DRIFT_INTERVAL"]
