"""
API module for operational endpoints.

Provides an HTTP server exposing health, metrics and sync progress.
"""

from .server import ApiServer, ApiServerConfig

__all__ = [
    "ApiServer",
    "ApiServerConfig",
]
