"""
API server for indexer status and metrics endpoints.

Endpoints:

- `/health`: liveness probe
- `/metrics`: Prometheus scrape target
- `/sync/status`: per-stream sync progress
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from aiohttp import web

from market_indexer.metrics import generate_metrics

if TYPE_CHECKING:
    from market_indexer.sync import StreamStatus

logger = logging.getLogger(__name__)


def _no_status() -> list[StreamStatus]:
    """Default status getter that reports no streams."""
    return []


def _status_document(status: StreamStatus) -> dict[str, Any]:
    return {
        "stream": str(status.stream),
        "state": status.state.name,
        "lastProcessedBlock": status.last_processed_block,
        "syncedFloor": status.synced_floor,
        "eventsProcessed": status.events_processed,
        "eventsSkipped": status.events_skipped,
        "reconnects": status.reconnects,
        "lastError": status.last_error,
    }


async def _handle_health(_request: web.Request) -> web.Response:
    """Answer the liveness probe."""
    return web.json_response({"status": "healthy", "service": "market-indexer"})


async def _handle_metrics(_request: web.Request) -> web.Response:
    """Render the indexer registry in the Prometheus text format."""
    return web.Response(
        body=generate_metrics(),
        content_type="text/plain; version=0.0.4; charset=utf-8",
    )


@dataclass(frozen=True, slots=True)
class ApiServerConfig:
    """Where, and whether, the operational API listens."""

    host: str = "0.0.0.0"
    """Interface to listen on."""

    port: int = 8080
    """Port to listen on."""

    enabled: bool = True
    """A disabled server never binds its port."""


@dataclass(slots=True)
class ApiServer:
    """
    Operational HTTP API.

    Reports what the sync supervisor knows, plus the metrics registry.
    """

    config: ApiServerConfig
    """Listening address and switch."""

    status_getter: Callable[[], list[StreamStatus]] = _no_status
    """Callable that returns the current progress of every stream."""

    _runner: web.AppRunner | None = field(default=None, init=False)
    """Runner owning the application. None while stopped."""

    _site: web.TCPSite | None = field(default=None, init=False)
    """Listening site."""

    def build_app(self) -> web.Application:
        """Create the aiohttp application with all routes."""
        app = web.Application()
        app.add_routes(
            [
                web.get("/health", _handle_health),
                web.get("/metrics", _handle_metrics),
                web.get("/sync/status", self._handle_sync_status),
            ]
        )
        return app

    async def start(self) -> None:
        """Bind and start serving. Does nothing if already serving."""
        if not self.config.enabled:
            logger.info("API server is disabled")
            return
        if self._runner is not None:
            return

        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self.config.host, self.config.port)
        await self._site.start()

        logger.info(f"API server listening on {self.config.host}:{self.config.port}")

    async def run(self) -> None:
        """
        Serve until `stop()` has released the runner.
        """
        await self.start()

        # `_async_stop` clears the runner once the port is released.
        while self._runner is not None:
            await asyncio.sleep(1)

    def stop(self) -> None:
        """Schedule cleanup of the runner."""
        if self._runner is not None:
            asyncio.create_task(self._async_stop())

    async def _async_stop(self) -> None:
        """Release the runner and its port."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
            logger.info("API server stopped")

    async def _handle_sync_status(self, _request: web.Request) -> web.Response:
        """
        Handle sync status endpoint.

        Response format:
        {
            "streams": [
                {"stream": "OrderBid", "state": "LIVE_TAILING", ...},
                ...
            ]
        }
        """
        statuses = self.status_getter()
        return web.json_response({"streams": [_status_document(s) for s in statuses]})
