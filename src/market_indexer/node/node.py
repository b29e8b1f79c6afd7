"""
Indexer orchestrator.

Builds every component of one indexer process and runs them side by side.

The Indexer is the top-level entry point. It builds the node client, the
event store, the reactor and one sync service per stream from configuration,
then runs the supervisor, the drift monitor and the API server side by side.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Iterable
from dataclasses import dataclass, field

from market_indexer.api import ApiServer, ApiServerConfig
from market_indexer.chain import JsonRpcNodeClient, StreamKind
from market_indexer.config import IndexerConfig
from market_indexer.monitor import DriftMonitor
from market_indexer.reactor import ProjectionReactor
from market_indexer.storage import SQLiteEventStore
from market_indexer.sync import (
    STREAMS,
    CheckpointResolver,
    EventProcessor,
    RetryPolicy,
    StreamState,
    StreamSyncService,
    SyncSupervisor,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Indexer:
    """
    One indexer process.

    Owns the node client and the store, and releases both when it ends.
    """

    client: JsonRpcNodeClient
    """Shared node client."""

    store: SQLiteEventStore
    """Event store holding records and projections."""

    supervisor: SyncSupervisor
    """Owns the per-stream sync tasks."""

    drift_monitor: DriftMonitor | None = field(default=None)
    """Optional periodic consistency check."""

    api_server: ApiServer | None = field(default=None)
    """Optional API server for health, metrics and sync status."""

    _shutdown: asyncio.Event = field(default_factory=asyncio.Event)
    """Set by a signal, by `stop()`, or when every stream has ended."""

    @classmethod
    def from_config(
        cls,
        config: IndexerConfig,
        *,
        streams: Iterable[StreamKind] | None = None,
        api_config: ApiServerConfig | None = None,
        drift_check: bool = True,
    ) -> Indexer:
        """
        Create a fully-wired indexer.

        Args:
            config: Endpoints, contracts and tunables.
            streams: Streams to follow. All of them by default.
            api_config: API server settings. No API server when None.
            drift_check: Whether to run the drift monitor.
        """
        contracts = config.contract_addresses()
        settings = config.sync_settings()

        client = JsonRpcNodeClient(
            http_url=config.rpc_http_url,
            ws_url=config.rpc_ws_url,
            contracts=contracts,
            request_timeout=config.request_timeout,
        )
        store = SQLiteEventStore(config.database_path)
        reactor = ProjectionReactor(store)

        # One processor and one checkpoint resolver serve every stream.
        #
        # Neither holds per-stream state.
        processor = EventProcessor(
            client=client,
            store=store,
            reactor=reactor,
            contracts=contracts,
            retry=RetryPolicy(
                attempts=settings.retry_attempts,
                base_delay=settings.retry_base_delay,
                max_delay=settings.retry_max_delay,
            ),
        )
        checkpoints = CheckpointResolver(store, config.deploy_heights())

        selected = list(STREAMS) if streams is None else list(dict.fromkeys(streams))
        services = {
            stream: StreamSyncService(
                stream=stream,
                client=client,
                checkpoints=checkpoints,
                processor=processor,
                settings=settings,
            )
            for stream in selected
        }
        supervisor = SyncSupervisor(services, start_stagger=config.start_stagger)

        drift_monitor = (
            DriftMonitor(client, store, contracts, interval=config.drift_interval)
            if drift_check
            else None
        )

        api_server = None
        if api_config is not None and api_config.enabled:
            api_server = ApiServer(config=api_config, status_getter=supervisor.get_status)

        logger.info(
            f"Indexer wired for {len(services)} streams "
            f"(token {contracts.token}, market {contracts.market})"
        )
        return cls(
            client=client,
            store=store,
            supervisor=supervisor,
            drift_monitor=drift_monitor,
            api_server=api_server,
        )

    async def run(self, *, install_signal_handlers: bool = True) -> None:
        """
        Run the streams, the drift monitor and the API until shutdown.

        Returns once every stream has stopped or failed.

        Args:
            install_signal_handlers: Route SIGINT and SIGTERM to `stop()`.
                Tests and non-main threads pass False.
        """
        if install_signal_handlers:
            self._install_signal_handlers()

        if self.api_server is not None:
            await self.api_server.start()

        # The shutdown watcher runs beside the services.
        #
        # A supervisor that returns on its own has no stream left, so it
        # triggers the same shutdown path as a signal.
        # The finally block releases the node client and the store.
        try:
            async with asyncio.TaskGroup() as tg:
                tg.create_task(self._run_supervisor())
                if self.drift_monitor is not None:
                    tg.create_task(self.drift_monitor.run())
                if self.api_server is not None:
                    tg.create_task(self.api_server.run())
                tg.create_task(self._wait_shutdown())
        finally:
            await self.client.close()
            self.store.close()
            logger.info("Indexer stopped")

    async def _run_supervisor(self) -> None:
        await self.supervisor.run()
        self._shutdown.set()

    def _install_signal_handlers(self) -> None:
        """
        Route SIGINT and SIGTERM to the shutdown event.

        Outside the main thread the loop refuses handlers, and none are installed.
        """
        try:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, self._shutdown.set)
        except (ValueError, RuntimeError):
            # Not the main thread.
            pass

    async def _wait_shutdown(self) -> None:
        """
        Wait for the shutdown event, then stop every service.

        In-flight events finish persisting before the streams are cancelled.
        """
        await self._shutdown.wait()
        logger.info("Shutting down")

        await self.supervisor.stop()
        if self.drift_monitor is not None:
            self.drift_monitor.stop()
        if self.api_server is not None:
            self.api_server.stop()

    def stop(self) -> None:
        """
        Request shutdown.

        In-flight events finish persisting before `run()` returns.
        """
        self._shutdown.set()

    @property
    def is_running(self) -> bool:
        """False once shutdown was requested."""
        return not self._shutdown.is_set()

    @property
    def failed_streams(self) -> list[StreamKind]:
        """Streams that halted on an error."""
        return [
            status.stream
            for status in self.supervisor.get_status()
            if status.state is StreamState.FAILED
        ]
