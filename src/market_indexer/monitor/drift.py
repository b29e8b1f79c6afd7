"""
Drift monitor.

Periodically compares local projection counts with what the contracts report:

- `orders` rows vs. the market's `getOrderCount()`
- `tokens` rows vs. the token's `totalSupply()`

Both remote values are read in one batch. The monitor only observes: it logs,
updates gauges, and never mutates state. A failing check is logged and the
next one runs on schedule.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Final

from market_indexer import metrics
from market_indexer.chain import ChainNodeClient, ContractAddresses, ContractRead
from market_indexer.chain.abi import GET_ORDER_COUNT, TOTAL_SUPPLY
from market_indexer.storage import Entity, EventStore

logger = logging.getLogger(__name__)

DEFAULT_DRIFT_INTERVAL: Final[float] = 120.0
"""Seconds between two drift checks."""


@dataclass(frozen=True, slots=True)
class DriftReport:
    """Local vs. remote count of one entity."""

    entity: Entity
    local: int
    remote: int

    @property
    def in_sync(self) -> bool:
        """Whether both sides agree."""
        return self.local == self.remote


@dataclass(slots=True)
class DriftMonitor:
    """Compares local projections with contract counters."""

    client: ChainNodeClient
    """Node used for the counter reads."""

    store: EventStore
    """Store holding the projections."""

    contracts: ContractAddresses
    """Indexed contract addresses."""

    interval: float = DEFAULT_DRIFT_INTERVAL
    """Seconds between checks."""

    last_reports: list[DriftReport] = field(default_factory=list)
    """Result of the most recent successful check."""

    _stopped: asyncio.Event = field(default_factory=asyncio.Event)
    """Set once the check loop must end."""

    async def check(self) -> list[DriftReport] | None:
        """
        Run one comparison.

        Returns:
            One report per entity, or None if the check could not complete.
        """
        try:
            remote_orders, remote_supply = await self.client.batch_call(
                [
                    ContractRead(self.contracts.market, GET_ORDER_COUNT),
                    ContractRead(self.contracts.token, TOTAL_SUPPLY),
                ]
            )
            local_orders = await self.store.aggregate_count(Entity.ORDERS)
            local_tokens = await self.store.aggregate_count(Entity.TOKENS)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(f"Drift check failed: {type(exc).__name__}: {exc}")
            return None

        reports = [
            DriftReport(Entity.ORDERS, local=local_orders, remote=int(remote_orders)),
            DriftReport(Entity.TOKENS, local=local_tokens, remote=int(remote_supply)),
        ]

        for report in reports:
            metrics.local_entities.labels(entity=report.entity.value).set(report.local)
            metrics.remote_entities.labels(entity=report.entity.value).set(report.remote)
            if report.in_sync:
                logger.info(
                    f"Drift {report.entity.value}: local={report.local} remote={report.remote}"
                )
            else:
                logger.warning(
                    f"Drift {report.entity.value}: local={report.local} remote={report.remote} "
                    f"(off by {report.remote - report.local})"
                )

        self.last_reports = reports
        return reports

    async def run(self) -> None:
        """Check on a fixed interval until stopped."""
        while not self._stopped.is_set():
            await self.check()
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.interval)
            except TimeoutError:
                continue

    def stop(self) -> None:
        """Stop the check loop. A check in progress completes first."""
        self._stopped.set()
