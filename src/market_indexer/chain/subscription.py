"""
Live log subscription over a JSON-RPC WebSocket.

A subscription must join the historical range and the live push feed without
a gap and without delivering a log twice. The join works like this:

1. Open the WebSocket and send `eth_subscribe("logs", filter)`.
2. Once the node confirms, read the current head `H`.
3. Replay `[from_block, H]` with `eth_getLogs` and yield those logs first.
4. Yield pushed logs, dropping any with `blockNumber <= H`.

Because the push feed is established before `H` is read, every block after `H`
is delivered by the feed, and every block up to `H` by the replay.

The subscription never reconnects. When the socket closes or errors it
raises `SubscriptionDropped`; the sync engine decides what happens next.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Final, Self

import aiohttp

from market_indexer import metrics
from market_indexer.types import (
    MalformedEvent,
    NodeUnavailable,
    RangeTooLarge,
    SubscriptionDropped,
)

from .client import fetch_events_splitting
from .events import RawLogEvent, StreamKind, decode_log

if TYPE_CHECKING:
    from .client import JsonRpcNodeClient

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL: Final[float] = 20.0
"""Seconds between WebSocket pings. A missed pong closes the socket."""

SUBSCRIBE_REQUEST_ID: Final[int] = 1
"""JSON-RPC id of the `eth_subscribe` request."""

_CLOSED_TYPES: Final = frozenset(
    {
        aiohttp.WSMsgType.CLOSE,
        aiohttp.WSMsgType.CLOSING,
        aiohttp.WSMsgType.CLOSED,
        aiohttp.WSMsgType.ERROR,
    }
)


@dataclass(slots=True)
class LogSubscription:
    """
    Async iterator over a stream's logs from `from_block` onward.

    Use as an async context manager::

        async with client.subscribe_live(stream, start) as sub:
            async for event in sub:
                ...
    """

    client: JsonRpcNodeClient
    """Client providing the endpoint, filter and replay queries."""

    stream: StreamKind
    """Stream being followed."""

    from_block: int
    """First block to deliver."""

    replayed_through: int = field(default=-1, init=False)
    """Highest block covered by the replay. Pushed logs at or below it are dropped."""

    subscription_id: str | None = field(default=None, init=False)
    """Identifier assigned by the node."""

    _session: aiohttp.ClientSession | None = field(default=None, init=False)
    _ws: aiohttp.ClientWebSocketResponse | None = field(default=None, init=False)
    _replay: deque[RawLogEvent] = field(default_factory=deque, init=False)
    _early: deque[dict[str, Any]] = field(default_factory=deque, init=False)
    """Notifications received while waiting for the subscribe confirmation."""

    async def __aenter__(self) -> Self:
        try:
            await self._open()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def __aiter__(self) -> Self:
        return self

    async def _open(self) -> None:
        self._session = aiohttp.ClientSession()
        try:
            self._ws = await self._session.ws_connect(
                self.client.ws_url, heartbeat=HEARTBEAT_INTERVAL
            )
            await self._ws.send_json(
                {
                    "jsonrpc": "2.0",
                    "id": SUBSCRIBE_REQUEST_ID,
                    "method": "eth_subscribe",
                    "params": ["logs", self.client.log_filter(self.stream)],
                }
            )
        except (aiohttp.ClientError, OSError, TimeoutError) as exc:
            raise SubscriptionDropped(f"[{self.stream}] cannot open WebSocket: {exc}") from exc

        # Wait for the confirmation carrying the subscription id.
        #
        # Notifications can only arrive after it, but any that race ahead
        # are kept for later rather than lost.
        while self.subscription_id is None:
            message = await self._receive()
            if message.get("id") == SUBSCRIBE_REQUEST_ID:
                if message.get("error") is not None:
                    raise SubscriptionDropped(
                        f"[{self.stream}] eth_subscribe rejected: {message['error']}"
                    )
                self.subscription_id = str(message.get("result"))
            elif message.get("method") == "eth_subscription":
                self._early.append(message)

        # Replay what was mined before the feed took over.
        try:
            head = await self.client.current_height()
            if head >= self.from_block:
                events = await fetch_events_splitting(
                    self.client, self.stream, self.from_block, head
                )
                self._replay.extend(events)
            self.replayed_through = max(head, self.from_block - 1)
        except (NodeUnavailable, RangeTooLarge) as exc:
            raise SubscriptionDropped(f"[{self.stream}] replay failed: {exc.message}") from exc

        logger.info(
            f"[{self.stream}] Subscribed ({self.subscription_id}), replayed "
            f"{len(self._replay)} logs in [{self.from_block}, {self.replayed_through}]"
        )

    async def _receive(self) -> dict[str, Any]:
        """Read the next JSON text frame."""
        if self._ws is None:
            raise SubscriptionDropped(f"[{self.stream}] subscription is closed")

        while True:
            msg = await self._ws.receive()
            if msg.type in _CLOSED_TYPES:
                raise SubscriptionDropped(f"[{self.stream}] WebSocket closed ({msg.type.name})")
            if msg.type is not aiohttp.WSMsgType.TEXT:
                continue
            try:
                data = json.loads(msg.data)
            except ValueError:
                logger.warning(f"[{self.stream}] Ignoring non-JSON frame")
                continue
            if isinstance(data, dict):
                return data

    def _accept(self, message: dict[str, Any]) -> RawLogEvent | None:
        """Turn a notification into an event, or None if it must be dropped."""
        params = message.get("params") or {}
        if params.get("subscription") != self.subscription_id:
            return None

        log = params.get("result")
        if not isinstance(log, dict):
            return None

        if log.get("removed"):
            logger.warning(
                f"[{self.stream}] Skipping removed log tx={log.get('transactionHash')} "
                f"block={log.get('blockNumber')}"
            )
            return None

        try:
            event = decode_log(self.stream, log)
        except MalformedEvent as exc:
            logger.warning(f"[{self.stream}] Skipping malformed log: {exc.message}")
            metrics.events_skipped.labels(stream=str(self.stream)).inc()
            return None

        # Seam de-duplication: the replay already covered this block.
        if event.block_number <= self.replayed_through:
            return None
        return event

    async def __anext__(self) -> RawLogEvent:
        if self._replay:
            return self._replay.popleft()

        while True:
            if self._early:
                message = self._early.popleft()
            else:
                message = await self._receive()
            event = self._accept(message)
            if event is not None:
                return event

    async def close(self) -> None:
        """Close the socket and session. Safe to call more than once."""
        ws, session = self._ws, self._session
        self._ws = None
        self._session = None
        try:
            if ws is not None and not ws.closed:
                await ws.close()
        except (aiohttp.ClientError, OSError) as exc:
            logger.debug(f"[{self.stream}] Error closing WebSocket: {exc}")
        finally:
            if session is not None:
                await session.close()

