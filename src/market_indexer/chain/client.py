"""
Chain node client.

The sync engine reaches the remote ledger only through `ChainNodeClient`.
`JsonRpcNodeClient` implements it with standard Ethereum JSON-RPC:

- Requests go over HTTP with httpx (single calls and batches).
- Live logs arrive over a WebSocket `eth_subscribe` (see `subscription`).

Error Mapping
-------------
Transport failures, HTTP errors, timeouts and unreadable responses all surface
as `NodeUnavailable`. A historical query the node refuses because of its width
surfaces as `RangeTooLarge` so the caller can split it. Any failing member of
a batch fails the whole batch with `BatchCallFailed`.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Final, Protocol

import httpx

from market_indexer import metrics
from market_indexer.types import (
    BatchCallFailed,
    MalformedEvent,
    NodeUnavailable,
    RangeTooLarge,
    normalize_address,
    parse_quantity,
)

from .calls import RpcCall
from .events import EVENT_SOURCES, ContractRole, RawLogEvent, StreamKind, decode_log

if TYPE_CHECKING:
    from .subscription import LogSubscription

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT: Final[float] = 30.0
"""Seconds before a single HTTP round trip is abandoned."""

RANGE_ERROR_MARKERS: Final[tuple[str, ...]] = (
    "range",
    "too many",
    "limit exceeded",
    "more than",
    "too large",
    "response size",
)
"""Substrings providers use when refusing a wide `eth_getLogs` query."""

LIMIT_EXCEEDED_CODE: Final[int] = -32005
"""JSON-RPC error code for "limit exceeded" (EIP-1474)."""


class _RpcError(Exception):
    """Error object returned inside a JSON-RPC response."""

    def __init__(self, error: Any) -> None:
        if isinstance(error, dict):
            self.code = error.get("code")
            self.text = str(error.get("message", ""))
        else:
            self.code = None
            self.text = str(error)
        super().__init__(f"{self.code}: {self.text}")

    @property
    def is_range_error(self) -> bool:
        lowered = self.text.lower()
        if any(marker in lowered for marker in RANGE_ERROR_MARKERS):
            return True
        return self.code == LIMIT_EXCEEDED_CODE


@dataclass(frozen=True, slots=True)
class ContractAddresses:
    """Addresses of the two indexed contracts."""

    token: str
    """Token (ERC-721 style) contract."""

    market: str
    """Marketplace contract."""

    def for_role(self, role: ContractRole) -> str:
        """Return the address of the contract playing `role`."""
        return self.token if role is ContractRole.TOKEN else self.market


class ChainNodeClient(Protocol):
    """
    Access to a remote ledger node.

    The sync engine depends only on this protocol, so tests can substitute an
    in-memory fake.
    """

    async def current_height(self) -> int:
        """
        Return the latest block number.

        Raises:
            NodeUnavailable: If the node cannot be reached.
        """
        ...

    async def get_historical_events(
        self, stream: StreamKind, from_block: int, to_block: int
    ) -> list[RawLogEvent]:
        """
        Return the stream's events in `[from_block, to_block]`, inclusive.

        Events are ordered by block, then log index.

        Raises:
            RangeTooLarge: If the node refuses the range as too wide.
            NodeUnavailable: On any other remote failure.
        """
        ...

    def subscribe_live(self, stream: StreamKind, from_block: int) -> LogSubscription:
        """
        Open a live subscription for the stream starting at `from_block`.

        The returned object is an async context manager and async iterator.
        """
        ...

    async def batch_call(self, calls: Sequence[RpcCall]) -> list[Any]:
        """
        Execute heterogeneous calls in one round trip.

        Results are returned in request order.

        Raises:
            BatchCallFailed: If any call fails.
            NodeUnavailable: If the batch cannot be delivered.
        """
        ...


async def fetch_events_splitting(
    client: ChainNodeClient, stream: StreamKind, from_block: int, to_block: int
) -> list[RawLogEvent]:
    """
    Fetch `[from_block, to_block]`, halving the range whenever the node refuses it.

    A single-block range that is still refused is re-raised, since it
    cannot be narrowed any further.

    Raises:
        RangeTooLarge: If a single block is refused.
        NodeUnavailable: On any other remote failure.
    """
    try:
        return await client.get_historical_events(stream, from_block, to_block)
    except RangeTooLarge:
        if from_block >= to_block:
            raise
        mid = (from_block + to_block) // 2
        logger.info(
            f"[{stream}] Range [{from_block}, {to_block}] refused, "
            f"splitting at {mid}"
        )
        metrics.range_splits.labels(stream=str(stream)).inc()
        left = await fetch_events_splitting(client, stream, from_block, mid)
        right = await fetch_events_splitting(client, stream, mid + 1, to_block)
        return left + right


@dataclass(slots=True)
class JsonRpcNodeClient:
    """
    `ChainNodeClient` speaking Ethereum JSON-RPC.

    The HTTP client is created lazily and shared by all streams. Call
    `close()` on shutdown.
    """

    http_url: str
    """JSON-RPC HTTP endpoint."""

    ws_url: str
    """JSON-RPC WebSocket endpoint used for live subscriptions."""

    contracts: ContractAddresses
    """Addresses of the indexed contracts."""

    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    """Timeout in seconds for a single round trip."""

    transport: httpx.AsyncBaseTransport | None = None
    """Optional transport override (tests use `httpx.MockTransport`)."""

    _http: httpx.AsyncClient | None = field(default=None, init=False)
    """Lazily created HTTP client."""

    _ids: itertools.count = field(default_factory=lambda: itertools.count(1), init=False)
    """Request id generator."""

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                transport=self.transport,
                timeout=self.request_timeout,
                headers={"Content-Type": "application/json"},
            )
        return self._http

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    def log_filter(self, stream: StreamKind) -> dict[str, Any]:
        """Return the `eth_getLogs` / `eth_subscribe` filter for a stream."""
        role, event_abi = EVENT_SOURCES[stream]
        return {
            "address": normalize_address(self.contracts.for_role(role)),
            "topics": [event_abi.topic],
        }

    async def _post(self, payload: Any) -> Any:
        """Send one JSON-RPC payload and return the parsed body."""
        try:
            async with asyncio.timeout(self.request_timeout):
                response = await self._client().post(self.http_url, json=payload)
        except TimeoutError as exc:
            raise NodeUnavailable(f"Request to {self.http_url} timed out") from exc
        except httpx.HTTPError as exc:
            raise NodeUnavailable(f"Network error talking to {self.http_url}: {exc}") from exc

        if response.is_error:
            raise NodeUnavailable(
                f"HTTP error {response.status_code}: {response.text[:200]}"
            )

        try:
            return response.json()
        except ValueError as exc:
            raise NodeUnavailable(f"Node returned invalid JSON: {exc}") from exc

    async def _request(self, method: str, params: list[Any]) -> Any:
        """Perform a single call, raising `_RpcError` on an error member."""
        body = await self._post(
            {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        )
        if not isinstance(body, dict):
            raise NodeUnavailable(f"{method}: unexpected response {body!r}")
        if body.get("error") is not None:
            raise _RpcError(body["error"])
        return body.get("result")

    async def current_height(self) -> int:
        try:
            result = await self._request("eth_blockNumber", [])
        except _RpcError as exc:
            raise NodeUnavailable(f"eth_blockNumber failed: {exc}") from exc

        try:
            return parse_quantity(result)
        except ValueError as exc:
            raise NodeUnavailable(f"eth_blockNumber returned {result!r}") from exc

    async def get_historical_events(
        self, stream: StreamKind, from_block: int, to_block: int
    ) -> list[RawLogEvent]:
        query = self.log_filter(stream) | {"fromBlock": hex(from_block), "toBlock": hex(to_block)}

        try:
            logs = await self._request("eth_getLogs", [query])
        except _RpcError as exc:
            if exc.is_range_error:
                raise RangeTooLarge(from_block, to_block, exc.text) from exc
            raise NodeUnavailable(f"eth_getLogs failed: {exc}") from exc

        if not isinstance(logs, list):
            raise NodeUnavailable(f"eth_getLogs returned {type(logs).__name__}")

        events = self.decode_logs(stream, logs)
        events.sort(key=lambda e: (e.block_number, e.log_index))
        return events

    def decode_logs(self, stream: StreamKind, logs: list[Any]) -> list[RawLogEvent]:
        """
        Decode raw logs, skipping the ones that do not validate.

        One undecodable log must not poison the rest of the page.
        """
        events: list[RawLogEvent] = []
        for raw in logs:
            if not isinstance(raw, dict):
                logger.warning(f"[{stream}] Skipping non-object log entry: {raw!r}")
                metrics.events_skipped.labels(stream=str(stream)).inc()
                continue
            if raw.get("removed"):
                logger.warning(
                    f"[{stream}] Skipping removed log tx={raw.get('transactionHash')} "
                    f"block={raw.get('blockNumber')}"
                )
                continue
            try:
                events.append(decode_log(stream, raw))
            except MalformedEvent as exc:
                logger.warning(f"[{stream}] Skipping malformed log: {exc.message}")
                metrics.events_skipped.labels(stream=str(stream)).inc()
        return events

    def subscribe_live(self, stream: StreamKind, from_block: int) -> LogSubscription:
        from .subscription import LogSubscription

        return LogSubscription(client=self, stream=stream, from_block=from_block)

    async def batch_call(self, calls: Sequence[RpcCall]) -> list[Any]:
        if not calls:
            return []

        # Number the calls and send them as one JSON-RPC batch.
        #
        # Nodes may answer batch members in any order, so responses are
        # matched back to requests by id.
        ids = [next(self._ids) for _ in calls]
        payload = []
        for request_id, call in zip(ids, calls, strict=True):
            method, params = call.to_request()
            payload.append({"jsonrpc": "2.0", "id": request_id, "method": method, "params": params})

        body = await self._post(payload)
        if isinstance(body, dict) and body.get("error") is not None:
            raise BatchCallFailed(f"Batch rejected: {_RpcError(body['error'])}")
        if not isinstance(body, list):
            raise BatchCallFailed(f"Batch response is not a list: {type(body).__name__}")

        by_id: dict[Any, dict[str, Any]] = {}
        for item in body:
            if isinstance(item, dict) and "id" in item:
                by_id[item["id"]] = item

        results: list[Any] = []
        for index, (request_id, call) in enumerate(zip(ids, calls, strict=True)):
            item = by_id.get(request_id)
            if item is None:
                raise BatchCallFailed(f"No response for batch member {index}", index=index)
            if item.get("error") is not None:
                raise BatchCallFailed(
                    f"Batch member {index} failed: {_RpcError(item['error'])}", index=index
                )
            results.append(call.decode(item.get("result")))

        return results
