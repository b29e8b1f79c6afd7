"""Tests for the live log subscription and its seam with the replay."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx
import pytest
from aiohttp import web

from market_indexer.chain import JsonRpcNodeClient, LogSubscription, StreamKind
from market_indexer.types import SubscriptionDropped
from tests.market_indexer.helpers import CONTRACTS, make_log

SUBSCRIPTION_ID = "0x9cef478923ff08bf67fde6c64013158d"


def notification(log: dict[str, Any], subscription: str = SUBSCRIPTION_ID) -> dict[str, Any]:
    """eth_subscription push carrying `log`."""
    return {
        "jsonrpc": "2.0",
        "method": "eth_subscription",
        "params": {"subscription": subscription, "result": log},
    }


def http_node(head: int, logs: list[dict[str, Any]], queries: list[Any]) -> httpx.MockTransport:
    """HTTP side of the node: a fixed head and a log set filtered by range."""

    def respond(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        if payload["method"] == "eth_blockNumber":
            return httpx.Response(
                200, json={"jsonrpc": "2.0", "id": payload["id"], "result": hex(head)}
            )

        (query,) = payload["params"]
        queries.append(query)
        start, end = int(query["fromBlock"], 16), int(query["toBlock"], 16)
        selected = [log for log in logs if start <= int(log["blockNumber"], 16) <= end]
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": selected})

    return httpx.MockTransport(respond)


async def serve_ws(port: int, pushes: list[dict[str, Any]], requests: list[Any]) -> web.AppRunner:
    """WebSocket side of the node: confirm the subscription, push, then close."""

    async def handler(request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        subscribe = await ws.receive_json()
        requests.append(subscribe)
        await ws.send_json({"jsonrpc": "2.0", "id": subscribe["id"], "result": SUBSCRIPTION_ID})
        for message in pushes:
            await ws.send_json(message)

        await ws.close()
        return ws

    app = web.Application()
    app.router.add_get("/ws", handler)
    runner = web.AppRunner(app)
    await runner.setup()
    await web.TCPSite(runner, "127.0.0.1", port).start()
    return runner


async def drain(subscription: LogSubscription) -> list[int]:
    """Collect delivered block numbers until the subscription drops."""
    blocks: list[int] = []
    with pytest.raises(SubscriptionDropped):
        async with asyncio.timeout(5):
            async for event in subscription:
                blocks.append(event.block_number)
    return blocks


class TestSubscriptionSeam:
    """Tests for joining the replay with the push feed."""

    async def test_replay_then_live_without_gap_or_duplicate(self) -> None:
        """Blocks up to the head come from the replay, later ones from the feed."""
        stream = StreamKind.ORDER_CANCELLED
        history = [make_log(stream, b) for b in (90, 96, 100)]
        pushes = [
            notification(make_log(stream, 100)),
            notification(make_log(stream, 101)),
            notification(make_log(stream, 102, removed=True)),
            notification(make_log(stream, 103), subscription="0xother"),
            notification(make_log(stream, 104)),
        ]
        queries: list[Any] = []
        requests: list[Any] = []
        runner = await serve_ws(18546, pushes, requests)

        client = JsonRpcNodeClient(
            http_url="http://node.test/rpc",
            ws_url="ws://127.0.0.1:18546/ws",
            contracts=CONTRACTS,
            transport=http_node(100, history, queries),
        )
        try:
            async with client.subscribe_live(stream, 95) as subscription:
                assert subscription.subscription_id == SUBSCRIPTION_ID
                assert subscription.replayed_through == 100
                blocks = await drain(subscription)
        finally:
            await client.close()
            await runner.cleanup()

        assert blocks == [96, 100, 101, 104]
        assert queries[0]["fromBlock"] == hex(95)
        assert queries[0]["toBlock"] == hex(100)
        assert requests[0]["method"] == "eth_subscribe"
        assert requests[0]["params"] == ["logs", client.log_filter(stream)]

    async def test_start_above_head_skips_replay(self) -> None:
        """Nothing is replayed when the subscription starts past the head."""
        stream = StreamKind.ORDER_BID
        pushes = [notification(make_log(stream, 60)), notification(make_log(stream, 61))]
        queries: list[Any] = []
        runner = await serve_ws(18547, pushes, [])

        client = JsonRpcNodeClient(
            http_url="http://node.test/rpc",
            ws_url="ws://127.0.0.1:18547/ws",
            contracts=CONTRACTS,
            transport=http_node(50, [], queries),
        )
        try:
            async with client.subscribe_live(stream, 60) as subscription:
                assert subscription.replayed_through == 59
                blocks = await drain(subscription)
        finally:
            await client.close()
            await runner.cleanup()

        assert blocks == [60, 61]
        assert queries == []


class TestSubscriptionFailures:
    """Tests for connection failures."""

    async def test_unreachable_endpoint_drops(self) -> None:
        """A socket that cannot be opened is reported as a dropped subscription."""
        client = JsonRpcNodeClient(
            http_url="http://node.test/rpc",
            ws_url="ws://127.0.0.1:1/ws",
            contracts=CONTRACTS,
        )

        with pytest.raises(SubscriptionDropped, match="cannot open"):
            async with client.subscribe_live(StreamKind.ORDER_BID, 1):
                pass
        await client.close()

    async def test_close_is_idempotent(self) -> None:
        """Closing twice is harmless."""
        client = JsonRpcNodeClient(
            http_url="http://node.test/rpc", ws_url="ws://127.0.0.1:1/ws", contracts=CONTRACTS
        )
        subscription = LogSubscription(client=client, stream=StreamKind.ORDER_BID, from_block=1)

        await subscription.close()
        await subscription.close()
