from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest
from aiohttp import WSMsgType, web


class FakeWebSocket:
    """Stands in for aiohttp's client socket in link unit tests."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.closed = False

    async def send_str(self, data: str) -> None:
        self.sent.append(json.loads(data))

    async def close(self) -> None:
        self.closed = True


class FakeCoordinator:
    """Scripted WebSocket coordinator on an ephemeral loopback port.

    Replies are popped in order, one per inbound request. When the
    script runs out, requests go unanswered.
    """

    def __init__(
        self,
        replies: list[dict[str, Any]] | None = None,
        drop_first_connections: int = 0,
    ) -> None:
        self.replies = list(replies or [])
        self.requests: list[dict[str, Any]] = []
        self.request_times: list[float] = []
        self.connections = 0
        self._drop_first = drop_first_connections
        self._sockets: list[web.WebSocketResponse] = []
        self._runner: web.AppRunner | None = None
        self.port = 0

    @property
    def url(self) -> str:
        return f"ws://127.0.0.1:{self.port}"

    async def _handle(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.connections += 1
        if self.connections <= self._drop_first:
            await ws.close()
            return ws
        self._sockets.append(ws)
        async for msg in ws:
            if msg.type != WSMsgType.TEXT:
                continue
            self.requests.append(json.loads(msg.data))
            self.request_times.append(asyncio.get_running_loop().time())
            if self.replies:
                await ws.send_str(json.dumps(self.replies.pop(0)))
        return ws

    async def __aenter__(self) -> FakeCoordinator:
        app = web.Application()
        app.router.add_get("/", self._handle)
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, "127.0.0.1", 0)
        await site.start()
        self.port = self._runner.addresses[0][1]
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        for ws in self._sockets:
            if not ws.closed:
                await ws.close()
        if self._runner is not None:
            await self._runner.cleanup()


async def wait_until(predicate, timeout: float = 5.0) -> None:
    """Poll ``predicate`` on the loop until true or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not reached before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def fake_ws() -> FakeWebSocket:
    return FakeWebSocket()


@pytest.fixture
def coordinator_factory():
    return FakeCoordinator


@pytest.fixture
def until():
    return wait_until
