"""Persistent WebSocket link to the host coordinator.

One link per bridge process. The coordinator answers each request
with exactly one frame and does not echo request ids, so the link
keeps a single pending slot: the next inbound frame resolves
whichever request is waiting. Transport events (open, message,
error, close) are handled from one receive loop running as a
background task, reconnecting after a fixed delay whenever the
socket closes.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import aiohttp

from .errors import (
    CoordinatorDisconnectedError,
    CoordinatorNotConnectedError,
    CoordinatorTimeoutError,
    RequestInFlightError,
)
from .models import ConnectionState

logger = logging.getLogger(__name__)


class CoordinatorLink:
    """WebSocket client to the coordinator with reconnect and a single pending slot."""

    def __init__(self, url: str, reconnect_delay: float = 1.0) -> None:
        self._url = url
        self._reconnect_delay = reconnect_delay
        self._state = ConnectionState.DISCONNECTED
        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._runner: asyncio.Task | None = None
        self._pending: asyncio.Future | None = None
        self._connected = asyncio.Event()
        self._closing = False

    @property
    def url(self) -> str:
        return self._url

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED and self._ws is not None

    @property
    def reconnecting(self) -> bool:
        """True while the receive loop is running but not yet connected."""
        return (
            self._runner is not None
            and not self._runner.done()
            and not self.connected
        )

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def connect(self) -> None:
        """Start the connection loop. No-op while one is already running."""
        if self._closing:
            return
        if self._runner is not None and not self._runner.done():
            return
        self._runner = asyncio.get_running_loop().create_task(
            self._run(), name="coordinator-link",
        )

    async def wait_connected(self) -> None:
        await self._connected.wait()

    async def request(
        self,
        payload: dict[str, Any],
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Send one request and wait for the next inbound frame.

        ``timeout=None`` waits indefinitely. On timeout the slot is
        cleared, so a late response is dropped instead of resolving
        anything.
        """
        ws = self._ws
        if not self.connected or ws is None:
            raise CoordinatorNotConnectedError(self._url)
        if self._pending is not None:
            raise RequestInFlightError(
                str(payload.get("action") or payload.get("toolName") or "request")
            )

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending = future
        try:
            data = json.dumps(payload)
            logger.debug("Sending request: %s", data[:200])
            try:
                await ws.send_str(data)
            except (aiohttp.ClientError, ConnectionError) as exc:
                logger.warning("Send to coordinator failed: %s", exc)
                raise CoordinatorDisconnectedError(self._url) from exc

            if timeout is None:
                return await future
            try:
                return await asyncio.wait_for(future, timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "Coordinator request timed out after %.1fs", timeout,
                )
                raise CoordinatorTimeoutError(timeout) from None
        finally:
            if self._pending is future:
                self._pending = None

    async def close(self) -> None:
        """Stop reconnecting and close the socket and HTTP session."""
        self._closing = True
        if self._runner is not None and not self._runner.done():
            self._runner.cancel()
            try:
                await self._runner
            except asyncio.CancelledError:
                pass
        self._runner = None
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        self._ws = None
        if self._session is not None:
            await self._session.close()
            self._session = None
        self._fail_pending(CoordinatorDisconnectedError(self._url))
        self._state = ConnectionState.DISCONNECTED
        self._connected.clear()

    # ── Receive loop ─────────────────────────────────────────────

    async def _run(self) -> None:
        while not self._closing:
            await self._connect_once()
            if self._closing:
                break
            await asyncio.sleep(self._reconnect_delay)

    async def _connect_once(self) -> None:
        self._state = ConnectionState.CONNECTING
        logger.info("Connecting to %s...", self._url)
        if self._session is None:
            self._session = aiohttp.ClientSession()
        try:
            ws = await self._session.ws_connect(self._url)
        except (aiohttp.ClientError, OSError) as exc:
            self._on_error(exc)
            self._on_close()
            return

        self._on_open(ws)
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._on_message(msg.data)
                elif msg.type == aiohttp.WSMsgType.BINARY:
                    self._on_message(msg.data.decode("utf-8", errors="replace"))
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    self._on_error(ws.exception())
        finally:
            if not ws.closed:
                await ws.close()
            self._on_close()

    def _on_open(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        logger.info("Connected to coordinator at %s", self._url)
        self._ws = ws
        self._state = ConnectionState.CONNECTED
        self._connected.set()

    def _on_message(self, raw: str) -> None:
        try:
            response = json.loads(raw)
        except ValueError as exc:
            logger.warning("Failed to parse coordinator message: %s", exc)
            return
        if not isinstance(response, dict):
            logger.warning("Ignoring non-object coordinator message: %r", response)
            return

        logger.debug("Received response: %s", raw[:200])
        pending = self._pending
        if pending is None or pending.done():
            logger.warning(
                "No request waiting, dropping coordinator message: %s",
                raw[:200],
            )
            return
        self._pending = None
        pending.set_result(response)

    def _on_error(self, exc: BaseException | None) -> None:
        # Reconnect is driven by close, not by error.
        logger.error("Coordinator link error: %s", exc)
        self._state = ConnectionState.DISCONNECTED

    def _on_close(self) -> None:
        self._ws = None
        self._state = ConnectionState.DISCONNECTED
        self._connected.clear()
        self._fail_pending(CoordinatorDisconnectedError(self._url))
        if self._closing:
            logger.info("Coordinator link closed")
        else:
            logger.warning(
                "Coordinator link closed, reconnecting in %.1fs",
                self._reconnect_delay,
            )

    def _fail_pending(self, exc: Exception) -> None:
        pending = self._pending
        self._pending = None
        if pending is not None and not pending.done():
            pending.set_exception(exc)
