"""Line-delimited JSON-RPC responder on stdin/stdout.

Implements the server half of the MCP tool protocol that worker
CLIs speak to their tool servers: ``initialize``, ``tools/list``,
``tools/call`` and the two notifications. stdout carries protocol
messages only; all diagnostics go through logging to stderr.

Each request runs in its own task so the loop keeps reading stdin
(and honoring cancellation notifications) while a tool call waits
on the coordinator.
"""
from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Any, TextIO

from mcp.types import (
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    CallToolResult,
    Implementation,
    InitializeResult,
    ListToolsResult,
    ServerCapabilities,
    TextContent,
    ToolsCapability,
)

from .. import __version__
from .tools import ToolCatalog

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"
PROTOCOL_VERSION = "2024-11-05"
# Application error codes (JSON-RPC reserves -32000..-32099 for servers)
HANDLER_ERROR = -32000
REQUEST_CANCELLED = -32800
# Tool inputs can embed whole files, so allow long lines
_MAX_LINE_BYTES = 16 * 1024 * 1024

MethodHandler = Callable[[dict[str, Any]], Awaitable[Any]]


class StdioTransport:
    """Reads request lines from a stream and writes one JSON object per line."""

    def __init__(self, reader: asyncio.StreamReader, output: TextIO) -> None:
        self._reader = reader
        self._output = output

    @classmethod
    async def open(cls) -> StdioTransport:
        """Attach to the process's stdin/stdout."""
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader(limit=_MAX_LINE_BYTES)
        await loop.connect_read_pipe(
            lambda: asyncio.StreamReaderProtocol(reader), sys.stdin,
        )
        return cls(reader, sys.stdout)

    async def read_line(self) -> str | None:
        """Next input line, or None at end of input."""
        line = await self._reader.readline()
        if not line:
            return None
        return line.decode("utf-8", errors="replace")

    def write_message(self, message: dict[str, Any]) -> None:
        data = json.dumps(message)
        logger.debug("Sending response: %s", data[:200])
        try:
            self._output.write(data + "\n")
            self._output.flush()
        except (OSError, ValueError) as exc:
            # stdout closed under us; the worker is gone
            logger.error("Failed to write response: %s", exc)


def _error(req_id: Any, code: int, message: str) -> dict[str, Any]:
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": req_id,
        "error": {"code": code, "message": message},
    }


def _dump(model: Any) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


class StdioServer:
    """Dispatch table for one bridge flavour."""

    def __init__(self, catalog: ToolCatalog, transport: StdioTransport) -> None:
        self._catalog = catalog
        self._transport = transport
        self._tasks: set[asyncio.Task] = set()
        self._in_flight: dict[str | int, asyncio.Task] = {}
        self._handlers: dict[str, MethodHandler] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
            "notifications/initialized": self._ignore,
            "notifications/cancelled": self._cancel_request,
        }

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    async def serve(self) -> None:
        """Read and dispatch lines until end of input."""
        while True:
            try:
                line = await self._transport.read_line()
            except ValueError as exc:
                logger.error("Dropping unreadable input line: %s", exc)
                continue
            if line is None:
                logger.info("stdin closed")
                return
            self.feed(line)

    def feed(self, line: str) -> asyncio.Task | None:
        """Parse one input line and start handling it."""
        if not line.strip():
            return None
        try:
            message = json.loads(line)
        except ValueError as exc:
            # No reliable id to answer to
            logger.error("Failed to parse message: %s", exc)
            return None
        if not isinstance(message, dict):
            logger.error("Ignoring non-object message: %r", message)
            return None

        task = asyncio.get_running_loop().create_task(self._process(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def cancel_pending(self) -> None:
        """Cancel every in-flight request and wait for their replies."""
        tasks = [t for t in self._tasks if not t.done()]
        if not tasks:
            return
        logger.info("Cancelling %d in-flight request(s)", len(tasks))
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _process(self, message: dict[str, Any]) -> None:
        response = await self.handle(message)
        if response is not None:
            self._transport.write_message(response)

    async def handle(self, message: dict[str, Any]) -> dict[str, Any] | None:
        """Return the reply for one message, or None when none is owed.

        Only the presence of ``id`` decides whether a reply is owed.
        """
        has_id = "id" in message
        req_id = message.get("id")

        if message.get("jsonrpc") != JSONRPC_VERSION:
            logger.error("Invalid JSON-RPC version: %r", message.get("jsonrpc"))
            if has_id:
                return _error(req_id, INVALID_REQUEST, "Invalid JSON-RPC version")
            return None

        method = message.get("method")
        logger.debug("Processing method: %s", method)
        handler = self._handlers.get(method) if isinstance(method, str) else None
        if handler is None:
            logger.warning("Unknown method: %s", method)
            if has_id:
                return _error(req_id, METHOD_NOT_FOUND, f"Method not found: {method}")
            return None

        params = message.get("params")
        if params is None:
            params = {}
        if not isinstance(params, dict):
            logger.error("Params for %s must be an object", method)
            if has_id:
                return _error(req_id, INVALID_PARAMS, "params must be an object")
            return None

        task = asyncio.current_task()
        trackable = (
            has_id and task is not None
            and isinstance(req_id, (str, int)) and not isinstance(req_id, bool)
        )
        if trackable:
            self._in_flight[req_id] = task
        try:
            result = await handler(params)
        except asyncio.CancelledError:
            logger.info("Request %r (%s) cancelled", req_id, method)
            if not has_id:
                raise
            return _error(req_id, REQUEST_CANCELLED, "Request cancelled")
        except Exception as exc:
            logger.exception("Handler error: method=%s", method)
            if has_id:
                return _error(req_id, HANDLER_ERROR, str(exc))
            return None
        finally:
            if trackable and self._in_flight.get(req_id) is task:
                del self._in_flight[req_id]

        if not has_id:
            return None
        return {"jsonrpc": JSONRPC_VERSION, "id": req_id, "result": result}

    # ── Method handlers ──────────────────────────────────────────

    async def _initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        client = params.get("clientInfo") or {}
        logger.info(
            "initialize from %s (protocol %s)",
            client.get("name", "unknown client"), params.get("protocolVersion"),
        )
        return _dump(InitializeResult(
            protocolVersion=PROTOCOL_VERSION,
            capabilities=ServerCapabilities(tools=ToolsCapability()),
            serverInfo=Implementation(
                name=self._catalog.server_name, version=__version__,
            ),
        ))

    async def _ping(self, params: dict[str, Any]) -> dict[str, Any]:
        return {}

    async def _list_tools(self, params: dict[str, Any]) -> dict[str, Any]:
        return _dump(ListToolsResult(tools=self._catalog.tools))

    async def _call_tool(self, params: dict[str, Any]) -> dict[str, Any]:
        name = params.get("name")
        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise ValueError("Tool arguments must be an object")
        logger.info("tools/call %s", name)
        result = await self._catalog.call(str(name), arguments)
        return _dump(CallToolResult(
            content=[TextContent(type="text", text=json.dumps(result))],
        ))

    async def _ignore(self, params: dict[str, Any]) -> None:
        return None

    async def _cancel_request(self, params: dict[str, Any]) -> None:
        request_id = params.get("requestId")
        task = self._in_flight.get(request_id) if isinstance(request_id, (str, int)) else None
        if task is None or task.done():
            logger.debug("Cancellation for unknown request %r", request_id)
            return None
        logger.info(
            "Cancelling request %r: %s", request_id, params.get("reason") or "no reason given",
        )
        task.cancel()
        return None
