"""Tool catalogs exposed over the local MCP protocol.

Each bridge flavour publishes a static list of tool descriptors and
a name → coroutine mapping. Tool results are the coordinator's
JSON objects; the server serializes them into a text content block.
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from mcp.types import Tool

from ..errors import ToolArgumentError, UnknownToolError
from ..lock_bridge import LockBridge
from ..permission_bridge import PermissionBridge

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]

_FILE_PATH_SCHEMA_DESCRIPTIONS = {
    "acquire_file_lock": "Absolute path to the file to lock",
    "release_file_lock": "Absolute path to the file to unlock",
    "check_file_status": "Absolute path to the file to check",
}


@dataclass
class ToolCatalog:
    """Descriptors plus handlers for one bridge flavour."""

    server_name: str
    tools: list[Tool] = field(default_factory=list)
    handlers: dict[str, ToolHandler] = field(default_factory=dict)

    def add(self, tool: Tool, handler: ToolHandler) -> None:
        self.tools.append(tool)
        self.handlers[tool.name] = handler

    def describe(self) -> list[dict[str, Any]]:
        return [
            tool.model_dump(mode="json", by_alias=True, exclude_none=True)
            for tool in self.tools
        ]

    async def call(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        handler = self.handlers.get(name)
        if handler is None:
            logger.warning("%s has no tool named %r", self.server_name, name)
            raise UnknownToolError(name)
        return await handler(arguments)


def _require(tool_name: str, arguments: dict[str, Any], key: str) -> Any:
    value = arguments.get(key)
    if value is None or value == "":
        raise ToolArgumentError(tool_name, key)
    return value


def _file_path_tool(name: str, description: str) -> Tool:
    return Tool(
        name=name,
        description=description,
        inputSchema={
            "type": "object",
            "properties": {
                "file_path": {
                    "type": "string",
                    "description": _FILE_PATH_SCHEMA_DESCRIPTIONS[name],
                },
            },
            "required": ["file_path"],
        },
    )


def _no_argument_tool(name: str, description: str) -> Tool:
    return Tool(
        name=name,
        description=description,
        inputSchema={"type": "object", "properties": {}},
    )


def lock_tools(bridge: LockBridge) -> ToolCatalog:
    """Catalog for the file-lock bridge."""
    catalog = ToolCatalog(server_name="coordbridge-file-locks")

    async def acquire(args: dict[str, Any]) -> dict[str, Any]:
        return await bridge.acquire(str(_require("acquire_file_lock", args, "file_path")))

    async def release(args: dict[str, Any]) -> dict[str, Any]:
        return await bridge.release(str(_require("release_file_lock", args, "file_path")))

    async def check(args: dict[str, Any]) -> dict[str, Any]:
        return await bridge.check(str(_require("check_file_status", args, "file_path")))

    async def my_locks(args: dict[str, Any]) -> dict[str, Any]:
        return await bridge.list()

    async def release_all(args: dict[str, Any]) -> dict[str, Any]:
        return await bridge.release_all()

    catalog.add(
        _file_path_tool(
            "acquire_file_lock",
            "Acquire an exclusive lock on a file before editing. You MUST "
            "call this before using Edit or Write tools on any file while "
            "other workers run concurrently. The call waits indefinitely "
            "until the file is available.",
        ),
        acquire,
    )
    catalog.add(
        _file_path_tool(
            "release_file_lock",
            "Release a lock on a file after editing is complete so other "
            "workers can access it.",
        ),
        release,
    )
    catalog.add(
        _file_path_tool(
            "check_file_status",
            "Check whether a file is currently locked by another session. "
            "Returns the holder if locked.",
        ),
        check,
    )
    catalog.add(
        _no_argument_tool(
            "get_my_locks",
            "Get all files currently locked by this session.",
        ),
        my_locks,
    )
    catalog.add(
        _no_argument_tool(
            "release_all_locks",
            "Release all locks held by this session. Call this when done "
            "with all file operations.",
        ),
        release_all,
    )
    return catalog


def permission_tools(bridge: PermissionBridge) -> ToolCatalog:
    """Catalog for the approval bridge."""
    catalog = ToolCatalog(server_name="coordbridge-permissions")

    async def approve(args: dict[str, Any]) -> dict[str, Any]:
        tool_name = str(_require("approve_tool", args, "tool_name"))
        return await bridge.approve(tool_name, args.get("input") or {})

    catalog.add(
        Tool(
            name="approve_tool",
            description="Request user approval for a tool execution",
            inputSchema={
                "type": "object",
                "properties": {
                    "tool_name": {
                        "type": "string",
                        "description": "Name of the tool requesting approval",
                    },
                    "input": {
                        "type": "object",
                        "description": "Tool input parameters",
                    },
                },
                "required": ["tool_name", "input"],
            },
        ),
        approve,
    )
    return catalog
