"""CLI entry points for the bridge processes.

Worker CLIs launch one of these as an MCP tool server:

    coordbridge-locks         # file lock tools
    coordbridge-permissions   # approve_tool

    python -m coordbridge locks --port 47100 --issue-id issue-42

The coordinator port comes from --port or the flavour's environment
variable (COORDBRIDGE_LOCK_PORT / COORDBRIDGE_PERMISSION_PORT).
Exit status is 0 after a graceful shutdown and 1 when configuration
or startup fails.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any

from .config import LOCK_PORT_ENV, PERMISSION_PORT_ENV, BridgeConfig
from .errors import ConfigurationError
from .link import CoordinatorLink
from .lock_bridge import LockBridge
from .mcp_server.stdio_server import StdioServer, StdioTransport
from .mcp_server.tools import ToolCatalog, lock_tools, permission_tools
from .permission_bridge import PermissionBridge
from .shutdown import ShutdownHandler

logger = logging.getLogger(__name__)

LOCKS = "locks"
PERMISSIONS = "permissions"

_PORT_ENV = {
    LOCKS: LOCK_PORT_ENV,
    PERMISSIONS: PERMISSION_PORT_ENV,
}


def _build(
    mode: str, link: CoordinatorLink, config: BridgeConfig,
) -> tuple[Any, ToolCatalog]:
    if mode == LOCKS:
        bridge = LockBridge(
            link,
            config.issue_id,
            retry_interval=config.retry_interval_seconds,
            request_timeout=config.request_timeout_seconds,
        )
        return bridge, lock_tools(bridge)
    bridge = PermissionBridge(link, config.issue_id)
    return bridge, permission_tools(bridge)


async def _wait_ready(link: CoordinatorLink, shutdown: ShutdownHandler) -> bool:
    """Wait for the first connection. False if shutdown came first."""
    ready = asyncio.ensure_future(link.wait_connected())
    stop = asyncio.ensure_future(shutdown.wait())
    await asyncio.wait({ready, stop}, return_when=asyncio.FIRST_COMPLETED)
    for task in (ready, stop):
        task.cancel()
    await asyncio.gather(ready, stop, return_exceptions=True)
    return not shutdown.requested


async def run_bridge(
    config: BridgeConfig,
    mode: str,
    transport: StdioTransport | None = None,
    handle_signals: bool = True,
) -> int:
    """Run one bridge until a signal or end of stdin. Returns the exit status."""
    link = CoordinatorLink(config.url, reconnect_delay=config.reconnect_delay_seconds)
    bridge, catalog = _build(mode, link, config)
    shutdown = ShutdownHandler(bridge.release_all, link)
    if handle_signals:
        shutdown.install_signal_handlers()

    logger.info("Issue ID: %s", config.issue_id)
    if mode == LOCKS:
        logger.info("Retry interval: %.1fs", config.retry_interval_seconds)

    try:
        link.connect()
        if not await _wait_ready(link, shutdown):
            await shutdown.run()
            return 0
        if transport is None:
            transport = await StdioTransport.open()
    except Exception:
        logger.exception("Fatal error during startup")
        await shutdown.run()
        return 1

    server = StdioServer(catalog, transport)
    shutdown.attach(server)
    logger.info("Ready to process requests")

    serve_task = asyncio.ensure_future(server.serve())
    stop_task = asyncio.ensure_future(shutdown.wait())
    try:
        done, _ = await asyncio.wait(
            {serve_task, stop_task}, return_when=asyncio.FIRST_COMPLETED,
        )
        if serve_task in done:
            serve_task.result()
            shutdown.request("stdin EOF")
    finally:
        for task in (serve_task, stop_task):
            if not task.done():
                task.cancel()
        await asyncio.gather(serve_task, stop_task, return_exceptions=True)
        await shutdown.run()
    return 0


def _parse_args(argv: list[str] | None, mode: str | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog=f"coordbridge-{mode}" if mode else "coordbridge",
        description=(
            "MCP tool server relaying file locks or tool approvals "
            "to the host coordinator"
        ),
    )
    if mode is None:
        parser.add_argument(
            "mode", choices=[LOCKS, PERMISSIONS],
            help="Which bridge to run",
        )
    parser.add_argument(
        "--port", type=int, default=None,
        help="Coordinator port (default: from environment)",
    )
    parser.add_argument(
        "--issue-id", default=None,
        help="Session/issue identity (default: COORDBRIDGE_ISSUE_ID or 'unknown')",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args(argv)
    if mode is not None:
        args.mode = mode
    return args


def main(argv: list[str] | None = None, mode: str | None = None) -> None:
    args = _parse_args(argv, mode)
    try:
        config = BridgeConfig.from_env(_PORT_ENV[args.mode], port=args.port)
    except ConfigurationError as exc:
        print(f"[coordbridge] {exc}", file=sys.stderr)
        sys.exit(1)
    if args.issue_id:
        config.issue_id = args.issue_id

    # stdout is the protocol stream; logs go to stderr
    level = logging.DEBUG if args.verbose else config.log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    logger.info("coordbridge %s starting (coordinator=%s)", args.mode, config.url)

    try:
        status = asyncio.run(run_bridge(config, args.mode))
    except KeyboardInterrupt:
        status = 0
    except Exception:
        logger.exception("Fatal error")
        status = 1
    sys.exit(status)


def locks_main() -> None:
    main(mode=LOCKS)


def permissions_main() -> None:
    main(mode=PERMISSIONS)
