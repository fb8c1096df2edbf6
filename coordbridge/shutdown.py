"""Process shutdown: signal handling and lock cleanup.

Cleanup runs once, whichever trigger arrives first (SIGINT, SIGTERM,
end of stdin). It cancels in-flight tool calls so their round trips
give up the link, releases everything held, then closes the link.
release_all makes at most one round trip and always clears local
state, so cleanup cannot hang on a dead coordinator.
"""
from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Awaitable, Callable
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from .link import CoordinatorLink
    from .mcp_server.stdio_server import StdioServer

logger = logging.getLogger(__name__)

_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownHandler:
    """Collects shutdown triggers and runs cleanup exactly once."""

    def __init__(
        self,
        release_all: Callable[[], Awaitable[dict[str, Any]]],
        link: CoordinatorLink,
    ) -> None:
        self._release_all = release_all
        self._link = link
        self._server: StdioServer | None = None
        self._requested = asyncio.Event()
        self._reason: str | None = None
        self._cleanup: asyncio.Task | None = None
        self._installed: list[signal.Signals] = []

    @property
    def reason(self) -> str | None:
        return self._reason

    @property
    def requested(self) -> bool:
        return self._requested.is_set()

    def attach(self, server: StdioServer) -> None:
        self._server = server

    def install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in _SIGNALS:
            try:
                loop.add_signal_handler(sig, self.request, sig.name)
            except (NotImplementedError, RuntimeError):
                # No loop signal support (e.g. Windows or non-main thread)
                logger.debug("Cannot install handler for %s", sig.name)
                continue
            self._installed.append(sig)

    def remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self._installed:
            loop.remove_signal_handler(sig)
        self._installed.clear()

    def request(self, reason: str) -> None:
        if self._requested.is_set():
            return
        logger.info("Received %s, releasing locks...", reason)
        self._reason = reason
        self._requested.set()

    async def wait(self) -> None:
        await self._requested.wait()

    async def run(self) -> dict[str, Any] | None:
        """Run cleanup; later calls wait for the first run to finish."""
        if self._cleanup is None:
            self._cleanup = asyncio.get_running_loop().create_task(self._run_once())
        return await asyncio.shield(self._cleanup)

    async def _run_once(self) -> dict[str, Any] | None:
        result = None
        try:
            if self._server is not None:
                await self._server.cancel_pending()
            try:
                result = await self._release_all()
                logger.info("release_all result: %s", result)
            except Exception:
                logger.exception("release_all failed during shutdown")
        finally:
            await self._link.close()
            self.remove_signal_handlers()
        return result
