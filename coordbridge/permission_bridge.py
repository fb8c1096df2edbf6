"""Tool-approval requests relayed to the coordinator.

Approval can take as long as the person deciding needs, so the
round trip has no timeout. Every failure becomes a deny decision:
the worker is blocked on this call and must always get an answer.
"""
from __future__ import annotations

import logging
from typing import Any

from .link import CoordinatorLink
from .models import PermissionBehavior, deny_decision, permission_request

logger = logging.getLogger(__name__)


class PermissionBridge:
    """Single approval operation for one worker session.

    Only one approval may be outstanding at a time; a concurrent
    second call fails with RequestInFlightError, which is reported
    to that caller as a deny.
    """

    def __init__(self, link: CoordinatorLink, session_id: str) -> None:
        self._link = link
        self._session_id = session_id

    async def approve(self, tool_name: str, tool_input: Any) -> dict[str, Any]:
        keys = ", ".join(tool_input) if isinstance(tool_input, dict) else ""
        logger.info("Permission request for tool: %s (input keys: %s)", tool_name, keys)
        try:
            request = permission_request(tool_name, tool_input, self._session_id)
            response = await self._link.request(request, timeout=None)
        except Exception as exc:
            logger.error("Permission request for %s failed: %s", tool_name, exc)
            return deny_decision(str(exc) or "Permission request failed")

        behavior = response.get("behavior")
        if behavior not in (PermissionBehavior.ALLOW.value, PermissionBehavior.DENY.value):
            logger.error("Coordinator sent invalid permission behavior: %r", behavior)
            return deny_decision(f"Invalid permission response: {behavior!r}")
        logger.info("Permission for %s: %s", tool_name, behavior)
        return response

    async def release_all(self) -> dict[str, Any]:
        """Nothing to release; shares the shutdown path with the lock bridge."""
        return {"success": True}
