"""Core data models for the bridge.

Enums, dataclasses and wire payload builders. Wire payloads stay
plain dicts because the coordinator owns their schema.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any


class ConnectionState(str, Enum):
    """Coordinator link states."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class LockAction(str, Enum):
    """Actions understood by the coordinator's lock table."""
    ACQUIRE = "acquire"
    RELEASE = "release"
    CHECK = "check"
    LIST = "list"
    RELEASE_ALL = "release_all"


class PermissionBehavior(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True)
class LockHandle:
    """Exclusive ownership of one file, as granted by the coordinator."""
    file_path: str
    lock_id: str


def lock_request(
    action: LockAction,
    issue_id: str,
    file_path: str | None = None,
    lock_id: str | None = None,
) -> dict[str, Any]:
    """Build a lock wire request, omitting absent optional fields."""
    request: dict[str, Any] = {"action": action.value}
    if file_path is not None:
        request["filePath"] = file_path
    request["issueId"] = issue_id
    if lock_id is not None:
        request["lockId"] = lock_id
    return request


def permission_request(
    tool_name: str,
    tool_input: Any,
    session_id: str,
) -> dict[str, Any]:
    return {
        "id": f"req_{uuid.uuid4().hex}",
        "toolName": tool_name,
        "input": tool_input,
        "sessionId": session_id,
    }


def failure_result(message: str) -> dict[str, Any]:
    """Structured lock result for a transport-level failure."""
    return {"success": False, "message": message}


def deny_decision(message: str) -> dict[str, Any]:
    """Fail-closed permission decision."""
    return {"behavior": PermissionBehavior.DENY.value, "message": message}
