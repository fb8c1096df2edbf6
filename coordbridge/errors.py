"""Exception hierarchy for the coordinator bridge.

Specific exceptions for each failure mode. Transport errors are
recoverable and surface as retries, failed results, or denials;
only ConfigurationError is fatal.
"""
from __future__ import annotations


class BridgeError(Exception):
    """Base exception for all bridge errors."""


class ConfigurationError(BridgeError):
    """A required setting is missing or malformed."""
    def __init__(self, setting: str, reason: str):
        self.setting = setting
        self.reason = reason
        super().__init__(f"{setting}: {reason}")


class CoordinatorError(BridgeError):
    """Base for failures talking to the coordinator."""


class CoordinatorNotConnectedError(CoordinatorError):
    """Request attempted while the link is down."""
    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Not connected to coordinator at {url}")


class CoordinatorDisconnectedError(CoordinatorError):
    """The link dropped while a request was waiting for its response."""
    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Connection to coordinator at {url} closed")


class CoordinatorTimeoutError(CoordinatorError):
    """No response arrived within the per-request timeout."""
    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Request timeout after {timeout_seconds}s")


class RequestInFlightError(CoordinatorError):
    """A second request was issued while one is still outstanding.

    The wire protocol carries no correlation id in responses, so only
    one request may be outstanding per link.
    """
    def __init__(self, action: str):
        self.action = action
        super().__init__(
            f"Cannot send {action!r}: another coordinator request is in flight"
        )


class ToolArgumentError(BridgeError):
    """A tool call is missing a required argument."""
    def __init__(self, tool_name: str, argument: str):
        self.tool_name = tool_name
        self.argument = argument
        super().__init__(
            f"Missing required argument '{argument}' for tool {tool_name}"
        )


class UnknownToolError(BridgeError):
    """tools/call named a tool this bridge does not expose."""
    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Unknown tool: {tool_name}")
