"""coordbridge: per-worker bridge between a stdio MCP client and a host coordinator."""
__version__ = "0.1.0"

from .config import BridgeConfig
from .errors import (
    BridgeError,
    ConfigurationError,
    CoordinatorDisconnectedError,
    CoordinatorError,
    CoordinatorNotConnectedError,
    CoordinatorTimeoutError,
    RequestInFlightError,
    ToolArgumentError,
    UnknownToolError,
)
from .link import CoordinatorLink
from .lock_bridge import LockBridge
from .models import ConnectionState, LockAction, LockHandle, PermissionBehavior
from .permission_bridge import PermissionBridge

__all__ = [
    "__version__",
    # Components
    "BridgeConfig",
    "CoordinatorLink",
    "LockBridge",
    "PermissionBridge",
    # Models
    "ConnectionState",
    "LockAction",
    "LockHandle",
    "PermissionBehavior",
    # Errors
    "BridgeError",
    "ConfigurationError",
    "CoordinatorDisconnectedError",
    "CoordinatorError",
    "CoordinatorNotConnectedError",
    "CoordinatorTimeoutError",
    "RequestInFlightError",
    "ToolArgumentError",
    "UnknownToolError",
]
