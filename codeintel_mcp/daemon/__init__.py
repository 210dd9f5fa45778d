"""codeintel daemon supervision and request bridging."""

from codeintel_mcp.daemon.errors import (
    DaemonError,
    DaemonStartingError,
    DaemonSpawnError,
    DaemonCrashedError,
    DaemonExitedError,
    DaemonNoServerError,
    DaemonNotRespondingError,
    DaemonParseError,
)
from codeintel_mcp.daemon.process import ProcessHandle
from codeintel_mcp.daemon.health import HealthMonitor, HealthSignal, SignalKind, classify_line
from codeintel_mcp.daemon.supervisor import DaemonSupervisor, DaemonState, DaemonRecord
from codeintel_mcp.daemon.bridge import (
    RequestBridge,
    Command,
    Position,
    BridgeResult,
    RequestTiming,
)

__all__ = [
    "DaemonError",
    "DaemonStartingError",
    "DaemonSpawnError",
    "DaemonCrashedError",
    "DaemonExitedError",
    "DaemonNoServerError",
    "DaemonNotRespondingError",
    "DaemonParseError",
    "ProcessHandle",
    "HealthMonitor",
    "HealthSignal",
    "SignalKind",
    "classify_line",
    "DaemonSupervisor",
    "DaemonState",
    "DaemonRecord",
    "RequestBridge",
    "Command",
    "Position",
    "BridgeResult",
    "RequestTiming",
]
