"""
jorup.runtime

Node process lifecycle: spawning, liveness, REST control and shutdown.
"""

from .control_client import NodeControlClient
from .controller import NODE_LOG_FILENAME, NodeInfo, NodeState, ProcessController, ShutdownResult
from .handle import (
    PosixProcessBackend,
    PosixProcessHandle,
    ProcessBackend,
    ProcessHandle,
    WindowsProcessBackend,
    WindowsProcessHandle,
    select_process_backend,
)

__all__ = [
    "NodeControlClient",
    "NODE_LOG_FILENAME",
    "NodeInfo",
    "NodeState",
    "ProcessController",
    "ShutdownResult",
    "PosixProcessBackend",
    "PosixProcessHandle",
    "ProcessBackend",
    "ProcessHandle",
    "WindowsProcessBackend",
    "WindowsProcessHandle",
    "select_process_backend",
]
