"""
Error taxonomy for jorup.

Every failure that can reach the command line is an instance of JorupError.
Each family carries a distinct ``exit_code`` so the CLI can map results
without inspecting messages:

    ResolutionError   (10) channel/version could not be turned into a release
    FetchError        (11) network or transport failure
    InstallError      (12) integrity or unpack failure
    StateError        (13) corrupted, newer or locked durable state
    AlreadyRunning    (14) a live node already owns the channel
    NotRunning        (15) no live node for the channel
    ProcessError      (16) launch failure, unexpected exit, unreachable node
    ConfigError        (1) missing or unreadable user configuration file

ForcedShutdown is a warning, not an error: shutdown still succeeds.
"""

from __future__ import annotations

from typing import Optional


class JorupError(Exception):
    """Base class for every classified jorup failure."""

    exit_code: int = 1


# ----------------------------------------------------------------------
# Resolution
# ----------------------------------------------------------------------

class ResolutionError(JorupError):
    exit_code = 10


class ChannelParseError(ResolutionError):
    pass


class UnknownBlockchain(ResolutionError):
    def __init__(self, name: str):
        super().__init__(f"No blockchain named {name!r} in the release index")
        self.name = name


class NoDefaultChannel(ResolutionError):
    def __init__(self) -> None:
        super().__init__(
            "No channel given and no default channel set; "
            "pass a channel or install one with --make-default"
        )


class NoSuchVersion(ResolutionError):
    def __init__(self, version: str, channel: str):
        super().__init__(f"Version {version} does not exist for {channel}")
        self.version = version
        self.channel = channel


class NoCompatibleRelease(ResolutionError):
    def __init__(self, channel: str, constraint: str):
        super().__init__(
            f"Cannot run without compatible release: nothing satisfies "
            f"{constraint} for {channel}"
        )
        self.channel = channel
        self.constraint = constraint


# ----------------------------------------------------------------------
# Fetch / install
# ----------------------------------------------------------------------

class FetchError(JorupError):
    exit_code = 11


class InstallError(JorupError):
    exit_code = 12


class IntegrityError(InstallError):
    def __init__(self, url: str, expected: str, actual: str):
        super().__init__(
            f"Checksum mismatch for {url}: expected {expected}, got {actual}"
        )
        self.url = url
        self.expected = expected
        self.actual = actual


class UnpackError(InstallError):
    pass


class ConfigError(JorupError):
    exit_code = 1


# ----------------------------------------------------------------------
# Durable state
# ----------------------------------------------------------------------

class StateError(JorupError):
    exit_code = 13


class ResourceBusy(StateError):
    def __init__(self, path: str, timeout: float):
        super().__init__(
            f"State file {path} is locked by another jorup invocation "
            f"(gave up after {timeout:.1f}s)"
        )
        self.path = path


# ----------------------------------------------------------------------
# Processes
# ----------------------------------------------------------------------

class ProcessError(JorupError):
    exit_code = 16


class AlreadyRunning(ProcessError):
    exit_code = 14

    def __init__(self, channel: str, pid: int):
        super().__init__(f"Node already running for {channel}. PID: {pid}")
        self.channel = channel
        self.pid = pid


class NotRunning(ProcessError):
    exit_code = 15

    def __init__(self, channel: str):
        super().__init__(f"No running node for {channel}")
        self.channel = channel


class LaunchFailed(ProcessError):
    pass


class UnexpectedExit(ProcessError):
    def __init__(self, channel: str, status: int):
        super().__init__(f"Node for {channel} exited with status {status}")
        self.channel = channel
        self.status = status


class ControlEndpointUnreachable(ProcessError):
    def __init__(self, channel: str, endpoint: Optional[str]):
        if endpoint is None:
            msg = f"Node for {channel} has no REST control endpoint configured"
        else:
            msg = f"Request to the node for {channel} at {endpoint} failed"
        super().__init__(msg)
        self.channel = channel
        self.endpoint = endpoint


class ForcedShutdown(UserWarning):
    """Emitted when a node ignored the graceful request and was killed."""


__all__ = [
    "JorupError",
    "ResolutionError",
    "ChannelParseError",
    "UnknownBlockchain",
    "NoDefaultChannel",
    "NoSuchVersion",
    "NoCompatibleRelease",
    "FetchError",
    "InstallError",
    "IntegrityError",
    "UnpackError",
    "ConfigError",
    "StateError",
    "ResourceBusy",
    "ProcessError",
    "AlreadyRunning",
    "NotRunning",
    "LaunchFailed",
    "UnexpectedExit",
    "ControlEndpointUnreachable",
    "ForcedShutdown",
]
