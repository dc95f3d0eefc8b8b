"""
Node process lifecycle.

Per channel the controller moves through

    ABSENT -> STARTING -> RUNNING -> STOPPING -> ABSENT

and the run record under ``<home>/runs/<channel>.json`` is the durable
evidence of the current state. A record whose pid is no longer alive (or
now belongs to another program) is stale: every read heals it by
removing the record and warning about the unclean stop.

Known limitation: the liveness check and the launch are not one atomic
step. Two ``jorup run`` invocations for the same channel started at the
same instant can both see the channel as absent and both launch a node;
the later run record wins.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from ..clock import SYSTEM_CLOCK, Clock
from ..errors import (
    AlreadyRunning,
    ControlEndpointUnreachable,
    ForcedShutdown,
    LaunchFailed,
    NotRunning,
    UnexpectedExit,
)
from ..fetch import HttpClient
from ..registry import RunRecord, RunRegistry, RunStatus
from ..renderer import RenderedConfig
from ..resolver import ResolvedRelease
from ..utils import HomeLayout
from .control_client import NodeControlClient
from .handle import ProcessBackend, ProcessHandle, select_process_backend

logger = logging.getLogger(__name__)


NODE_LOG_FILENAME = "NODE.logs"


class NodeState(str, Enum):
    ABSENT = "absent"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass(frozen=True)
class NodeInfo:
    record: RunRecord
    state: NodeState
    stats: Any = None
    settings: Any = None


@dataclass(frozen=True)
class ShutdownResult:
    channel: str
    pid: int
    forced: bool
    elapsed: float


class ProcessController:
    """
    Starts, inspects and stops node processes.

    Parameters
    ----------
    layout : HomeLayout
        Channel directories (node logs) live here.
    runs : RunRegistry
        Durable run records.
    backend : Optional[ProcessBackend]
        Spawns and attaches to OS processes; chosen per platform when None.
    clock : Clock
        Time source for startup and shutdown polling.
    shutdown_timeout : float
        Seconds to wait for a graceful stop before forcing it.
    daemon_grace_period : float
        Seconds a detached node gets to prove it started.
    """

    def __init__(
        self,
        layout: HomeLayout,
        runs: RunRegistry,
        *,
        backend: Optional[ProcessBackend] = None,
        http: Optional[HttpClient] = None,
        clock: Clock = SYSTEM_CLOCK,
        shutdown_timeout: float = 10.0,
        daemon_grace_period: float = 2.0,
        poll_interval: float = 0.1,
    ) -> None:
        self.layout = layout
        self.runs = runs
        self.backend = backend or select_process_backend()
        self.http = http
        self.clock = clock
        self.shutdown_timeout = shutdown_timeout
        self.daemon_grace_period = daemon_grace_period
        self.poll_interval = poll_interval

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def live_record(self, channel: str) -> Optional[RunRecord]:
        """
        Return the run record for ``channel`` if its process is alive.

        Stale records are removed with a warning and read as absent.
        """
        record = self.runs.get(channel)
        if record is None:
            return None

        handle = self.backend.attach(record.pid, record.executable)
        if handle.is_alive():
            return record

        log_hint = record.log_file or str(self.layout.channel_dir(channel) / NODE_LOG_FILENAME)
        logger.warning(
            "Previous node for %s (pid %s) was not shut down properly; check %s",
            channel, record.pid, log_hint,
        )
        self.runs.remove(channel)
        return None

    def state(self, channel: str) -> NodeState:
        record = self.live_record(channel)
        if record is None:
            return NodeState.ABSENT
        return NodeState(record.status.value)

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    def start(
        self,
        resolved: ResolvedRelease,
        executable: Path,
        rendered: RenderedConfig,
        daemon: bool = False,
    ) -> RunRecord:
        """
        Launch the node for ``resolved.blockchain``; the run record is kept
        under the blockchain name whichever alias resolved to it.

        Foreground runs block until the node exits and always remove the
        run record afterwards; a non-zero exit raises UnexpectedExit.
        Daemon runs return once the node answered its REST endpoint or
        survived ``daemon_grace_period``.

        Raises
        ------
        AlreadyRunning
            A live node already owns the channel.
        LaunchFailed
            The executable could not be started or died during startup.
        """
        channel = resolved.blockchain.name
        existing = self.live_record(channel)
        if existing is not None:
            raise AlreadyRunning(channel, existing.pid)

        channel_dir = self.layout.channel_dir(channel)
        channel_dir.mkdir(parents=True, exist_ok=True)
        log_file = channel_dir / NODE_LOG_FILENAME if daemon else None

        argv = [str(executable)] + list(rendered.flags)
        logger.info("Starting %s %s: %s", channel, resolved.version, " ".join(argv))
        try:
            handle = self.backend.spawn(argv, daemon=daemon, log_file=log_file, cwd=channel_dir)
        except OSError as exc:
            raise LaunchFailed(f"Cannot start {executable}: {exc}") from exc

        record = RunRecord(
            channel=channel,
            version=resolved.version,
            pid=handle.pid,
            executable=str(executable),
            control_endpoint=rendered.control_endpoint,
            log_file=str(log_file) if log_file is not None else None,
            daemon=daemon,
            status=RunStatus.STARTING if daemon else RunStatus.RUNNING,
        )
        self.runs.create(record)

        if daemon:
            return self._confirm_daemon(handle, record)
        return self._run_foreground(handle, record)

    def _run_foreground(self, handle: ProcessHandle, record: RunRecord) -> RunRecord:
        interrupted = False
        try:
            try:
                status = handle.wait()
            except KeyboardInterrupt:
                interrupted = True
                logger.info("Interrupted; stopping node for %s", record.channel)
                handle.request_graceful()
                status = handle.wait()
        finally:
            self.runs.remove(record.channel)

        if status != 0 and not interrupted:
            raise UnexpectedExit(record.channel, status)
        logger.info("Node for %s exited with status %s", record.channel, status)
        return record

    def _confirm_daemon(self, handle: ProcessHandle, record: RunRecord) -> RunRecord:
        client = NodeControlClient(record.channel, record.control_endpoint, self.http)
        deadline = self.clock.monotonic() + self.daemon_grace_period

        while True:
            if not handle.is_alive():
                self.runs.remove(record.channel)
                raise LaunchFailed(
                    f"Node for {record.channel} exited during startup; check {record.log_file}"
                )
            if record.control_endpoint and client.ping():
                break
            if self.clock.monotonic() >= deadline:
                break
            self.clock.sleep(self.poll_interval)

        running = self.runs.update_status(record.channel, RunStatus.RUNNING) or record
        logger.info("Node for %s running as daemon (pid %s)", record.channel, record.pid)
        return running

    # ------------------------------------------------------------------
    # Info
    # ------------------------------------------------------------------

    def info(self, channel: str) -> NodeInfo:
        record = self.live_record(channel)
        if record is None:
            raise NotRunning(channel)

        client = NodeControlClient(channel, record.control_endpoint, self.http)
        return NodeInfo(
            record=record,
            state=NodeState(record.status.value),
            stats=client.node_stats(),
            settings=client.settings(),
        )

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def shutdown(self, channel: str) -> ShutdownResult:
        """
        Stop the node for ``channel``.

        Escalates to a forced kill after ``shutdown_timeout`` and reports
        that as a ForcedShutdown warning, not an error. The run record is
        removed in every case.
        """
        record = self.live_record(channel)
        if record is None:
            raise NotRunning(channel)

        self.runs.update_status(channel, RunStatus.STOPPING)
        client = NodeControlClient(channel, record.control_endpoint, self.http)
        handle = self.backend.attach(
            record.pid,
            record.executable,
            graceful=client.shutdown if record.control_endpoint else None,
        )

        started = self.clock.monotonic()
        forced = False
        try:
            try:
                handle.request_graceful()
            except ControlEndpointUnreachable as exc:
                logger.warning("Graceful stop request failed: %s", exc)

            deadline = started + self.shutdown_timeout
            while handle.is_alive() and self.clock.monotonic() < deadline:
                self.clock.sleep(self.poll_interval)

            if handle.is_alive():
                forced = True
                msg = (
                    f"Node for {channel} (pid {record.pid}) did not stop within "
                    f"{self.shutdown_timeout:.1f}s; terminating it"
                )
                logger.warning(msg)
                warnings.warn(msg, ForcedShutdown, stacklevel=2)
                handle.force_terminate()
        finally:
            self.runs.remove(channel)

        elapsed = self.clock.monotonic() - started
        logger.info("Node for %s stopped after %.1fs", channel, elapsed)
        return ShutdownResult(channel=channel, pid=record.pid, forced=forced, elapsed=elapsed)


__all__ = [
    "NODE_LOG_FILENAME",
    "NodeState",
    "NodeInfo",
    "ShutdownResult",
    "ProcessController",
]
