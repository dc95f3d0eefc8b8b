"""
Operating-system process handles.

A ProcessHandle answers three questions about one node process: is it
still alive, please stop, stop now. Two implementations exist and one is
chosen per platform by ``select_process_backend``:

    PosixProcessHandle    signals, zombie reaping, /proc ownership check
    WindowsProcessHandle  OpenProcess / GetExitCodeProcess via ctypes,
                          graceful stop through the node's REST API,
                          TerminateProcess fallback
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Sequence

logger = logging.getLogger(__name__)


GracefulFn = Callable[[], None]


class ProcessHandle(Protocol):
    pid: int

    def is_alive(self) -> bool:
        ...

    def request_graceful(self) -> None:
        ...

    def force_terminate(self) -> None:
        ...

    def wait(self) -> int:
        """Block until exit and return the exit status (spawned handles only)."""
        ...


class ProcessBackend(Protocol):
    def spawn(
        self,
        argv: Sequence[str],
        *,
        daemon: bool,
        log_file: Optional[Path] = None,
        cwd: Optional[Path] = None,
    ) -> ProcessHandle:
        ...

    def attach(
        self,
        pid: int,
        executable: Optional[str] = None,
        graceful: Optional[GracefulFn] = None,
    ) -> ProcessHandle:
        ...


def _open_log(log_file: Optional[Path]):
    if log_file is None:
        return subprocess.DEVNULL
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    return open(log_file, "ab")


# ----------------------------------------------------------------------
# POSIX
# ----------------------------------------------------------------------

class PosixProcessHandle:
    """
    Handle to a process on a POSIX system.

    ``executable`` enables the ownership check: when ``/proc`` is
    available, a pid whose command line does not mention the executable
    is treated as someone else's process (pid reuse) and reported dead.
    """

    def __init__(
        self,
        pid: int,
        executable: Optional[str] = None,
        popen: Optional[subprocess.Popen] = None,
    ) -> None:
        self.pid = pid
        self.executable = executable
        self.popen = popen

    def is_alive(self) -> bool:
        if self.popen is not None:
            return self.popen.poll() is None

        self._reap()
        try:
            os.kill(self.pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            # Exists but belongs to another user: not ours.
            return False
        return self._owned()

    def request_graceful(self) -> None:
        self._signal(signal.SIGTERM)

    def force_terminate(self) -> None:
        self._signal(signal.SIGKILL)

    def wait(self) -> int:
        if self.popen is None:
            raise RuntimeError(f"Process {self.pid} was not started by this handle")
        return self.popen.wait()

    # ------------------------------------------------------------------

    def _signal(self, signum: int) -> None:
        try:
            os.kill(self.pid, signum)
        except ProcessLookupError:
            logger.debug("Process %s already gone", self.pid)

    def _reap(self) -> None:
        # A child of this very process lingers as a zombie until waited on.
        try:
            os.waitpid(self.pid, os.WNOHANG)
        except ChildProcessError:
            pass

    def _owned(self) -> bool:
        proc = Path("/proc") / str(self.pid)
        if not proc.is_dir():
            return True
        try:
            stat_fields = (proc / "stat").read_text().rsplit(")", 1)[-1].split()
            if stat_fields and stat_fields[0] == "Z":
                return False
            if self.executable is None:
                return True
            argv = (proc / "cmdline").read_bytes().split(b"\0")
        except OSError:
            return True
        wanted = Path(self.executable).name
        return any(Path(os.fsdecode(arg)).name == wanted for arg in argv if arg)


class PosixProcessBackend:
    def spawn(
        self,
        argv: Sequence[str],
        *,
        daemon: bool,
        log_file: Optional[Path] = None,
        cwd: Optional[Path] = None,
    ) -> PosixProcessHandle:
        args: List[str] = [str(a) for a in argv]
        if daemon:
            out = _open_log(log_file)
            try:
                popen = subprocess.Popen(
                    args,
                    cwd=cwd,
                    stdin=subprocess.DEVNULL,
                    stdout=out,
                    stderr=subprocess.STDOUT,
                    start_new_session=True,
                )
            finally:
                if out is not subprocess.DEVNULL:
                    out.close()
        else:
            popen = subprocess.Popen(args, cwd=cwd)
        return PosixProcessHandle(popen.pid, executable=args[0], popen=popen)

    def attach(
        self,
        pid: int,
        executable: Optional[str] = None,
        graceful: Optional[GracefulFn] = None,
    ) -> PosixProcessHandle:
        return PosixProcessHandle(pid, executable=executable)


# ----------------------------------------------------------------------
# Windows
# ----------------------------------------------------------------------

_STILL_ACTIVE = 259
_PROCESS_TERMINATE = 0x0001
_PROCESS_QUERY_LIMITED_INFORMATION = 0x1000
_DETACHED_PROCESS = 0x00000008
_CREATE_NEW_PROCESS_GROUP = 0x00000200


class WindowsProcessHandle:
    """
    Handle to a process on Windows.

    Windows has no SIGTERM; ``graceful`` is the node's REST shutdown
    call supplied by the controller.
    """

    def __init__(
        self,
        pid: int,
        executable: Optional[str] = None,
        popen: Optional[subprocess.Popen] = None,
        graceful: Optional[GracefulFn] = None,
    ) -> None:
        self.pid = pid
        self.executable = executable
        self.popen = popen
        self.graceful = graceful

    def is_alive(self) -> bool:
        if self.popen is not None:
            return self.popen.poll() is None

        import ctypes
        from ctypes import wintypes

        kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)
        handle = kernel32.OpenProcess(_PROCESS_QUERY_LIMITED_INFORMATION, False, self.pid)
        if not handle:
            return False
        try:
            code = wintypes.DWORD()
            if not kernel32.GetExitCodeProcess(handle, ctypes.byref(code)):
                return False
            return code.value == _STILL_ACTIVE
        finally:
            kernel32.CloseHandle(handle)

    def request_graceful(self) -> None:
        if self.graceful is None:
            logger.warning("No graceful stop available for process %s", self.pid)
            return
        self.graceful()

    def force_terminate(self) -> None:
        if self.popen is not None:
            self.popen.kill()
            return

        import ctypes

        kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)
        handle = kernel32.OpenProcess(_PROCESS_TERMINATE, False, self.pid)
        if not handle:
            logger.debug("Process %s already gone", self.pid)
            return
        try:
            kernel32.TerminateProcess(handle, 1)
        finally:
            kernel32.CloseHandle(handle)

    def wait(self) -> int:
        if self.popen is None:
            raise RuntimeError(f"Process {self.pid} was not started by this handle")
        return self.popen.wait()


class WindowsProcessBackend:
    def spawn(
        self,
        argv: Sequence[str],
        *,
        daemon: bool,
        log_file: Optional[Path] = None,
        cwd: Optional[Path] = None,
    ) -> WindowsProcessHandle:
        args: List[str] = [str(a) for a in argv]
        if daemon:
            out = _open_log(log_file)
            try:
                popen = subprocess.Popen(
                    args,
                    cwd=cwd,
                    stdin=subprocess.DEVNULL,
                    stdout=out,
                    stderr=subprocess.STDOUT,
                    creationflags=_DETACHED_PROCESS | _CREATE_NEW_PROCESS_GROUP,
                )
            finally:
                if out is not subprocess.DEVNULL:
                    out.close()
        else:
            popen = subprocess.Popen(args, cwd=cwd)
        return WindowsProcessHandle(popen.pid, executable=args[0], popen=popen)

    def attach(
        self,
        pid: int,
        executable: Optional[str] = None,
        graceful: Optional[GracefulFn] = None,
    ) -> WindowsProcessHandle:
        return WindowsProcessHandle(pid, executable=executable, graceful=graceful)


def select_process_backend() -> ProcessBackend:
    if sys.platform.startswith("win"):
        return WindowsProcessBackend()
    return PosixProcessBackend()


__all__ = [
    "ProcessHandle",
    "ProcessBackend",
    "PosixProcessHandle",
    "PosixProcessBackend",
    "WindowsProcessHandle",
    "WindowsProcessBackend",
    "select_process_backend",
]
