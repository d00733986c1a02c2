# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Two-phase shutdown: cooperative quit, then kill on timeout."""

from __future__ import annotations

import contextlib
import shutil
import subprocess
import threading
import time
from collections.abc import Iterator
from enum import Enum
from pathlib import Path

import httpx

from devharness.session._common import ShutdownError, ShutdownTimeoutError, _supervisor_logger
from devharness.session._supervisor import ChildProcess, kill_process

__all__ = [
    "ShutdownCoordinator",
    "ShutdownState",
]

# The request reached the child, which closed the connection while exiting.
_QUIT_DELIVERED = (httpx.RemoteProtocolError, httpx.ReadError)


class ShutdownState(Enum):
    """Lifecycle of a supervised child."""

    RUNNING = "running"
    CLOSED = "closed"


def _remove_quietly(path: Path) -> None:
    """Remove *path*; failures are only logged because an earlier error wins."""
    try:
        shutil.rmtree(path)
    except OSError as exc:
        _supervisor_logger.debug("Suppressed app_dir removal failure after earlier error: %s", exc)


@contextlib.contextmanager
def _removing(path: Path) -> Iterator[None]:
    """Remove *path* when the block exits, whatever the outcome.

    An exception from the block propagates unchanged.  A removal failure
    is raised as ``ShutdownError`` only when the block succeeded.
    """
    try:
        yield
    except BaseException:
        _remove_quietly(path)
        raise
    try:
        shutil.rmtree(path)
    except OSError as exc:
        raise ShutdownError(f"unable to remove {path}: {exc}") from exc
    _supervisor_logger.debug("Removed app_dir: %s", path)


class ShutdownCoordinator:
    """Stops a child exactly once and removes its application directory.

    Args:
        child: The running child, or ``None`` if none was started.
        http: Client used for the quit request.
        timeout: Seconds allowed for the quit request and the natural exit
            together; ``0`` waits indefinitely.

    """

    __slots__ = ("_child", "_http", "_lock", "_state", "_timeout")

    def __init__(self, child: ChildProcess | None, http: httpx.Client, timeout: float) -> None:
        """Initialize in the RUNNING state."""
        self._child = child
        self._http = http
        self._timeout = timeout
        self._state = ShutdownState.RUNNING
        self._lock = threading.Lock()

    @property
    def state(self) -> ShutdownState:
        """Current lifecycle state."""
        return self._state

    def close(self) -> None:
        """Transition to CLOSED, stopping the child if there is one.

        Idempotent: closing an already-closed coordinator does nothing.

        Raises:
            ShutdownError: The quit request could not be sent (the child was
                killed) or the directory could not be removed.
            ShutdownTimeoutError: The quit request or the exit did not
                finish in time (the child was killed).

        """
        with self._lock:
            if self._state is ShutdownState.CLOSED:
                return
            self._state = ShutdownState.CLOSED
            child, self._child = self._child, None
        if child is None:
            return
        with _removing(child.app_dir):
            self._stop(child)

    def _stop(self, child: ChildProcess) -> None:
        """Ask the child to quit and wait for it, all within one deadline.

        The quit request and the exit wait share ``timeout``.  A quit that
        cannot be delivered kills the child; a child that drops the quit
        connection on its way out is simply waited for.
        """
        proc: subprocess.Popen[bytes] = child.proc
        deadline = time.monotonic() + self._timeout if self._timeout else None

        def remaining() -> float | None:
            return None if deadline is None else max(deadline - time.monotonic(), 0.0)

        _supervisor_logger.debug("Stopping child process: pid=%d", proc.pid)
        try:
            resp = self._http.get(child.endpoints.quit_url, timeout=remaining())
        except httpx.TimeoutException:
            kill_process(proc)
            raise ShutdownTimeoutError("timeout killing child process") from None
        except _QUIT_DELIVERED as exc:
            _supervisor_logger.debug("Quit connection dropped by exiting child: %s", exc)
        except httpx.HTTPError as exc:
            if proc.poll() is None:
                kill_process(proc)
                raise ShutdownError(f"unable to call /quit handler: {exc}") from exc
            _supervisor_logger.debug("Child already exited before quit: %s", exc)
        else:
            _supervisor_logger.debug("Quit handler answered: status=%d", resp.status_code)

        try:
            proc.wait(timeout=remaining())
        except subprocess.TimeoutExpired:
            kill_process(proc)
            raise ShutdownTimeoutError("timeout killing child process") from None
        _supervisor_logger.info("Child process exited: pid=%d, exit_code=%s", proc.pid, proc.returncode)
