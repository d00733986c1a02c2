# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Locating, launching, and killing the backend process."""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
import subprocess
import sys
import tempfile
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from devharness.scaffold import write_scaffold
from devharness.session._common import Endpoints, ExecutableNotFoundError, _supervisor_logger
from devharness.session._config import SessionOptions, StderrMode
from devharness.session._discovery import EndpointDiscovery, StderrEndpointDiscovery

__all__ = [
    "ChildProcess",
    "ProcessSupervisor",
    "find_appserver",
    "find_interpreter",
]

# Flags that make the backend bind ephemeral ports, start from an empty,
# strongly consistent datastore, and stay offline.
_BASE_FLAGS: tuple[str, ...] = (
    "--port=0",
    "--api_port=0",
    "--admin_port=0",
    "--skip_sdk_update_check=true",
    "--clear_datastore=true",
    "--datastore_consistency_policy=consistent",
)


# ---------------------------------------------------------------------------
# Executable lookup
# ---------------------------------------------------------------------------


def find_interpreter(candidates: Iterable[str]) -> str:
    """Return the first of *candidates* that resolves to an executable.

    Raises:
        ExecutableNotFoundError: With ``binary="interpreter"`` if none resolve.

    """
    tried: list[str] = []
    for name in candidates:
        path = shutil.which(name)
        if path is not None:
            return path
        tried.append(name)
    raise ExecutableNotFoundError("interpreter", f"none of {tried} found on PATH")


def find_appserver(name: str, env_var: str, environ: Mapping[str, str] | None = None) -> str:
    """Locate the backend executable.

    The environment variable *env_var* takes precedence; when set it must
    point at an existing file.  Otherwise *name* is searched on ``PATH``.

    Raises:
        ExecutableNotFoundError: With ``binary="appserver"``.

    """
    env = os.environ if environ is None else environ
    override = env.get(env_var)
    if override:
        if os.path.exists(override):
            return override
        raise ExecutableNotFoundError(
            "appserver", f"invalid {env_var} environment variable; path {override!r} doesn't exist"
        )
    path = shutil.which(name)
    if path is None:
        raise ExecutableNotFoundError("appserver", f"{name} not found on PATH and {env_var} is not set")
    return path


# ---------------------------------------------------------------------------
# stderr fan-out
# ---------------------------------------------------------------------------


def _write_to_stderr(raw_line: bytes) -> None:
    """Copy one child line to the parent's current ``sys.stderr``."""
    with contextlib.suppress(OSError, ValueError):
        sys.stderr.write(raw_line.decode("utf-8", errors="replace"))
        sys.stderr.flush()


def _display_sink(mode: StderrMode, logger: logging.Logger | None) -> Callable[[bytes], None] | None:
    """Return the display callback for *mode*, or ``None`` for ``DEVNULL``."""
    if mode == StderrMode.INHERIT:
        return _write_to_stderr
    if mode == StderrMode.LOG:
        target = logger if logger is not None else logging.getLogger("devharness.child.stderr")

        def _log_line(raw_line: bytes) -> None:
            line = raw_line.decode("utf-8", errors="replace").rstrip()
            if line:
                target.info(line)

        return _log_line
    return None


class _TeeStream:
    """Iterates a pipe line by line, handing each line to a display sink first.

    One cursor feeds both consumers.  The pipe is closed at EOF.
    """

    __slots__ = ("_pipe", "_sink")

    def __init__(self, pipe: BinaryIO, sink: Callable[[bytes], None] | None) -> None:
        self._pipe = pipe
        self._sink = sink

    def __iter__(self) -> Iterator[bytes]:
        try:
            for raw_line in self._pipe:
                if self._sink is not None:
                    self._sink(raw_line)
                yield raw_line
        finally:
            with contextlib.suppress(OSError, ValueError):
                self._pipe.close()


# ---------------------------------------------------------------------------
# ChildProcess + ProcessSupervisor
# ---------------------------------------------------------------------------


@dataclass
class ChildProcess:
    """A running backend and the resources it owns.

    Attributes:
        proc: The ``Popen`` handle.
        app_dir: Private temporary application directory.
        endpoints: Endpoints announced by the backend.

    """

    proc: subprocess.Popen[bytes]
    app_dir: Path
    endpoints: Endpoints

    def kill(self) -> None:
        """Force-kill the process and reap it."""
        kill_process(self.proc)


def kill_process(proc: subprocess.Popen[bytes]) -> None:
    """Send SIGKILL (if still running) and wait for the exit status."""
    if proc.poll() is None:
        _supervisor_logger.debug("Killing child process: pid=%d", proc.pid)
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
    proc.wait()


class ProcessSupervisor:
    """Launches one backend per :meth:`start` call and waits for its endpoints."""

    __slots__ = ("_discovery", "_options")

    def __init__(self, options: SessionOptions) -> None:
        """Initialize from session options."""
        self._options = options
        self._discovery: EndpointDiscovery = (
            options.discovery if options.discovery is not None else StderrEndpointDiscovery()
        )

    def command(self, python: str, appserver: str, app_dir: Path) -> list[str]:
        """Build the backend command line."""
        return [python, appserver, *_BASE_FLAGS, *self._options.extra_args, str(app_dir)]

    def start(self) -> ChildProcess:
        """Prepare, locate, launch, and wait for both endpoints.

        Returns:
            The running child with its endpoints.

        Raises:
            ExecutableNotFoundError: If the interpreter or backend is missing.
            StartupTimeoutError: If the endpoints are not announced in time;
                the child has been killed.
            DiscoveryError: If the child's stderr ends first; the child has
                been killed.
            Exception: Whatever the preparation hook raises; nothing has
                been launched.

        """
        opts = self._options
        if opts.prepare is not None:
            opts.prepare()

        python = find_interpreter(opts.interpreter_candidates)
        appserver = find_appserver(opts.appserver_name, opts.appserver_env)

        app_dir = Path(tempfile.mkdtemp(prefix="devharness-"))
        try:
            write_scaffold(app_dir, opts.app_id)
            cmd = self.command(python, appserver, app_dir)
            proc = subprocess.Popen(cmd, cwd=app_dir, stderr=subprocess.PIPE)
            _supervisor_logger.info("Started child process: pid=%d, app_dir=%s", proc.pid, app_dir)
            if _supervisor_logger.isEnabledFor(logging.DEBUG):
                _supervisor_logger.debug("Child command: %s", cmd)
            assert proc.stderr is not None
            stream = _TeeStream(proc.stderr, _display_sink(opts.stderr, opts.stderr_logger))
            try:
                endpoints = self._discovery.discover(stream, opts.startup_timeout)
            except BaseException:
                kill_process(proc)
                raise
        except BaseException:
            shutil.rmtree(app_dir, ignore_errors=True)
            raise
        return ChildProcess(proc=proc, app_dir=app_dir, endpoints=endpoints)
