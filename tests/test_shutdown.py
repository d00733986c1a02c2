# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Tests for ShutdownCoordinator: quit, wait, kill, and directory removal."""

from __future__ import annotations

import subprocess
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from devharness.session import (
    ChildProcess,
    Endpoints,
    SessionContext,
    SessionOptions,
    ShutdownCoordinator,
    ShutdownError,
    ShutdownState,
    ShutdownTimeoutError,
)
from devharness.session import _shutdown

type OptionsFactory = Callable[..., SessionOptions]

_ENDPOINTS = Endpoints(api_url="http://api.test", admin_url="http://admin.test")


class _FakeProc:
    """Popen stand-in that exits on request or only when killed."""

    pid = 4242

    def __init__(self, *, exits: bool = True) -> None:
        self.exits = exits
        self.killed = False
        self.returncode: int | None = None

    def poll(self) -> int | None:
        return self.returncode

    def kill(self) -> None:
        self.killed = True
        self.returncode = -9

    def wait(self, timeout: float | None = None) -> int:
        if self.returncode is None:
            if not self.exits:
                raise subprocess.TimeoutExpired("fake", timeout or 0)
            self.returncode = 0
        return self.returncode


class _QuitRecorder:
    """MockTransport handler counting quit requests."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.urls: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.urls.append(str(request.url))
        if self.fail:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, text="quitting")


def _coordinator(
    tmp_path: Path,
    proc: _FakeProc,
    handler: Callable[[httpx.Request], httpx.Response],
    timeout: float = 1.0,
    *,
    endpoints: Endpoints = _ENDPOINTS,
    http: httpx.Client | None = None,
) -> tuple[ShutdownCoordinator, Path]:
    app_dir = tmp_path / "app"
    app_dir.mkdir()
    (app_dir / "app.yaml").write_text("application: x\n")
    fake: Any = proc
    child = ChildProcess(proc=fake, app_dir=app_dir, endpoints=endpoints)
    if http is None:
        http = httpx.Client(transport=httpx.MockTransport(handler))
    return ShutdownCoordinator(child, http, timeout), app_dir


class TestShutdownCoordinator:
    """Two-phase shutdown against fake processes."""

    def test_no_child(self) -> None:
        """Closing without a child only changes state."""
        coordinator = ShutdownCoordinator(None, httpx.Client(transport=httpx.MockTransport(_QuitRecorder())), 1.0)
        assert coordinator.state is ShutdownState.RUNNING
        coordinator.close()
        assert coordinator.state is ShutdownState.CLOSED

    def test_cooperative_quit(self, tmp_path: Path) -> None:
        """The quit handler is called once and the directory removed."""
        proc, recorder = _FakeProc(), _QuitRecorder()
        coordinator, app_dir = _coordinator(tmp_path, proc, recorder)
        coordinator.close()
        assert recorder.urls == ["http://admin.test/quit"]
        assert not proc.killed
        assert proc.returncode == 0
        assert not app_dir.exists()

    def test_second_close_is_noop(self, tmp_path: Path) -> None:
        """Closing twice sends no second quit and kills nothing."""
        proc, recorder = _FakeProc(), _QuitRecorder()
        coordinator, _ = _coordinator(tmp_path, proc, recorder)
        coordinator.close()
        coordinator.close()
        assert len(recorder.urls) == 1
        assert not proc.killed

    def test_quit_send_failure(self, tmp_path: Path) -> None:
        """An unreachable quit handler kills the child and still cleans up."""
        proc, recorder = _FakeProc(exits=False), _QuitRecorder(fail=True)
        coordinator, app_dir = _coordinator(tmp_path, proc, recorder)
        with pytest.raises(ShutdownError, match="unable to call /quit handler") as exc_info:
            coordinator.close()
        assert not isinstance(exc_info.value, ShutdownTimeoutError)
        assert proc.killed
        assert not app_dir.exists()
        assert coordinator.state is ShutdownState.CLOSED

    def test_wait_timeout(self, tmp_path: Path) -> None:
        """A child that ignores the quit request is killed."""
        proc, recorder = _FakeProc(exits=False), _QuitRecorder()
        coordinator, app_dir = _coordinator(tmp_path, proc, recorder, timeout=0.1)
        with pytest.raises(ShutdownTimeoutError, match="timeout killing child process"):
            coordinator.close()
        assert proc.killed
        assert not app_dir.exists()

    def test_removal_failure_reported(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """A removal failure after a clean stop is a ShutdownError."""

        def broken_rmtree(path: Any, *args: Any, **kwargs: Any) -> None:
            raise PermissionError("read-only")

        monkeypatch.setattr(_shutdown.shutil, "rmtree", broken_rmtree)
        coordinator, _ = _coordinator(tmp_path, _FakeProc(), _QuitRecorder())
        with pytest.raises(ShutdownError, match="unable to remove"):
            coordinator.close()

    def test_first_error_wins(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """A removal failure does not mask an earlier shutdown failure."""

        def broken_rmtree(path: Any, *args: Any, **kwargs: Any) -> None:
            raise PermissionError("read-only")

        monkeypatch.setattr(_shutdown.shutil, "rmtree", broken_rmtree)
        coordinator, _ = _coordinator(tmp_path, _FakeProc(exits=False), _QuitRecorder(), timeout=0.1)
        with pytest.raises(ShutdownTimeoutError):
            coordinator.close()


class TestQuitDeadline:
    """The quit request shares the shutdown deadline with the exit wait."""

    def test_hanging_quit_handler(self, tmp_path: Path, silent_server: str) -> None:
        """A quit handler that never answers is cut off at the deadline and the child killed."""
        proc = _FakeProc(exits=False)
        endpoints = Endpoints(api_url="http://api.test", admin_url=silent_server.rstrip("/"))
        with httpx.Client() as http:
            coordinator, app_dir = _coordinator(tmp_path, proc, _QuitRecorder(), 0.3, endpoints=endpoints, http=http)
            start = time.monotonic()
            with pytest.raises(ShutdownTimeoutError, match="timeout killing child process"):
                coordinator.close()
            elapsed = time.monotonic() - start
        assert elapsed < 1.5
        assert proc.killed
        assert not app_dir.exists()
        assert coordinator.state is ShutdownState.CLOSED

    def test_child_exits_while_answering(self, tmp_path: Path) -> None:
        """A child that drops the quit connection on its way out is a clean stop."""
        proc = _FakeProc(exits=False)

        def handler(request: httpx.Request) -> httpx.Response:
            proc.returncode = 0
            raise httpx.RemoteProtocolError("Server disconnected without sending a response.", request=request)

        coordinator, app_dir = _coordinator(tmp_path, proc, handler)
        coordinator.close()
        assert not proc.killed
        assert proc.returncode == 0
        assert not app_dir.exists()

    def test_already_exited_child(self, tmp_path: Path) -> None:
        """A refused quit to a child that has already exited is not a failure."""
        proc = _FakeProc(exits=False)
        proc.returncode = 0
        recorder = _QuitRecorder(fail=True)
        coordinator, app_dir = _coordinator(tmp_path, proc, recorder)
        coordinator.close()
        assert recorder.urls == ["http://admin.test/quit"]
        assert not proc.killed
        assert not app_dir.exists()

    def test_wait_uses_remaining_budget(self, tmp_path: Path) -> None:
        """The exit wait gets only what the quit request left of the budget."""
        waits: list[float | None] = []

        class _RecordingProc(_FakeProc):
            def wait(self, timeout: float | None = None) -> int:
                waits.append(timeout)
                return super().wait(timeout)

        def handler(request: httpx.Request) -> httpx.Response:
            time.sleep(0.2)
            return httpx.Response(200)

        proc = _RecordingProc()
        coordinator, _ = _coordinator(tmp_path, proc, handler, 1.0)
        coordinator.close()
        assert waits[0] is not None
        assert waits[0] < 0.85


class TestShutdownWithBackend:
    """Shutdown against the fake backend process."""

    def test_graceful(self, make_options: OptionsFactory) -> None:
        """A cooperative backend exits on its own."""
        session = SessionContext(make_options())
        app_dir = Path(session.call("env", "Cwd", b"").decode())
        session.close()
        assert session.closed
        assert not app_dir.exists()

    def test_ignored_quit_is_killed(self, make_options: OptionsFactory) -> None:
        """A backend that ignores /quit is killed after the shutdown timeout."""
        session = SessionContext(make_options("ignore_quit", shutdown_timeout=0.5))
        app_dir = Path(session.call("env", "Cwd", b"").decode())
        with pytest.raises(ShutdownTimeoutError):
            session.close()
        assert session.closed
        assert not app_dir.exists()
        with pytest.raises(RuntimeError, match="Session is closed"):
            session.call("echo", "Echo", b"")
