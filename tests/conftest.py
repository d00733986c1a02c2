"""Shared test fixtures for devharness tests."""

from __future__ import annotations

import socket
import sys
import threading
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest

from devharness.session import SessionOptions, StderrMode

_FAKE_APPSERVER = str(Path(__file__).parent / "serve_fake_appserver.py")

OptionsFactory = Callable[..., SessionOptions]
"""Type alias for the ``make_options`` fixture return type."""


@pytest.fixture
def fake_appserver(monkeypatch: pytest.MonkeyPatch) -> str:
    """Point the backend lookup at the fake appserver script."""
    monkeypatch.setenv("APPENGINE_DEV_APPSERVER", _FAKE_APPSERVER)
    return _FAKE_APPSERVER


@pytest.fixture
def make_options(fake_appserver: str) -> OptionsFactory:
    """Return a factory for options that launch the fake appserver.

    ``mode`` selects the fake's ``--fake_mode``; other keyword arguments
    override ``SessionOptions`` fields.
    """

    def factory(mode: str = "normal", **overrides: Any) -> SessionOptions:
        fields: dict[str, Any] = {
            "interpreter_candidates": (sys.executable,),
            "stderr": StderrMode.LOG,
            "shutdown_timeout": 5.0,
        }
        fields.update(overrides)
        fields["extra_args"] = (f"--fake_mode={mode}", *overrides.get("extra_args", ()))
        return SessionOptions(**fields)

    return factory


@pytest.fixture
def harness_options(make_options: OptionsFactory) -> SessionOptions:
    """Run ``harness_session`` against the fake appserver."""
    return make_options()


@pytest.fixture
def silent_server() -> Iterator[str]:
    """A TCP listener that accepts connections but never answers."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(16)
    port = sock.getsockname()[1]
    try:
        yield f"http://127.0.0.1:{port}/"
    finally:
        sock.close()


@pytest.fixture
def trickle_server() -> Iterator[str]:
    """An HTTP listener that sends response headers, then one body byte every 0.2 s."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(1)
    sock.settimeout(0.2)
    port = sock.getsockname()[1]
    stop = threading.Event()

    def serve() -> None:
        while not stop.is_set():
            try:
                conn, _ = sock.accept()
            except TimeoutError:
                continue
            except OSError:
                return
            with conn:
                try:
                    conn.recv(65536)
                    conn.sendall(b"HTTP/1.1 200 OK\r\nContent-Length: 15\r\n\r\n")
                    for _ in range(15):
                        if stop.wait(0.2):
                            return
                        conn.sendall(b"x")
                except OSError:
                    continue

    thread = threading.Thread(target=serve, name="trickle-server", daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{port}/"
    finally:
        stop.set()
        thread.join(timeout=2.0)
        sock.close()
