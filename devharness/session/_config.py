# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Session configuration."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from devharness.session._common import DEFAULT_APP_ID, DEFAULT_SHUTDOWN_TIMEOUT, DEFAULT_STARTUP_TIMEOUT

if TYPE_CHECKING:
    from devharness.session._discovery import EndpointDiscovery

__all__ = [
    "SessionOptions",
    "StderrMode",
]


class StderrMode(Enum):
    """Where the child's stderr is displayed while it is scanned for endpoints.

    The stream is always scanned; the mode only selects the display sink.

    Members:
        INHERIT: Lines are copied to the parent's ``sys.stderr`` (default).
        LOG: Lines are forwarded to a ``logging.Logger``.
        DEVNULL: Lines are scanned but not displayed.
    """

    INHERIT = "inherit"
    LOG = "log"
    DEVNULL = "devnull"


@dataclass(frozen=True)
class SessionOptions:
    """Options for :func:`~devharness.new_session`.

    Attributes:
        app_id: Application id the backend serves (default ``"testapp"``).
        prepare: Optional zero-argument hook called before the backend is
            launched.  Any exception it raises aborts session creation.
        call_timeout: Default per-call timeout in seconds; ``None`` or
            ``0`` disables it.
        startup_timeout: Seconds to wait for both endpoints to be announced.
        shutdown_timeout: Seconds to wait for the backend to exit after
            the quit request.
        interpreter_candidates: Interpreter names or paths tried in order.
        appserver_name: Backend executable looked up on ``PATH``.
        appserver_env: Environment variable that overrides the backend path.
        extra_args: Additional flags appended to the backend command line.
        stderr: Display sink for the child's stderr.
        stderr_logger: Logger for ``StderrMode.LOG``.  Defaults to
            ``logging.getLogger("devharness.child.stderr")``.
        discovery: Endpoint discovery implementation.  Defaults to
            :class:`~devharness.session.StderrEndpointDiscovery`.

    Raises:
        ValueError: If *app_id* is empty, any timeout is negative, or
            *interpreter_candidates* is empty.

    """

    app_id: str = DEFAULT_APP_ID
    prepare: Callable[[], object] | None = None
    call_timeout: float | None = None
    startup_timeout: float = DEFAULT_STARTUP_TIMEOUT
    shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT
    interpreter_candidates: tuple[str, ...] = ("python2.7", "python")
    appserver_name: str = "dev_appserver.py"
    appserver_env: str = "APPENGINE_DEV_APPSERVER"
    extra_args: tuple[str, ...] = ()
    stderr: StderrMode = StderrMode.INHERIT
    stderr_logger: logging.Logger | None = None
    discovery: EndpointDiscovery | None = None

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not self.app_id:
            raise ValueError("app_id must be non-empty")
        if self.call_timeout is not None and self.call_timeout < 0:
            raise ValueError(f"call_timeout must be >= 0, got {self.call_timeout}")
        if self.startup_timeout < 0:
            raise ValueError(f"startup_timeout must be >= 0, got {self.startup_timeout}")
        if self.shutdown_timeout < 0:
            raise ValueError(f"shutdown_timeout must be >= 0, got {self.shutdown_timeout}")
        if not self.interpreter_candidates:
            raise ValueError("interpreter_candidates must not be empty")

    @property
    def fully_qualified_app_id(self) -> str:
        """App id as the development backend qualifies it."""
        return "dev~" + self.app_id
