# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""The session façade handed to test code."""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from types import TracebackType
from typing import Any

import httpx

from devharness.identity import User, login, logout
from devharness.session._client import RpcProxyClient
from devharness.session._common import Endpoints, _logger, new_session_id
from devharness.session._config import SessionOptions
from devharness.session._shutdown import ShutdownCoordinator, ShutdownState
from devharness.session._supervisor import ProcessSupervisor

__all__ = [
    "SessionContext",
    "new_session",
]


class _ContextLoggerAdapter(logging.LoggerAdapter[logging.Logger]):
    """LoggerAdapter that keeps the session-bound extra fields.

    User-supplied ``extra`` in individual log calls is merged, but the
    session fields (``app_id``, ``session_id``) win on key conflicts.
    """

    def process(self, msg: str, kwargs: MutableMapping[str, Any]) -> tuple[str, MutableMapping[str, Any]]:
        """Merge user extra with session extra, session wins on conflict."""
        user_extra = kwargs.get("extra", {})
        kwargs["extra"] = {**user_extra, **(self.extra or {})}
        return msg, kwargs


class SessionContext:
    """A running backend plus a proxy for calling its API.

    Creating the context launches the backend and blocks until both of its
    endpoints are known; if that fails, nothing is left running.  Use it as
    a context manager or call :meth:`close` when done.

    Args:
        options: Session options; defaults are used when ``None``.
        client: Optional ``httpx.Client`` for API and admin requests.  One
            without default timeouts is created (and owned) when omitted.

    Raises:
        ExecutableNotFoundError: The interpreter or backend is missing.
        StartupTimeoutError: The backend did not announce its endpoints.
        DiscoveryError: The backend's stderr ended before announcing them.

    """

    __slots__ = (
        "_coordinator",
        "_endpoints",
        "_http",
        "_logger",
        "_options",
        "_own_client",
        "_proxy",
        "_request",
        "_session_id",
    )

    def __init__(self, options: SessionOptions | None = None, *, client: httpx.Client | None = None) -> None:
        """Launch the backend and wire up the proxy."""
        self._options = options if options is not None else SessionOptions()
        self._session_id = new_session_id()
        self._request = httpx.Request("GET", "http://localhost/")
        self._own_client = client is None
        self._http = client if client is not None else httpx.Client(timeout=None)
        self._logger: _ContextLoggerAdapter | None = None
        try:
            child = ProcessSupervisor(self._options).start()
        except BaseException:
            if self._own_client:
                self._http.close()
            raise
        self._endpoints: Endpoints = child.endpoints
        self._proxy = RpcProxyClient(
            child.endpoints.api_url,
            self._session_id,
            client=self._http,
            headers=self._request.headers,
        )
        self._coordinator = ShutdownCoordinator(child, self._http, self._options.shutdown_timeout)
        _logger.debug(
            "Session started: app_id=%s, session_id=%s, api=%s, admin=%s",
            self._options.app_id,
            self._session_id,
            child.endpoints.api_url,
            child.endpoints.admin_url,
        )

    # -----------------------------------------------------------------------
    # Identity
    # -----------------------------------------------------------------------

    @property
    def app_id(self) -> str:
        """Application id served by the backend."""
        return self._options.app_id

    @property
    def fully_qualified_app_id(self) -> str:
        """Application id as the backend qualifies it (``dev~<app_id>``)."""
        return self._options.fully_qualified_app_id

    @property
    def session_id(self) -> str:
        """Random correlation id stamped on every call of this session."""
        return self._session_id

    @property
    def request(self) -> httpx.Request:
        """Request template whose headers carry the caller's identity."""
        return self._request

    @property
    def endpoints(self) -> Endpoints:
        """Endpoints announced by the backend."""
        return self._endpoints

    @property
    def closed(self) -> bool:
        """Whether :meth:`close` has been called."""
        return self._coordinator.state is ShutdownState.CLOSED

    @property
    def logger(self) -> logging.LoggerAdapter[logging.Logger]:
        """Logger named ``devharness.app`` with ``app_id`` and ``session_id`` bound."""
        if self._logger is None:
            base = logging.getLogger("devharness.app")
            self._logger = _ContextLoggerAdapter(base, {"app_id": self.app_id, "session_id": self._session_id})
        return self._logger

    def login(self, user: User) -> None:
        """Act as *user* on subsequent calls."""
        login(self._request.headers, user)

    def logout(self) -> None:
        """Act as a signed-out caller on subsequent calls."""
        logout(self._request.headers)

    # -----------------------------------------------------------------------
    # Calls
    # -----------------------------------------------------------------------

    def call(self, service: str, method: str, payload: bytes, *, timeout: float | None = None) -> bytes:
        """Call *method* on *service* in the backend.

        Args:
            service: Service name.
            method: Method name.
            payload: Opaque request payload.
            timeout: Per-call timeout in seconds; defaults to
                ``SessionOptions.call_timeout``.

        Returns:
            The opaque response payload.

        Raises:
            RuntimeError: If the session is closed.
            ApplicationError: The backend reported a logical failure.
            CallTimeoutError: The call exceeded its timeout.
            TransportError: The call failed at the network level.
            ValueError: If *timeout* is negative.

        """
        if self.closed:
            raise RuntimeError("Session is closed")
        effective = timeout if timeout is not None else self._options.call_timeout
        return self._proxy.call(service, method, payload, effective)

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    def close(self) -> None:
        """Stop the backend and remove its directory.  Idempotent.

        Raises:
            ShutdownError: See :meth:`ShutdownCoordinator.close`.

        """
        if self.closed:
            return
        try:
            self._coordinator.close()
        finally:
            if self._own_client:
                self._http.close()
            _logger.debug("Session closed: session_id=%s", self._session_id)

    def __enter__(self) -> SessionContext:
        """Enter the context."""
        return self

    def __exit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        """Close the session on exit."""
        self.close()

    def __repr__(self) -> str:
        """Return a short description for debugging."""
        state = "closed" if self.closed else "running"
        return f"SessionContext(app_id={self.app_id!r}, session_id={self._session_id!r}, {state})"


def new_session(options: SessionOptions | None = None) -> SessionContext:
    """Launch a backend and return a session bound to it.

    Example::

        with new_session() as session:
            session.login(User(email="a@b.com"))
            out = session.call("memcache", "Set", request_bytes)

    """
    return SessionContext(options)
