# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Ephemeral backend sessions for tests.

A session launches the development backend as a child process, learns its
dynamically bound endpoints, and proxies API calls to it until closed.

Lifecycle
---------
1. **Start**: the preparation hook runs, the interpreter and backend are
   located, a private application directory is scaffolded, and the child
   is launched.  The child's stderr is copied to the display sink and
   scanned for::

       Starting API server at: <url>
       Starting admin server at: <url>

   Session creation blocks until both lines are seen or the startup
   timeout passes (the child is then killed).

2. **Call**: each call is one ``POST`` of an Arrow IPC envelope
   (service, method, payload, session id) to the API server.  Backend
   errors surface as ``ApplicationError``; a call that outlives its
   timeout surfaces as ``CallTimeoutError``.

3. **Close**: ``GET /quit`` on the admin server, then wait for the child
   to exit; it is killed if the request fails or the wait times out.  The
   application directory is always removed afterwards.

"""

from __future__ import annotations

from devharness.session._client import LOCAL_METHODS, RpcProxyClient
from devharness.session._common import (
    CANCELED_CODE,
    ApplicationError,
    CallTimeoutError,
    DiscoveryError,
    Endpoints,
    ExecutableNotFoundError,
    HarnessError,
    ProtocolError,
    ShutdownError,
    ShutdownTimeoutError,
    StartupTimeoutError,
    TransportError,
    new_session_id,
)
from devharness.session._config import SessionOptions, StderrMode
from devharness.session._context import SessionContext, new_session
from devharness.session._discovery import (
    ADMIN_SERVER_PATTERN,
    API_SERVER_PATTERN,
    EndpointDiscovery,
    StderrEndpointDiscovery,
)
from devharness.session._shutdown import ShutdownCoordinator, ShutdownState
from devharness.session._supervisor import ChildProcess, ProcessSupervisor, find_appserver, find_interpreter
from devharness.session._wire import (
    RequestEnvelope,
    decode_request,
    decode_response,
    encode_application_error,
    encode_request,
    encode_response,
)

__all__ = [
    "ADMIN_SERVER_PATTERN",
    "API_SERVER_PATTERN",
    "CANCELED_CODE",
    "LOCAL_METHODS",
    "ApplicationError",
    "CallTimeoutError",
    "ChildProcess",
    "DiscoveryError",
    "EndpointDiscovery",
    "Endpoints",
    "ExecutableNotFoundError",
    "HarnessError",
    "ProcessSupervisor",
    "ProtocolError",
    "RequestEnvelope",
    "RpcProxyClient",
    "SessionContext",
    "SessionOptions",
    "ShutdownCoordinator",
    "ShutdownError",
    "ShutdownState",
    "ShutdownTimeoutError",
    "StartupTimeoutError",
    "StderrEndpointDiscovery",
    "StderrMode",
    "TransportError",
    "decode_request",
    "decode_response",
    "encode_application_error",
    "encode_request",
    "encode_response",
    "find_appserver",
    "find_interpreter",
    "new_session",
    "new_session_id",
]
