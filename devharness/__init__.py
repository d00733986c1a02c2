# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Ephemeral development backends for tests, driven through a typed session proxy."""

from devharness.identity import User
from devharness.session import (
    CANCELED_CODE,
    LOCAL_METHODS,
    ApplicationError,
    CallTimeoutError,
    ChildProcess,
    DiscoveryError,
    EndpointDiscovery,
    Endpoints,
    ExecutableNotFoundError,
    HarnessError,
    ProcessSupervisor,
    ProtocolError,
    RpcProxyClient,
    SessionContext,
    SessionOptions,
    ShutdownCoordinator,
    ShutdownError,
    ShutdownState,
    ShutdownTimeoutError,
    StartupTimeoutError,
    StderrEndpointDiscovery,
    StderrMode,
    TransportError,
    new_session,
)

__all__ = [
    # Core
    "new_session",
    "SessionContext",
    "SessionOptions",
    "StderrMode",
    "User",
    # Components
    "ChildProcess",
    "EndpointDiscovery",
    "Endpoints",
    "ProcessSupervisor",
    "RpcProxyClient",
    "ShutdownCoordinator",
    "ShutdownState",
    "StderrEndpointDiscovery",
    "LOCAL_METHODS",
    # Errors
    "HarnessError",
    "ExecutableNotFoundError",
    "StartupTimeoutError",
    "DiscoveryError",
    "TransportError",
    "CallTimeoutError",
    "CANCELED_CODE",
    "ApplicationError",
    "ProtocolError",
    "ShutdownError",
    "ShutdownTimeoutError",
]
