# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Constants, loggers, and the error taxonomy for harness sessions."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import Final

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_logger = logging.getLogger("devharness.session")
_supervisor_logger = logging.getLogger("devharness.supervisor")

DEFAULT_APP_ID: Final = "testapp"
DEFAULT_STARTUP_TIMEOUT: Final = 15.0
DEFAULT_SHUTDOWN_TIMEOUT: Final = 15.0

# Canonical status code the backend uses for a canceled call.
CANCELED_CODE: Final = 11


def new_session_id() -> str:
    """Return a random 128-bit session token rendered as 32 hex characters."""
    return secrets.token_hex(16)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Endpoints:
    """Base URLs announced by the child process.

    Attributes:
        api_url: Base URL of the API server that accepts RPC envelopes.
        admin_url: Base URL of the administrative control surface.

    """

    api_url: str
    admin_url: str

    @property
    def quit_url(self) -> str:
        """URL of the cooperative quit handler."""
        return self.admin_url.rstrip("/") + "/quit"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class HarnessError(Exception):
    """Base class for every error raised by the harness."""


class ExecutableNotFoundError(HarnessError):
    """Raised when the interpreter or the backend executable cannot be located.

    Attributes:
        binary: ``"interpreter"`` or ``"appserver"``.
        detail: Human-readable description of what was searched.

    """

    def __init__(self, binary: str, detail: str) -> None:
        """Initialize with the kind of binary and a description of the lookup."""
        self.binary = binary
        self.detail = detail
        super().__init__(f"Could not find {binary}: {detail}")


class StartupTimeoutError(HarnessError):
    """Raised when the child does not announce both endpoints in time."""


class DiscoveryError(HarnessError):
    """Raised when the child's stderr ends or fails before both endpoints are known."""


class TransportError(HarnessError):
    """Raised when a call fails at the network level."""


class CallTimeoutError(TransportError):
    """Raised when a call is canceled by its own deadline.

    Attributes:
        detail: Always ``"Deadline exceeded"``.
        code: Always :data:`CANCELED_CODE`.
        timeout: Always ``True``.

    """

    def __init__(self, detail: str = "Deadline exceeded") -> None:
        """Initialize with the fixed deadline classification."""
        self.detail = detail
        self.code = CANCELED_CODE
        self.timeout = True
        super().__init__(f"{detail} (code {self.code})")


class ApplicationError(HarnessError):
    """Raised when the backend reports a logical failure for a call.

    Attributes:
        service: Service the call was addressed to.
        code: Backend-defined error code.
        detail: Backend-provided description.

    """

    def __init__(self, service: str, code: int, detail: str) -> None:
        """Initialize with the service name, error code, and detail string."""
        self.service = service
        self.code = code
        self.detail = detail
        super().__init__(f"API error {code} ({service}): {detail}")


class ProtocolError(HarnessError):
    """Raised when a response envelope cannot be decoded."""


class ShutdownError(HarnessError):
    """Raised when the child cannot be stopped cleanly or its directory removed."""


class ShutdownTimeoutError(ShutdownError):
    """Raised when the child ignores the quit request past the shutdown deadline."""
