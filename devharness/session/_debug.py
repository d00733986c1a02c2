# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Debug logging infrastructure for wire and process diagnostics.

Provides logger instances under the ``devharness.wire.*`` hierarchy and
formatting helpers for envelopes.  Enabling
``logging.getLogger("devharness.wire").setLevel(logging.DEBUG)`` shows
every envelope that is sent to or received from the backend.

All formatting helpers return ``str`` and never log directly.  Call them
inside ``isEnabledFor`` guards so disabled debug logging costs nothing.
"""

from __future__ import annotations

import logging

import pyarrow as pa

# ---------------------------------------------------------------------------
# Logger hierarchy: devharness.wire.*
# ---------------------------------------------------------------------------

wire_request_logger = logging.getLogger("devharness.wire.request")
"""Request envelope serialization."""

wire_response_logger = logging.getLogger("devharness.wire.response")
"""Response envelope deserialization."""

wire_http_logger = logging.getLogger("devharness.wire.http")
"""HTTP exchanges with the API and admin servers."""

# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

_MAX_PREVIEW_BYTES = 32


def fmt_payload(payload: bytes) -> str:
    """Format an opaque payload as its size plus a short hex preview.

    Returns:
        ``"5 bytes [68656c6c6f]"`` or ``"0 bytes"``.

    """
    if not payload:
        return "0 bytes"
    preview = payload[:_MAX_PREVIEW_BYTES].hex()
    if len(payload) > _MAX_PREVIEW_BYTES:
        preview += "..."
    return f"{len(payload)} bytes [{preview}]"


def fmt_metadata(metadata: pa.KeyValueMetadata | None) -> str:
    """Format Arrow custom metadata compactly."""
    if metadata is None:
        return "None"
    parts: list[str] = []
    for k, v in metadata.items():
        key = k.decode("utf-8", errors="replace") if isinstance(k, bytes) else k
        val = v.decode("utf-8", errors="replace") if isinstance(v, bytes) else v
        parts.append(f"{key}={val!r}")
    return "{" + ", ".join(parts) + "}"
