# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Well-known ``pa.KeyValueMetadata`` keys used by the RPC envelope.

Centralises the keys (including the envelope version constant
``ENVELOPE_VERSION``) and the decode helper so that the client
codec and the test backend agree on a single definition.
"""

from __future__ import annotations

import pyarrow as pa

__all__ = [
    "APPLICATION_ERROR_CODE_KEY",
    "APPLICATION_ERROR_DETAIL_KEY",
    "ENVELOPE_VERSION",
    "ENVELOPE_VERSION_KEY",
    "decode_metadata",
]

# ---------------------------------------------------------------------------
# Well-known metadata keys (bytes, matching what appears on the wire)
# ---------------------------------------------------------------------------

ENVELOPE_VERSION_KEY = b"devharness.envelope_version"
ENVELOPE_VERSION = b"1"

APPLICATION_ERROR_CODE_KEY = b"devharness.application_error.code"
APPLICATION_ERROR_DETAIL_KEY = b"devharness.application_error.detail"

# ---------------------------------------------------------------------------
# Decode
# ---------------------------------------------------------------------------


def decode_metadata(metadata: pa.KeyValueMetadata | None) -> dict[bytes, bytes]:
    """Return *metadata* as a plain ``dict[bytes, bytes]`` (empty when ``None``)."""
    if metadata is None:
        return {}
    result: dict[bytes, bytes] = {}
    for k, v in metadata.items():
        key = k if isinstance(k, bytes) else k.encode()
        val = v if isinstance(v, bytes) else v.encode()
        result[key] = val
    return result
