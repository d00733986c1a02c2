# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Envelope serialization for the remote API protocol.

Every exchange is one complete Arrow IPC stream in each direction::

    Client→Server: [IPC stream: request schema + 1 request batch + EOS]
    Server→Client: [IPC stream: response schema + 1 response batch + EOS]

The request batch has a single row carrying the service name, method name,
opaque request payload, and the correlation id.  Its custom metadata
carries ``devharness.envelope_version``.

A successful response is a single-row batch with the opaque response
payload.  An application error is a zero-row batch whose custom metadata
carries ``devharness.application_error.code`` and ``.detail``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from io import BytesIO

import pyarrow as pa
from pyarrow import ipc

from devharness.metadata import (
    APPLICATION_ERROR_CODE_KEY,
    APPLICATION_ERROR_DETAIL_KEY,
    ENVELOPE_VERSION,
    ENVELOPE_VERSION_KEY,
    decode_metadata,
)
from devharness.session._common import ApplicationError, ProtocolError
from devharness.session._debug import (
    fmt_metadata,
    fmt_payload,
    wire_request_logger,
    wire_response_logger,
)

__all__ = [
    "REQUEST_SCHEMA",
    "RESPONSE_SCHEMA",
    "RequestEnvelope",
    "decode_request",
    "decode_response",
    "encode_application_error",
    "encode_request",
    "encode_response",
]

REQUEST_SCHEMA = pa.schema(
    [
        pa.field("service_name", pa.utf8(), nullable=False),
        pa.field("method", pa.utf8(), nullable=False),
        pa.field("request", pa.binary(), nullable=False),
        pa.field("request_id", pa.utf8(), nullable=False),
    ]
)

RESPONSE_SCHEMA = pa.schema([pa.field("response", pa.binary(), nullable=False)])


@dataclass(frozen=True)
class RequestEnvelope:
    """Decoded request envelope (used by backends and tests)."""

    service_name: str
    method: str
    request: bytes
    request_id: str


# ---------------------------------------------------------------------------
# IPC stream helpers
# ---------------------------------------------------------------------------


def _write_single_batch(schema: pa.Schema, batch: pa.RecordBatch, metadata: pa.KeyValueMetadata) -> bytes:
    """Write *batch* as a complete IPC stream (schema + 1 batch + EOS)."""
    buf = BytesIO()
    with ipc.new_stream(buf, schema) as writer:
        writer.write_batch(batch, custom_metadata=metadata)
    return buf.getvalue()


def _read_single_batch(content: bytes, expected: pa.Schema) -> tuple[pa.RecordBatch, dict[bytes, bytes]]:
    """Read the first batch of an IPC stream and check its schema.

    Raises:
        ProtocolError: If *content* is not an IPC stream, carries no batch,
            or its schema differs from *expected*.

    """
    try:
        reader = ipc.open_stream(BytesIO(content))
        batch, custom_metadata = reader.read_next_batch_with_custom_metadata()
    except StopIteration:
        raise ProtocolError("Envelope stream contains no batch") from None
    except (pa.ArrowInvalid, OSError) as exc:
        preview = content[:200].decode(errors="replace") if content else ""
        raise ProtocolError(f"Envelope is not a valid Arrow IPC stream (first 200 bytes: {preview!r})") from exc
    if not batch.schema.equals(expected):
        raise ProtocolError(f"Unexpected envelope schema: {batch.schema}")
    return batch, decode_metadata(custom_metadata)


def _check_version(md: dict[bytes, bytes]) -> None:
    """Reject envelopes stamped with another (or no) envelope version."""
    version = md.get(ENVELOPE_VERSION_KEY)
    if version != ENVELOPE_VERSION:
        raise ProtocolError(f"Unsupported envelope version: {version!r}")


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


def encode_request(service_name: str, method: str, request: bytes, request_id: str) -> bytes:
    """Serialize a request envelope."""
    batch = pa.RecordBatch.from_arrays(
        [
            pa.array([service_name], type=pa.utf8()),
            pa.array([method], type=pa.utf8()),
            pa.array([request], type=pa.binary()),
            pa.array([request_id], type=pa.utf8()),
        ],
        schema=REQUEST_SCHEMA,
    )
    custom_metadata = pa.KeyValueMetadata({ENVELOPE_VERSION_KEY: ENVELOPE_VERSION})
    if wire_request_logger.isEnabledFor(logging.DEBUG):
        wire_request_logger.debug(
            "Write request: service=%s, method=%s, request_id=%s, payload=%s, metadata=%s",
            service_name,
            method,
            request_id,
            fmt_payload(request),
            fmt_metadata(custom_metadata),
        )
    return _write_single_batch(REQUEST_SCHEMA, batch, custom_metadata)


def decode_request(content: bytes) -> RequestEnvelope:
    """Deserialize a request envelope.

    Raises:
        ProtocolError: If the envelope is malformed or has an unsupported version.

    """
    batch, md = _read_single_batch(content, REQUEST_SCHEMA)
    _check_version(md)
    if batch.num_rows != 1:
        raise ProtocolError(f"Request envelope must have exactly 1 row, got {batch.num_rows}")
    row = batch.to_pylist()[0]
    return RequestEnvelope(
        service_name=row["service_name"],
        method=row["method"],
        request=row["request"],
        request_id=row["request_id"],
    )


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


def encode_response(response: bytes) -> bytes:
    """Serialize a successful response envelope."""
    batch = pa.RecordBatch.from_arrays([pa.array([response], type=pa.binary())], schema=RESPONSE_SCHEMA)
    return _write_single_batch(RESPONSE_SCHEMA, batch, pa.KeyValueMetadata({ENVELOPE_VERSION_KEY: ENVELOPE_VERSION}))


def encode_application_error(code: int, detail: str) -> bytes:
    """Serialize an application-error response envelope."""
    batch = pa.RecordBatch.from_pylist([], schema=RESPONSE_SCHEMA)
    md = pa.KeyValueMetadata(
        {
            ENVELOPE_VERSION_KEY: ENVELOPE_VERSION,
            APPLICATION_ERROR_CODE_KEY: str(code).encode(),
            APPLICATION_ERROR_DETAIL_KEY: detail.encode(),
        }
    )
    return _write_single_batch(RESPONSE_SCHEMA, batch, md)


def decode_response(content: bytes, service_name: str) -> bytes:
    """Deserialize a response envelope and return the opaque payload.

    Args:
        content: Raw response body.
        service_name: Service the call was addressed to (reported in errors).

    Returns:
        The response payload.

    Raises:
        ApplicationError: If the envelope carries an application error.
        ProtocolError: If the envelope is malformed or has an unsupported version.

    """
    batch, md = _read_single_batch(content, RESPONSE_SCHEMA)
    _check_version(md)
    if wire_response_logger.isEnabledFor(logging.DEBUG):
        wire_response_logger.debug(
            "Read response: service=%s, rows=%d, metadata=%s",
            service_name,
            batch.num_rows,
            {k.decode(errors="replace"): v.decode(errors="replace") for k, v in md.items()},
        )
    raw_code = md.get(APPLICATION_ERROR_CODE_KEY)
    if raw_code is not None:
        try:
            code = int(raw_code)
        except ValueError:
            raise ProtocolError(f"Malformed application error code: {raw_code!r}") from None
        detail = md.get(APPLICATION_ERROR_DETAIL_KEY, b"").decode("utf-8", errors="replace")
        raise ApplicationError(service_name, code, detail)
    if batch.num_rows != 1:
        raise ProtocolError(f"Response envelope must have exactly 1 row, got {batch.num_rows}")
    payload: bytes = batch.column(0)[0].as_py()
    return payload
