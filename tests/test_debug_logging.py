# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Tests for wire debug logging infrastructure."""

from __future__ import annotations

import logging

import httpx
import pyarrow as pa
import pytest

from devharness.session import RpcProxyClient, decode_response, encode_request, encode_response
from devharness.session._debug import fmt_metadata, fmt_payload

# ---------------------------------------------------------------------------
# Unit tests for formatting helpers
# ---------------------------------------------------------------------------


class TestFmtPayload:
    """Tests for fmt_payload."""

    def test_empty(self) -> None:
        """Empty payload shows only the size."""
        assert fmt_payload(b"") == "0 bytes"

    def test_short(self) -> None:
        """Short payloads are shown in full as hex."""
        assert fmt_payload(b"hello") == "5 bytes [68656c6c6f]"

    def test_truncated(self) -> None:
        """Long payloads are truncated with an ellipsis."""
        result = fmt_payload(b"\x00" * 100)
        assert result.startswith("100 bytes [")
        assert result.endswith("...]")


class TestFmtMetadata:
    """Tests for fmt_metadata."""

    def test_none(self) -> None:
        """None metadata returns 'None'."""
        assert fmt_metadata(None) == "None"

    def test_empty(self) -> None:
        """Empty metadata returns '{}'."""
        assert fmt_metadata(pa.KeyValueMetadata({})) == "{}"

    def test_bytes_keys(self) -> None:
        """Bytes keys/values are decoded to strings."""
        result = fmt_metadata(pa.KeyValueMetadata({b"devharness.envelope_version": b"1"}))
        assert result == "{devharness.envelope_version='1'}"


# ---------------------------------------------------------------------------
# Logger output
# ---------------------------------------------------------------------------


class TestWireLoggers:
    """Debug records emitted under ``devharness.wire``."""

    def test_request_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        """Encoding a request logs the call at DEBUG."""
        with caplog.at_level(logging.DEBUG, logger="devharness.wire"):
            encode_request("memcache", "Get", b"key", "sid")
        record = next(r for r in caplog.records if r.name == "devharness.wire.request")
        assert "service=memcache" in record.getMessage()
        assert "3 bytes" in record.getMessage()

    def test_response_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        """Decoding a response logs the row count at DEBUG."""
        with caplog.at_level(logging.DEBUG, logger="devharness.wire"):
            decode_response(encode_response(b"v"), "memcache")
        record = next(r for r in caplog.records if r.name == "devharness.wire.response")
        assert "rows=1" in record.getMessage()

    def test_http_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        """The proxy logs each POST and its response status."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=encode_response(b""))

        client = httpx.Client(transport=httpx.MockTransport(handler))
        proxy = RpcProxyClient("http://backend.test/", "sid", client=client)
        with caplog.at_level(logging.DEBUG, logger="devharness.wire"):
            proxy.call("s", "m", b"")
        messages = [r.getMessage() for r in caplog.records if r.name == "devharness.wire.http"]
        assert any(m.startswith("POST http://backend.test/:") for m in messages)
        assert any("status=200" in m for m in messages)

    def test_silent_by_default(self, caplog: pytest.LogCaptureFixture) -> None:
        """Nothing is recorded at the default level."""
        with caplog.at_level(logging.INFO):
            encode_request("s", "m", b"", "sid")
        assert not [r for r in caplog.records if r.name.startswith("devharness.wire")]
