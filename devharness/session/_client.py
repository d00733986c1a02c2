# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""HTTP proxy that forwards API calls to the backend using httpx."""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from types import TracebackType
from typing import Final

import httpx

from devharness.session._common import CallTimeoutError, ProtocolError, TransportError
from devharness.session._debug import fmt_payload, wire_http_logger
from devharness.session._wire import decode_response, encode_request

__all__ = [
    "LOCAL_METHODS",
    "RpcProxyClient",
]

_CONTENT_TYPE: Final = "application/octet-stream"

# Set per request by httpx; never copied from the caller's header mapping.
_SKIPPED_HEADERS: Final = frozenset({"host", "content-length", "content-type"})

# Namespace queries answered without contacting the backend: the harness
# always runs a single, default namespace.
LOCAL_METHODS: Final[frozenset[tuple[str, str]]] = frozenset(
    {
        ("__go__", "GetNamespace"),
        ("__go__", "GetDefaultNamespace"),
    }
)


class _CallDeadline:
    """Sets a cancellation flag when a call outlives its timeout.

    The flag is polled between response chunks, which ends the exchange at
    the deadline, and read again afterwards to tell a deadline cancellation
    apart from other transport failures.
    """

    __slots__ = ("_canceled", "_timer")

    def __init__(self, timeout: float | None) -> None:
        self._canceled = threading.Event()
        self._timer: threading.Timer | None = None
        if timeout:
            self._timer = threading.Timer(timeout, self._canceled.set)
            self._timer.daemon = True

    @property
    def active(self) -> bool:
        return self._timer is not None

    @property
    def canceled(self) -> bool:
        return self._canceled.is_set()

    def __enter__(self) -> _CallDeadline:
        if self._timer is not None:
            self._timer.start()
        return self

    def __exit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        if self._timer is not None:
            self._timer.cancel()


class RpcProxyClient:
    """Performs request/response exchanges against the backend API server.

    Each :meth:`call` is one ``POST`` of an encoded envelope to *api_url*.
    Calls are independent and may run concurrently from several threads.

    Args:
        api_url: Base URL of the API server.
        request_id: Correlation id stamped on every envelope (the session token).
        client: Optional pre-built ``httpx.Client``; one without default
            timeouts is created (and owned) when omitted.
        headers: Headers sent with every call.  The mapping is read at call
            time, so later changes are picked up.

    """

    __slots__ = ("_api_url", "_client", "_headers", "_own_client", "_request_id")

    def __init__(
        self,
        api_url: str,
        request_id: str,
        *,
        client: httpx.Client | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize with the API endpoint and correlation id."""
        self._api_url = api_url
        self._request_id = request_id
        self._own_client = client is None
        self._client = client if client is not None else httpx.Client(timeout=None)
        self._headers = headers

    @property
    def api_url(self) -> str:
        """Base URL of the API server."""
        return self._api_url

    @property
    def request_id(self) -> str:
        """Correlation id stamped on every envelope."""
        return self._request_id

    def call(self, service: str, method: str, payload: bytes, timeout: float | None = None) -> bytes:
        """Send one request and return the response payload.

        Args:
            service: Service name.
            method: Method name.
            payload: Opaque request payload.
            timeout: Seconds before the exchange is canceled; ``None`` or
                ``0`` waits indefinitely.

        Returns:
            The opaque response payload.

        Raises:
            ApplicationError: The backend reported a logical failure.
            CallTimeoutError: The exchange was canceled by *timeout*.
            TransportError: The exchange failed at the network level.
            ProtocolError: The response could not be decoded.
            ValueError: If *timeout* is negative.

        """
        if timeout is not None and timeout < 0:
            raise ValueError(f"timeout must be >= 0, got {timeout}")
        if (service, method) in LOCAL_METHODS:
            return b""
        body = encode_request(service, method, payload, self._request_id)
        status_code, content = self._post(body, timeout)
        try:
            return decode_response(content, service)
        except ProtocolError:
            if status_code >= 400:
                preview = content[:200].decode(errors="replace")
                raise TransportError(f"HTTP {status_code} from API server (body: {preview!r})") from None
            raise

    def _post(self, body: bytes, timeout: float | None) -> tuple[int, bytes]:
        """POST *body* and return ``(status_code, content)``, classifying failures.

        The response body is streamed so the deadline is checked between
        chunks; a backend that trickles its reply cannot hold the call open
        past *timeout*.
        """
        headers: dict[str, str] = {}
        if self._headers is not None:
            headers.update((k, v) for k, v in self._headers.items() if k.lower() not in _SKIPPED_HEADERS)
        headers["Content-Type"] = _CONTENT_TYPE
        if wire_http_logger.isEnabledFor(logging.DEBUG):
            wire_http_logger.debug("POST %s: body=%s, timeout=%s", self._api_url, fmt_payload(body), timeout)
        with _CallDeadline(timeout) as deadline:
            try:
                with self._client.stream(
                    "POST",
                    self._api_url,
                    content=body,
                    headers=headers,
                    timeout=httpx.Timeout(timeout) if deadline.active else httpx.USE_CLIENT_DEFAULT,
                ) as resp:
                    chunks: list[bytes] = []
                    for chunk in resp.iter_bytes():
                        if deadline.canceled:
                            raise CallTimeoutError()
                        chunks.append(chunk)
                    status_code = resp.status_code
            except httpx.TimeoutException as exc:
                if deadline.active:
                    raise CallTimeoutError() from exc
                raise TransportError(f"API call timed out: {exc}") from exc
            except httpx.HTTPError as exc:
                if deadline.canceled:
                    raise CallTimeoutError() from exc
                raise TransportError(f"API call failed: {exc}") from exc
            if deadline.canceled:
                raise CallTimeoutError()
        content = b"".join(chunks)
        if wire_http_logger.isEnabledFor(logging.DEBUG):
            wire_http_logger.debug("POST %s response: status=%d, size=%d", self._api_url, status_code, len(content))
        return status_code, content

    def close(self) -> None:
        """Close the HTTP client if this proxy created it."""
        if self._own_client:
            self._client.close()

    def __enter__(self) -> RpcProxyClient:
        """Enter the context."""
        return self

    def __exit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        """Close the client on exit."""
        self.close()
