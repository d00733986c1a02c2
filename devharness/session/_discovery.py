# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Endpoint discovery from the child's diagnostic output."""

from __future__ import annotations

import logging
import queue
import re
import threading
import time
from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from devharness.session._common import (
    DiscoveryError,
    Endpoints,
    StartupTimeoutError,
    _supervisor_logger,
)

__all__ = [
    "ADMIN_SERVER_PATTERN",
    "API_SERVER_PATTERN",
    "EndpointDiscovery",
    "StderrEndpointDiscovery",
]

API_SERVER_PATTERN = rb"Starting API server at: (\S+)"
ADMIN_SERVER_PATTERN = rb"Starting admin server at: (\S+)"

_API = "api"
_ADMIN = "admin"

type _Found = tuple[str, str] | BaseException


@runtime_checkable
class EndpointDiscovery(Protocol):
    """Learns the backend's endpoints from a stream the child writes to."""

    def discover(self, stream: Iterable[bytes], timeout: float) -> Endpoints:
        """Block until both endpoints are known or *timeout* seconds pass.

        Raises:
            StartupTimeoutError: If the deadline passes first.
            DiscoveryError: If the stream ends or fails first.

        """
        ...


class StderrEndpointDiscovery:
    """Scans announcement lines such as ``Starting API server at: <url>``.

    A daemon thread consumes the stream line by line until EOF, for the
    whole life of the child, so the child never blocks on a full pipe.
    Matches are handed to the waiting caller over a queue.
    """

    __slots__ = ("_patterns",)

    def __init__(
        self,
        api_pattern: bytes | str = API_SERVER_PATTERN,
        admin_pattern: bytes | str = ADMIN_SERVER_PATTERN,
    ) -> None:
        """Initialize with the two announcement regexes (one capture group each)."""
        self._patterns: tuple[tuple[str, re.Pattern[bytes]], ...] = (
            (_API, re.compile(api_pattern.encode() if isinstance(api_pattern, str) else api_pattern)),
            (_ADMIN, re.compile(admin_pattern.encode() if isinstance(admin_pattern, str) else admin_pattern)),
        )

    def discover(self, stream: Iterable[bytes], timeout: float) -> Endpoints:
        """Start the scanning thread and wait for both endpoints.

        Args:
            stream: Line-iterable binary stream (the child's stderr).
            timeout: Overall deadline in seconds.

        Returns:
            The discovered endpoints.

        Raises:
            StartupTimeoutError: If both endpoints are not announced in time.
            DiscoveryError: If the stream closes or errors first.

        """
        found: queue.Queue[_Found] = queue.Queue()
        thread = threading.Thread(
            target=self._scan,
            args=(stream, found),
            daemon=True,
            name="devharness.discovery",
        )
        thread.start()

        urls: dict[str, str] = {}
        deadline = time.monotonic() + timeout
        while len(urls) < len(self._patterns):
            remaining = deadline - time.monotonic()
            try:
                if remaining <= 0:
                    raise queue.Empty
                item = found.get(timeout=remaining)
            except queue.Empty:
                missing = ", ".join(tag for tag, _ in self._patterns if tag not in urls)
                raise StartupTimeoutError(
                    f"timeout starting child process: no {missing} endpoint announced within {timeout}s"
                ) from None
            if isinstance(item, BaseException):
                raise DiscoveryError(f"error reading child process stderr: {item}") from item
            tag, url = item
            urls[tag] = url
            _supervisor_logger.debug("Discovered %s endpoint: %s", tag, url)
        return Endpoints(api_url=urls[_API], admin_url=urls[_ADMIN])

    def _scan(self, stream: Iterable[bytes], found: queue.Queue[_Found]) -> None:
        """Match every line until EOF. Runs as a daemon thread."""
        reported: set[str] = set()
        try:
            for raw_line in stream:
                for tag, pattern in self._patterns:
                    if tag in reported:
                        continue
                    match = pattern.search(raw_line)
                    if match is not None:
                        reported.add(tag)
                        found.put((tag, match.group(1).decode("utf-8", errors="replace")))
        except (OSError, ValueError) as exc:
            if len(reported) < len(self._patterns):
                found.put(exc)
            else:
                _supervisor_logger.debug("Child stderr reader stopped: %s", exc)
            return
        if len(reported) < len(self._patterns):
            found.put(EOFError("stream closed before both endpoints were announced"))
        if _supervisor_logger.isEnabledFor(logging.DEBUG):
            _supervisor_logger.debug("Child stderr reached EOF")
