# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""JSON formatter and handler setup for harness logging.

:class:`HarnessJsonFormatter` writes one JSON object per record.  The
session fields bound by ``SessionContext.logger`` (``app_id`` and
``session_id``) follow the standard fields so that lines from one
session line up; other ``extra`` fields come after them.  Payload bytes
are rendered as a size plus hex preview, and a :class:`HarnessError`
attached to the record contributes its type and, where it has them, its
service, code, and detail.

This module is **not** auto-imported by ``devharness``; import it explicitly::

    from devharness.logging_utils import configure_logging
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import TextIO

from devharness.session._common import HarnessError
from devharness.session._debug import fmt_payload

__all__ = ["HarnessJsonFormatter", "configure_logging"]

_STANDARD_FIELDS = ("timestamp", "level", "logger", "message")
_SESSION_FIELDS = ("app_id", "session_id")
_ERROR_ATTRS = ("service", "code", "detail")

# Everything a bare LogRecord carries; other attributes came from ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
}

_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _to_json(value: object) -> object:
    if isinstance(value, bytes | bytearray | memoryview):
        return fmt_payload(bytes(value))
    if isinstance(value, Enum):
        return value.value
    return str(value)


class HarnessJsonFormatter(logging.Formatter):
    """Single-line JSON formatter for harness and session records.

    Key order is fixed: standard fields, then the session fields that are
    present, then remaining extras in the order they were set, then error
    fields.  Extras never replace a standard field or an error field.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a single-line JSON string."""
        record.message = record.getMessage()
        obj: dict[str, object] = dict(
            zip(
                _STANDARD_FIELDS,
                (self.formatTime(record), record.levelname, record.name, record.message),
                strict=True,
            )
        )
        extras = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS and k not in obj}
        for name in _SESSION_FIELDS:
            if name in extras:
                obj[name] = extras.pop(name)
        obj.update(extras)
        obj.update(self._error_fields(record))
        return json.dumps(obj, default=_to_json)

    def _error_fields(self, record: logging.LogRecord) -> dict[str, object]:
        fields: dict[str, object] = {}
        if record.exc_info and record.exc_info[1]:
            exc = record.exc_info[1]
            fields["exception"] = self.formatException(record.exc_info)
            if isinstance(exc, HarnessError):
                fields["error_type"] = type(exc).__name__
                for attr in _ERROR_ATTRS:
                    if hasattr(exc, attr):
                        fields[f"error_{attr}"] = getattr(exc, attr)
        if record.stack_info:
            fields["stack_info"] = self.formatStack(record.stack_info)
        return fields


def configure_logging(level: int = logging.INFO, *, json_format: bool = False, stream: TextIO | None = None) -> None:
    """Attach a stream handler to the ``devharness`` logger.

    Replaces handlers previously installed by this function so repeated
    calls do not duplicate output.
    """
    root = logging.getLogger("devharness")
    for handler in list(root.handlers):
        if getattr(handler, "_devharness_handler", False):
            root.removeHandler(handler)
    handler = logging.StreamHandler(stream)
    handler.setFormatter(HarnessJsonFormatter() if json_format else logging.Formatter(_TEXT_FORMAT))
    handler._devharness_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(level)
