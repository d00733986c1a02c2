# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""pytest fixtures for tests that need a live backend.

Registered through the ``pytest11`` entry point.  Override
``harness_options`` in a ``conftest.py`` to customise the backend::

    @pytest.fixture
    def harness_options() -> SessionOptions:
        return SessionOptions(app_id="myapp", call_timeout=5.0)

    def test_something(harness_session: SessionContext) -> None:
        harness_session.call("memcache", "FlushAll", b"")
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from devharness.session import SessionContext, SessionOptions, new_session


@pytest.fixture
def harness_options() -> SessionOptions:
    """Options used by ``harness_session`` (defaults)."""
    return SessionOptions()


@pytest.fixture
def harness_session(harness_options: SessionOptions) -> Iterator[SessionContext]:
    """A running backend session, closed after the test."""
    with new_session(harness_options) as session:
        yield session
