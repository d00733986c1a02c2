# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Files the development backend needs in its application directory.

The backend refuses to start without an application manifest and at least
one source file for the declared runtime.  The harness only needs the API
server, so the stub program does nothing.
"""

from __future__ import annotations

from pathlib import Path

__all__ = [
    "MANIFEST_FILENAME",
    "STUB_FILENAME",
    "render_manifest",
    "write_scaffold",
]

MANIFEST_FILENAME = "app.yaml"
STUB_FILENAME = "stubapp.go"

_MANIFEST_TEMPLATE = """
application: {app_id}
version: 1
runtime: go
api_version: go1

handlers:
- url: /.*
  script: _go_app
"""

_STUB_SOURCE = """
package nihilist

func init() {}
"""


def render_manifest(app_id: str) -> str:
    """Return the manifest text for *app_id*."""
    return _MANIFEST_TEMPLATE.format(app_id=app_id)


def write_scaffold(app_dir: Path, app_id: str) -> list[Path]:
    """Write the manifest and stub program into *app_dir*.

    Returns:
        The paths written, manifest first.

    """
    manifest = app_dir / MANIFEST_FILENAME
    manifest.write_text(render_manifest(app_id))
    stub = app_dir / STUB_FILENAME
    stub.write_text(_STUB_SOURCE)
    return [manifest, stub]
