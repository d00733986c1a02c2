# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Command-line interface for devharness.

Provides ``up`` and ``call`` commands for starting a throwaway backend by
hand and for poking at it with a single call.

Usage::

    devharness up --app-id myapp
    devharness call memcache Get --payload-hex 0a036b6579
    APPENGINE_DEV_APPSERVER=/opt/sdk/dev_appserver.py devharness --debug up

"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Annotated

import typer

from devharness.logging_utils import configure_logging
from devharness.session import (
    ApplicationError,
    HarnessError,
    SessionContext,
    SessionOptions,
    new_session,
)

# ---------------------------------------------------------------------------
# Log format enum
# ---------------------------------------------------------------------------


class LogFormat(StrEnum):
    """Log output format."""

    text = "text"
    json = "json"


# ---------------------------------------------------------------------------
# CLI config
# ---------------------------------------------------------------------------


@dataclass
class _CliConfig:
    """Holds resolved CLI options."""

    app_id: str = "testapp"
    python: str | None = None
    startup_timeout: float = 15.0
    flags: list[str] = field(default_factory=list)

    def session_options(self, call_timeout: float | None = None) -> SessionOptions:
        """Build session options from the CLI flags."""
        options = SessionOptions(
            app_id=self.app_id,
            startup_timeout=self.startup_timeout,
            call_timeout=call_timeout,
            extra_args=tuple(self.flags),
        )
        if self.python is not None:
            options = replace(options, interpreter_candidates=(self.python,))
        return options


app = typer.Typer(
    name="devharness",
    help="Start throwaway development backends and call their APIs.",
    add_completion=False,
    no_args_is_help=True,
)


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def _main(
    ctx: typer.Context,
    app_id: Annotated[str, typer.Option("--app-id", "-a", help="Application id")] = "testapp",
    python: Annotated[str | None, typer.Option("--python", help="Interpreter used to run the backend")] = None,
    startup_timeout: Annotated[
        float, typer.Option("--startup-timeout", help="Seconds to wait for the endpoints")
    ] = 15.0,
    flags: Annotated[list[str] | None, typer.Option("--flag", help="Extra backend flag (repeatable)")] = None,
    debug: Annotated[bool, typer.Option("--debug", "-d", help="Enable debug logging")] = False,
    log_format: Annotated[LogFormat, typer.Option("--log-format", help="Log output format")] = LogFormat.text,
) -> None:
    """Configure the backend and logging."""
    configure_logging(logging.DEBUG if debug else logging.WARNING, json_format=log_format == LogFormat.json)
    ctx.obj = _CliConfig(app_id=app_id, python=python, startup_timeout=startup_timeout, flags=list(flags or []))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _start(options: SessionOptions) -> SessionContext:
    """Start a session, turning harness errors into a non-zero exit."""
    try:
        return new_session(options)
    except HarnessError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None


def _close(session: SessionContext) -> None:
    """Close a session, turning shutdown errors into a non-zero exit."""
    try:
        session.close()
    except HarnessError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def up(
    ctx: typer.Context,
    duration: Annotated[
        float | None, typer.Option("--duration", help="Stop after this many seconds (default: until Ctrl-C)")
    ] = None,
) -> None:
    """Start a backend, print its endpoints, and keep it running."""
    config: _CliConfig = ctx.obj
    session = _start(config.session_options())
    typer.echo(f"api_url={session.endpoints.api_url}")
    typer.echo(f"admin_url={session.endpoints.admin_url}")
    typer.echo(f"session_id={session.session_id}")
    try:
        threading.Event().wait(timeout=duration)
    except KeyboardInterrupt:
        pass
    _close(session)


@app.command()
def call(
    ctx: typer.Context,
    service: Annotated[str, typer.Argument(help="Service name")],
    method: Annotated[str, typer.Argument(help="Method name")],
    payload_hex: Annotated[str, typer.Option("--payload-hex", "-x", help="Request payload as hex")] = "",
    timeout: Annotated[float | None, typer.Option("--timeout", "-t", help="Call timeout in seconds")] = None,
) -> None:
    """Start a backend, make one call, print the response as hex, and stop."""
    config: _CliConfig = ctx.obj
    try:
        payload = bytes.fromhex(payload_hex)
    except ValueError:
        raise typer.BadParameter(f"not valid hex: {payload_hex!r}", param_hint="--payload-hex") from None

    session = _start(config.session_options(call_timeout=timeout))
    try:
        response = session.call(service, method, payload)
    except ApplicationError as e:
        typer.echo(f"ApplicationError: service={e.service} code={e.code} detail={e.detail}", err=True)
        _close(session)
        raise typer.Exit(1) from None
    except HarnessError as e:
        typer.echo(f"Error: {e}", err=True)
        _close(session)
        raise typer.Exit(1) from None
    _close(session)
    typer.echo(response.hex())


def main() -> None:
    """Entry point for the ``devharness`` console script."""
    app()
