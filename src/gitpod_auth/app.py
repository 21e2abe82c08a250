"""Typer application and CLI entry point for gitpod-auth.

This module wires together the top-level Typer application and registers the
session commands (``login``, ``logout``, ``status``, ``sessions``,
``scopes``, ``whoami``) and the ``config`` sub-command group.

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers, registers commands and
invokes the Typer app. Unhandled exceptions are written to a crash log under
the data directory.

See Also:
    :mod:`gitpod_auth.config`: Provider configuration resolution.
    :mod:`gitpod_auth.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from gitpod_auth import __version__
from gitpod_auth.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="gitpod-auth",
    help="Sign in to Gitpod from the command line.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Eager --version handler."""
    if value:
        typer.echo(f"gitpod-auth {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    base_url: Optional[str] = typer.Option(
        None, "--base-url", help="Gitpod installation URL (overrides config and env)."
    ),
    json_output: bool = typer.Option(
        False, "--json", help="Print results as JSON on stdout."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Print results as tab-separated text."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable colour and Rich markup."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Hide progress messages; errors are still shown."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Show debug log records (never includes tokens)."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Do not ask before resetting config."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~gitpod_auth.output.OutputManager` and
    the log handler from CLI flags, and stores shared options in the Typer
    context so that sub-commands can read them via ``ctx.obj``.
    """
    from gitpod_auth.output import OutputFormat, OutputManager, configure_logging, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    output = OutputManager(
        format=fmt,
        no_color=no_color,
        quiet=quiet,
        verbose=verbose,
    )
    set_output(output)
    configure_logging(output)

    ctx.ensure_object(dict)
    ctx.obj["base_url"] = base_url
    ctx.obj["force"] = force
    ctx.obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    """Ctrl-C during a browser wait ends the process with 130."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from gitpod_auth.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def register_commands() -> None:
    """Attach the built-in commands to :data:`app`. Idempotent."""
    if getattr(app, "_gitpod_commands_registered", False):
        return
    from gitpod_auth.commands.auth import (
        login_command,
        logout_command,
        scopes_command,
        sessions_command,
        status_command,
        whoami_command,
    )
    from gitpod_auth.commands.config import config_app

    app.command("login")(login_command)
    app.command("logout")(logout_command)
    app.command("status")(status_command)
    app.command("sessions")(sessions_command)
    app.command("scopes")(scopes_command)
    app.command("whoami")(whoami_command)
    app.add_typer(config_app, name="config", help="View or change the provider configuration.")
    app._gitpod_commands_registered = True  # type: ignore[attr-defined]


def main() -> None:
    """CLI entry point invoked by the ``gitpod-auth`` console script.

    Unhandled :class:`~gitpod_auth.exceptions.GitpodAuthError` instances
    cause a clean exit with the error's ``exit_code``. All other exceptions
    produce a crash log and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        register_commands()
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from gitpod_auth.exceptions import GitpodAuthError
        from gitpod_auth.output import error

        if isinstance(exc, GitpodAuthError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
