"""Terminal output for the gitpod-auth CLI.

Two streams, two purposes:

* **stdout** carries results only: session details, granted scopes, the
  session table, config dumps. Scripts can pipe it, most usefully with
  ``--json``.
* **stderr** carries everything addressed to the person at the keyboard:
  progress lines, warnings, errors, next-step hints, log records and the
  authorization URL when no browser could be opened.

Rich styling is used only when stdout is a terminal and colour has not been
turned off by ``--no-color``, ``NO_COLOR`` or ``TERM=dumb``.

:func:`~gitpod_auth.app.main_callback` builds one :class:`OutputManager` per
invocation and installs it with :func:`set_output`; commands then call the
module-level helpers (:func:`info`, :func:`format_response`, ...).
"""

from __future__ import annotations

import json
import logging
import os
import sys
from enum import Enum
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.syntax import Syntax
from rich.table import Table

_LOGGER_NAME = "gitpod_auth"


class OutputFormat(str, Enum):
    """How results are rendered on stdout. ``AUTO`` picks ``RICH`` or ``PLAIN``."""

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


def _to_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


class OutputManager:
    """Renders results to stdout and diagnostics to stderr.

    Args:
        format: Result format; ``AUTO`` resolves from TTY detection.
        no_color: Turn off colour and markup on both streams.
        quiet: Hide info, success and hint lines. Warnings, errors and
            manual-login URLs are still shown.
        verbose: Let ``DEBUG`` log records through (see
            :func:`configure_logging`).
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose

        if format is OutputFormat.AUTO:
            rich_ok = _is_tty() and not self._no_color
            format = OutputFormat.RICH if rich_ok else OutputFormat.PLAIN
        self._format = format

        self._stdout = Console(
            file=sys.stdout,
            no_color=self._no_color,
            force_terminal=format is OutputFormat.RICH,
        )
        self._stderr = Console(file=sys.stderr, no_color=self._no_color, stderr=True)

    @property
    def format(self) -> OutputFormat:
        return self._format

    @property
    def is_quiet(self) -> bool:
        return self._quiet

    @property
    def is_verbose(self) -> bool:
        return self._verbose

    @property
    def stderr_console(self) -> Console:
        """Console for stderr; :func:`configure_logging` writes through it."""
        return self._stderr

    # ------------------------------------------------------------------ #
    # Results (stdout)
    # ------------------------------------------------------------------ #

    def format_response(self, data: Any) -> None:
        """Write a result (mapping, list or scalar) to stdout.

        * JSON: pretty-printed document.
        * Plain: ``key<TAB>value`` lines for mappings, one line per list
          item, nested values as compact JSON.
        * Rich: syntax-highlighted JSON for mappings and lists.
        """
        if self._format is OutputFormat.JSON:
            self.print_data(_to_json(data))
        elif self._format is OutputFormat.PLAIN:
            for line in _plain_lines(data):
                self.print_data(line)
        elif isinstance(data, (dict, list)):
            self._stdout.print(Syntax(_to_json(data), "json", theme="monokai", word_wrap=True))
        else:
            self._stdout.print(str(data))

    def print_data(self, text: str) -> None:
        print(text, file=sys.stdout, flush=True)

    def print_table(
        self,
        headers: list[str],
        rows: list[list[str]],
        title: Optional[str] = None,
    ) -> None:
        """Write rows to stdout: objects keyed by header (JSON), TSV (plain) or a table."""
        if self._format is OutputFormat.JSON:
            self.print_data(_to_json([dict(zip(headers, row)) for row in rows]))
            return
        if self._format is OutputFormat.PLAIN:
            for line in [headers, *rows]:
                self.print_data("\t".join(line))
            return
        table = Table(*headers, title=title, header_style="bold cyan")
        for row in rows:
            table.add_row(*row)
        self._stdout.print(table)

    # ------------------------------------------------------------------ #
    # Diagnostics (stderr)
    # ------------------------------------------------------------------ #

    def info(self, message: str) -> None:
        """Progress line. Hidden by ``--quiet``."""
        self._diagnostic(message, message, suppressible=True)

    def success(self, message: str) -> None:
        self._diagnostic(message, f"[green]{message}[/green]", suppressible=True)

    def warning(self, message: str) -> None:
        self._diagnostic(f"Warning: {message}", f"[yellow]Warning:[/yellow] {message}")

    def error(self, message: str) -> None:
        self._diagnostic(f"Error: {message}", f"[bold red]Error:[/bold red] {message}")

    def suggest(self, message: str) -> None:
        """Next-step hint such as the command to run. Hidden by ``--quiet``."""
        self._diagnostic(f"→ {message}", f"[dim]→ {message}[/dim]", suppressible=True)

    def show_url(self, url: str) -> None:
        """Print a URL for manual copying. Never hidden and never wrapped."""
        if self._no_color:
            print(url, file=sys.stderr, flush=True)
        else:
            self._stderr.print(url, style="bold", soft_wrap=True, markup=False)

    def _diagnostic(self, plain: str, styled: str, suppressible: bool = False) -> None:
        if suppressible and self._quiet:
            return
        if self._no_color:
            print(plain, file=sys.stderr, flush=True)
        else:
            self._stderr.print(styled)


def _plain_value(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def _plain_lines(data: Any) -> list[str]:
    if isinstance(data, dict):
        return [f"{key}\t{_plain_value(value)}" for key, value in data.items()]
    if isinstance(data, list):
        return [
            "\t".join(str(v) for v in item.values()) if isinstance(item, dict) else str(item)
            for item in data
        ]
    return [str(data)]


def _is_tty() -> bool:
    isatty = getattr(sys.stdout, "isatty", None)
    return bool(isatty and isatty())


def _should_disable_color() -> bool:
    """``NO_COLOR`` (any value, even empty) or ``TERM=dumb`` disables colour."""
    return "NO_COLOR" in os.environ or os.environ.get("TERM") == "dumb"


def configure_logging(output: OutputManager) -> None:
    """Send ``gitpod_auth`` log records to stderr through a :class:`RichHandler`.

    The level is ``DEBUG`` with ``--verbose`` and ``WARNING`` otherwise.
    Calling it again replaces the handler installed by the previous call.
    """
    package_logger = logging.getLogger(_LOGGER_NAME)
    for handler in list(package_logger.handlers):
        if isinstance(handler, RichHandler):
            package_logger.removeHandler(handler)
    package_logger.addHandler(
        RichHandler(
            console=output.stderr_console,
            show_path=False,
            markup=False,
            rich_tracebacks=output.is_verbose,
        )
    )
    package_logger.setLevel(logging.DEBUG if output.is_verbose else logging.WARNING)
    package_logger.propagate = False


# ------------------------------------------------------------------ #
# Process-wide instance
# ------------------------------------------------------------------ #

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the installed :class:`OutputManager`, creating a default one if needed."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    """Forget the installed manager; the next :func:`get_output` builds a new one."""
    global _output
    _output = None


def format_response(data: Any) -> None:
    get_output().format_response(data)


def print_table(headers: list[str], rows: list[list[str]], title: Optional[str] = None) -> None:
    get_output().print_table(headers, rows, title)


def info(message: str) -> None:
    get_output().info(message)


def success(message: str) -> None:
    get_output().success(message)


def warning(message: str) -> None:
    get_output().warning(message)


def error(message: str) -> None:
    get_output().error(message)


def suggest(message: str) -> None:
    get_output().suggest(message)


def show_url(url: str) -> None:
    get_output().show_url(url)
