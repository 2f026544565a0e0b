"""Output formatting with strict stdout/stderr discipline.

Follows `clig.dev <https://clig.dev/>`_ conventions:

* **stdout** -- primary data only (status tables, JSON). This is what
  wrapper scripts parse.
* **stderr** -- all diagnostics (progress, status, warnings, errors,
  suggestions) and log records.
* **TTY detection** -- Rich formatting when stdout is an interactive
  terminal, plain text when piped.
* **Colour control** -- respects ``NO_COLOR``, ``TERM=dumb``, and the
  ``--no-color`` CLI flag.

:class:`OutputManager` holds the preferences and both Rich consoles; it is
created once in :func:`~syncauth.app.main_callback` and installed with
:func:`set_output`. The module-level helpers (:func:`info`, :func:`error`,
...) delegate to that global instance.
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
from rich.table import Table


class OutputFormat(str, Enum):
    """Supported data output formats.

    ``AUTO`` resolves to ``RICH`` on an interactive, colour-capable stdout
    and to ``PLAIN`` otherwise.
    """

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


class OutputManager:
    """Routes data to stdout and diagnostics to stderr.

    Args:
        format: Desired data format. ``AUTO`` resolves based on TTY detection.
        no_color: Disable all colour and Rich markup.
        quiet: Suppress informational messages on stderr.
        verbose: Show debug messages on stderr.
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

        if format == OutputFormat.AUTO:
            self._format = (
                OutputFormat.RICH if _is_tty() and not self._no_color else OutputFormat.PLAIN
            )
        else:
            self._format = format

        self._stdout = Console(
            file=sys.stdout,
            no_color=self._no_color,
            force_terminal=(self._format == OutputFormat.RICH),
        )
        self._stderr = Console(file=sys.stderr, no_color=self._no_color, stderr=True)

    @property
    def format(self) -> OutputFormat:
        """The resolved format; never ``AUTO``."""
        return self._format

    @property
    def is_quiet(self) -> bool:
        return self._quiet

    @property
    def is_verbose(self) -> bool:
        """Whether ``--verbose`` was given; also drives the log level."""
        return self._verbose

    @property
    def stderr_console(self) -> Console:
        """The Rich console bound to stderr, shared with the log handler."""
        return self._stderr

    # ------------------------------------------------------------------ #
    # Data output (stdout)
    # ------------------------------------------------------------------ #

    def format_response(self, data: Any) -> None:
        """Write a payload to stdout in the active format.

        JSON mode pretty-prints the whole payload. Plain mode writes one
        ``key<TAB>value`` line per dict entry (nested values as compact JSON)
        and one JSON line per list item. Rich mode renders highlighted JSON.

        Args:
            data: A dict, list or string, e.g. the ``auth status`` record.
        """
        if self._format == OutputFormat.JSON:
            self.print_data(json.dumps(data, indent=2, ensure_ascii=False, default=str))
        elif self._format == OutputFormat.PLAIN:
            if isinstance(data, dict):
                for key, value in data.items():
                    if isinstance(value, (dict, list)):
                        value = json.dumps(value, ensure_ascii=False, default=str)
                    self.print_data(f"{key}\t{value}")
            elif isinstance(data, list):
                for item in data:
                    self.print_data(json.dumps(item, ensure_ascii=False, default=str))
            else:
                self.print_data(str(data))
        else:
            self._stdout.print_json(json.dumps(data, ensure_ascii=False, default=str))

    def print_data(self, text: str) -> None:
        """Write one line of data to stdout, unstyled.

        Args:
            text: The line to write; a newline is added.
        """
        print(text, file=sys.stdout, flush=True)

    def print_table(
        self,
        headers: list[str],
        rows: list[list[str]],
        title: Optional[str] = None,
    ) -> None:
        """Print tabular data to stdout.

        Rich mode renders a styled :class:`~rich.table.Table`, JSON mode an
        array of objects keyed by header, and plain mode tab-separated rows.

        Args:
            headers: Column names.
            rows: One list of cell strings per row, in header order.
            title: Table caption, shown in Rich mode only.
        """
        if self._format == OutputFormat.JSON:
            records = [dict(zip(headers, row)) for row in rows]
            self.print_data(json.dumps(records, indent=2, ensure_ascii=False))
        elif self._format == OutputFormat.PLAIN:
            self.print_data("\t".join(headers))
            for row in rows:
                self.print_data("\t".join(row))
        else:
            table = Table(title=title, show_header=True, header_style="bold cyan")
            for h in headers:
                table.add_column(h)
            for row in rows:
                table.add_row(*row)
            self._stdout.print(table)

    # ------------------------------------------------------------------ #
    # Diagnostics (stderr)
    # ------------------------------------------------------------------ #

    def _emit(self, plain: str, markup: str) -> None:
        if self._no_color:
            print(plain, file=sys.stderr, flush=True)
        else:
            self._stderr.print(markup)

    def info(self, message: str) -> None:
        """Write a status line to stderr. Suppressed by ``--quiet``.

        Args:
            message: The status text.
        """
        if not self._quiet:
            self._emit(message, message)

    def success(self, message: str) -> None:
        """Write a green success line to stderr. Suppressed by ``--quiet``.

        Args:
            message: The success text, e.g. ``"Authorized successfully!"``.
        """
        if not self._quiet:
            self._emit(message, f"[green]{message}[/green]")

    def warning(self, message: str) -> None:
        """Write a ``Warning:`` line to stderr. Shown even with ``--quiet``.

        Args:
            message: The warning text, without the prefix.
        """
        self._emit(f"Warning: {message}", f"[yellow]Warning:[/yellow] {message}")

    def error(self, message: str) -> None:
        """Write a bold-red ``Error:`` line to stderr. Never suppressed.

        Args:
            message: The error text, without the prefix.
        """
        self._emit(f"Error: {message}", f"[bold red]Error:[/bold red] {message}")

    def suggest(self, message: str) -> None:
        """Write a dimmed next-step hint, prefixed with an arrow.

        Suppressed by ``--quiet``.

        Args:
            message: The hint, usually a command to run next.
        """
        if not self._quiet:
            formatted = f"→ {message}"
            self._emit(formatted, f"[dim]{formatted}[/dim]")

    def debug(self, message: str) -> None:
        """Write a ``[debug]`` line to stderr, only with ``--verbose``.

        Args:
            message: The debug text.
        """
        if self._verbose:
            self._emit(f"[debug] {message}", f"[dim]\\[debug] {message}[/dim]")

    def progress(self, message: str) -> None:
        """Write a dimmed progress line, only when stdout is a TTY.

        Piped runs stay silent so wrapper scripts see only the result.

        Args:
            message: The progress text, e.g. ``"Contacting the token endpoint ..."``.
        """
        if not self._quiet and _is_tty():
            self._emit(message, f"[dim]{message}[/dim]")


def _is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _should_disable_color() -> bool:
    """True when ``NO_COLOR`` is set (any value) or ``TERM=dumb``."""
    if os.environ.get("NO_COLOR") is not None:
        return True
    return os.environ.get("TERM") == "dumb"


def configure_logging(output: OutputManager) -> None:
    """Send ``logging`` records for the ``syncauth`` package to stderr.

    Records go through a :class:`~rich.logging.RichHandler` bound to the
    manager's stderr console: DEBUG and up with ``--verbose``, WARNING and
    up otherwise.
    """
    logger = logging.getLogger("syncauth")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = RichHandler(
        console=output.stderr_console,
        show_path=False,
        show_time=output.is_verbose,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if output.is_verbose else logging.WARNING)
    logger.propagate = False


# ------------------------------------------------------------------ #
# Global output instance (set during app startup)
# ------------------------------------------------------------------ #

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the global :class:`OutputManager`.

    A default ``AUTO`` manager is created on first use when
    :func:`set_output` has not been called, as in library use.

    Returns:
        The installed (or newly created) manager.
    """
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    """Install *output* as the manager the module helpers write through.

    Args:
        output: The manager built from the global CLI flags.
    """
    global _output
    _output = output


def reset_output() -> None:
    """Drop the global manager. Used by the test suite between tests."""
    global _output
    _output = None


def format_response(data: Any) -> None:
    """Write *data* to stdout through the global manager.

    Args:
        data: A dict, list or string payload.
    """
    get_output().format_response(data)


def print_data(text: str) -> None:
    """Write one raw line to stdout through the global manager."""
    get_output().print_data(text)


def print_table(
    headers: list[str],
    rows: list[list[str]],
    title: Optional[str] = None,
) -> None:
    """Print a table to stdout through the global manager.

    Args:
        headers: Column names.
        rows: One list of cell strings per row.
        title: Table caption, Rich mode only.
    """
    get_output().print_table(headers, rows, title)


def info(message: str) -> None:
    """Status line to stderr via the global manager."""
    get_output().info(message)


def error(message: str) -> None:
    """Error line to stderr via the global manager."""
    get_output().error(message)


def success(message: str) -> None:
    """Success line to stderr via the global manager."""
    get_output().success(message)


def warning(message: str) -> None:
    """Warning line to stderr via the global manager."""
    get_output().warning(message)


def suggest(message: str) -> None:
    """Next-step hint to stderr via the global manager."""
    get_output().suggest(message)


def debug(message: str) -> None:
    """Debug line to stderr via the global manager."""
    get_output().debug(message)


def progress(message: str) -> None:
    """Progress line to stderr via the global manager."""
    get_output().progress(message)
