"""Typer application and CLI entry point for syncauth.

This module wires together the top-level Typer application and mounts the
built-in sub-command groups (``auth``, ``config``).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers and invokes the Typer app.
A :class:`~syncauth.exceptions.SyncauthError` escaping a command exits with
its ``exit_code``; any other exception is written to a crash log under the
data directory.

See Also:
    :mod:`syncauth.config`: Configuration resolution.
    :mod:`syncauth.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import TYPE_CHECKING, Any

import typer

from syncauth import __version__
from syncauth.exit_codes import EXIT_CANCELLED, EXIT_GENERIC_FAILURE

if TYPE_CHECKING:
    from syncauth.output import OutputFormat


app = typer.Typer(
    name="syncauth",
    help="Obtain a Google Drive refresh token via OAuth2 + PKCE on a loopback redirect.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

# ------------------------------------------------------------------ #
# Sub-commands
# ------------------------------------------------------------------ #

from syncauth.commands.auth import auth_app  # noqa: E402
from syncauth.commands.config import config_app  # noqa: E402

app.add_typer(auth_app, name="auth", help="Authorization management.")
app.add_typer(config_app, name="config", help="Configuration management.")


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"syncauth {__version__}")
        raise typer.Exit()


def _configured_format() -> OutputFormat:
    """Return ``output.format`` from the user config, or ``AUTO``.

    A config file that does not load falls back to ``AUTO`` here; the
    commands that read the config report the error themselves.
    """
    from syncauth.config import load_global_config
    from syncauth.exceptions import ConfigError
    from syncauth.output import OutputFormat

    try:
        return OutputFormat(load_global_config().output.format)
    except ConfigError:
        return OutputFormat.AUTO


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
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Skip confirmations."
    ),
    no_input: bool = typer.Option(
        False, "--no-input", help="Disable interactive prompts."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~syncauth.output.OutputManager` from
    CLI flags, routes ``logging`` records to stderr, and stores shared
    options in the Typer context so sub-commands can read them via
    ``ctx.obj``.
    """
    from syncauth.output import OutputFormat, OutputManager, configure_logging, set_output

    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN
    else:
        fmt = _configured_format()

    output = OutputManager(
        format=fmt,
        no_color=no_color,
        quiet=quiet,
        verbose=verbose,
    )
    set_output(output)
    configure_logging(output)

    ctx.ensure_object(dict)
    ctx.obj["force"] = force
    ctx.obj["no_input"] = no_input
    ctx.obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly.

    Raising :class:`SystemExit` inside a running ``auth login`` unwinds the
    event loop, which cancels the session and releases the loopback port.
    """

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_CANCELLED)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from syncauth.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(
        "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    )
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``syncauth`` console script.

    Unhandled :class:`~syncauth.exceptions.SyncauthError` instances cause a
    clean exit with the error's ``exit_code``. All other exceptions produce
    a crash log and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_CANCELLED)
    except Exception as exc:
        from syncauth.exceptions import SyncauthError
        from syncauth.output import error

        if isinstance(exc, SyncauthError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
