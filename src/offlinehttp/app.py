"""Typer application and console entry point for offlinehttp.

The ``offlinehttp`` command inspects and maintains request caches on disk:

* ``offlinehttp cache stats|list|flush|fetch`` -- see
  :mod:`offlinehttp.commands.cache`.
* ``offlinehttp config show|set|reset`` -- see
  :mod:`offlinehttp.commands.config`.

:func:`main` is the console-script entry point declared in
``pyproject.toml``. :class:`~offlinehttp.exceptions.OfflineHttpError`
exits with the error's code; any other exception is written to a crash log
under the data directory.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from offlinehttp import __version__
from offlinehttp.commands.cache import cache_app
from offlinehttp.commands.config import config_app
from offlinehttp.exit_codes import EXIT_GENERIC_FAILURE

app = typer.Typer(
    name="offlinehttp",
    help="Inspect and maintain offline HTTP request caches.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

app.add_typer(cache_app, name="cache", help="Request cache inspection and maintenance.")
app.add_typer(config_app, name="config", help="Configuration management.")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"offlinehttp {__version__}")
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
    instance: Optional[str] = typer.Option(
        None, "--instance", "-i", help="Exclusive cache instance name."
    ),
    key_prefix: Optional[str] = typer.Option(
        None, "--key-prefix", help="Key prefix scoping the shared store namespace."
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output and library logging."
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmations."),
) -> None:
    """Root callback executed before every sub-command.

    Installs the :class:`~offlinehttp.output.OutputManager`, routes library
    logging to stderr, and stores the namespace overrides in ``ctx.obj`` for
    :func:`~offlinehttp.config.resolve_config`.
    """
    from offlinehttp.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    output = OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose)
    output.configure_logging()
    set_output(output)

    ctx.ensure_object(dict)
    ctx.obj["instance"] = instance
    ctx.obj["key_prefix"] = key_prefix
    ctx.obj["force"] = force
    ctx.obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write the current traceback to ``<data_dir>/logs`` and return the path."""
    from offlinehttp.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(
        "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    )
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``offlinehttp`` console script.

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
        sys.exit(130)
    except Exception as exc:
        from offlinehttp.exceptions import OfflineHttpError
        from offlinehttp.output import error

        if isinstance(exc, OfflineHttpError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
