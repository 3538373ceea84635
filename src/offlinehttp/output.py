"""Terminal output for the ``offlinehttp`` command line.

* **stdout** -- command results only (payloads, stats, key listings).
* **stderr** -- diagnostics: status messages, warnings, errors and, with
  ``--verbose``, the library's log records.

:class:`OutputManager` is created once per invocation in
:func:`~offlinehttp.app.main_callback` and installed with
:func:`set_output`; commands reach it through :func:`get_output` or the
module-level shortcuts. The library itself never prints, it only logs.
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


class OutputFormat(str, Enum):
    """Supported output formats. ``AUTO`` picks ``RICH`` on a colour TTY."""

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


class OutputManager:
    """Routes command output to stdout and diagnostics to stderr.

    Args:
        format: Desired output format; ``AUTO`` resolves by TTY detection.
        no_color: Disable colour and Rich markup.
        quiet: Suppress informational messages on stderr.
        verbose: Show debug messages and library log records on stderr.
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
        return self._format

    @property
    def is_quiet(self) -> bool:
        return self._quiet

    @property
    def is_verbose(self) -> bool:
        return self._verbose

    # ------------------------------------------------------------------ #
    # Data output (stdout)
    # ------------------------------------------------------------------ #

    def print_data(self, text: str) -> None:
        print(text, file=sys.stdout, flush=True)

    def print_record(self, record: dict[str, Any]) -> None:
        """Print a flat mapping such as cache statistics."""
        if self._format == OutputFormat.JSON:
            self.print_data(json.dumps(record, indent=2, ensure_ascii=False, default=str))
        elif self._format == OutputFormat.PLAIN:
            for key, value in record.items():
                self.print_data(f"{key}\t{value}")
        else:
            table = Table(show_header=False, box=None)
            table.add_column(style="bold cyan")
            table.add_column()
            for key, value in record.items():
                table.add_row(str(key), str(value))
            self._stdout.print(table)

    def print_table(
        self,
        headers: list[str],
        rows: list[list[str]],
        title: Optional[str] = None,
    ) -> None:
        """Print rows as a Rich table, JSON records, or tab-separated lines."""
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

    def print_payload(self, payload: Any, content_type: str = "") -> None:
        """Print a response payload.

        Binary payloads are not written to the terminal; a size note goes to
        stderr instead. Text is printed verbatim, JSON is pretty-printed in
        Rich and JSON modes.
        """
        if isinstance(payload, bytes):
            self.info(f"<{len(payload)} bytes of {content_type or 'binary data'}>")
            return
        if isinstance(payload, str) and self._format != OutputFormat.PLAIN:
            try:
                payload = json.loads(payload)
            except (json.JSONDecodeError, TypeError):
                self.print_data(payload)
                return
        if isinstance(payload, str):
            self.print_data(payload)
            return
        text = json.dumps(payload, indent=2, ensure_ascii=False, default=str)
        if self._format == OutputFormat.RICH:
            self._stdout.print(Syntax(text, "json", theme="monokai", word_wrap=True))
        else:
            self.print_data(text)

    # ------------------------------------------------------------------ #
    # Diagnostics (stderr)
    # ------------------------------------------------------------------ #

    def info(self, message: str) -> None:
        """Informational message. Suppressed by ``--quiet``."""
        if not self._quiet:
            self._diag(message, message)

    def success(self, message: str) -> None:
        if not self._quiet:
            self._diag(message, f"[green]{message}[/green]")

    def warning(self, message: str) -> None:
        """Warning. Not suppressed by ``--quiet``."""
        self._diag(f"Warning: {message}", f"[yellow]Warning:[/yellow] {message}")

    def error(self, message: str) -> None:
        """Error. Never suppressed."""
        self._diag(f"Error: {message}", f"[bold red]Error:[/bold red] {message}")

    def debug(self, message: str) -> None:
        if self._verbose:
            self._diag(f"[debug] {message}", f"[dim]\\[debug] {message}[/dim]")

    def _diag(self, plain: str, markup: str) -> None:
        if self._no_color:
            print(plain, file=sys.stderr, flush=True)
        else:
            self._stderr.print(markup)

    # ------------------------------------------------------------------ #
    # Logging
    # ------------------------------------------------------------------ #

    def configure_logging(self) -> None:
        """Route ``offlinehttp`` log records to stderr.

        Verbose runs see everything from DEBUG up, others only warnings and
        errors. Calling this again replaces the previously installed handler.
        """
        package_logger = logging.getLogger("offlinehttp")
        for handler in list(package_logger.handlers):
            if getattr(handler, "_offlinehttp_cli", False):
                package_logger.removeHandler(handler)
        handler = RichHandler(
            console=self._stderr,
            show_time=False,
            show_path=self._verbose,
            markup=False,
        )
        handler._offlinehttp_cli = True  # type: ignore[attr-defined]
        package_logger.addHandler(handler)
        package_logger.setLevel(logging.DEBUG if self._verbose else logging.WARNING)


# ------------------------------------------------------------------ #
# Module-level helpers
# ------------------------------------------------------------------ #


def _is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _should_disable_color() -> bool:
    """True when ``NO_COLOR`` is set (any value) or ``TERM=dumb``."""
    if os.environ.get("NO_COLOR") is not None:
        return True
    return os.environ.get("TERM") == "dumb"


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
    """Forget the installed manager. Used by the test suite."""
    global _output
    _output = None


def info(message: str) -> None:
    get_output().info(message)


def success(message: str) -> None:
    get_output().success(message)


def warning(message: str) -> None:
    get_output().warning(message)


def error(message: str) -> None:
    get_output().error(message)


def debug(message: str) -> None:
    get_output().debug(message)
