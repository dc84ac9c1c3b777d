"""Terminal output with strict stdout/stderr discipline.

Follows `clig.dev <https://clig.dev/>`_ conventions:

* **stdout** -- primary data only (the access token, discovery documents,
  profile listings). This is what shell scripts capture.
* **stderr** -- all diagnostics (device-flow instructions, status,
  warnings, errors) and interactive prompts.
* **Colour control** -- respects ``NO_COLOR``, ``TERM=dumb``, and the
  ``--no-color`` CLI flag.

The module exposes two layers:

1. :class:`OutputManager` -- holds the Rich consoles and quiet/JSON flags.
   Created once in :func:`~tokenflow.app.main_callback` and installed via
   :func:`set_output`.
2. Module-level helpers (:func:`info`, :func:`error`, :func:`prompt`,
   etc.) that delegate to the global instance.

:func:`configure_logging` attaches a :class:`rich.logging.RichHandler` to
the ``tokenflow`` logger; the library itself never configures handlers.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from tokenflow.exceptions import ConfigurationError


class OutputManager:
    """Central manager for CLI output.

    Args:
        no_color: Disable all colour and Rich markup.
        quiet: Suppress informational messages on stderr.
        json_output: Print structured data as JSON instead of tables.
    """

    def __init__(
        self,
        no_color: bool = False,
        quiet: bool = False,
        json_output: bool = False,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._json = json_output
        self._stdout = Console(file=sys.stdout, no_color=self._no_color, highlight=False)
        self._stderr = Console(
            file=sys.stderr, no_color=self._no_color, stderr=True, highlight=False
        )

    @property
    def is_quiet(self) -> bool:
        return self._quiet

    @property
    def no_color(self) -> bool:
        return self._no_color

    # ------------------------------------------------------------------ #
    # Data output (stdout)
    # ------------------------------------------------------------------ #

    def print_data(self, text: str) -> None:
        """Print raw text to stdout, unformatted."""
        print(text, file=sys.stdout, flush=True)

    def print_json(self, data: Any) -> None:
        """Print *data* as indented JSON to stdout."""
        self.print_data(json.dumps(data, indent=2, ensure_ascii=False, default=str))

    def print_table(
        self,
        headers: list[str],
        rows: list[list[str]],
        title: Optional[str] = None,
    ) -> None:
        """Print tabular data to stdout.

        JSON mode emits an array of objects keyed by header names; plain
        (no colour) mode emits tab-separated lines; otherwise a Rich
        :class:`~rich.table.Table` is rendered.
        """
        if self._json:
            self.print_json([dict(zip(headers, row)) for row in rows])
        elif self._no_color:
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

    def info(self, message: str) -> None:
        """Print an informational message to stderr. Suppressed by ``--quiet``."""
        if not self._quiet:
            if self._no_color:
                print(message, file=sys.stderr, flush=True)
            else:
                self._stderr.print(message, markup=False)

    def success(self, message: str) -> None:
        """Print a green success message to stderr. Suppressed by ``--quiet``."""
        if not self._quiet:
            if self._no_color:
                print(message, file=sys.stderr, flush=True)
            else:
                self._stderr.print(f"[green]{escape(message)}[/green]")

    def warning(self, message: str) -> None:
        """Print a yellow warning to stderr. NOT suppressed by ``--quiet``."""
        if self._no_color:
            print(f"Warning: {message}", file=sys.stderr, flush=True)
        else:
            self._stderr.print(f"[yellow]Warning:[/yellow] {escape(message)}")

    def error(self, message: str) -> None:
        """Print a bold-red error to stderr. Never suppressed."""
        if self._no_color:
            print(f"Error: {message}", file=sys.stderr, flush=True)
        else:
            self._stderr.print(f"[bold red]Error:[/bold red] {escape(message)}")

    def prompt(self, message: str) -> str:
        """Show *message* on stderr and read one line from stdin.

        Args:
            message: Prompt text. Printed as-is, without markup.

        Returns:
            The line entered, without the trailing newline.

        Raises:
            ConfigurationError: If stdin is not interactive.
        """
        if not sys.stdin.isatty():
            raise ConfigurationError(
                "Interactive input required but stdin is not a TTY; "
                "configure an automation callback instead"
            )
        sys.stderr.write(message)
        sys.stderr.flush()
        line = sys.stdin.readline()
        return line.rstrip("\n")


# ------------------------------------------------------------------ #
# Logging
# ------------------------------------------------------------------ #


def configure_logging(verbose: bool = False, no_color: bool = False) -> None:
    """Attach a :class:`~rich.logging.RichHandler` to the ``tokenflow`` logger.

    Args:
        verbose: Log at DEBUG instead of WARNING.
        no_color: Render log records without colour.
    """
    logger = logging.getLogger("tokenflow")
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)
    console = Console(file=sys.stderr, stderr=True, no_color=no_color or _should_disable_color())
    handler = RichHandler(console=console, show_path=False, show_time=verbose)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False


# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _should_disable_color() -> bool:
    """Check if color should be disabled per clig.dev.

    Returns True when NO_COLOR env var is set (any value) or TERM=dumb.
    """
    if os.environ.get("NO_COLOR") is not None:
        return True
    return os.environ.get("TERM") == "dumb"


# ------------------------------------------------------------------ #
# Global output instance (set during app startup)
# ------------------------------------------------------------------ #

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the global :class:`OutputManager`, creating a default one lazily."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    """Install *output* as the global :class:`OutputManager` instance."""
    global _output
    _output = output


def reset_output() -> None:
    """Reset the global :class:`OutputManager` to ``None``.

    Primarily useful in test suites to ensure a clean state between tests.
    """
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


def prompt(message: str) -> str:
    """Prompt through the global :class:`OutputManager`; see :meth:`OutputManager.prompt`."""
    return get_output().prompt(message)
