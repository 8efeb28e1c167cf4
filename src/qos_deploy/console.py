"""Operator-facing output: coloured severity lines mirrored into the log file."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from qos_deploy.logging_config import OPERATOR_LOGGER_NAME

LOGGER = logging.getLogger(OPERATOR_LOGGER_NAME)


class Reporter:
    """Prints `[INFO]`, `[WARN]`, `[ERROR]` and `[STEP]` lines.

    Warnings are counted so the workflow can mention them in the final
    summary without changing the exit code.
    """

    def __init__(self, console: Console | None = None, *, mirror_to_log: bool = True) -> None:
        self.console = console if console is not None else Console(highlight=False, soft_wrap=True)
        self._mirror_to_log = mirror_to_log
        self.warning_count = 0
        self.error_count = 0

    def info(self, message: str) -> None:
        self.console.print(f"[green]\\[INFO][/green] {escape(message)}")
        self._log(logging.INFO, message)

    def warn(self, message: str) -> None:
        self.warning_count += 1
        self.console.print(f"[yellow]\\[WARN][/yellow] {escape(message)}")
        self._log(logging.WARNING, message)

    def error(self, message: str) -> None:
        self.error_count += 1
        self.console.print(f"[red]\\[ERROR][/red] {escape(message)}")
        self._log(logging.ERROR, message)

    def step(self, message: str) -> None:
        self.console.print(f"[blue]\\[STEP][/blue] {escape(message)}")
        self._log(logging.INFO, f"step: {message}")

    def raw(self, text: str) -> None:
        """Print command output verbatim (kubectl tables, cluster-info)."""
        if text.strip():
            self.console.print(escape(text.rstrip()))

    def detail(self, text: str) -> None:
        self.console.print(f"  {escape(text)}")

    def table(self, table: Table) -> None:
        self.console.print(table)

    def _log(self, level: int, message: str) -> None:
        if self._mirror_to_log:
            LOGGER.log(level, message)
