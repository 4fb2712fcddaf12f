"""Output formatting for the command line interface."""

import json
from typing import Any, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table


class OutputFormatter:
    """Formats command output as rich text or JSON.

    Errors and warnings always go to stderr; informational messages are
    suppressed in quiet mode and in JSON mode so that stdout stays
    machine-readable.
    """

    def __init__(self, json_output: bool = False, quiet: bool = False):
        self.json_output = json_output
        self.quiet = quiet
        self.console = Console(highlight=False)
        self.err_console = Console(stderr=True, highlight=False)

    def _chatty(self) -> bool:
        return not (self.quiet or self.json_output)

    def error(self, message: str) -> None:
        """Print an error message to stderr."""
        self.err_console.print(f"[red]Error: {escape(message)}[/red]")

    def warning(self, message: str) -> None:
        """Print a warning to stderr."""
        self.err_console.print(f"[yellow]Warning: {escape(message)}[/yellow]")

    def notice(self, message: str) -> None:
        """Print a message the user must see, even in quiet or JSON mode."""
        self.err_console.print(message)

    def info(self, message: str) -> None:
        if self._chatty():
            self.console.print(message)

    def success(self, message: str) -> None:
        if self._chatty():
            self.console.print(f"[green]{escape(message)}[/green]")

    def print(self, message: str) -> None:
        """Print regular output (not suppressed by quiet mode)."""
        self.console.print(message, markup=False)

    def progress_message(self, message: str) -> None:
        """Print a transient status message to stderr."""
        if self._chatty():
            self.err_console.print(f"[dim]{escape(message)}[/dim]")

    def output_json(self, data: Any) -> None:
        """Print data as indented JSON on stdout."""
        self.console.print_json(json.dumps(data, ensure_ascii=False, default=str))

    def output_table(
        self,
        rows: list[dict[str, Any]],
        columns: list[str],
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        """Print rows as a table.

        Args:
            rows: Row dictionaries
            columns: Keys to show, in order
            headers: Optional mapping of key to column header
        """
        headers = headers or {}
        table = Table(show_header=True, header_style="bold", box=None)
        for column in columns:
            table.add_column(headers.get(column, column))
        for row in rows:
            table.add_row(*(str(row.get(column, "")) for column in columns))
        self.console.print(table)
