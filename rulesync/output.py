"""Output formatting for the rulesync CLI."""

import json
from typing import Any, Optional

from rich.console import Console
from rich.table import Table


class OutputFormatter:
    """Prints human-readable or JSON output through rich consoles."""

    def __init__(
        self,
        json_output: bool = False,
        quiet: bool = False,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
    ):
        """Initialize output formatter.

        Args:
            json_output: Emit machine-readable JSON instead of text
            quiet: Suppress informational messages
            console: Console for regular output
            err_console: Console for warnings and errors
        """
        self.json_output = json_output
        self.quiet = quiet
        self.console = console or Console(highlight=False)
        self.err_console = err_console or Console(stderr=True, highlight=False)

    def print(self, message: str = "") -> None:
        if not self.json_output:
            self.console.print(message)

    def info(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.console.print(message)

    def success(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.console.print(f"[green]✓[/green] {message}")

    def warning(self, message: str) -> None:
        if not self.json_output:
            self.err_console.print(f"[yellow]Warning:[/yellow] {message}")

    def error(self, message: str) -> None:
        self.err_console.print(f"[red]Error:[/red] {message}")

    def output_json(self, data: Any) -> None:
        self.console.print_json(json.dumps(data))

    def print_stats(self, title: str, stats: dict) -> None:
        """Print a sync summary table (or JSON)."""
        if self.json_output:
            self.output_json(stats)
            return
        if self.quiet:
            return
        table = Table(title=title, show_header=True)
        table.add_column("Added", justify="right")
        table.add_column("Modified", justify="right")
        table.add_column("Deleted", justify="right")
        table.add_column("Total", justify="right")
        table.add_row(
            str(stats.get("added", 0)),
            str(stats.get("modified", 0)),
            str(stats.get("deleted", 0)),
            str(stats.get("total", 0)),
        )
        self.console.print(table)
