"""Table components for displaying results using Rich."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from cratedl.models import OutcomeStatus

if TYPE_CHECKING:
    from cratedl.models import SpecifierOutcome


class ResultsTable:
    """Formatted table for displaying per-specifier outcomes.

    One row per specifier, in input order, with the selected version, where
    the bytes came from, the output path and (for failures) the error.
    """

    def __init__(self, console: Console | None = None, title: str = "Download Results") -> None:
        """Initialize the results table.

        Args:
            console: Optional Rich console to use.
            title: Table title.
        """
        self.console = console or Console()
        self.title = title
        self._results: list[SpecifierOutcome] = []

    def add_result(self, result: SpecifierOutcome) -> None:
        self._results.append(result)

    def add_results(self, results: list[SpecifierOutcome]) -> None:
        self._results.extend(results)

    def clear(self) -> None:
        """Clear all results from the table."""
        self._results.clear()

    def _get_status_style(self, status: OutcomeStatus) -> tuple[str, str]:
        """Get the display text and style for a status.

        Returns:
            Tuple of (display_text, style).
        """
        status_map = {
            OutcomeStatus.SUCCESS: ("✓ Success", "green"),
            OutcomeStatus.FAILED: ("✗ Failed", "red"),
        }
        return status_map.get(status, (str(status), "white"))

    def _format_source(self, result: SpecifierOutcome) -> str:
        if not result.success:
            return "-"
        if result.from_cache:
            return "cache"
        return _format_bytes(result.bytes_downloaded)

    def build_table(self) -> Table:
        """Build the Rich table.

        Returns:
            Rich Table object.
        """
        table = Table(title=self.title, show_header=True, header_style="bold")

        table.add_column("Crate", style="cyan", no_wrap=True)
        table.add_column("Version", justify="right")
        table.add_column("Status", justify="center")
        table.add_column("Source", justify="right")
        table.add_column("Output / Error", style="dim")

        for result in self._results:
            status_text, status_style = self._get_status_style(result.status)
            if result.success:
                detail = str(result.output_path)
            else:
                detail = f"{result.error_kind}: {result.error_message}"

            # Truncate long messages
            if len(detail) > 60:
                detail = detail[:57] + "..."

            table.add_row(
                escape(result.specifier),
                result.version or "-",
                f"[{status_style}]{status_text}[/{status_style}]",
                self._format_source(result),
                escape(detail),
            )

        return table

    def render(self) -> None:
        """Render the table to the console."""
        self.console.print(self.build_table())

    def __rich__(self) -> Table:
        """Rich protocol support."""
        return self.build_table()


def _format_bytes(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KiB"
    return f"{size / (1024 * 1024):.1f} MiB"
