"""Panel components for displaying summaries using Rich."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

if TYPE_CHECKING:
    from cratedl.models import BatchSummary


class SummaryPanel:
    """Summary panel showing the overall batch status.

    Displays:
    - Success/failure counts
    - Crates served from the local cache
    - One line per failure with its hint
    - Total duration
    """

    def __init__(
        self,
        summary: BatchSummary | None = None,
        console: Console | None = None,
    ) -> None:
        """Initialize the summary panel.

        Args:
            summary: Optional batch summary.
            console: Optional Rich console to use.
        """
        self.console = console or Console()
        self._summary = summary

    def set_summary(self, summary: BatchSummary) -> None:
        self._summary = summary

    def _format_duration(self, seconds: float) -> str:
        """Format duration in human-readable form.

        Args:
            seconds: Duration in seconds.

        Returns:
            Formatted duration string.
        """
        if seconds < 60:
            return f"{seconds:.1f} seconds"
        minutes = int(seconds // 60)
        secs = seconds % 60
        return f"{minutes}m {secs:.0f}s"

    def build_panel(self) -> Panel:
        """Build the Rich panel.

        Returns:
            Rich Panel object.
        """
        summary = self._summary
        if summary is None or summary.total == 0:
            return Panel(Text("No results"), title="Download Summary", border_style="dim")

        lines: list[Text] = []

        # Status line
        status_parts: list[str] = []
        if summary.succeeded > 0:
            status_parts.append(f"[green]✓ {summary.succeeded} succeeded[/green]")
        if summary.failed > 0:
            status_parts.append(f"[red]✗ {summary.failed} failed[/red]")
        lines.append(Text.from_markup("  ".join(status_parts)))

        cached = sum(1 for o in summary.outcomes if o.success and o.from_cache)
        if cached > 0:
            lines.append(Text.from_markup(f"📦 [bold]{cached}[/bold] served from the cargo cache"))

        for failure in summary.failures:
            lines.append(
                Text.from_markup(
                    f"[red]{escape(failure.specifier)}[/red]: {escape(failure.error_message or '')}"
                )
            )
            if failure.hint:
                lines.append(Text.from_markup(f"  [dim]hint: {escape(failure.hint)}[/dim]"))

        duration = summary.total_duration_seconds
        if duration is not None:
            lines.append(
                Text.from_markup(f"⏱  Total time: [bold]{self._format_duration(duration)}[/bold]")
            )

        if summary.failed > 0:
            border_style = "red"
            title = "⚠️  Download Summary"
        else:
            border_style = "green"
            title = "✅ Download Summary"

        return Panel(
            Group(*lines),
            title=title,
            border_style=border_style,
            padding=(1, 2),
        )

    def render(self) -> None:
        """Render the panel to the console."""
        self.console.print(self.build_panel())

    def __rich__(self) -> Panel:
        """Rich protocol support."""
        return self.build_panel()
