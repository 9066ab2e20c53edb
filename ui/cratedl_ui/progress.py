"""Progress display component using Rich."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.live import Live
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TransferSpeedColumn,
)

from cratedl.models import Stage
from cratedl.streaming import CompletionEvent, PipelineEvent, ProgressEvent, StageEvent

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable

STAGE_LABELS = {
    Stage.PENDING: "[dim]⏳ Pending...[/dim]",
    Stage.LOCATING: "Looking up...",
    Stage.SELECTING: "Selecting version...",
    Stage.CACHE_CHECK: "Checking cache...",
    Stage.FETCHING: "Downloading...",
    Stage.VERIFYING: "Verifying...",
    Stage.WRITING: "Writing...",
}


class ProgressDisplay:
    """Real-time progress display for a download batch.

    Uses Rich's Live display to show one row per specifier with its current
    stage, a byte progress bar and the transfer speed. Feed it pipeline
    events through :meth:`handle_event`.
    """

    def __init__(self, console: Console | None = None) -> None:
        """Initialize the progress display.

        Args:
            console: Optional Rich console to use. Creates one if not provided.
        """
        self.console = console or Console(stderr=True)
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.fields[specifier]}"),
            TextColumn("{task.fields[status]}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            console=self.console,
        )
        self._live: Live | None = None
        self._tasks: dict[str, TaskID] = {}

    async def __aenter__(self) -> ProgressDisplay:
        """Start the live display."""
        self._live = Live(
            self._progress,
            console=self.console,
            refresh_per_second=10,
        )
        self._live.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Stop the live display."""
        if self._live:
            self._live.stop()
            self._live = None

    def add_pending(self, specifiers: Iterable[str]) -> None:
        """Add rows for specifiers waiting for a concurrency slot.

        Args:
            specifiers: Specifier labels, in input order.
        """
        for specifier in specifiers:
            if specifier in self._tasks:
                continue
            self._tasks[specifier] = self._progress.add_task(
                specifier,
                total=None,
                specifier=specifier,
                status=STAGE_LABELS[Stage.PENDING],
                start=False,  # Don't start the task yet
            )

    def _task_for(self, specifier: str) -> TaskID:
        if specifier not in self._tasks:
            self.add_pending([specifier])
        return self._tasks[specifier]

    def handle_event(self, event: PipelineEvent) -> None:
        """Apply a pipeline event to the display.

        Suitable as the orchestrator's observer callback.
        """
        task_id = self._task_for(event.specifier)

        if isinstance(event, StageEvent):
            if event.stage in (Stage.DONE, Stage.FAILED):
                return
            self._progress.start_task(task_id)
            self._progress.update(task_id, status=STAGE_LABELS.get(event.stage, event.message))

        elif isinstance(event, ProgressEvent):
            self._progress.update(
                task_id,
                total=event.bytes_total,
                completed=event.bytes_downloaded,
            )

        elif isinstance(event, CompletionEvent):
            self.complete(event.specifier, success=event.success, message=event.message)

    def complete(self, specifier: str, *, success: bool, message: str | None = None) -> None:
        """Mark a specifier as complete.

        Args:
            specifier: Specifier label.
            success: Whether the specifier succeeded.
            message: Optional completion message.
        """
        task_id = self._task_for(specifier)
        task = self._progress.tasks[self._progress.task_ids.index(task_id)]
        total = task.total if task.total is not None else task.completed
        status = message or ("✓ Complete" if success else "✗ Failed")
        style = "green" if success else "red"
        self._progress.update(
            task_id,
            total=total,
            completed=total,
            status=f"[{style}]{status}[/{style}]",
        )
        self._progress.stop_task(task_id)


@asynccontextmanager
async def progress_display(
    console: Console | None = None,
) -> AsyncIterator[ProgressDisplay]:
    """Context manager for progress display.

    Args:
        console: Optional Rich console to use.

    Yields:
        ProgressDisplay instance.
    """
    display = ProgressDisplay(console)
    async with display:
        yield display
