"""Main CLI entry point for crate-dl.

This module defines the Typer application and main commands.

Exit codes:
    0: every specifier succeeded
    1: at least one specifier failed
    2: usage or configuration error (nothing was downloaded)
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import typer
import yaml
from rich.console import Console
from rich.markup import escape

from cratedl.config import ConfigManager
from cratedl.errors import BatchConfigurationError, ConfigFileError, InvalidSpecifierError
from cratedl.models import BatchOptions, Specifier
from cratedl.orchestrator import BatchOrchestrator

from . import __version__
from .log_config import setup_logging

if TYPE_CHECKING:
    from cratedl.models import BatchSummary, DownloaderConfig
    from cratedl.streaming import EventObserver

EXIT_USAGE = 2

# Create the main Typer app
app = typer.Typer(
    name="crate-dl",
    help="Download crate archives from crates.io (or another sparse index).",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Results go to stdout, diagnostics and progress to stderr
console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold blue]crate-dl[/bold blue] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """crate-dl: download or unpack crate archives.

    Resolves CRATE[@VERSION_REQ] specifiers against the index, verifies each
    archive's checksum and writes it as a .crate file or an unpacked directory.
    """


def _get_config_manager(config_path: Path | None = None) -> ConfigManager:
    """Get the configuration manager."""
    return ConfigManager(config_path)


def _create_orchestrator(
    config: DownloaderConfig,
    options: BatchOptions,
    observer: EventObserver | None = None,
) -> BatchOrchestrator:
    """Build the orchestrator for one invocation."""
    return BatchOrchestrator(config, options, observer=observer)


def _usage_error(message: str, hint: str | None = None) -> typer.Exit:
    err_console.print(f"[bold red]error:[/bold red] {escape(message)}", soft_wrap=True)
    if hint:
        err_console.print(f"  [dim]hint: {escape(hint)}[/dim]", soft_wrap=True)
    return typer.Exit(EXIT_USAGE)


def _parse_specifiers(texts: list[str]) -> list[Specifier]:
    specifiers: list[Specifier] = []
    errors: list[str] = []
    for text in texts:
        try:
            specifiers.append(Specifier.parse(text))
        except InvalidSpecifierError as e:
            errors.append(f"invalid crate specifier {text!r}: {e}")
    if errors:
        for message in errors:
            err_console.print(f"[bold red]error:[/bold red] {escape(message)}", soft_wrap=True)
        raise typer.Exit(EXIT_USAGE)
    return specifiers


@app.command()
def dl(
    crates: Annotated[
        list[str],
        typer.Argument(
            metavar="CRATE[@VERSION_REQ]...",
            help="Crates to download, e.g. serde, serde@1.0, 'tokio@>=1.20, <2'.",
            show_default=False,
        ),
    ],
    extract: Annotated[
        bool,
        typer.Option(
            "--extract",
            "-x",
            "-e",
            help="Unpack each archive into a <name>-<version> directory.",
        ),
    ] = False,
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Output file or directory (only with a single crate).",
        ),
    ] = None,
    allow_yanked: Annotated[
        bool,
        typer.Option("--allow-yanked", help="Allow yanked versions to be selected."),
    ] = False,
    no_cache: Annotated[
        bool,
        typer.Option("--no-cache", help="Do not look in the local cargo cache."),
    ] = False,
    overwrite: Annotated[
        bool | None,
        typer.Option(
            "--overwrite/--no-overwrite",
            help="Replace existing default-named outputs (default from config).",
            show_default=False,
        ),
    ] = None,
    jobs: Annotated[
        int | None,
        typer.Option("--jobs", "-j", min=1, help="Maximum concurrent downloads."),
    ] = None,
    index_url: Annotated[
        str | None,
        typer.Option("--index-url", help="Sparse index root URL."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging."),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="No progress display or summary table."),
    ] = False,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Configuration file to use."),
    ] = None,
) -> None:
    """Download crates.

    Each CRATE may carry a version requirement after '@' using Cargo syntax
    (caret by default). Without one, the newest non-yanked, non-prerelease
    version is selected.
    """
    try:
        config = _get_config_manager(config_file).load()
    except ConfigFileError as e:
        raise _usage_error(str(e)) from None

    setup_logging(verbose, config.log_level)
    specifiers = _parse_specifiers(crates)

    overrides: dict[str, Any] = {}
    if no_cache:
        overrides["cache_enabled"] = False
    if overwrite is not None:
        overrides["overwrite_existing"] = overwrite
    if jobs is not None:
        overrides["max_concurrent"] = jobs
    if index_url is not None:
        overrides["index_url"] = index_url
    if overrides:
        config = config.model_copy(update=overrides)

    options = BatchOptions(extract=extract, output=output, allow_yanked=allow_yanked)
    orchestrator = _create_orchestrator(config, options)
    try:
        orchestrator.validate(specifiers)
    except BatchConfigurationError as e:
        raise _usage_error(str(e), e.hint) from None

    show_progress = not quiet and err_console.is_terminal
    summary = asyncio.run(_run_batch(orchestrator, specifiers, show_progress))

    _print_diagnostics(summary)
    if not quiet:
        _print_summary(summary)
    raise typer.Exit(summary.exit_code)


async def _run_batch(
    orchestrator: BatchOrchestrator,
    specifiers: list[Specifier],
    show_progress: bool,
) -> BatchSummary:
    """Run the batch, with a live progress display when requested."""
    if not show_progress:
        return await orchestrator.run(specifiers)

    from cratedl_ui.progress import ProgressDisplay

    async with ProgressDisplay(err_console) as progress:
        progress.add_pending(str(specifier) for specifier in specifiers)
        orchestrator.observer = progress.handle_event
        return await orchestrator.run(specifiers)


def _print_diagnostics(summary: BatchSummary) -> None:
    """Report every failed specifier on stderr."""
    for failure in summary.failures:
        err_console.print(
            f"[bold red]error:[/bold red] {escape(failure.specifier)}: "
            f"{escape(failure.error_message or '')} [dim]({failure.error_kind})[/dim]",
            soft_wrap=True,
        )
        if failure.hint:
            err_console.print(f"  [dim]hint: {escape(failure.hint)}[/dim]", soft_wrap=True)


def _print_summary(summary: BatchSummary) -> None:
    """Print the per-specifier results table and the summary panel."""
    from cratedl_ui.panels import SummaryPanel
    from cratedl_ui.tables import ResultsTable

    table = ResultsTable(console=console)
    table.add_results(summary.outcomes)
    table.render()

    console.print()
    SummaryPanel(summary, console=console).render()


# Create config subcommand group
config_app = typer.Typer(
    name="config",
    help="Manage configuration.",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")


@config_app.command("show")
def config_show(
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Configuration file to use."),
    ] = None,
) -> None:
    """Show the effective configuration."""
    config_manager = _get_config_manager(config_file)
    try:
        config = config_manager.load()
    except ConfigFileError as e:
        raise _usage_error(str(e)) from None

    console.print(f"[bold]Configuration File:[/bold] {config_manager.config_path}", soft_wrap=True)
    console.print()

    yaml_str = yaml.dump(config.model_dump(mode="json"), default_flow_style=False, sort_keys=False)
    console.print(yaml_str, markup=False)


@config_app.command("init")
def config_init(
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Overwrite existing configuration.",
        ),
    ] = False,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Configuration file to create."),
    ] = None,
) -> None:
    """Initialize configuration file."""
    config_manager = _get_config_manager(config_file)

    if config_manager.init_config(force=force):
        console.print(f"[green]Configuration initialized: {config_manager.config_path}[/green]")
    else:
        console.print(
            f"[yellow]Configuration already exists: {config_manager.config_path}[/yellow]"
        )
        console.print("Use --force to overwrite.")


@config_app.command("path")
def config_path() -> None:
    """Show configuration file path."""
    console.print(str(_get_config_manager().config_path), soft_wrap=True)


if __name__ == "__main__":
    app()
