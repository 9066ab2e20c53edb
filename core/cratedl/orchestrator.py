"""Batch orchestrator for concurrent specifier processing.

The orchestrator validates a batch up front, then runs one
:class:`~cratedl.pipeline.SpecifierPipeline` task per specifier with bounded
parallelism and collects the outcomes in input order.

Key features:
    - Usage errors are rejected before any network activity
    - Bounded parallelism via an asyncio semaphore (``max_concurrent``)
    - One index query per crate name per run (shared :class:`IndexCache`)
    - Per-specifier failures are recorded and never abort the batch
"""

from __future__ import annotations

import asyncio
import contextlib
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import aiohttp
import structlog

from .cache import CacheProbe
from .errors import BatchConfigurationError
from .fetcher import HttpArchiveFetcher, default_user_agent
from .index import ArchiveLocator, IndexCache, SparseIndexClient
from .models import (
    BatchOptions,
    BatchSummary,
    DownloaderConfig,
    OutcomeStatus,
    SpecifierOutcome,
    Stage,
)
from .pipeline import INTERNAL_ERROR_KIND, SpecifierPipeline
from .writer import OutputWriter

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .interfaces import ArchiveSource, IndexSource
    from .models import Specifier
    from .streaming import EventObserver

logger = structlog.get_logger(__name__)


class BatchOrchestrator:
    """Runs a batch of specifiers.

    Network collaborators can be injected; whatever is not injected is built
    on a shared aiohttp session opened for the duration of :meth:`run`.

    Example:
        >>> orchestrator = BatchOrchestrator(DownloaderConfig(), BatchOptions(extract=True))
        >>> summary = await orchestrator.run([Specifier.parse("serde@1")])
        >>> summary.exit_code
        0
    """

    def __init__(
        self,
        config: DownloaderConfig | None = None,
        options: BatchOptions | None = None,
        index_source: IndexSource | None = None,
        archive_source: ArchiveSource | None = None,
        cache_probe: CacheProbe | None = None,
        observer: EventObserver | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: Downloader configuration.
            options: Per-run options from the command line.
            index_source: Index to query. Defaults to a sparse HTTP client.
            archive_source: Archive downloader. Defaults to an HTTP fetcher.
            cache_probe: Local cache lookups. Defaults to one built from config.
            observer: Receives pipeline events of every specifier.
        """
        self.config = config or DownloaderConfig()
        self.options = options or BatchOptions()
        self._index_source = index_source
        self._archive_source = archive_source
        self._cache_probe = cache_probe
        self.observer = observer
        self._log = logger.bind(component="batch_orchestrator")

    def validate(self, specifiers: Sequence[Specifier]) -> None:
        """Check the batch before any work starts.

        Raises:
            BatchConfigurationError: If ``--output`` is combined with more
                than one specifier.
        """
        if self.options.output is not None and len(specifiers) > 1:
            raise BatchConfigurationError(
                "--output can only be used with a single crate",
                hint="drop --output to use default <name>-<version> paths",
            )

    async def run(self, specifiers: Sequence[Specifier]) -> BatchSummary:
        """Run every specifier and summarize the results.

        Args:
            specifiers: Parsed specifiers in input order.

        Returns:
            BatchSummary with one outcome per specifier, in input order.

        Raises:
            BatchConfigurationError: If the batch is inconsistent. Raised
                before any network activity.
        """
        self.validate(specifiers)

        run_id = str(uuid.uuid4())[:8]
        start_time = datetime.now(tz=UTC)
        self._log.info(
            "run_started",
            run_id=run_id,
            specifier_count=len(specifiers),
            max_concurrent=self.config.max_concurrent,
            extract=self.options.extract,
        )

        async with contextlib.AsyncExitStack() as stack:
            index_source = self._index_source
            archive_source = self._archive_source
            if index_source is None or archive_source is None:
                session = await stack.enter_async_context(aiohttp.ClientSession())
                user_agent = self.config.user_agent or default_user_agent()
                if index_source is None:
                    index_source = SparseIndexClient(
                        session,
                        self.config.index_url,
                        user_agent=user_agent,
                        timeout_seconds=self.config.timeout_seconds,
                    )
                if archive_source is None:
                    archive_source = HttpArchiveFetcher.from_config(
                        session, self.config, user_agent
                    )
            outcomes = await self._run_all(specifiers, index_source, archive_source)

        summary = BatchSummary(
            run_id=run_id,
            start_time=start_time,
            end_time=datetime.now(tz=UTC),
            outcomes=outcomes,
        )
        self._log.info(
            "run_completed",
            run_id=run_id,
            total=summary.total,
            succeeded=summary.succeeded,
            failed=summary.failed,
            duration_seconds=summary.total_duration_seconds,
        )
        return summary

    async def _run_all(
        self,
        specifiers: Sequence[Specifier],
        index_source: IndexSource,
        archive_source: ArchiveSource,
    ) -> list[SpecifierOutcome]:
        pipeline = SpecifierPipeline(
            locator=ArchiveLocator(index_source, IndexCache()),
            archive_source=archive_source,
            cache_probe=self._cache_probe or CacheProbe.from_config(self.config),
            writer=OutputWriter(overwrite_existing=self.config.overwrite_existing),
            options=self.options,
            output_dir=self.config.output_dir,
            observer=self.observer,
        )
        semaphore = asyncio.Semaphore(self.config.max_concurrent)

        async def bounded(specifier: Specifier) -> SpecifierOutcome:
            async with semaphore:
                return await pipeline.run(specifier)

        tasks = [
            asyncio.create_task(bounded(specifier), name=f"crate-{specifier}")
            for specifier in specifiers
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        outcomes: list[SpecifierOutcome] = []
        for specifier, result in zip(specifiers, results, strict=True):
            if isinstance(result, Exception):
                self._log.error(
                    "specifier_exception", specifier=str(specifier), error=str(result)
                )
                now = datetime.now(tz=UTC)
                outcomes.append(
                    SpecifierOutcome(
                        specifier=str(specifier),
                        status=OutcomeStatus.FAILED,
                        stage=Stage.FAILED,
                        start_time=now,
                        end_time=now,
                        error_kind=INTERNAL_ERROR_KIND,
                        error_message=str(result) or type(result).__name__,
                    )
                )
            elif isinstance(result, BaseException):
                raise result
            else:
                outcomes.append(result)
        return outcomes
