"""Per-specifier download pipeline.

Each specifier walks an explicit state machine::

    LOCATING -> SELECTING -> CACHE_CHECK -> [FETCHING] -> VERIFYING -> WRITING -> DONE
                                                                               \\-> FAILED

Every transition is emitted as a :class:`~cratedl.streaming.StageEvent`.
Failures are caught here and turned into a failed
:class:`~cratedl.models.SpecifierOutcome` so one bad specifier never aborts the
rest of the batch.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from .errors import CrateDlError
from .models import (
    BatchOptions,
    OutcomeStatus,
    OutputKind,
    OutputTarget,
    SpecifierOutcome,
    Stage,
)
from .selector import select_version
from .streaming import (
    CompletionEvent,
    EventObserver,
    EventType,
    ProgressEvent,
    StageEvent,
    emit,
)
from .verify import verify_checksum

if TYPE_CHECKING:
    from pathlib import Path

    from .cache import CacheProbe
    from .index import ArchiveLocator
    from .interfaces import ArchiveSource
    from .models import ResolvedArchive, Specifier
    from .writer import OutputWriter

logger = structlog.get_logger(__name__)

INTERNAL_ERROR_KIND = "internal-error"


@dataclass
class _RunState:
    """Mutable bookkeeping for one pipeline run."""

    label: str
    start_time: datetime
    stage: Stage = Stage.PENDING
    name: str | None = None
    version: str | None = None
    from_cache: bool = False
    bytes_downloaded: int = 0


class SpecifierPipeline:
    """Runs one specifier from index lookup to persisted output.

    The collaborators are shared by every specifier of a batch; all
    per-specifier state lives in the coroutine.
    """

    def __init__(
        self,
        locator: ArchiveLocator,
        archive_source: ArchiveSource,
        cache_probe: CacheProbe,
        writer: OutputWriter,
        options: BatchOptions | None = None,
        output_dir: Path | None = None,
        observer: EventObserver | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            locator: Index lookups (shares the batch's index memo).
            archive_source: Fetches archive bytes on a cache miss.
            cache_probe: Local cargo cache lookups.
            writer: Persists verified bytes.
            options: Per-run options.
            output_dir: Base directory for default-named outputs.
            observer: Receives pipeline events.
        """
        self._locator = locator
        self._source = archive_source
        self._cache = cache_probe
        self._writer = writer
        self._options = options or BatchOptions()
        self._output_dir = output_dir
        self._observer = observer
        self._log = logger.bind(component="pipeline")

    async def run(self, specifier: Specifier) -> SpecifierOutcome:
        """Process one specifier.

        Never raises for specifier-scoped failures; they are recorded in the
        returned outcome.
        """
        state = _RunState(label=str(specifier), start_time=datetime.now(tz=UTC))
        log = self._log.bind(specifier=state.label)
        log.debug("specifier_started")

        try:
            archive, target = await self._execute(specifier, state)
        except CrateDlError as e:
            log.warning(
                "specifier_failed", kind=e.kind, error=str(e), stage=state.stage.value
            )
            return self._failure(state, e.kind, str(e), e.hint)
        except Exception as e:
            log.exception("specifier_internal_error", stage=state.stage.value)
            return self._failure(state, INTERNAL_ERROR_KIND, str(e) or type(e).__name__, None)

        extracted = target.kind == OutputKind.DIRECTORY
        verb = "extracted" if extracted else "downloaded"
        message = f"{verb} {archive.name} {archive.version} to {target.path}"
        self._enter(state, Stage.DONE, message)
        emit(
            self._observer,
            CompletionEvent(
                event_type=EventType.COMPLETION,
                specifier=state.label,
                success=True,
                message=message,
            ),
        )
        log.info(
            "specifier_completed",
            crate=archive.name,
            version=archive.version,
            path=str(target.path),
            from_cache=state.from_cache,
        )

        return SpecifierOutcome(
            specifier=state.label,
            status=OutcomeStatus.SUCCESS,
            stage=Stage.DONE,
            start_time=state.start_time,
            end_time=datetime.now(tz=UTC),
            name=archive.name,
            version=archive.version,
            output_path=target.path,
            extracted=extracted,
            from_cache=state.from_cache,
            bytes_downloaded=state.bytes_downloaded,
        )

    async def _execute(
        self, specifier: Specifier, state: _RunState
    ) -> tuple[ResolvedArchive, OutputTarget]:
        self._enter(state, Stage.LOCATING, f"looking up {specifier.name}")
        entries = await self._locator.locate(specifier.name)

        self._enter(state, Stage.SELECTING, f"selecting a version of {specifier.name}")
        entry = select_version(
            entries, specifier.constraint, allow_yanked=self._options.allow_yanked
        )
        state.name, state.version = entry.name, entry.version
        if entry.yanked:
            self._log.warning("selected_yanked_version", crate=entry.name, version=entry.version)

        archive = await self._locator.resolve(entry)
        target = OutputTarget.for_archive(
            archive,
            extract=self._options.extract,
            output=self._options.output,
            output_dir=self._output_dir,
        )

        self._enter(state, Stage.CACHE_CHECK, f"checking cache for {archive.stem}")
        data = await asyncio.to_thread(
            self._cache.probe, archive.name, archive.version, archive.checksum
        )

        if data is None:
            self._enter(state, Stage.FETCHING, f"downloading {archive.name} {archive.version}")
            data = await self._source.fetch(
                archive.url, on_progress=lambda done, total: self._progress(state, done, total)
            )
            state.bytes_downloaded = len(data)
        else:
            state.from_cache = True

        self._enter(state, Stage.VERIFYING, f"verifying {archive.stem}")
        await asyncio.to_thread(verify_checksum, data, archive.checksum)

        self._enter(state, Stage.WRITING, f"writing {target.path}")
        await asyncio.to_thread(self._writer.write, data, archive, target)
        return archive, target

    def _enter(self, state: _RunState, stage: Stage, message: str) -> None:
        state.stage = stage
        self._log.debug("stage_entered", specifier=state.label, stage=stage.value)
        emit(
            self._observer,
            StageEvent(
                event_type=EventType.STAGE,
                specifier=state.label,
                stage=stage,
                message=message,
            ),
        )

    def _progress(self, state: _RunState, done: int, total: int | None) -> None:
        state.bytes_downloaded = done
        emit(
            self._observer,
            ProgressEvent(
                event_type=EventType.PROGRESS,
                specifier=state.label,
                bytes_downloaded=done,
                bytes_total=total,
            ),
        )

    def _failure(
        self, state: _RunState, kind: str, message: str, hint: str | None
    ) -> SpecifierOutcome:
        failed_at = state.stage
        emit(
            self._observer,
            StageEvent(
                event_type=EventType.STAGE,
                specifier=state.label,
                stage=Stage.FAILED,
                message=message,
            ),
        )
        emit(
            self._observer,
            CompletionEvent(
                event_type=EventType.COMPLETION,
                specifier=state.label,
                success=False,
                message=message,
                error_kind=kind,
                hint=hint,
            ),
        )
        return SpecifierOutcome(
            specifier=state.label,
            status=OutcomeStatus.FAILED,
            stage=failed_at,
            start_time=state.start_time,
            end_time=datetime.now(tz=UTC),
            name=state.name,
            version=state.version,
            from_cache=state.from_cache,
            bytes_downloaded=state.bytes_downloaded,
            error_kind=kind,
            error_message=message,
            hint=hint,
        )
