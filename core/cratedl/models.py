"""Core data models for crate-dl.

This module defines Pydantic models for configuration and batch results, and
frozen dataclasses for the values that flow through a specifier's pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime  # noqa: TC003 - needed at runtime by Pydantic
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from .errors import InvalidSpecifierError, InvalidVersionReqError
from .semver import Version, VersionReq, parse_version

DEFAULT_INDEX_URL = "https://index.crates.io/"
DEFAULT_SIZE_LIMIT = 40 * 1024 * 1024  # 40 MiB


class LogLevel(str, Enum):
    """Log level for crate-dl output."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class DownloaderConfig(BaseModel):
    """Configuration for the download pipeline."""

    log_level: LogLevel = Field(default=LogLevel.WARNING, description="Global log level")
    index_url: str = Field(
        default=DEFAULT_INDEX_URL,
        description="Root URL of the sparse index (must serve config.json).",
    )
    cache_enabled: bool = Field(
        default=True,
        description="Look for verified archives in the local cargo cache before downloading.",
    )
    cache_dirs: list[Path] | None = Field(
        default=None,
        description="Explicit cache directories to probe. None = discover under CARGO_HOME.",
    )
    cargo_home: Path | None = Field(
        default=None,
        description="Cargo home directory. None = $CARGO_HOME or ~/.cargo.",
    )
    output_dir: Path | None = Field(
        default=None,
        description="Directory for default-named outputs. None = current directory.",
    )
    overwrite_existing: bool = Field(
        default=True,
        description="Silently replace an existing default-named output.",
    )
    max_concurrent: int = Field(
        default=4,
        ge=1,
        description="Maximum number of specifiers processed concurrently.",
    )
    timeout_seconds: int = Field(default=60, ge=1, description="Per-request timeout in seconds.")
    max_retries: int = Field(
        default=3,
        ge=0,
        description="Maximum number of retry attempts for failed downloads.",
    )
    retry_delay: float = Field(
        default=1.0,
        ge=0,
        description="Initial delay between retries in seconds (exponential backoff).",
    )
    size_limit_bytes: int = Field(
        default=DEFAULT_SIZE_LIMIT,
        ge=1,
        description="Largest archive accepted from the network.",
    )
    user_agent: str | None = Field(
        default=None,
        description="User-Agent header. None = crate-dl/<version>.",
    )


def validate_crate_name(name: str) -> str:
    """Validate a crate name.

    Crate names must be non-empty and consist of alphanumerics, ``-`` and
    ``_``.

    Raises:
        InvalidSpecifierError: Naming the first invalid character and its index.
    """
    if not name:
        raise InvalidSpecifierError("crate name must not be empty")
    for index, char in enumerate(name):
        if not (char.isalnum() or char in "-_"):
            raise InvalidSpecifierError(
                f"invalid character {char!r} at index {index}, "
                "crate names must be alphanumeric or `-_`"
            )
    return name


@dataclass(frozen=True)
class Specifier:
    """A crate name with an optional version requirement.

    Example:
        >>> Specifier.parse("serde@1.0")
        Specifier(name='serde', constraint=VersionReq('^1.0'))
    """

    name: str
    constraint: VersionReq | None = None

    @classmethod
    def parse(cls, text: str) -> Specifier:
        """Parse ``name``, ``name@req`` or the legacy ``name:req`` form.

        Raises:
            InvalidSpecifierError: If the name or requirement is invalid.
        """
        text = text.strip()
        for separator in ("@", ":"):
            if separator in text:
                name, _, req = text.partition(separator)
                try:
                    constraint = VersionReq.parse(req)
                except InvalidVersionReqError as e:
                    raise InvalidSpecifierError(f"invalid version request: {e}") from e
                return cls(validate_crate_name(name), constraint)
        return cls(validate_crate_name(text))

    def __str__(self) -> str:
        if self.constraint is None:
            return self.name
        return f"{self.name}@{self.constraint}"


@dataclass(frozen=True)
class IndexEntry:
    """One published version of a crate as reported by the index."""

    name: str
    version: str
    checksum: str
    yanked: bool = False

    @property
    def semver(self) -> Version | None:
        """Parsed version, or None when the index holds a non-semver string."""
        return parse_version(self.version)


@dataclass(frozen=True)
class ResolvedArchive:
    """The archive chosen for a specifier. Immutable once produced."""

    name: str
    version: str
    checksum: str
    url: str

    @property
    def stem(self) -> str:
        """Canonical ``<name>-<version>`` prefix of the archive and its members."""
        return f"{self.name}-{self.version}"

    @property
    def filename(self) -> str:
        return f"{self.stem}.crate"


class OutputKind(str, Enum):
    """How the archive is persisted."""

    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class OutputTarget:
    """Where a specifier's output goes.

    Attributes:
        path: Final file or directory path.
        kind: FILE for the verbatim archive, DIRECTORY for extraction.
        explicit: True when the path came from ``--output``.
    """

    path: Path
    kind: OutputKind
    explicit: bool = False

    @classmethod
    def for_archive(
        cls,
        archive: ResolvedArchive,
        *,
        extract: bool,
        output: Path | None = None,
        output_dir: Path | None = None,
    ) -> OutputTarget:
        """Derive the target from ``--output`` or from name and version."""
        kind = OutputKind.DIRECTORY if extract else OutputKind.FILE
        if output is not None:
            return cls(path=output, kind=kind, explicit=True)
        name = archive.stem if extract else archive.filename
        base = output_dir or Path()
        return cls(path=base / name, kind=kind)


@dataclass
class BatchOptions:
    """Per-run options that come from the command line.

    Attributes:
        extract: Unpack archives instead of writing ``.crate`` files.
        output: Explicit output path (single-specifier batches only).
        allow_yanked: Allow yanked versions to be chosen.
    """

    extract: bool = False
    output: Path | None = None
    allow_yanked: bool = False


class Stage(str, Enum):
    """States of a specifier's pipeline."""

    PENDING = "pending"
    LOCATING = "locating"
    SELECTING = "selecting"
    CACHE_CHECK = "cache_check"
    FETCHING = "fetching"
    VERIFYING = "verifying"
    WRITING = "writing"
    DONE = "done"
    FAILED = "failed"


class OutcomeStatus(str, Enum):
    """Final status of a specifier."""

    SUCCESS = "success"
    FAILED = "failed"


class SpecifierOutcome(BaseModel):
    """Result of running the pipeline for one specifier."""

    specifier: str = Field(..., description="Canonical specifier label, e.g. serde@^1.0")
    status: OutcomeStatus = Field(..., description="Final status")
    stage: Stage = Field(..., description="Last stage reached")
    start_time: datetime = Field(..., description="Pipeline start time")
    end_time: datetime | None = Field(default=None, description="Pipeline end time")
    name: str | None = Field(default=None, description="Crate name as published")
    version: str | None = Field(default=None, description="Selected version")
    output_path: Path | None = Field(default=None, description="Written file or directory")
    extracted: bool = Field(default=False, description="Whether the archive was unpacked")
    from_cache: bool = Field(default=False, description="Served from the local cargo cache")
    bytes_downloaded: int = Field(default=0, description="Bytes fetched from the network")
    error_kind: str | None = Field(default=None, description="Stable error kind if failed")
    error_message: str | None = Field(default=None, description="Error message if failed")
    hint: str | None = Field(default=None, description="Suggestion for fixing a failure")

    @property
    def success(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS

    @property
    def duration_seconds(self) -> float | None:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()


class BatchSummary(BaseModel):
    """Summary of a complete batch run."""

    run_id: str = Field(..., description="Unique run identifier")
    start_time: datetime = Field(..., description="Run start time")
    end_time: datetime | None = Field(default=None, description="Run end time")
    outcomes: list[SpecifierOutcome] = Field(
        default_factory=list, description="Outcomes in input order"
    )

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    @property
    def failures(self) -> list[SpecifierOutcome]:
        return [o for o in self.outcomes if not o.success]

    @property
    def exit_code(self) -> int:
        """0 only when every specifier succeeded."""
        return 0 if self.failed == 0 else 1

    @property
    def total_duration_seconds(self) -> float | None:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()
