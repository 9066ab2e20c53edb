"""crate-dl core library.

Resolves ``name[@version-req]`` specifiers against a crates.io-compatible
sparse index and downloads or extracts the verified archives.

Module Overview:
    cache: Read-only probe of the local cargo download cache
    config: YAML-based configuration management (XDG spec compliant)
    errors: Exception hierarchy with stable error kinds
    fetcher: Streaming HTTP archive download with retry and size limit
    index: Sparse index client, index memo and archive locator
    interfaces: Abstract base classes for index, archive and config sources
    models: Pydantic and dataclass models for config, specifiers and results
    orchestrator: Batch execution with bounded parallelism
    pipeline: Per-specifier state machine
    selector: Version selection with yanked and prerelease policy
    semver: Cargo-flavoured semantic versions and version requirements
    streaming: Pipeline event types for live progress
    verify: SHA-256 integrity checks
    writer: Atomic ``.crate`` output and safe archive extraction
"""

from importlib.metadata import version as get_package_version

from cratedl.cache import CacheProbe, discover_cache_dirs, get_cargo_home
from cratedl.config import ConfigManager, YamlConfigLoader, get_config_dir, get_default_config_path
from cratedl.errors import (
    AllYankedExcludedError,
    ArchiveIOError,
    BatchConfigurationError,
    ChecksumMismatchError,
    ConfigFileError,
    CrateDlError,
    CrateNotFoundError,
    FetchError,
    IndexProtocolError,
    InvalidSpecifierError,
    InvalidVersionReqError,
    NoMatchingVersionError,
)
from cratedl.fetcher import HttpArchiveFetcher, default_user_agent
from cratedl.index import (
    ArchiveLocator,
    IndexCache,
    IndexConfig,
    SparseIndexClient,
    parse_index_file,
)
from cratedl.interfaces import ArchiveSource, ConfigLoader, IndexSource, ProgressCallback
from cratedl.models import (
    DEFAULT_INDEX_URL,
    DEFAULT_SIZE_LIMIT,
    BatchOptions,
    BatchSummary,
    DownloaderConfig,
    IndexEntry,
    LogLevel,
    OutcomeStatus,
    OutputKind,
    OutputTarget,
    ResolvedArchive,
    Specifier,
    SpecifierOutcome,
    Stage,
)
from cratedl.orchestrator import BatchOrchestrator
from cratedl.pipeline import SpecifierPipeline
from cratedl.selector import select_version
from cratedl.semver import Version, VersionReq, parse_version
from cratedl.streaming import (
    CompletionEvent,
    EventObserver,
    EventType,
    PipelineEvent,
    ProgressEvent,
    StageEvent,
)
from cratedl.verify import sha256_hex, verify_checksum
from cratedl.writer import OutputWriter

__version__ = get_package_version("crate-dl")

__all__ = [
    "DEFAULT_INDEX_URL",
    "DEFAULT_SIZE_LIMIT",
    "AllYankedExcludedError",
    "ArchiveIOError",
    "ArchiveLocator",
    "ArchiveSource",
    "BatchConfigurationError",
    "BatchOptions",
    "BatchOrchestrator",
    "BatchSummary",
    "CacheProbe",
    "ChecksumMismatchError",
    "CompletionEvent",
    "ConfigFileError",
    "ConfigLoader",
    "ConfigManager",
    "CrateDlError",
    "CrateNotFoundError",
    "DownloaderConfig",
    "EventObserver",
    "EventType",
    "FetchError",
    "HttpArchiveFetcher",
    "IndexCache",
    "IndexConfig",
    "IndexEntry",
    "IndexProtocolError",
    "IndexSource",
    "InvalidSpecifierError",
    "InvalidVersionReqError",
    "LogLevel",
    "NoMatchingVersionError",
    "OutcomeStatus",
    "OutputKind",
    "OutputTarget",
    "OutputWriter",
    "PipelineEvent",
    "ProgressCallback",
    "ProgressEvent",
    "ResolvedArchive",
    "SparseIndexClient",
    "Specifier",
    "SpecifierOutcome",
    "SpecifierPipeline",
    "Stage",
    "StageEvent",
    "Version",
    "VersionReq",
    "YamlConfigLoader",
    "__version__",
    "default_user_agent",
    "discover_cache_dirs",
    "get_cargo_home",
    "get_config_dir",
    "get_default_config_path",
    "parse_index_file",
    "parse_version",
    "select_version",
    "sha256_hex",
    "verify_checksum",
]
