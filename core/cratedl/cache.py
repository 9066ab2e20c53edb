"""Read-only probe of the local cargo download cache.

Cargo keeps downloaded archives under
``$CARGO_HOME/registry/cache/<index-dir>/<name>-<version>.crate`` where
``<index-dir>`` is the index host followed by a hash, for example
``index.crates.io-6f17d22bba15001f``. The directory belongs to cargo: this
module only ever reads from it.
"""

from __future__ import annotations

import os
from pathlib import Path
from urllib.parse import urlparse

import structlog

from .models import DEFAULT_INDEX_URL, DownloaderConfig
from .verify import checksum_matches, sha256_file

logger = structlog.get_logger(__name__)

# crates.io archives fetched through the old git index live here
LEGACY_CRATES_IO_PREFIX = "github.com-"


def get_cargo_home(configured: Path | None = None) -> Path:
    """Get the cargo home directory.

    Returns:
        ``configured``, else ``$CARGO_HOME``, else ``~/.cargo``.
    """
    if configured is not None:
        return configured
    env = os.environ.get("CARGO_HOME")
    return Path(env) if env else Path.home() / ".cargo"


def discover_cache_dirs(cargo_home: Path, index_url: str) -> list[Path]:
    """Find cache directories that belong to an index.

    Args:
        cargo_home: Cargo home directory.
        index_url: Index root URL.

    Returns:
        Matching directories, sorted by name for determinism.
    """
    cache_root = cargo_home / "registry" / "cache"
    if not cache_root.is_dir():
        return []

    host = urlparse(index_url.removeprefix("sparse+")).hostname or ""
    prefixes = [f"{host}-"]
    if index_url.rstrip("/") == DEFAULT_INDEX_URL.rstrip("/"):
        prefixes.append(LEGACY_CRATES_IO_PREFIX)

    return sorted(
        path
        for path in cache_root.iterdir()
        if path.is_dir() and any(path.name.startswith(p) for p in prefixes)
    )


class CacheProbe:
    """Looks for a verified copy of an archive in the local cargo cache."""

    def __init__(self, cache_dirs: list[Path] | None, enabled: bool = True) -> None:
        """Initialize the probe.

        Args:
            cache_dirs: Directories to search, in order.
            enabled: When False, every probe is a miss.
        """
        self.cache_dirs = list(cache_dirs or [])
        self.enabled = enabled
        self._log = logger.bind(component="cache_probe")

    @classmethod
    def from_config(cls, config: DownloaderConfig) -> CacheProbe:
        """Create a CacheProbe from DownloaderConfig."""
        if not config.cache_enabled:
            return cls([], enabled=False)
        dirs = config.cache_dirs
        if dirs is None:
            dirs = discover_cache_dirs(get_cargo_home(config.cargo_home), config.index_url)
        return cls(dirs)

    def cache_path(self, cache_dir: Path, name: str, version: str) -> Path:
        return cache_dir / f"{name}-{version}.crate"

    def probe(self, name: str, version: str, expected_checksum: str) -> bytes | None:
        """Return the cached archive bytes if a copy with a matching checksum exists.

        Corrupt or stale entries are logged and skipped, never deleted.

        Args:
            name: Crate name as published.
            version: Selected version.
            expected_checksum: Hex SHA-256 from the index.

        Returns:
            Archive bytes, or None on a miss.
        """
        if not self.enabled:
            self._log.debug("cache_disabled", crate=name, version=version)
            return None

        for cache_dir in self.cache_dirs:
            path = self.cache_path(cache_dir, name, version)
            if not path.is_file():
                continue
            try:
                actual = sha256_file(path)
                if not checksum_matches(actual, expected_checksum):
                    self._log.debug(
                        "cache_checksum_mismatch",
                        path=str(path),
                        expected=expected_checksum,
                        actual=actual,
                    )
                    continue
                data = path.read_bytes()
            except OSError as e:
                self._log.debug("cache_read_failed", path=str(path), error=str(e))
                continue
            self._log.debug("cache_hit", crate=name, version=version, path=str(path))
            return data

        self._log.debug("cache_miss", crate=name, version=version)
        return None
