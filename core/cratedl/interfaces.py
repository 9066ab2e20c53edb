"""Core interfaces for crate-dl.

This module defines the abstract network collaborators of the pipeline and the
configuration loader interface. The HTTP implementations live in
:mod:`cratedl.index` and :mod:`cratedl.fetcher`; tests substitute in-memory
fakes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .index import IndexConfig

ProgressCallback = Callable[[int, int | None], None]
"""Called as ``on_progress(bytes_so_far, total_bytes_if_known)``."""


class IndexSource(ABC):
    """Read access to a sparse package index."""

    @property
    @abstractmethod
    def url(self) -> str:
        """Return the index root URL."""
        ...

    @abstractmethod
    async def fetch_config(self) -> IndexConfig:
        """Fetch and parse the index's ``config.json``.

        Raises:
            IndexProtocolError: If the config cannot be fetched or parsed.
        """
        ...

    @abstractmethod
    async def fetch_crate(self, name: str) -> str | None:
        """Fetch the raw index file for a normalized crate name.

        Args:
            name: Lowercased crate name.

        Returns:
            The newline-delimited JSON body, or None if the index has no
            such crate.

        Raises:
            IndexProtocolError: On transport failures or unexpected statuses.
        """
        ...


class ArchiveSource(ABC):
    """Byte-stream access to archive download URLs."""

    @abstractmethod
    async def fetch(self, url: str, on_progress: ProgressCallback | None = None) -> bytes:
        """Download the complete body at ``url``.

        Args:
            url: Archive download URL.
            on_progress: Optional observer for incremental progress.

        Returns:
            The archive bytes.

        Raises:
            FetchError: On any transport or HTTP failure.
        """
        ...


class ConfigLoader(ABC):
    """Abstract base class for configuration loaders."""

    @abstractmethod
    def load(self, path: str) -> dict[str, Any]:
        """Load configuration from a file.

        Args:
            path: Path to the configuration file

        Returns:
            Configuration dictionary
        """
        ...

    @abstractmethod
    def save(self, config: dict[str, Any], path: str) -> None:
        """Save configuration to a file.

        Args:
            config: Configuration dictionary
            path: Path to save the configuration
        """
        ...
