"""Sparse index access and archive location.

The sparse index protocol serves one newline-delimited JSON file per crate
plus a ``config.json`` describing where archives are downloaded from:

    https://index.crates.io/config.json      {"dl": "https://static.crates.io/crates", ...}
    https://index.crates.io/se/rd/serde      {"name": "serde", "vers": "1.0.0", "cksum": ...}

Index responses are memoized per crate name for the lifetime of one batch in
an :class:`IndexCache` owned by the orchestrator.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import TYPE_CHECKING

import aiohttp
import structlog

from .errors import CrateNotFoundError, IndexProtocolError
from .interfaces import IndexSource
from .models import IndexEntry, ResolvedArchive

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = structlog.get_logger(__name__)

# Statuses the sparse protocol uses for "no such crate"
NOT_FOUND_STATUSES = frozenset({404, 410, 451})

DL_MARKERS = ("{crate}", "{version}", "{prefix}", "{lowerprefix}", "{sha256-checksum}")


def crate_prefix(name: str) -> str:
    """Directory prefix of a crate in the index layout.

    Examples:
        >>> crate_prefix("a"), crate_prefix("ab"), crate_prefix("abc")
        ('1', '2', '3/a')
        >>> crate_prefix("serde")
        'se/rd'
    """
    if len(name) == 1:
        return "1"
    if len(name) == 2:
        return "2"
    if len(name) == 3:
        return f"3/{name[0]}"
    return f"{name[:2]}/{name[2:4]}"


def index_path(name: str) -> str:
    """Relative path of a crate's index file (names are lowercased)."""
    lower = name.lower()
    return f"{crate_prefix(lower)}/{lower}"


def alternate_spelling(name: str) -> str | None:
    """Return the ``-``/``_`` swapped spelling of a name, if it differs."""
    if "-" in name:
        return name.replace("-", "_")
    if "_" in name:
        return name.replace("_", "-")
    return None


def parse_index_file(body: str) -> list[IndexEntry]:
    """Parse a sparse index file into entries, in publication order.

    Raises:
        IndexProtocolError: If a line is not a valid version record.
    """
    entries: list[IndexEntry] = []
    for line_number, line in enumerate(body.splitlines(), 1):
        if not line.strip():
            continue
        try:
            record = json.loads(line)
            entries.append(
                IndexEntry(
                    name=record["name"],
                    version=record["vers"],
                    checksum=record["cksum"].lower(),
                    yanked=bool(record.get("yanked", False)),
                )
            )
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise IndexProtocolError(f"malformed index record on line {line_number}: {e}") from e
    return entries


@dataclass(frozen=True)
class IndexConfig:
    """Parsed ``config.json`` of a sparse index.

    Attributes:
        dl: Download URL template (or base URL without markers).
    """

    dl: str

    @classmethod
    def from_json(cls, data: object) -> IndexConfig:
        if not isinstance(data, dict) or not isinstance(data.get("dl"), str):
            raise IndexProtocolError("index config.json is missing the 'dl' template")
        return cls(dl=data["dl"])

    def download_url(self, name: str, version: str, checksum: str) -> str:
        """Expand the ``dl`` template for one crate version.

        Without any template markers, ``/{crate}/{version}/download`` is
        appended to ``dl``.
        """
        if not any(marker in self.dl for marker in DL_MARKERS):
            return f"{self.dl.rstrip('/')}/{name}/{version}/download"
        prefix = crate_prefix(name)
        return (
            self.dl.replace("{crate}", name)
            .replace("{version}", version)
            .replace("{prefix}", prefix)
            .replace("{lowerprefix}", prefix.lower())
            .replace("{sha256-checksum}", checksum)
        )


class SparseIndexClient(IndexSource):
    """HTTP client for a sparse index."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        index_url: str,
        user_agent: str,
        timeout_seconds: int = 60,
    ) -> None:
        """Initialize the client.

        Args:
            session: Shared aiohttp session.
            index_url: Index root, with or without a ``sparse+`` prefix.
            user_agent: User-Agent header value.
            timeout_seconds: Per-request timeout.
        """
        self._session = session
        self._base = index_url.removeprefix("sparse+").rstrip("/")
        self._headers = {"User-Agent": user_agent}
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._log = logger.bind(component="sparse_index", index=self._base)

    @property
    def url(self) -> str:
        return self._base

    async def fetch_config(self) -> IndexConfig:
        url = f"{self._base}/config.json"
        try:
            async with self._session.get(
                url, headers=self._headers, timeout=self._timeout
            ) as response:
                if response.status != 200:
                    raise IndexProtocolError(
                        f"index config {url} returned HTTP {response.status}: {response.reason}"
                    )
                data = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise IndexProtocolError(f"failed to fetch index config {url}: {e}") from e
        except TimeoutError:
            raise IndexProtocolError(f"timed out fetching index config {url}") from None
        except ValueError as e:
            raise IndexProtocolError(f"index config {url} is not valid JSON: {e}") from e
        return IndexConfig.from_json(data)

    async def fetch_crate(self, name: str) -> str | None:
        url = f"{self._base}/{index_path(name)}"
        self._log.debug("index_query", crate=name, url=url)
        try:
            async with self._session.get(
                url, headers=self._headers, timeout=self._timeout
            ) as response:
                if response.status in NOT_FOUND_STATUSES:
                    return None
                if response.status != 200:
                    raise IndexProtocolError(
                        f"index returned HTTP {response.status} for {name}: {response.reason}"
                    )
                return await response.text()
        except aiohttp.ClientError as e:
            raise IndexProtocolError(f"failed to query index for {name}: {e}") from e
        except TimeoutError:
            raise IndexProtocolError(f"timed out querying index for {name}") from None


class IndexCache:
    """Write-once memo of index responses keyed by normalized crate name.

    ``None`` records that the index has no such crate, so negative answers
    are not re-queried either.
    """

    def __init__(self) -> None:
        self._entries: dict[str, list[IndexEntry] | None] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> list[IndexEntry] | None:
        return self._entries.get(key)

    def store(self, key: str, entries: Sequence[IndexEntry] | None) -> None:
        if key in self._entries:
            raise KeyError(f"index response for {key!r} is already cached")
        self._entries[key] = list(entries) if entries is not None else None


class ArchiveLocator:
    """Looks crates up in the index and resolves archive identities."""

    def __init__(self, source: IndexSource, cache: IndexCache | None = None) -> None:
        """Initialize the locator.

        Args:
            source: Index to query.
            cache: Response memo shared across specifiers of one batch.
        """
        self._source = source
        self._cache = cache if cache is not None else IndexCache()
        self._config: IndexConfig | None = None
        self._config_lock = asyncio.Lock()
        self._log = logger.bind(component="archive_locator")

    async def locate(self, name: str) -> list[IndexEntry]:
        """Return all published versions of a crate.

        Raises:
            CrateNotFoundError: If the index has no record of the crate.
            IndexProtocolError: If the index cannot be queried.
        """
        key = name.lower()
        async with self._cache.lock_for(key):
            if key not in self._cache:
                self._cache.store(key, await self._query(key))
            else:
                self._log.debug("index_cache_hit", crate=key)
        entries = self._cache.get(key)
        if entries is None:
            raise CrateNotFoundError(name)
        self._log.debug(
            "available_versions", crate=key, versions=[entry.version for entry in entries]
        )
        return entries

    async def _query(self, key: str) -> list[IndexEntry] | None:
        for candidate in (key, alternate_spelling(key)):
            if candidate is None:
                continue
            body = await self._source.fetch_crate(candidate)
            if body is not None:
                if candidate != key:
                    self._log.info("index_alternate_spelling", requested=key, found=candidate)
                return parse_index_file(body)
        self._log.info("crate_not_found", crate=key)
        return None

    async def config(self) -> IndexConfig:
        async with self._config_lock:
            if self._config is None:
                self._config = await self._source.fetch_config()
        return self._config

    async def resolve(self, entry: IndexEntry) -> ResolvedArchive:
        """Compute the immutable archive identity for a selected entry."""
        config = await self.config()
        return ResolvedArchive(
            name=entry.name,
            version=entry.version,
            checksum=entry.checksum,
            url=config.download_url(entry.name, entry.version, entry.checksum),
        )
