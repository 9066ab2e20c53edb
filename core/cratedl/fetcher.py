"""Streaming archive fetcher.

This module downloads archive bytes over HTTP with:
    - Incremental progress reporting via a callback
    - Retry logic with exponential backoff
    - A hard size limit enforced while streaming
"""

from __future__ import annotations

import asyncio
from importlib.metadata import version as get_package_version
from typing import TYPE_CHECKING

import aiohttp
import structlog

from .errors import FetchError
from .interfaces import ArchiveSource
from .models import DEFAULT_SIZE_LIMIT

if TYPE_CHECKING:
    from .interfaces import ProgressCallback
    from .models import DownloaderConfig

logger = structlog.get_logger(__name__)

# Default configuration values
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_TIMEOUT_SECONDS = 60
DEFAULT_CHUNK_SIZE = 65536  # 64 KB chunks


def default_user_agent() -> str:
    return f"crate-dl/{get_package_version('crate-dl')}"


class HttpArchiveFetcher(ArchiveSource):
    """Downloads archives with aiohttp.

    Example:
        >>> async with aiohttp.ClientSession() as session:
        ...     fetcher = HttpArchiveFetcher(session, user_agent="crate-dl/0.1.0")
        ...     data = await fetcher.fetch(url, on_progress=print)
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        user_agent: str,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
        size_limit_bytes: int = DEFAULT_SIZE_LIMIT,
    ) -> None:
        """Initialize the fetcher.

        Args:
            session: Shared aiohttp session.
            user_agent: User-Agent header value.
            max_retries: Maximum number of retry attempts for failed downloads.
            retry_delay: Initial delay between retries in seconds (exponential backoff).
            timeout_seconds: Timeout for one download attempt in seconds.
            size_limit_bytes: Largest body accepted.
        """
        self._session = session
        self._headers = {"User-Agent": user_agent}
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._timeout_seconds = timeout_seconds
        self._size_limit = size_limit_bytes
        self._log = logger.bind(component="archive_fetcher")

    @classmethod
    def from_config(
        cls, session: aiohttp.ClientSession, config: DownloaderConfig, user_agent: str
    ) -> HttpArchiveFetcher:
        """Create a fetcher from DownloaderConfig."""
        return cls(
            session,
            user_agent=user_agent,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
            timeout_seconds=config.timeout_seconds,
            size_limit_bytes=config.size_limit_bytes,
        )

    async def fetch(self, url: str, on_progress: ProgressCallback | None = None) -> bytes:
        """Download with retry logic.

        Args:
            url: Archive URL.
            on_progress: Optional progress observer.

        Returns:
            The complete body.

        Raises:
            FetchError: When every attempt failed or the failure is not retryable.
        """
        log = self._log.bind(url=url)
        attempt = 0

        while True:
            if attempt > 0:
                delay = self._retry_delay * (2 ** (attempt - 1))
                log.info("retrying_download", attempt=attempt, delay=delay)
                await asyncio.sleep(delay)

            try:
                return await self._perform_fetch(url, on_progress)
            except FetchError as e:
                log.warning(
                    "download_attempt_failed",
                    attempt=attempt + 1,
                    error=str(e),
                    retryable=e.retryable,
                )
                if not e.retryable:
                    raise
                if attempt >= self._max_retries:
                    raise FetchError(
                        f"download failed after {attempt + 1} attempts: {e}",
                        retryable=False,
                    ) from e
            attempt += 1

    async def _perform_fetch(self, url: str, on_progress: ProgressCallback | None) -> bytes:
        """Perform one download attempt.

        Raises:
            FetchError: If the attempt fails.
        """
        timeout = aiohttp.ClientTimeout(total=self._timeout_seconds)
        try:
            async with self._session.get(url, headers=self._headers, timeout=timeout) as response:
                if response.status == 404:
                    raise FetchError(f"file not found: {url}", retryable=False)
                if not 200 <= response.status < 300:
                    raise FetchError(
                        f"HTTP error {response.status}: {response.reason}",
                        retryable=response.status >= 500,
                    )

                total = response.content_length
                if total is not None and total > self._size_limit:
                    raise FetchError(
                        f"archive is {total} bytes, over the {self._size_limit} byte limit",
                        retryable=False,
                    )

                buffer = bytearray()
                if on_progress:
                    on_progress(0, total)
                async for chunk in response.content.iter_chunked(DEFAULT_CHUNK_SIZE):
                    buffer.extend(chunk)
                    if len(buffer) > self._size_limit:
                        raise FetchError(
                            f"archive exceeds the {self._size_limit} byte limit",
                            retryable=False,
                        )
                    if on_progress:
                        on_progress(len(buffer), total)

        except aiohttp.ClientError as e:
            raise FetchError(f"network error: {e}") from e

        except TimeoutError:
            raise FetchError("download timed out") from None

        self._log.debug("downloaded", url=url, bytes=len(buffer))
        return bytes(buffer)
