"""Exception hierarchy for crate-dl.

Every failure that can end a single specifier's pipeline is a subclass of
:class:`CrateDlError` and carries a stable ``kind`` string. The orchestrator
records the kind in the per-specifier outcome so scripted callers can branch
on it without parsing messages.
"""

from __future__ import annotations


class CrateDlError(Exception):
    """Base class for all crate-dl errors."""

    kind = "error"

    def __init__(self, message: str, hint: str | None = None) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error message.
            hint: Optional suggestion shown alongside the message.
        """
        super().__init__(message)
        self.hint = hint


class InvalidSpecifierError(CrateDlError, ValueError):
    """A ``name[@req]`` token could not be parsed."""

    kind = "invalid-specifier"


class InvalidVersionReqError(CrateDlError, ValueError):
    """A version or version requirement is not valid semver."""

    kind = "invalid-version-req"


class BatchConfigurationError(CrateDlError):
    """The batch options are inconsistent (rejected before any network I/O)."""

    kind = "usage-error"


class CrateNotFoundError(CrateDlError):
    """The index has no record for the requested crate."""

    kind = "not-found-in-index"

    def __init__(self, name: str) -> None:
        super().__init__(f"could not find crate {name!r} in the index")
        self.name = name


class IndexProtocolError(CrateDlError):
    """The index could not be queried or returned malformed data."""

    kind = "index-error"


class NoMatchingVersionError(CrateDlError):
    """No published version satisfies the requirement."""

    kind = "no-matching-version"


class AllYankedExcludedError(NoMatchingVersionError):
    """Matching versions exist, but all of them are yanked."""

    kind = "all-yanked-excluded"


class FetchError(CrateDlError):
    """Exception raised when an archive download fails."""

    kind = "fetch-error"

    def __init__(self, message: str, retryable: bool = True) -> None:
        """Initialize fetch error.

        Args:
            message: Error message.
            retryable: Whether the error is retryable.
        """
        super().__init__(message)
        self.retryable = retryable


class ChecksumMismatchError(CrateDlError):
    """Archive bytes do not hash to the checksum declared by the index."""

    kind = "checksum-mismatch"

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(f"invalid checksum, expected {expected} but got {actual}")
        self.expected = expected
        self.actual = actual


class ArchiveIOError(CrateDlError):
    """Writing or extracting the archive failed, or the archive is unsafe."""

    kind = "io-error"


class ConfigFileError(CrateDlError):
    """The configuration file is unreadable or holds invalid values."""

    kind = "config-error"
