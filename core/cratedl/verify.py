"""SHA-256 integrity verification of archive bytes."""

from __future__ import annotations

import hashlib
from pathlib import Path

import structlog

from .errors import ChecksumMismatchError

logger = structlog.get_logger(__name__)

HASH_CHUNK_SIZE = 65536  # 64 KB chunks


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def sha256_file(path: Path) -> str:
    """Hash a file incrementally.

    Raises:
        OSError: If the file cannot be read.
    """
    hasher = hashlib.sha256()
    with path.open("rb") as f:
        while chunk := f.read(HASH_CHUNK_SIZE):
            hasher.update(chunk)
    return hasher.hexdigest()


def checksum_matches(actual_hex: str, expected_hex: str) -> bool:
    """Compare two hex digests byte-for-byte (case-insensitive hex)."""
    try:
        return bytes.fromhex(actual_hex) == bytes.fromhex(expected_hex)
    except ValueError:
        return False


def verify_checksum(data: bytes, expected: str) -> str:
    """Verify that ``data`` hashes to ``expected``.

    Args:
        data: Complete archive bytes.
        expected: Hex SHA-256 digest declared by the index.

    Returns:
        The verified digest.

    Raises:
        ChecksumMismatchError: If the digest differs.
    """
    actual = sha256_hex(data)
    if not checksum_matches(actual, expected):
        logger.debug("checksum_mismatch", expected=expected, actual=actual)
        raise ChecksumMismatchError(expected=expected.lower(), actual=actual)
    logger.debug("checksum_verified", checksum=actual)
    return actual
