"""Semantic version parsing, ordering and Cargo-style requirements.

This module provides the version arithmetic used to select a crate version
from the index.

Supported formats:
- Versions: ``MAJOR.MINOR.PATCH[-PRERELEASE][+BUILD]`` (SemVer 2.0.0)
- Requirements: comma-separated comparators as written in ``Cargo.toml``
  (``1.2``, ``^1.2.3``, ``~1.2``, ``=1.0.0``, ``>=2.0, <3.0``, ``1.*``, ``*``)

A bare version in a requirement means caret (``1.2`` is ``^1.2``).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from functools import total_ordering

from .errors import InvalidVersionReqError

VERSION_PATTERN = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)

COMPARATOR_PATTERN = re.compile(
    r"^(?P<op>>=|<=|=|>|<|~|\^)?\s*"
    r"(?P<major>\d+|[*xX])"
    r"(?:\.(?P<minor>\d+|[*xX]))?"
    r"(?:\.(?P<patch>\d+|[*xX]))?"
    r"(?:-(?P<pre>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)

WILDCARDS = frozenset({"*", "x", "X"})


def _prerelease_key(prerelease: tuple[str, ...]) -> tuple:
    """Get ordering value for a prerelease.

    A release (no prerelease) sorts after every prerelease of the same
    version. Numeric identifiers sort before alphanumeric ones and compare
    numerically.
    """
    if not prerelease:
        return (1,)
    return (
        0,
        tuple((0, int(part), "") if part.isdigit() else (1, 0, part) for part in prerelease),
    )


def _split_identifiers(text: str | None) -> tuple[str, ...]:
    return tuple(text.split(".")) if text else ()


@total_ordering
class Version:
    """A parsed semantic version.

    Build metadata is kept for display but ignored for ordering and equality.

    Example:
        >>> Version.parse("1.2.3") < Version.parse("1.3.0-alpha.1")
        True
        >>> Version.parse("1.0.0-rc.1") < Version.parse("1.0.0")
        True
    """

    __slots__ = ("build", "major", "minor", "patch", "pre")

    def __init__(
        self,
        major: int,
        minor: int,
        patch: int,
        pre: tuple[str, ...] = (),
        build: tuple[str, ...] = (),
    ) -> None:
        self.major = major
        self.minor = minor
        self.patch = patch
        self.pre = pre
        self.build = build

    @classmethod
    def parse(cls, text: str) -> Version:
        """Parse a version string.

        Args:
            text: Version string such as ``1.2.3-beta.1+build.5``.

        Returns:
            Parsed Version.

        Raises:
            InvalidVersionReqError: If the string is not a valid semver version.
        """
        match = VERSION_PATTERN.match(text.strip())
        if not match:
            raise InvalidVersionReqError(f"invalid semver version: {text!r}")
        return cls(
            int(match.group(1)),
            int(match.group(2)),
            int(match.group(3)),
            _split_identifiers(match.group(4)),
            _split_identifiers(match.group(5)),
        )

    @property
    def is_prerelease(self) -> bool:
        return bool(self.pre)

    def _key(self) -> tuple:
        return (self.major, self.minor, self.patch, _prerelease_key(self.pre))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.pre:
            text += "-" + ".".join(self.pre)
        if self.build:
            text += "+" + ".".join(self.build)
        return text

    def __repr__(self) -> str:
        return f"Version({str(self)!r})"


class Op(str, Enum):
    """Comparator operators."""

    EXACT = "="
    GREATER = ">"
    GREATER_EQ = ">="
    LESS = "<"
    LESS_EQ = "<="
    TILDE = "~"
    CARET = "^"
    WILDCARD = "*"


@dataclass(frozen=True)
class Comparator:
    """One comparator of a requirement, possibly with missing components.

    ``minor`` and ``patch`` are ``None`` when the requirement omitted them or
    used a wildcard in their place.
    """

    op: Op
    major: int
    minor: int | None = None
    patch: int | None = None
    pre: tuple[str, ...] = ()

    @classmethod
    def parse(cls, text: str) -> Comparator:
        """Parse a single comparator such as ``>=1.2`` or ``1.*``.

        Raises:
            InvalidVersionReqError: If the comparator is malformed.
        """
        match = COMPARATOR_PATTERN.match(text.strip())
        if not match:
            raise InvalidVersionReqError(f"invalid version requirement: {text!r}")

        parts = [match.group("major"), match.group("minor"), match.group("patch")]
        numbers: list[int | None] = []
        wildcard = False
        for part in parts:
            if part is None or part in WILDCARDS:
                wildcard = wildcard or part is not None
                numbers.append(None)
                continue
            if wildcard or (numbers and numbers[-1] is None):
                raise InvalidVersionReqError(
                    f"unexpected version component after wildcard in {text!r}"
                )
            numbers.append(int(part))

        pre = _split_identifiers(match.group("pre"))
        if pre and numbers[2] is None:
            raise InvalidVersionReqError(
                f"prerelease requires a full major.minor.patch version in {text!r}"
            )

        op_text = match.group("op")
        if numbers[0] is None:
            if op_text not in (None, "="):
                raise InvalidVersionReqError(f"unexpected operator before '*' in {text!r}")
            raise _StarRequirement
        if op_text is None:
            op = Op.WILDCARD if wildcard else Op.CARET
        elif op_text == "=" and wildcard:
            op = Op.WILDCARD
        else:
            op = Op(op_text)

        return cls(op=op, major=numbers[0], minor=numbers[1], patch=numbers[2], pre=pre)

    def matches(self, version: Version) -> bool:
        """Check whether a version satisfies this comparator alone."""
        if self.op in (Op.EXACT, Op.WILDCARD):
            return self._matches_exact(version)
        if self.op == Op.GREATER:
            return self._matches_greater(version)
        if self.op == Op.GREATER_EQ:
            return self._matches_exact(version) or self._matches_greater(version)
        if self.op == Op.LESS:
            return self._matches_less(version)
        if self.op == Op.LESS_EQ:
            return self._matches_exact(version) or self._matches_less(version)
        if self.op == Op.TILDE:
            return self._matches_tilde(version)
        return self._matches_caret(version)

    def allows_prerelease_of(self, version: Version) -> bool:
        """Whether this comparator opts in to prereleases of ``version``.

        Prereleases are only eligible when the requirement itself names a
        prerelease of the same ``major.minor.patch``.
        """
        return (
            bool(self.pre)
            and self.major == version.major
            and self.minor == version.minor
            and self.patch == version.patch
        )

    def _pre_key(self) -> tuple:
        return _prerelease_key(self.pre)

    def _matches_exact(self, version: Version) -> bool:
        if version.major != self.major:
            return False
        if self.minor is not None and version.minor != self.minor:
            return False
        if self.patch is not None and version.patch != self.patch:
            return False
        return version.pre == self.pre

    def _matches_greater(self, version: Version) -> bool:
        if version.major != self.major:
            return version.major > self.major
        if self.minor is None:
            return False
        if version.minor != self.minor:
            return version.minor > self.minor
        if self.patch is None:
            return False
        if version.patch != self.patch:
            return version.patch > self.patch
        return _prerelease_key(version.pre) > self._pre_key()

    def _matches_less(self, version: Version) -> bool:
        if version.major != self.major:
            return version.major < self.major
        if self.minor is None:
            return False
        if version.minor != self.minor:
            return version.minor < self.minor
        if self.patch is None:
            return False
        if version.patch != self.patch:
            return version.patch < self.patch
        return _prerelease_key(version.pre) < self._pre_key()

    def _matches_tilde(self, version: Version) -> bool:
        if version.major != self.major:
            return False
        if self.minor is not None and version.minor != self.minor:
            return False
        if self.patch is not None and version.patch != self.patch:
            return version.patch > self.patch
        return _prerelease_key(version.pre) >= self._pre_key()

    def _matches_caret(self, version: Version) -> bool:
        if version.major != self.major:
            return False
        if self.minor is None:
            return True
        if self.patch is None:
            if self.major > 0:
                return version.minor >= self.minor
            return version.minor == self.minor

        if self.major > 0:
            if version.minor != self.minor:
                return version.minor > self.minor
            if version.patch != self.patch:
                return version.patch > self.patch
        elif self.minor > 0:
            if version.minor != self.minor:
                return False
            if version.patch != self.patch:
                return version.patch > self.patch
        elif version.minor != self.minor or version.patch != self.patch:
            return False

        return _prerelease_key(version.pre) >= self._pre_key()

    def __str__(self) -> str:
        parts = [str(self.major)]
        if self.minor is not None:
            parts.append(str(self.minor))
            if self.patch is not None:
                parts.append(str(self.patch))
        text = ".".join(parts)
        if self.pre:
            text += "-" + ".".join(self.pre)
        if self.op == Op.WILDCARD:
            return text + ".*" if len(parts) < 3 else text
        return f"{self.op.value}{text}"


class _StarRequirement(Exception):
    """Raised internally when a comparator is a bare ``*``."""


class VersionReq:
    """A Cargo version requirement: the conjunction of its comparators.

    An empty comparator list (``*``) matches every release.

    Example:
        >>> req = VersionReq.parse(">=2.0, <3.0")
        >>> req.matches(Version.parse("2.3.0"))
        True
        >>> VersionReq.parse("1.2").matches(Version.parse("1.9.0"))
        True
    """

    __slots__ = ("comparators",)

    def __init__(self, comparators: tuple[Comparator, ...] = ()) -> None:
        self.comparators = comparators

    @classmethod
    def parse(cls, text: str) -> VersionReq:
        """Parse a requirement string.

        Raises:
            InvalidVersionReqError: If any comparator is malformed.
        """
        text = text.strip()
        if not text:
            raise InvalidVersionReqError("empty version requirement")

        comparators: list[Comparator] = []
        pieces = text.split(",")
        for piece in pieces:
            if not piece.strip():
                raise InvalidVersionReqError(f"empty comparator in {text!r}")
            try:
                comparators.append(Comparator.parse(piece))
            except _StarRequirement:
                if len(pieces) > 1:
                    raise InvalidVersionReqError(
                        f"wildcard '*' cannot be combined with other comparators in {text!r}"
                    ) from None
        return cls(tuple(comparators))

    def matches(self, version: Version) -> bool:
        """Check whether a version satisfies the requirement.

        Prerelease versions only match when a comparator names a prerelease
        of the same ``major.minor.patch``.
        """
        if not all(c.matches(version) for c in self.comparators):
            return False
        if not version.is_prerelease:
            return True
        return any(c.allows_prerelease_of(version) for c in self.comparators)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VersionReq):
            return NotImplemented
        return self.comparators == other.comparators

    def __hash__(self) -> int:
        return hash(self.comparators)

    def __str__(self) -> str:
        if not self.comparators:
            return "*"
        return ", ".join(str(c) for c in self.comparators)

    def __repr__(self) -> str:
        return f"VersionReq({str(self)!r})"


def parse_version(text: str) -> Version | None:
    """Parse a version string, returning None when it is not valid semver.

    Examples:
        >>> parse_version("1.2.3")
        Version('1.2.3')
        >>> parse_version("not-a-version") is None
        True
    """
    try:
        return Version.parse(text)
    except InvalidVersionReqError:
        return None
