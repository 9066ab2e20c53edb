"""Version selection against index entries."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from .errors import AllYankedExcludedError, NoMatchingVersionError

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from .models import IndexEntry
    from .semver import Version, VersionReq

logger = structlog.get_logger(__name__)


def _parsed(entries: Iterable[IndexEntry]) -> list[tuple[Version, IndexEntry]]:
    parsed: list[tuple[Version, IndexEntry]] = []
    for entry in entries:
        version = entry.semver
        if version is None:
            logger.warning("ignoring_non_semver_version", crate=entry.name, version=entry.version)
            continue
        parsed.append((version, entry))
    return parsed


def _eligible(version: Version, constraint: VersionReq | None) -> bool:
    if constraint is None:
        return not version.is_prerelease
    return constraint.matches(version)


def select_version(
    entries: Sequence[IndexEntry],
    constraint: VersionReq | None,
    allow_yanked: bool = False,
) -> IndexEntry:
    """Pick the best index entry for a requirement.

    Without a constraint the newest non-prerelease version wins. With one,
    the newest version satisfying it wins; prereleases are only eligible
    when the constraint names one. Yanked versions are only eligible when
    ``allow_yanked`` is set, even if the constraint names them exactly.

    Args:
        entries: All published versions of the crate.
        constraint: Version requirement, or None for "latest".
        allow_yanked: Whether yanked versions may be chosen.

    Returns:
        The selected IndexEntry.

    Raises:
        AllYankedExcludedError: Only yanked versions matched.
        NoMatchingVersionError: Nothing matched.
    """
    matching = [(v, e) for v, e in _parsed(entries) if _eligible(v, constraint)]
    candidates = [(v, e) for v, e in matching if allow_yanked or not e.yanked]

    logger.debug(
        "matching_versions",
        constraint=str(constraint) if constraint else None,
        versions=[e.version for _, e in candidates],
    )

    if candidates:
        return max(candidates, key=lambda pair: pair[0])[1]

    requirement = str(constraint) if constraint else "latest"
    if matching:
        _, newest_yanked = max(matching, key=lambda pair: pair[0])
        raise AllYankedExcludedError(
            f"no matching version found for {requirement}",
            hint=(
                f"the yanked version {newest_yanked.name} {newest_yanked.version} matched, "
                "use `--allow-yanked` to download it"
            ),
        )
    raise NoMatchingVersionError(f"no matching version found for {requirement}")
