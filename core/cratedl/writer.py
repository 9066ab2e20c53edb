"""Persisting verified archives: verbatim ``.crate`` files or extracted trees.

Outputs are assembled in a hidden temporary directory and only moved into
place once complete, so an interrupted run never leaves a partially written
output behind. A new output is renamed into place. An existing directory is
extracted into: archive members replace their namesakes and everything else
in it is kept.
"""

from __future__ import annotations

import io
import os
import shutil
import tarfile
import tempfile
import zlib
from pathlib import Path, PurePosixPath

import structlog

from .errors import ArchiveIOError
from .models import OutputKind, OutputTarget, ResolvedArchive

logger = structlog.get_logger(__name__)


def _is_unsafe(parts: tuple[str, ...], raw: str) -> bool:
    return raw.startswith(("/", "\\")) or ".." in parts or (len(raw) > 1 and raw[1] == ":")


def strip_member(member: tarfile.TarInfo, stem: str) -> tarfile.TarInfo | None:
    """Re-root a member from ``<stem>/...`` to the target directory.

    Args:
        member: Archive member.
        stem: Expected top-level directory, ``<name>-<version>``.

    Returns:
        A renamed copy of the member, or None for the top-level directory
        entry itself.

    Raises:
        ArchiveIOError: If the member escapes the archive root or lives
            outside the ``<stem>/`` prefix.
    """
    parts = PurePosixPath(member.name).parts
    if _is_unsafe(parts, member.name):
        raise ArchiveIOError(
            f"a file in the archive ({member.name}) contains a .. or root segment"
        )
    if not parts or parts[0] != stem:
        raise ArchiveIOError(f"a file in the archive ({member.name}) is not under {stem}/")
    if len(parts) == 1:
        return None

    changes: dict[str, str] = {"name": "/".join(parts[1:])}
    if member.islnk():
        link_parts = PurePosixPath(member.linkname).parts
        if _is_unsafe(link_parts, member.linkname) or not link_parts or link_parts[0] != stem:
            raise ArchiveIOError(
                f"a hard link in the archive ({member.name}) points outside {stem}/"
            )
        changes["linkname"] = "/".join(link_parts[1:])
    return member.replace(**changes, deep=False)


def _is_real_dir(path: Path) -> bool:
    return path.is_dir() and not path.is_symlink()


def _unpack(data: bytes, stem: str, destination: Path) -> int:
    count = 0
    with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as tar:
        for member in tar:
            stripped = strip_member(member, stem)
            if stripped is None:
                continue
            tar.extract(stripped, destination, filter="data")
            count += 1
    return count


def _blocking_directory(source: Path, destination: Path) -> Path | None:
    """Find a directory in ``destination`` that a file from ``source`` would replace."""
    for entry in source.iterdir():
        existing = destination / entry.name
        if not _is_real_dir(existing):
            continue
        if not _is_real_dir(entry):
            return existing
        found = _blocking_directory(entry, existing)
        if found is not None:
            return found
    return None


def _merge_into(source: Path, destination: Path) -> None:
    """Move the contents of ``source`` into an existing ``destination``.

    Files and links replace entries of the same name and directories are
    merged recursively. Entries the archive does not contain are left alone.
    """
    for entry in source.iterdir():
        existing = destination / entry.name
        if _is_real_dir(entry) and _is_real_dir(existing):
            _merge_into(entry, existing)
            continue
        if _is_real_dir(entry) and (existing.is_symlink() or existing.exists()):
            existing.unlink()
        os.replace(entry, existing)


class OutputWriter:
    """Writes or extracts verified archive bytes.

    Overwrite policy: an explicit ``--output`` path is always written to. A
    default ``<name>-<version>`` path is written to only when
    ``overwrite_existing`` is True, otherwise an existing output is an error.
    Directories are never removed, only extracted into.
    """

    def __init__(self, overwrite_existing: bool = True) -> None:
        self.overwrite_existing = overwrite_existing
        self._log = logger.bind(component="output_writer")

    def write(self, data: bytes, archive: ResolvedArchive, target: OutputTarget) -> Path:
        """Persist ``data`` to ``target``.

        Args:
            data: Verified archive bytes.
            archive: Identity of the archive (for the member prefix).
            target: Output path and kind.

        Returns:
            The final output path.

        Raises:
            ArchiveIOError: On filesystem faults, an existing output that may not
                be replaced, or an unsafe archive member.
        """
        path = target.path
        overwrite = target.explicit or self.overwrite_existing
        if (path.exists() or path.is_symlink()) and not overwrite:
            raise ArchiveIOError(f"{path} already exists (use --overwrite to replace it)")

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ArchiveIOError(f"cannot create {path.parent}: {e}") from e

        if target.kind == OutputKind.DIRECTORY:
            self._extract(data, archive, path)
        else:
            self._write_file(data, path)
        self._log.debug("output_written", path=str(path), kind=target.kind.value)
        return path

    def _write_file(self, data: bytes, path: Path) -> None:
        if _is_real_dir(path):
            raise ArchiveIOError(f"{path} is a directory")

        fd, temp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".download", dir=path.parent
        )
        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(temp_path, path)
        except OSError as e:
            raise ArchiveIOError(f"failed to write {path}: {e}") from e
        finally:
            temp_path.unlink(missing_ok=True)

    def _extract(self, data: bytes, archive: ResolvedArchive, path: Path) -> None:
        # An existing directory is merged into; only a new one is renamed into place.
        merge = _is_real_dir(path)
        try:
            staging = Path(
                tempfile.mkdtemp(
                    prefix=f".{archive.stem}.",
                    suffix=".extract",
                    dir=path if merge else path.parent,
                )
            )
        except OSError as e:
            raise ArchiveIOError(f"cannot create a staging directory for {path}: {e}") from e

        try:
            count = _unpack(data, archive.stem, staging)
            if merge:
                blocked = _blocking_directory(staging, path)
                if blocked is not None:
                    raise ArchiveIOError(f"{blocked} is a directory, the archive has a file there")
                _merge_into(staging, path)
            else:
                if path.is_symlink() or path.exists():
                    path.unlink()
                os.replace(staging, path)
            self._log.debug("archive_extracted", path=str(path), members=count, merged=merge)

        except tarfile.FilterError as e:
            raise ArchiveIOError(f"refusing to extract unsafe archive member: {e}") from e
        except (tarfile.TarError, EOFError, zlib.error) as e:
            raise ArchiveIOError(f"failed to extract archive: {e}") from e
        except OSError as e:
            raise ArchiveIOError(f"failed to extract archive to {path}: {e}") from e
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)
