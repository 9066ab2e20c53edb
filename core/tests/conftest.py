"""Shared test fixtures for core tests."""

from __future__ import annotations

import hashlib
import io
import json
import tarfile
from typing import TYPE_CHECKING

import pytest

from cratedl.errors import FetchError
from cratedl.index import IndexConfig
from cratedl.interfaces import ArchiveSource, IndexSource

if TYPE_CHECKING:
    from collections.abc import Callable, Generator
    from pathlib import Path

    from cratedl.interfaces import ProgressCallback

DL_BASE = "https://static.example.test/crates"


def build_crate(
    name: str,
    version: str,
    files: dict[str, bytes] | None = None,
    extra_members: dict[str, bytes] | None = None,
) -> bytes:
    """Build a gzipped tarball laid out like a published crate.

    Args:
        name: Crate name.
        version: Crate version.
        files: Member contents relative to ``<name>-<version>/``.
        extra_members: Members added verbatim (for hostile archives).
    """
    stem = f"{name}-{version}"
    files = files or {
        "Cargo.toml": f'[package]\nname = "{name}"\nversion = "{version}"\n'.encode(),
        "src/lib.rs": b"pub fn hello() {}\n",
    }
    members = {f"{stem}/{path}": data for path, data in files.items()}
    members.update(extra_members or {})

    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for member_name, data in members.items():
            info = tarfile.TarInfo(member_name)
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


class FakeRegistry:
    """In-memory sparse index with a matching download server."""

    def __init__(self) -> None:
        self.records: dict[str, list[dict[str, object]]] = {}
        self.archives: dict[str, bytes] = {}
        self.index_queries: list[str] = []
        self.config_queries = 0
        self.fetched_urls: list[str] = []

    def url_for(self, name: str, version: str) -> str:
        return f"{DL_BASE}/{name}/{version}/download"

    def publish(
        self,
        name: str,
        version: str,
        data: bytes | None = None,
        *,
        yanked: bool = False,
        checksum: str | None = None,
    ) -> bytes:
        """Publish a version. Returns the archive bytes served for it."""
        if data is None:
            data = build_crate(name, version)
        self.records.setdefault(name.lower(), []).append(
            {
                "name": name,
                "vers": version,
                "deps": [],
                "cksum": checksum or hashlib.sha256(data).hexdigest(),
                "features": {},
                "yanked": yanked,
            }
        )
        self.archives[self.url_for(name, version)] = data
        return data

    @property
    def index_source(self) -> FakeIndexSource:
        return FakeIndexSource(self)

    @property
    def archive_source(self) -> FakeArchiveSource:
        return FakeArchiveSource(self)


class FakeIndexSource(IndexSource):
    """IndexSource backed by a FakeRegistry."""

    def __init__(self, registry: FakeRegistry) -> None:
        self.registry = registry

    @property
    def url(self) -> str:
        return "https://index.example.test"

    async def fetch_config(self) -> IndexConfig:
        self.registry.config_queries += 1
        return IndexConfig(dl=DL_BASE)

    async def fetch_crate(self, name: str) -> str | None:
        self.registry.index_queries.append(name)
        records = self.registry.records.get(name)
        if records is None:
            return None
        return "\n".join(json.dumps(record) for record in records) + "\n"


class FakeArchiveSource(ArchiveSource):
    """ArchiveSource serving the registry's archives."""

    def __init__(self, registry: FakeRegistry) -> None:
        self.registry = registry

    async def fetch(self, url: str, on_progress: ProgressCallback | None = None) -> bytes:
        self.registry.fetched_urls.append(url)
        data = self.registry.archives.get(url)
        if data is None:
            raise FetchError(f"file not found: {url}", retryable=False)
        if on_progress:
            on_progress(0, len(data))
            on_progress(len(data), len(data))
        return data


@pytest.fixture(autouse=True)
def isolated_dirs(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[Path, None, None]:
    """Isolate tests from the real user configuration and cargo home.

    Sets XDG_CONFIG_HOME and CARGO_HOME to temporary directories so tests
    never read the real ~/.config/crate-dl or ~/.cargo.
    """
    config_home = tmp_path / "xdg_config"
    cargo_home = tmp_path / "cargo_home"
    config_home.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))
    monkeypatch.setenv("CARGO_HOME", str(cargo_home))
    monkeypatch.delenv("CRATE_DL_LOG", raising=False)

    yield tmp_path


@pytest.fixture
def registry() -> FakeRegistry:
    """Empty in-memory registry."""
    return FakeRegistry()


@pytest.fixture
def crate_archive() -> Callable[..., bytes]:
    """Factory for crate tarballs."""
    return build_crate
