"""Shared test fixtures for CLI tests."""

from __future__ import annotations

import hashlib
import io
import json
import tarfile
from typing import TYPE_CHECKING, Any

import pytest

from cratedl.errors import FetchError
from cratedl.index import IndexConfig
from cratedl.interfaces import ArchiveSource, IndexSource
from cratedl.orchestrator import BatchOrchestrator

if TYPE_CHECKING:
    from collections.abc import Generator
    from pathlib import Path

    from cratedl.interfaces import ProgressCallback
    from cratedl.models import BatchOptions, DownloaderConfig
    from cratedl.streaming import EventObserver

DL_BASE = "https://static.example.test/crates"


class StubRegistry(IndexSource, ArchiveSource):
    """Index and download server in one, backed by dictionaries."""

    def __init__(self) -> None:
        self.records: dict[str, list[str]] = {}
        self.archives: dict[str, bytes] = {}
        self.configs: list[DownloaderConfig] = []

    @property
    def url(self) -> str:
        return "https://index.example.test"

    def publish(self, name: str, version: str, *, checksum: str | None = None) -> bytes:
        stem = f"{name}-{version}"
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
            payload = f'[package]\nname = "{name}"\n'.encode()
            info = tarfile.TarInfo(f"{stem}/Cargo.toml")
            info.size = len(payload)
            tar.addfile(info, io.BytesIO(payload))
        data = buffer.getvalue()

        cksum = checksum or hashlib.sha256(data).hexdigest()
        record = {"name": name, "vers": version, "cksum": cksum}
        self.records.setdefault(name, []).append(json.dumps(record))
        self.archives[f"{DL_BASE}/{name}/{version}/download"] = data
        return data

    async def fetch_config(self) -> IndexConfig:
        return IndexConfig(dl=DL_BASE)

    async def fetch_crate(self, name: str) -> str | None:
        lines = self.records.get(name)
        return "\n".join(lines) if lines else None

    async def fetch(self, url: str, on_progress: ProgressCallback | None = None) -> bytes:
        if url not in self.archives:
            raise FetchError(f"file not found: {url}", retryable=False)
        return self.archives[url]

    def create_orchestrator(
        self,
        config: DownloaderConfig,
        options: BatchOptions,
        observer: EventObserver | None = None,
    ) -> BatchOrchestrator:
        self.configs.append(config)
        return BatchOrchestrator(
            config, options, index_source=self, archive_source=self, observer=observer
        )


@pytest.fixture(autouse=True)
def isolated_dirs(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[Path, None, None]:
    """Isolate tests from the real user configuration and cargo home.

    Sets XDG_CONFIG_HOME and CARGO_HOME to temporary directories and runs
    every test from inside tmp_path so default outputs land there.
    """
    config_home = tmp_path / "xdg_config"
    config_home.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))
    monkeypatch.setenv("CARGO_HOME", str(tmp_path / "cargo_home"))
    monkeypatch.delenv("CRATE_DL_LOG", raising=False)
    monkeypatch.chdir(tmp_path)

    yield tmp_path


@pytest.fixture
def stub_registry(monkeypatch: pytest.MonkeyPatch) -> Any:
    """Route the CLI's orchestrator to an in-memory registry."""
    registry = StubRegistry()
    monkeypatch.setattr("cratedl_cli.main._create_orchestrator", registry.create_orchestrator)
    return registry
