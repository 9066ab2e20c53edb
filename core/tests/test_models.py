"""Tests for core data models."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from pydantic import ValidationError

from cratedl.errors import InvalidSpecifierError
from cratedl.models import (
    BatchSummary,
    DownloaderConfig,
    LogLevel,
    OutcomeStatus,
    OutputKind,
    OutputTarget,
    ResolvedArchive,
    Specifier,
    SpecifierOutcome,
    Stage,
    validate_crate_name,
)
from cratedl.semver import VersionReq


class TestSpecifier:
    """Tests for Specifier parsing."""

    def test_name_only(self) -> None:
        """Test a bare crate name."""
        spec = Specifier.parse("serde")
        assert spec.name == "serde"
        assert spec.constraint is None
        assert str(spec) == "serde"

    def test_with_requirement(self) -> None:
        """Test name@req."""
        spec = Specifier.parse("serde@1.0.0")
        assert spec.name == "serde"
        assert spec.constraint == VersionReq.parse("^1.0.0")
        assert str(spec) == "serde@^1.0.0"

    def test_range_requirement(self) -> None:
        """Test a comma-separated requirement."""
        spec = Specifier.parse("foo@>=2.0,<3.0")
        assert str(spec.constraint) == ">=2.0, <3.0"

    def test_legacy_colon_separator(self) -> None:
        """Test the name:req form."""
        assert Specifier.parse("serde:=1.0.5") == Specifier("serde", VersionReq.parse("=1.0.5"))

    @pytest.mark.parametrize("text", ["", "@1.0", "ser de", "serde!", "serde@", "serde@x.y.z"])
    def test_invalid(self, text: str) -> None:
        """Test rejected specifiers."""
        with pytest.raises(InvalidSpecifierError):
            Specifier.parse(text)

    def test_invalid_character_reported(self) -> None:
        """Test that the offending character and index are named."""
        with pytest.raises(InvalidSpecifierError, match=r"'\.' at index 4"):
            validate_crate_name("serd.e")

    def test_invalid_requirement_wrapped(self) -> None:
        """Test that requirement errors surface as specifier errors."""
        with pytest.raises(InvalidSpecifierError, match="invalid version request"):
            Specifier.parse("serde@>>1")


class TestOutputTarget:
    """Tests for output path derivation."""

    archive = ResolvedArchive(
        name="serde", version="1.0.0", checksum="0" * 64, url="https://example.test/serde"
    )

    def test_default_file(self) -> None:
        """Test the default .crate path."""
        target = OutputTarget.for_archive(self.archive, extract=False)
        assert target.path == Path("serde-1.0.0.crate")
        assert target.kind == OutputKind.FILE
        assert not target.explicit

    def test_default_directory(self, tmp_path: Path) -> None:
        """Test the default extraction directory under output_dir."""
        target = OutputTarget.for_archive(self.archive, extract=True, output_dir=tmp_path)
        assert target.path == tmp_path / "serde-1.0.0"
        assert target.kind == OutputKind.DIRECTORY

    def test_explicit_output(self, tmp_path: Path) -> None:
        """Test that --output wins over defaults."""
        target = OutputTarget.for_archive(
            self.archive, extract=False, output=tmp_path / "x.tgz", output_dir=Path("ignored")
        )
        assert target.path == tmp_path / "x.tgz"
        assert target.explicit


class TestDownloaderConfig:
    """Tests for DownloaderConfig."""

    def test_defaults(self) -> None:
        """Test default values."""
        config = DownloaderConfig()
        assert config.log_level == LogLevel.WARNING
        assert config.index_url == "https://index.crates.io/"
        assert config.cache_enabled is True
        assert config.overwrite_existing is True
        assert config.max_concurrent == 4
        assert config.size_limit_bytes == 40 * 1024 * 1024

    def test_rejects_zero_concurrency(self) -> None:
        """Test validation of max_concurrent."""
        with pytest.raises(ValidationError):
            DownloaderConfig(max_concurrent=0)


class TestBatchSummary:
    """Tests for BatchSummary aggregation."""

    def make_outcome(self, specifier: str, status: OutcomeStatus) -> SpecifierOutcome:
        start = datetime.now(tz=UTC)
        return SpecifierOutcome(
            specifier=specifier,
            status=status,
            stage=Stage.DONE if status == OutcomeStatus.SUCCESS else Stage.FETCHING,
            start_time=start,
            end_time=start + timedelta(seconds=2),
        )

    def test_all_success(self) -> None:
        """Test exit code 0 when everything succeeded."""
        summary = BatchSummary(
            run_id="abc",
            start_time=datetime.now(tz=UTC),
            outcomes=[self.make_outcome("a", OutcomeStatus.SUCCESS)],
        )
        assert summary.exit_code == 0
        assert summary.failures == []

    def test_partial_failure(self) -> None:
        """Test counts and exit code with one failure."""
        summary = BatchSummary(
            run_id="abc",
            start_time=datetime.now(tz=UTC),
            outcomes=[
                self.make_outcome("a", OutcomeStatus.FAILED),
                self.make_outcome("b", OutcomeStatus.SUCCESS),
            ],
        )
        assert summary.total == 2
        assert summary.succeeded == 1
        assert summary.failed == 1
        assert summary.exit_code == 1
        assert [o.specifier for o in summary.failures] == ["a"]

    def test_durations(self) -> None:
        """Test duration helpers."""
        outcome = self.make_outcome("a", OutcomeStatus.SUCCESS)
        assert outcome.duration_seconds == pytest.approx(2.0)
        summary = BatchSummary(run_id="abc", start_time=datetime.now(tz=UTC))
        assert summary.total_duration_seconds is None
