"""Tests for CLI main module."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from typer.testing import CliRunner

from cratedl_cli.main import EXIT_USAGE, app

runner = CliRunner()


class TestMainApp:
    """Tests for the main CLI application."""

    def test_version(self) -> None:
        """Test --version flag."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "crate-dl" in result.output
        assert "version" in result.output

    def test_version_short_option(self) -> None:
        """Test that -V short option works."""
        result = runner.invoke(app, ["-V"])
        assert result.exit_code == 0
        assert "version" in result.output

    def test_help(self) -> None:
        """Test --help flag."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "dl" in result.output
        assert "config" in result.output

    def test_no_args_shows_help(self) -> None:
        """Test that no arguments shows help.

        Note: Typer returns exit code 2 when showing help due to no_args_is_help=True.
        """
        result = runner.invoke(app, [])
        assert result.exit_code == 2
        assert "usage" in result.output.lower()


class TestDlCommand:
    """Tests for the dl command."""

    def test_download(self, stub_registry: Any, tmp_path: Path) -> None:
        """Test downloading a single crate to the default path."""
        data = stub_registry.publish("serde", "1.0.0")

        result = runner.invoke(app, ["dl", "serde"])

        assert result.exit_code == 0, result.output
        assert (tmp_path / "serde-1.0.0.crate").read_bytes() == data
        assert "Download Results" in result.output
        assert "1 succeeded" in result.output

    def test_extract(self, stub_registry: Any, tmp_path: Path) -> None:
        """Test -x unpacking into <name>-<version>/."""
        stub_registry.publish("serde", "1.0.0")

        result = runner.invoke(app, ["dl", "-x", "serde@1"])

        assert result.exit_code == 0, result.output
        assert (tmp_path / "serde-1.0.0" / "Cargo.toml").is_file()

    def test_explicit_output(self, stub_registry: Any, tmp_path: Path) -> None:
        """Test --output with one crate."""
        stub_registry.publish("serde", "1.0.0")

        result = runner.invoke(app, ["dl", "serde", "-o", "out/s.crate"])

        assert result.exit_code == 0, result.output
        assert (tmp_path / "out" / "s.crate").is_file()

    def test_extract_into_current_directory(self, stub_registry: Any, tmp_path: Path) -> None:
        """Test that -x -o . unpacks beside existing files instead of replacing them."""
        stub_registry.publish("serde", "1.0.0")
        (tmp_path / "notes.txt").write_text("keep me")

        result = runner.invoke(app, ["dl", "-x", "-o", ".", "serde"])

        assert result.exit_code == 0, result.output
        assert (tmp_path / "notes.txt").read_text() == "keep me"
        assert (tmp_path / "Cargo.toml").is_file()
        assert not [p.name for p in tmp_path.iterdir() if p.name.startswith(".")]

    def test_partial_failure(self, stub_registry: Any, tmp_path: Path) -> None:
        """Test exit code 1 and a diagnostic when one crate fails."""
        stub_registry.publish("serde", "1.0.0")

        result = runner.invoke(app, ["dl", "serde", "nosuchcrate"])

        assert result.exit_code == 1
        assert (tmp_path / "serde-1.0.0.crate").is_file()
        assert "error: nosuchcrate" in result.output
        assert "not-found-in-index" in result.output

    def test_checksum_failure_hint(self, stub_registry: Any, tmp_path: Path) -> None:
        """Test that a checksum failure is reported and nothing is written."""
        stub_registry.publish("serde", "1.0.0", checksum="00" * 32)

        result = runner.invoke(app, ["dl", "serde"])

        assert result.exit_code == 1
        assert "checksum-mismatch" in result.output
        assert not (tmp_path / "serde-1.0.0.crate").exists()

    def test_quiet(self, stub_registry: Any) -> None:
        """Test that --quiet suppresses the results table."""
        stub_registry.publish("serde", "1.0.0")

        result = runner.invoke(app, ["dl", "-q", "serde"])

        assert result.exit_code == 0
        assert "Download Results" not in result.output

    def test_invalid_specifier(self, stub_registry: Any) -> None:
        """Test that every bad specifier is reported before any work."""
        result = runner.invoke(app, ["dl", "bad$name", "serde@not-a-version"])

        assert result.exit_code == EXIT_USAGE
        assert result.output.count("invalid crate specifier") == 2
        assert stub_registry.configs == []

    def test_output_with_many_crates(self, stub_registry: Any, tmp_path: Path) -> None:
        """Test that --output with two crates is a usage error."""
        stub_registry.publish("serde", "1.0.0")
        stub_registry.publish("rand", "0.8.5")

        result = runner.invoke(app, ["dl", "serde", "rand", "-o", "x.crate"])

        assert result.exit_code == EXIT_USAGE
        assert "--output can only be used with a single crate" in result.output
        assert not (tmp_path / "x.crate").exists()
        assert not (tmp_path / "serde-1.0.0.crate").exists()

    def test_invalid_config_file(self, tmp_path: Path) -> None:
        """Test that an unreadable configuration is a usage error."""
        config_file = tmp_path / "bad.yaml"
        config_file.write_text("max_concurrent: [1, 2\n")

        result = runner.invoke(app, ["dl", "--config", str(config_file), "serde"])

        assert result.exit_code == EXIT_USAGE
        assert "not valid YAML" in result.output


class TestConfigCommands:
    """Tests for the config subcommands."""

    def test_config_path(self) -> None:
        """Test printing the default config path."""
        result = runner.invoke(app, ["config", "path"])

        assert result.exit_code == 0
        assert "crate-dl" in result.output
        assert "config.yaml" in result.output

    def test_config_init_and_show(self, tmp_path: Path) -> None:
        """Test creating a config file and showing it."""
        config_file = tmp_path / "c.yaml"

        first = runner.invoke(app, ["config", "init", "--config", str(config_file)])
        second = runner.invoke(app, ["config", "init", "--config", str(config_file)])
        shown = runner.invoke(app, ["config", "show", "--config", str(config_file)])

        assert first.exit_code == 0
        assert "initialized" in first.output
        assert config_file.exists()
        assert "already exists" in second.output
        assert shown.exit_code == 0
        assert "index_url: https://index.crates.io/" in shown.output

    def test_config_init_force(self, tmp_path: Path) -> None:
        """Test that --force replaces an existing file."""
        config_file = tmp_path / "c.yaml"
        config_file.write_text("max_retries: 9\n")

        result = runner.invoke(app, ["config", "init", "--force", "--config", str(config_file)])

        assert result.exit_code == 0
        assert "max_retries: 3" in config_file.read_text()
