"""Reading and writing the crate-dl settings file.

Settings live in ``$XDG_CONFIG_HOME/crate-dl/config.yaml`` (``~/.config`` when
the variable is unset). Every key is optional and maps onto a field of
:class:`~cratedl.models.DownloaderConfig`::

    index_url: https://index.crates.io/
    cache_enabled: true
    max_concurrent: 8

A missing file means "all defaults"; a file that exists but cannot be used is
a :class:`~cratedl.errors.ConfigFileError`, which the CLI reports as a usage
error before any download starts.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError

from .errors import ConfigFileError
from .interfaces import ConfigLoader
from .models import DownloaderConfig

logger = structlog.get_logger(__name__)

CONFIG_DIR_NAME = "crate-dl"
CONFIG_FILE_NAME = "config.yaml"


def get_config_dir() -> Path:
    """Directory holding the settings file. Looking it up never creates it."""
    config_home = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(config_home, CONFIG_DIR_NAME)


def get_default_config_path() -> Path:
    return get_config_dir() / CONFIG_FILE_NAME


class YamlConfigLoader(ConfigLoader):
    """Plain YAML documents in and out, with no knowledge of the settings model."""

    def load(self, path: str) -> dict[str, Any]:
        """Parse ``path``; an empty document reads as an empty mapping.

        Raises:
            FileNotFoundError: If there is no file at ``path``.
            yaml.YAMLError: If the document does not parse.
        """
        try:
            text = Path(path).read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("config_file_absent", path=path)
            raise
        document = yaml.safe_load(text)
        return {} if document is None else document  # type: ignore[no-any-return]

    def save(self, config: dict[str, Any], path: str) -> None:
        destination = Path(path)
        destination.parent.mkdir(parents=True, exist_ok=True)
        with destination.open("w", encoding="utf-8") as stream:
            yaml.safe_dump(config, stream, default_flow_style=False, sort_keys=False)
        logger.info("config_written", path=path)


class ConfigManager:
    """Turns the settings file into a validated :class:`DownloaderConfig`.

    The CLI's ``--config`` option selects another file; otherwise the XDG
    location from :func:`get_default_config_path` is used.
    """

    def __init__(self, config_path: Path | None = None) -> None:
        self.config_path = config_path or get_default_config_path()
        self._loader = YamlConfigLoader()
        self._config: DownloaderConfig | None = None

    def load(self) -> DownloaderConfig:
        """Read and validate the settings file.

        Raises:
            ConfigFileError: If the file exists but is unreadable, is not
                YAML, or holds settings the model rejects.
        """
        document = self._read_document()
        self._config = DownloaderConfig() if document is None else self._validate(document)
        return self._config

    def get_config(self) -> DownloaderConfig:
        """The settings read last, loading them on first use."""
        if self._config is not None:
            return self._config
        return self.load()

    def save(self, config: DownloaderConfig | None = None) -> None:
        """Write ``config`` (or the settings held now, or defaults) to the file."""
        self._config = config or self._config or DownloaderConfig()
        # Every field is written so the file documents the available settings.
        self._loader.save(self._config.model_dump(mode="json"), str(self.config_path))

    def init_config(self, force: bool = False) -> bool:
        """Write a file of default settings.

        Returns:
            False when a file is already there and ``force`` is not set.
        """
        if not force and self.config_path.exists():
            logger.info("config_left_unchanged", path=str(self.config_path))
            return False
        self.save(DownloaderConfig())
        return True

    def _read_document(self) -> Any:
        try:
            return self._loader.load(str(self.config_path))
        except FileNotFoundError:
            logger.debug("config_defaults_used", path=str(self.config_path))
            return None
        except yaml.YAMLError as e:
            raise ConfigFileError(f"{self.config_path} is not valid YAML: {e}") from e
        except OSError as e:
            raise ConfigFileError(f"cannot read {self.config_path}: {e}") from e

    def _validate(self, document: Any) -> DownloaderConfig:
        if not isinstance(document, dict):
            raise ConfigFileError(f"{self.config_path} must contain a mapping of settings")
        try:
            return DownloaderConfig.model_validate(document)
        except ValidationError as e:
            raise ConfigFileError(f"invalid configuration in {self.config_path}: {e}") from e
