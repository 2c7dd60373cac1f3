"""
Configuration loading -- YAML on disk, validated by pydantic.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from . import DEFAULT_CONFIG
from .errors import ConfigError
from .models import S3ZipConfig

logger = logging.getLogger("s3zip.config")


def load_config(path: Optional[Path] = None) -> S3ZipConfig:
    """Read and validate the configuration file.

    Args:
        path: Config file path. Defaults to $S3ZIP_CONFIG or
            ~/.config/s3zip/config.yaml.

    Returns:
        The validated configuration.

    Raises:
        ConfigError: If the file is missing, is not valid YAML, or does
            not match the schema.
    """
    config_file = Path(path or DEFAULT_CONFIG).expanduser()
    logger.info("Loading config: %s", config_file)

    try:
        text = config_file.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"open config file {config_file}: {exc}") from exc

    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"decode config file {config_file}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"decode config file {config_file}: expected a mapping")

    try:
        config = S3ZipConfig(**data)
    except ValidationError as exc:
        raise ConfigError(f"invalid config file {config_file}: {exc}") from exc

    logger.info("Loaded config with %d target(s)", len(config.targets))
    return config
