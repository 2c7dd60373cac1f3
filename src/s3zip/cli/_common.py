"""Shared utilities for the CLI command modules.

Provides the Rich console, logging setup and config loading used by
every command.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console

from .. import DEFAULT_CONFIG
from ..config import load_config
from ..errors import S3ZipError
from ..models import S3ZipConfig

console = Console()
logger = logging.getLogger("s3zip.cli")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
QUIET_LOGGERS = ("boto3", "botocore", "s3transfer", "urllib3")


def setup_logging(debug: bool = False) -> None:
    """Configure stderr logging for a CLI invocation."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )
    if not debug:
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def load_or_exit(config_path: Optional[str]) -> S3ZipConfig:
    """Load the config file or print the error and exit 1."""
    try:
        return load_config(Path(config_path) if config_path else None)
    except S3ZipError as exc:
        console.print(f"[red]{exc}[/]")
        raise SystemExit(1)


def select_targets(config: S3ZipConfig, target: Optional[str]) -> S3ZipConfig:
    """Narrow the config to the target whose path matches, if given."""
    if not target:
        return config
    wanted = Path(target).expanduser().resolve()
    chosen = [t for t in config.targets if t.path.resolve() == wanted]
    if not chosen:
        console.print(f"[red]No configured target for {target}[/]")
        raise SystemExit(1)
    return config.model_copy(update={"targets": chosen})
